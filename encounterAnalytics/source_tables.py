"""
Source Snapshot

Typed schemas for the raw operational relations and a reader that conforms
whatever the upstream feed landed (typed or all-STRING) to those schemas.
"""

from typing import Dict, Callable

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as F
from pyspark.sql.types import (
    StructType, StructField, StringType, IntegerType, DateType,
    DecimalType, BooleanType, DataType, NumericType
)

from .config import PipelineConfig, TABLE_DEFINITIONS, pipe, get_full_table_name
from .errors import SourceSchemaError
from .validation import check_not_null, check_unique


# Regex patterns for type validation
NUMERIC_PATTERN = r"^-?\d+\.?\d*$"
INTEGER_PATTERN = r"^-?\d+$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}"  # Prefix match, accepts timestamps too
TRUE_VALUES = ["1", "true", "t", "y", "yes"]
FALSE_VALUES = ["0", "false", "f", "n", "no"]


SOURCE_SCHEMAS: Dict[str, StructType] = {
    "medical_events": StructType([
        StructField("event_id", IntegerType(), False),
        StructField("patient_id", IntegerType(), False),
        StructField("physician_id", IntegerType(), True),
        StructField("admit_date", DateType(), False),
        StructField("discharge_date", DateType(), True),
        StructField("admission_type_id", IntegerType(), True),
        StructField("discharge_type_id", IntegerType(), True),
        StructField("total_cost", DecimalType(12, 2), True),
        StructField("diagnosis_code", StringType(), True),
        StructField("department", StringType(), True),
    ]),

    "physicians": StructType([
        StructField("physician_id", IntegerType(), False),
        StructField("npi", StringType(), True),
        StructField("first_name", StringType(), False),
        StructField("last_name", StringType(), False),
        StructField("specialty", StringType(), True),
        StructField("department", StringType(), True),
        StructField("hire_date", DateType(), True),
        StructField("is_active", BooleanType(), True),
    ]),

    "patients": StructType([
        StructField("patient_id", IntegerType(), False),
        StructField("mrn", StringType(), True),
        StructField("first_name", StringType(), True),
        StructField("last_name", StringType(), True),
        StructField("date_of_birth", DateType(), True),
        StructField("gender", StringType(), True),
        StructField("zip_code", StringType(), True),
    ]),

    "admission_types": StructType([
        StructField("admission_type_id", IntegerType(), False),
        StructField("admission_type_code", StringType(), False),
        StructField("admission_type_desc", StringType(), False),
        StructField("is_emergency", BooleanType(), True),
        StructField("is_active", BooleanType(), True),
    ]),

    "discharge_types": StructType([
        StructField("discharge_type_id", IntegerType(), False),
        StructField("discharge_type_code", StringType(), False),
        StructField("discharge_type_desc", StringType(), False),
        StructField("is_active", BooleanType(), True),
    ]),
}

PRIMARY_KEYS: Dict[str, str] = {t.name: t.primary_key for t in TABLE_DEFINITIONS}


# Safe conversions: malformed or out-of-range input becomes NULL instead of failing the job
def _trimmed(col_name: str) -> F.Column:
    return F.trim(F.col(col_name).cast(StringType()))


def try_cast(col_sql: str, data_type: DataType) -> F.Column:
    """SQL try_cast: NULL on overflow or bad input, ANSI mode included."""
    return F.expr(f"try_cast({col_sql} AS {data_type.simpleString()})")


def safe_cast(col_name: str, data_type: DataType, source_type: DataType = StringType()) -> F.Column:
    """Cast a column to data_type, returning NULL for malformed input.

    Numeric sources convert from their native value. Text is trimmed and
    pattern-checked first, so "1.5" never truncates into an integer key.
    """
    if isinstance(source_type, NumericType) and isinstance(data_type, (IntegerType, DecimalType)):
        return try_cast(f"`{col_name}`", data_type)

    col_val = _trimmed(col_name)
    present = col_val.isNotNull() & (col_val != "")
    trimmed_sql = f"trim(CAST(`{col_name}` AS STRING))"

    if isinstance(data_type, StringType):
        return F.when(present, col_val)
    if isinstance(data_type, IntegerType):
        return F.when(present & col_val.rlike(INTEGER_PATTERN), try_cast(trimmed_sql, data_type))
    if isinstance(data_type, DecimalType):
        return F.when(present & col_val.rlike(NUMERIC_PATTERN), try_cast(trimmed_sql, data_type))
    if isinstance(data_type, DateType):
        return F.when(
            present & col_val.rlike(DATE_PATTERN),
            F.try_to_timestamp(F.substring(col_val, 1, 10), F.lit("yyyy-MM-dd")).cast(DateType())
        )
    if isinstance(data_type, BooleanType):
        lowered = F.lower(col_val)
        return (
            F.when(lowered.isin(TRUE_VALUES), F.lit(True))
             .when(lowered.isin(FALSE_VALUES), F.lit(False))
        )
    return F.col(col_name).cast(data_type)


def conform_to_schema(schema: StructType, table_name: str = "") -> Callable[[DataFrame], DataFrame]:
    """Select exactly the schema's columns, safely cast to their declared types."""
    def transform(df: DataFrame) -> DataFrame:
        available = {c.lower(): c for c in df.columns}
        missing = [f.name for f in schema.fields if f.name.lower() not in available]
        if missing:
            raise SourceSchemaError(table_name or "source", missing)
        renamed = df.select(*[F.col(available[f.name.lower()]).alias(f.name) for f in schema.fields])
        landed = {f.name: f.dataType for f in renamed.schema.fields}
        return renamed.select(*[
            safe_cast(f.name, f.dataType, landed[f.name]).cast(f.dataType).alias(f.name)
            for f in schema.fields
        ])
    return transform


def required_columns(schema: StructType):
    return [f.name for f in schema.fields if not f.nullable]


def read_source_table(spark: SparkSession, config: PipelineConfig, table_name: str) -> DataFrame:
    """Read a source relation conformed to its typed schema.

    Required columns are checked for nulls (which includes values that failed
    their safe cast) and the primary key is checked for uniqueness.
    """
    schema = SOURCE_SCHEMAS.get(table_name)
    if schema is None:
        raise ValueError(f"No schema defined for source table: {table_name}")

    full_table = get_full_table_name(config, "source", table_name)
    df = pipe(spark.table(full_table), conform_to_schema(schema, full_table))

    check_not_null(df, full_table, required_columns(schema))
    primary_key = PRIMARY_KEYS.get(table_name)
    if primary_key:
        check_unique(df, full_table, [primary_key])
    return df
