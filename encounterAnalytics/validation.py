"""
Validation

Structural checks run on source relations before a build and on built
DataFrames before they are written.
"""

from typing import List, Optional, Sequence

from pyspark.sql import DataFrame
from pyspark.sql import functions as F

from .errors import ConstraintViolationError, UnresolvedReferenceError

SAMPLE_SIZE = 5


def check_not_null(df: DataFrame, table: str, columns: Sequence[str]) -> DataFrame:
    """Raise if any of the given columns holds a null."""
    if not columns:
        return df
    counts = df.agg(*[
        F.sum(F.when(F.col(c).isNull(), 1).otherwise(0)).alias(c) for c in columns
    ]).first()
    for c in columns:
        if counts[c]:
            raise ConstraintViolationError(table, f"{counts[c]} null value(s) in required column '{c}'")
    return df


def check_unique(df: DataFrame, table: str, key_columns: Sequence[str]) -> DataFrame:
    """Raise if the key columns do not uniquely identify rows."""
    if not key_columns:
        return df
    duplicates = (
        df.groupBy(*key_columns)
        .count()
        .filter(F.col("count") > 1)
        .orderBy(*key_columns)
        .limit(SAMPLE_SIZE)
        .collect()
    )
    if duplicates:
        sample = [tuple(row[c] for c in key_columns) for row in duplicates]
        raise ConstraintViolationError(table, f"duplicate key on ({', '.join(key_columns)})", sample)
    return df


def check_references(
    df: DataFrame,
    table: str,
    column: str,
    reference: DataFrame,
    reference_column: str,
    id_column: Optional[str] = None
) -> DataFrame:
    """Raise if a non-null foreign key in df has no row in reference.

    With id_column set, the error also names the offending rows by that id.
    """
    orphans = (
        df.filter(F.col(column).isNotNull())
        .join(
            reference.select(F.col(reference_column).alias(column)).distinct(),
            on=column,
            how="left_anti"
        )
    )
    missing = orphans.select(column).distinct().orderBy(column).limit(SAMPLE_SIZE).collect()
    if missing:
        rows = []
        if id_column:
            rows = sample_ids(orphans, id_column)
        raise UnresolvedReferenceError(table, column, [row[column] for row in missing], rows)
    return df


def find_inverted_stays(df: DataFrame, start_col: str = "admit_date", end_col: str = "discharge_date") -> DataFrame:
    """Rows whose end endpoint precedes their start endpoint."""
    return df.filter(F.col(end_col).isNotNull() & (F.col(end_col) < F.col(start_col)))


def sample_ids(df: DataFrame, id_col: str) -> List:
    """First few ids of a DataFrame, for error messages."""
    return [row[id_col] for row in df.select(id_col).orderBy(id_col).limit(SAMPLE_SIZE).collect()]
