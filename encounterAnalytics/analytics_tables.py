"""
Analytics Layer: Fact, Aggregates, Cohorts, Readmissions and Pivots

Build the analytics-ready tables from the consolidated encounter fact and
write them back with full-reload semantics (the specialty pivot only replaces
the report periods it rebuilds).
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Callable, Tuple
import time

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as F
from pyspark.sql.types import IntegerType, DecimalType, StructType, StructField, DateType
from pyspark.sql.window import Window

from .config import (
    PipelineConfig, OTHER_COLUMN, TOTAL_COLUMN,
    get_full_table_name, pivot_column_name, normalize_period
)
from .encounters import build_medical_encounters
from .errors import PipelineError
from .validation import check_not_null, check_unique


def read_encounters(spark: SparkSession, config: PipelineConfig) -> DataFrame:
    return spark.table(get_full_table_name(config, "analytics", "medical_encounters"))


def month_start(col_name: str) -> F.Column:
    """First day of the month containing the date."""
    return F.trunc(F.col(col_name), "month")


# Aggregate builders
def build_cost_summary(spark: SparkSession, config: PipelineConfig) -> DataFrame:
    """Build cost summary by month, admission type and specialty.

    Encounters without a cost (typically still admitted) are excluded from
    every aggregate.
    """
    encounters = read_encounters(spark, config)

    summary = encounters.filter(F.col("total_cost").isNotNull()).groupBy(
        month_start("admit_date").alias("summary_period"),
        F.col("admission_type"),
        F.col("specialty")
    ).agg(
        F.count("*").cast(IntegerType()).alias("encounter_count"),
        F.sum(F.col("total_cost")).cast(DecimalType(14, 2)).alias("total_cost"),
        F.round(F.avg(F.col("total_cost")), 2).cast(DecimalType(12, 2)).alias("avg_cost"),
        F.min(F.col("total_cost")).alias("min_cost"),
        F.max(F.col("total_cost")).alias("max_cost"),
        F.round(F.avg(F.col("length_of_stay")), 1).cast(DecimalType(5, 1)).alias("avg_length_of_stay"),
    )

    # Unpartitioned window: a single task numbers every row. Fine for one row per group.
    summary_order = Window.orderBy("summary_period", "admission_type", "specialty")
    return summary.select(
        F.row_number().over(summary_order).alias("summary_id"),
        "summary_period",
        "admission_type",
        "specialty",
        "encounter_count",
        "total_cost",
        "avg_cost",
        "min_cost",
        "max_cost",
        "avg_length_of_stay",
    )


# Cohort builders
def build_first_visits(spark: SparkSession, config: PipelineConfig) -> DataFrame:
    """Build each patient's first encounter.

    Same-day encounters are tie-broken by the lowest event_id.
    """
    encounters = read_encounters(spark, config)

    visit_order = Window.partitionBy("patient_id").orderBy(
        F.col("admit_date").asc(), F.col("event_id").asc()
    )

    return encounters.withColumn(
        "visit_rank", F.row_number().over(visit_order)
    ).filter(F.col("visit_rank") == 1).select(
        F.col("patient_id"),
        F.col("admit_date").alias("first_visit_date"),
        F.col("physician_id").alias("first_physician_id"),
        F.col("physician_name").alias("first_physician"),
        F.col("specialty").alias("first_specialty"),
        F.col("admission_type").alias("first_admission_type"),
        F.col("diagnosis_code").alias("first_diagnosis"),
    )


def build_readmissions(spark: SparkSession, config: PipelineConfig) -> DataFrame:
    """Build readmission pairs within the configured window.

    Each discharged encounter is paired with every later admission of the same
    patient that starts after the discharge and within the window. The join is
    on patient_id, so pairs are only ever formed inside one patient's history.
    """
    encounters = read_encounters(spark, config)
    window_days = config.readmission_window_days

    initial = encounters.filter(F.col("discharge_date").isNotNull()).select(
        F.col("patient_id"),
        F.col("event_id").alias("initial_event_id"),
        F.col("admit_date").alias("initial_admit_date"),
        F.col("discharge_date").alias("initial_discharge"),
        F.col("diagnosis_code").alias("initial_diagnosis"),
    )

    readmit = encounters.select(
        F.col("patient_id"),
        F.col("event_id").alias("readmit_event_id"),
        F.col("admit_date").alias("readmit_date"),
        F.col("diagnosis_code").alias("readmit_diagnosis"),
    )

    pairs = initial.join(readmit, on="patient_id", how="inner").withColumn(
        "days_to_readmit", F.datediff(F.col("readmit_date"), F.col("initial_discharge"))
    ).filter(
        (F.col("initial_event_id") != F.col("readmit_event_id")) &
        (F.col("readmit_date") > F.col("initial_discharge")) &
        (F.col("days_to_readmit") <= window_days)
    )

    # Unpartitioned window: a single task numbers every pair so ids stay dense and
    # stable across reruns. Partition by patient and offset ids if pair counts outgrow one executor.
    pair_order = Window.orderBy("patient_id", "initial_event_id", "readmit_event_id")
    return pairs.select(
        F.row_number().over(pair_order).alias("readmission_id"),
        F.col("patient_id"),
        F.col("initial_event_id"),
        F.col("initial_admit_date"),
        F.col("initial_discharge"),
        F.col("initial_diagnosis"),
        F.col("readmit_event_id"),
        F.col("readmit_date"),
        F.col("readmit_diagnosis"),
        F.col("days_to_readmit"),
        (F.col("days_to_readmit") <= window_days).alias("is_30_day_readmit"),
        (F.col("days_to_readmit") <= config.urgent_readmission_days).alias("is_7_day_readmit"),
    )


# Pivot builders
def resolve_pivot_periods(encounters: DataFrame, config: PipelineConfig) -> List[date]:
    """Report periods to rebuild: configured ones, or every month with encounters."""
    if config.pivot_periods:
        return sorted({normalize_period(p) for p in config.pivot_periods})
    rows = encounters.select(month_start("admit_date").alias("period")).distinct().orderBy("period").collect()
    return [row.period for row in rows]


def build_specialty_counts(spark: SparkSession, config: PipelineConfig) -> DataFrame:
    """Build encounter counts pivoted by specialty, one row per report period.

    Every requested period gets a row, with zero counts when it has no
    encounters. Specialties outside the configured list count as 'other'.
    """
    encounters = read_encounters(spark, config)
    periods = resolve_pivot_periods(encounters, config)
    labels = list(config.specialty_categories)

    scoped = encounters.withColumn("report_period", month_start("admit_date")).filter(
        F.col("report_period").isin(periods)
    )

    label_counts = [
        F.sum(F.when(F.col("specialty") == label, 1).otherwise(0)).alias(pivot_column_name(label))
        for label in labels
    ]
    counts = scoped.groupBy("report_period").agg(
        *label_counts,
        F.sum(F.when(F.col("specialty").isin(labels), 0).otherwise(1)).alias(OTHER_COLUMN),
        F.count("*").alias(TOTAL_COLUMN),
    )

    period_frame = spark.createDataFrame(
        [(p,) for p in periods],
        StructType([StructField("report_period", DateType(), False)])
    )
    count_columns = [pivot_column_name(label) for label in labels] + [OTHER_COLUMN, TOTAL_COLUMN]

    return period_frame.join(counts, on="report_period", how="left").select(
        F.col("report_period"),
        *[F.coalesce(F.col(c), F.lit(0)).cast(IntegerType()).alias(c) for c in count_columns]
    )


# Analytics table registry
@dataclass(frozen=True)
class AnalyticsTableDef:
    """Definition of an analytics table."""
    name: str
    category: str
    build_fn: Callable[[SparkSession, PipelineConfig], DataFrame]
    dependencies: Tuple[str, ...] = ()
    key_columns: Tuple[str, ...] = ()
    required_columns: Tuple[str, ...] = ()
    period_column: Optional[str] = None  # When set, only the built periods are replaced


ANALYTICS_TABLE_REGISTRY: Dict[str, AnalyticsTableDef] = {
    # Facts
    "medical_encounters": AnalyticsTableDef(
        "medical_encounters", "fact", build_medical_encounters,
        key_columns=("event_id",),
        required_columns=("event_id", "patient_id", "admit_date")),
    # Aggregates
    "cost_summary": AnalyticsTableDef(
        "cost_summary", "aggregate", build_cost_summary, ("medical_encounters",),
        key_columns=("summary_period", "admission_type", "specialty"),
        required_columns=("summary_id", "summary_period")),
    # Cohorts
    "first_visits": AnalyticsTableDef(
        "first_visits", "cohort", build_first_visits, ("medical_encounters",),
        key_columns=("patient_id",),
        required_columns=("patient_id", "first_visit_date")),
    "readmission_analysis": AnalyticsTableDef(
        "readmission_analysis", "cohort", build_readmissions, ("medical_encounters",),
        key_columns=("initial_event_id", "readmit_event_id"),
        required_columns=("patient_id", "initial_event_id", "initial_admit_date", "initial_discharge",
                          "readmit_event_id", "readmit_date", "days_to_readmit")),
    # Pivots
    "specialty_counts": AnalyticsTableDef(
        "specialty_counts", "pivot", build_specialty_counts, ("medical_encounters",),
        key_columns=("report_period",),
        required_columns=("report_period",),
        period_column="report_period"),
}

CATEGORY_ORDER: Tuple[str, ...] = ("fact", "aggregate", "cohort", "pivot")


@dataclass
class LoadResult:
    """Result of an analytics table load."""
    table_name: str
    category: str
    row_count: int
    elapsed_seconds: float
    success: bool
    error: Optional[str] = None


def overwrite_table(config: PipelineConfig, df: DataFrame, full_table: str) -> None:
    """Replace a table's contents in a single overwrite (atomic on Delta)."""
    writer = df.write.format(config.table_format).mode("overwrite")
    if config.table_format == "delta":
        writer = writer.option("overwriteSchema", "true")
    writer.saveAsTable(full_table)


def period_predicate(period_column: str, periods) -> str:
    """SQL predicate selecting the given month-start dates, for Delta replaceWhere."""
    literals = ", ".join(f"DATE '{p.isoformat()}'" for p in periods)
    return f"{period_column} IN ({literals})"


def replace_periods(
    spark: SparkSession,
    config: PipelineConfig,
    df: DataFrame,
    full_table: str,
    period_column: str
) -> int:
    """Replace only the rows of the periods present in df. Returns rows written."""
    periods = sorted(row[0] for row in df.select(period_column).distinct().collect())
    if not spark.catalog.tableExists(full_table):
        overwrite_table(config, df, full_table)
        return len(periods)
    if not periods:
        return 0

    existing = spark.table(full_table)
    if set(existing.columns) != set(df.columns):
        raise PipelineError(
            f"{full_table} columns {sorted(existing.columns)} do not match the configured pivot "
            f"columns {sorted(df.columns)}; drop the table to rebuild it"
        )

    if config.table_format == "delta":
        predicate = period_predicate(period_column, periods)
        (
            df.select(*existing.columns).write
            .format("delta")
            .mode("overwrite")
            .option("replaceWhere", predicate)
            .saveAsTable(full_table)
        )
    else:
        retained = existing.filter(~F.col(period_column).isin(periods))
        combined = retained.unionByName(df).localCheckpoint()
        overwrite_table(config, combined, full_table)
    return len(periods)


def write_analytics_table(
    spark: SparkSession,
    config: PipelineConfig,
    table_def: AnalyticsTableDef
) -> LoadResult:
    """Build, validate and write an analytics table."""
    start_time = time.time()
    try:
        df = table_def.build_fn(spark, config)
        full_table = get_full_table_name(config, "analytics", table_def.name)
        check_not_null(df, full_table, table_def.required_columns)
        check_unique(df, full_table, table_def.key_columns)

        if table_def.period_column:
            row_count = replace_periods(spark, config, df, full_table, table_def.period_column)
            scope = "rebuilt"
        else:
            overwrite_table(config, df, full_table)
            row_count = spark.table(full_table).count()
            scope = "loaded"

        elapsed = time.time() - start_time
        print(f"  Loaded {full_table}: {row_count:,} rows {scope} in {elapsed:.2f}s")
        return LoadResult(table_def.name, table_def.category, row_count, elapsed, True)
    except Exception as e:
        elapsed = time.time() - start_time
        error = f"{type(e).__name__}: {e}"
        print(f"  ERROR: {table_def.name} - {error}")
        return LoadResult(table_def.name, table_def.category, 0, elapsed, False, error)


# Independently callable loads
def load_medical_encounters(spark: SparkSession, config: PipelineConfig) -> LoadResult:
    return write_analytics_table(spark, config, ANALYTICS_TABLE_REGISTRY["medical_encounters"])


def load_cost_summary(spark: SparkSession, config: PipelineConfig) -> LoadResult:
    return write_analytics_table(spark, config, ANALYTICS_TABLE_REGISTRY["cost_summary"])


def load_first_visits(spark: SparkSession, config: PipelineConfig) -> LoadResult:
    return write_analytics_table(spark, config, ANALYTICS_TABLE_REGISTRY["first_visits"])


def load_readmissions(spark: SparkSession, config: PipelineConfig) -> LoadResult:
    return write_analytics_table(spark, config, ANALYTICS_TABLE_REGISTRY["readmission_analysis"])


def load_specialty_counts(spark: SparkSession, config: PipelineConfig) -> LoadResult:
    return write_analytics_table(spark, config, ANALYTICS_TABLE_REGISTRY["specialty_counts"])


def run_analytics_builds_in_order(
    spark: SparkSession,
    config: PipelineConfig,
    categories: Optional[List[str]] = None
) -> List[LoadResult]:
    """Run analytics builds respecting dependencies."""
    if categories is None:
        categories = list(CATEGORY_ORDER)

    results = []
    failed_tables = set()

    for category in categories:
        tables_in_category = [(name, defn) for name, defn in ANALYTICS_TABLE_REGISTRY.items() if defn.category == category]
        print(f"\nBuilding {category} tables ({len(tables_in_category)} tables)...")

        for name, table_def in tables_in_category:
            # Tables not built in this run are read as they currently stand
            failed_deps = [d for d in table_def.dependencies if d in failed_tables]
            if failed_deps:
                print(f"  Skipping {name}: failed dependencies {failed_deps}")
                failed_tables.add(name)
                continue

            result = write_analytics_table(spark, config, table_def)
            results.append(result)
            if not result.success:
                failed_tables.add(name)

    successful = sum(1 for r in results if r.success)
    total_rows = sum(r.row_count for r in results)
    print(f"\nCompleted: {successful}/{len(results)} tables, {total_rows:,} total rows")
    return results
