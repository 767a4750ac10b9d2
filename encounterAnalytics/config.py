"""
Pipeline Configuration

Shared configuration and utility functions for the Encounter Analytics Pipeline.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Callable, TypeVar, Tuple, Union
from functools import reduce

from pyspark.sql import SparkSession

# Type variable for generic functions
T = TypeVar('T')


DEFAULT_SPECIALTY_CATEGORIES: Tuple[str, ...] = (
    "Cardiology",
    "Orthopedics",
    "Neurology",
    "Oncology",
    "Internal Medicine",
    "Emergency Medicine",
    "Surgery",
    "Pediatrics",
)

OTHER_COLUMN = "other"
TOTAL_COLUMN = "total_encounters"


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for the data pipeline."""
    catalog: str
    source_schema: str
    analytics_schema: str
    table_format: str = "delta"
    readmission_window_days: int = 30
    urgent_readmission_days: int = 7
    specialty_categories: Tuple[str, ...] = DEFAULT_SPECIALTY_CATEGORIES
    pivot_periods: Optional[Tuple[str, ...]] = None
    reject_inverted_stays: bool = False

    @property
    def source_full_path(self) -> str:
        return qualify(self.catalog, self.source_schema)

    @property
    def analytics_full_path(self) -> str:
        return qualify(self.catalog, self.analytics_schema)


@dataclass(frozen=True)
class TableDefinition:
    """Definition of a source table."""
    name: str
    primary_key: Optional[str]
    category: str


TABLE_DEFINITIONS: Tuple[TableDefinition, ...] = (
    TableDefinition("medical_events", "event_id", "transactional"),
    TableDefinition("physicians", "physician_id", "reference"),
    TableDefinition("patients", "patient_id", "reference"),
    TableDefinition("admission_types", "admission_type_id", "reference"),
    TableDefinition("discharge_types", "discharge_type_id", "reference"),
)


def create_config_from_widgets(dbutils) -> PipelineConfig:
    """Create config from Databricks widgets."""
    return create_config(
        catalog=dbutils.widgets.get("catalog"),
        source_schema=dbutils.widgets.get("source_schema"),
        analytics_schema=dbutils.widgets.get("analytics_schema"),
        table_format=dbutils.widgets.get("table_format"),
        readmission_window_days=int(dbutils.widgets.get("readmission_window_days")),
        urgent_readmission_days=int(dbutils.widgets.get("urgent_readmission_days")),
        specialty_categories=split_list(dbutils.widgets.get("specialty_categories")) or DEFAULT_SPECIALTY_CATEGORIES,
        pivot_periods=split_list(dbutils.widgets.get("pivot_periods")) or None,
        reject_inverted_stays=dbutils.widgets.get("reject_inverted_stays").lower() == "true"
    )


def split_list(value: str) -> Tuple[str, ...]:
    """Split a comma separated widget value, dropping blanks."""
    return tuple(p.strip() for p in value.split(",") if p.strip())


def create_config(
    catalog: str = "healthcare_dev",
    source_schema: str = "source",
    analytics_schema: str = "analytics",
    table_format: str = "delta",
    readmission_window_days: int = 30,
    urgent_readmission_days: int = 7,
    specialty_categories: Tuple[str, ...] = DEFAULT_SPECIALTY_CATEGORIES,
    pivot_periods: Optional[Tuple[str, ...]] = None,
    reject_inverted_stays: bool = False
) -> PipelineConfig:
    """Create config with explicit parameters."""
    if urgent_readmission_days > readmission_window_days:
        raise ValueError(
            f"urgent_readmission_days ({urgent_readmission_days}) cannot exceed "
            f"readmission_window_days ({readmission_window_days})"
        )
    columns = [pivot_column_name(label) for label in specialty_categories]
    if len(set(columns)) != len(columns) or {OTHER_COLUMN, TOTAL_COLUMN} & set(columns):
        raise ValueError(f"Specialty categories produce clashing pivot columns: {columns}")

    return PipelineConfig(
        catalog=catalog,
        source_schema=source_schema,
        analytics_schema=analytics_schema,
        table_format=table_format,
        readmission_window_days=readmission_window_days,
        urgent_readmission_days=urgent_readmission_days,
        specialty_categories=tuple(specialty_categories),
        pivot_periods=tuple(pivot_periods) if pivot_periods else None,
        reject_inverted_stays=reject_inverted_stays
    )


def setup_widgets(dbutils) -> None:
    """Setup Databricks widgets with default values."""
    dbutils.widgets.text("catalog", "healthcare_dev", "Catalog Name")
    dbutils.widgets.text("source_schema", "source", "Source Schema")
    dbutils.widgets.text("analytics_schema", "analytics", "Analytics Schema")
    dbutils.widgets.text("table_format", "delta", "Table Format")
    dbutils.widgets.text("readmission_window_days", "30", "Readmission Window (days)")
    dbutils.widgets.text("urgent_readmission_days", "7", "Urgent Readmission Window (days)")
    dbutils.widgets.text("specialty_categories", ",".join(DEFAULT_SPECIALTY_CATEGORIES), "Specialty Columns (comma separated)")
    dbutils.widgets.text("pivot_periods", "", "Pivot Periods (comma separated, blank = all)")
    dbutils.widgets.dropdown("reject_inverted_stays", "false", ["true", "false"], "Reject Inverted Stays")


# Functional utilities
def pipe(initial: T, *functions: Callable[[T], T]) -> T:
    """Pipe a value through multiple functions left-to-right."""
    return reduce(lambda acc, f: f(acc), functions, initial)


# Naming helpers
def qualify(*parts: str) -> str:
    """Join name parts with dots, skipping empty ones."""
    return ".".join(p for p in parts if p)


def get_full_table_name(config: PipelineConfig, layer: str, table_name: str) -> str:
    """Get fully qualified table name."""
    schema_map = {
        "source": config.source_schema,
        "analytics": config.analytics_schema
    }
    schema = schema_map.get(layer, layer)
    return qualify(config.catalog, schema, table_name)


def pivot_column_name(label: str) -> str:
    """Column name for a specialty label (spaces and dashes to underscores)."""
    return label.strip().lower().replace(" ", "_").replace("-", "_")


def normalize_period(value: Union[str, date, datetime]) -> date:
    """Normalize a date or ISO date string to the first day of its month."""
    if isinstance(value, datetime):
        value = value.date()
    elif isinstance(value, str):
        value = date.fromisoformat(value.strip()[:10])
    return value.replace(day=1)


# Setup functions
def setup_catalog_and_schemas(spark: SparkSession, config: PipelineConfig) -> None:
    """Create catalog (when configured) and schemas if they don't exist."""
    if config.catalog:
        spark.sql(f"CREATE CATALOG IF NOT EXISTS {config.catalog}")
        spark.sql(f"USE CATALOG {config.catalog}")

    for schema in [config.source_schema, config.analytics_schema]:
        spark.sql(f"CREATE SCHEMA IF NOT EXISTS {schema}")

    print(f"Catalog and schemas ready: {config.catalog or '<session>'}.{{{config.source_schema}, {config.analytics_schema}}}")


def print_config_summary(config: PipelineConfig) -> None:
    """Print configuration summary."""
    print("\n" + "="*60)
    print("PIPELINE CONFIGURATION SUMMARY")
    print("="*60)
    print(f"Catalog:            {config.catalog or '<session>'}")
    print(f"Source Schema:      {config.source_full_path}")
    print(f"Analytics Schema:   {config.analytics_full_path}")
    print(f"Table Format:       {config.table_format}")
    print(f"Readmission Window: {config.readmission_window_days} days (urgent: {config.urgent_readmission_days} days)")
    print(f"Pivot Specialties:  {', '.join(config.specialty_categories)}")
    print(f"Pivot Periods:      {', '.join(config.pivot_periods) if config.pivot_periods else 'all'}")
    print(f"Inverted Stays:     {'reject' if config.reject_inverted_stays else 'pass through'}")
    print("="*60)
