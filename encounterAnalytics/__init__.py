"""
Encounter Analytics Pipeline

A modular PySpark pipeline that turns raw medical events and their reference
tables into denormalized, analytics-ready tables with full-reload semantics.

Usage:
    from pyspark.sql import SparkSession
    spark = SparkSession.builder.getOrCreate()

    from encounterAnalytics import run_pipeline, create_config

    config = create_config(catalog="my_catalog")
    result = run_pipeline(spark, config)

Individual loads:
    from encounterAnalytics import (
        load_medical_encounters,
        load_cost_summary,
        load_first_visits,
        load_readmissions,
        load_specialty_counts
    )

    result = load_medical_encounters(spark, config)
    print(result.row_count if result.success else result.error)
"""

from .config import (
    PipelineConfig,
    create_config,
    create_config_from_widgets,
    setup_widgets,
    setup_catalog_and_schemas,
    get_full_table_name,
    pipe
)

from .run_pipeline import (
    run_pipeline,
    main,
    main_with_widgets,
    PipelineResult,
    StageResult
)

from .analytics_tables import (
    ANALYTICS_TABLE_REGISTRY,
    AnalyticsTableDef,
    LoadResult,
    load_medical_encounters,
    load_cost_summary,
    load_first_visits,
    load_readmissions,
    load_specialty_counts,
    run_analytics_builds_in_order
)

from .source_tables import SOURCE_SCHEMAS, read_source_table

from .errors import (
    PipelineError,
    SourceSchemaError,
    ConstraintViolationError,
    UnresolvedReferenceError,
    DataQualityError
)

__all__ = [
    # Config
    "PipelineConfig",
    "create_config",
    "create_config_from_widgets",
    "setup_widgets",
    "setup_catalog_and_schemas",
    "get_full_table_name",
    "pipe",
    # Pipeline
    "run_pipeline",
    "main",
    "main_with_widgets",
    "PipelineResult",
    "StageResult",
    # Analytics tables
    "ANALYTICS_TABLE_REGISTRY",
    "AnalyticsTableDef",
    "LoadResult",
    "load_medical_encounters",
    "load_cost_summary",
    "load_first_visits",
    "load_readmissions",
    "load_specialty_counts",
    "run_analytics_builds_in_order",
    # Source snapshot
    "SOURCE_SCHEMAS",
    "read_source_table",
    # Errors
    "PipelineError",
    "SourceSchemaError",
    "ConstraintViolationError",
    "UnresolvedReferenceError",
    "DataQualityError",
]
