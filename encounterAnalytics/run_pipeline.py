"""
Pipeline Orchestration

End-to-end orchestration for the Encounter Analytics Pipeline.

Usage:
    # Run in Databricks notebook or as a script
    from pyspark.sql import SparkSession
    spark = SparkSession.builder.getOrCreate()

    from encounterAnalytics import run_pipeline, create_config

    config = create_config(catalog="my_catalog")
    result = run_pipeline(spark, config)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import uuid
import json
import time

from pyspark.sql import SparkSession

from .config import (
    DEFAULT_SPECIALTY_CATEGORIES, PipelineConfig, create_config, create_config_from_widgets,
    setup_catalog_and_schemas, setup_widgets, print_config_summary
)
from .analytics_tables import ANALYTICS_TABLE_REGISTRY, run_analytics_builds_in_order, LoadResult


STAGE_CATEGORIES: Dict[str, List[str]] = {
    "encounters": ["fact"],
    "downstream": ["aggregate", "cohort", "pivot"],
}
STAGE_CHOICES = ["all", "encounters", "downstream"]


@dataclass
class StageResult:
    """Result of a pipeline stage."""
    stage_name: str
    tables_processed: int
    tables_successful: int
    total_rows: int
    elapsed_seconds: float
    success: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class PipelineResult:
    """Result of the full pipeline run."""
    run_id: str
    config: PipelineConfig
    start_time: datetime
    end_time: datetime
    stages: List[StageResult]
    success: bool

    @property
    def total_elapsed_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    @property
    def total_rows(self) -> int:
        return sum(s.total_rows for s in self.stages)

    def to_dict(self) -> Dict:
        return {
            "run_id": self.run_id,
            "catalog": self.config.catalog,
            "source_schema": self.config.source_schema,
            "analytics_schema": self.config.analytics_schema,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "elapsed_seconds": self.total_elapsed_seconds,
            "success": self.success,
            "total_rows": self.total_rows,
            "stages": [
                {
                    "name": s.stage_name,
                    "tables": s.tables_processed,
                    "successful": s.tables_successful,
                    "rows": s.total_rows,
                    "seconds": s.elapsed_seconds,
                    "success": s.success,
                    "errors": s.errors
                }
                for s in self.stages
            ]
        }


def summarize_stage(stage_name: str, results: List[LoadResult], elapsed: float, expected: int) -> StageResult:
    """Fold per-table load results into a stage result."""
    successful = [r for r in results if r.success]
    failed = [r for r in results if not r.success]
    errors = [f"{r.table_name}: {r.error}" for r in failed]
    skipped = expected - len(results)
    if skipped > 0:
        errors.append(f"{skipped} table(s) skipped after upstream failures")

    return StageResult(
        stage_name=stage_name,
        tables_processed=len(results),
        tables_successful=len(successful),
        total_rows=sum(r.row_count for r in successful),
        elapsed_seconds=round(elapsed, 2),
        success=len(failed) == 0 and skipped <= 0,
        errors=errors
    )


def run_stage(spark: SparkSession, config: PipelineConfig, stage_name: str, title: str) -> StageResult:
    """Run the analytics tables belonging to one stage."""
    print("\n" + "="*60)
    print(f"{stage_name.upper()} STAGE: {title}")
    print("="*60)

    start_time = time.time()
    categories = STAGE_CATEGORIES[stage_name]
    results = run_analytics_builds_in_order(spark, config, categories)

    expected = sum(1 for d in ANALYTICS_TABLE_REGISTRY.values() if d.category in categories)
    return summarize_stage(stage_name, results, time.time() - start_time, expected)


def run_pipeline(
    spark: SparkSession,
    config: PipelineConfig,
    stages: str = "all"
) -> PipelineResult:
    """Run the data pipeline.

    Args:
        spark: SparkSession
        config: Pipeline configuration
        stages: Which stages to run ('all', 'encounters', 'downstream')

    Returns:
        PipelineResult with run metrics
    """
    if stages not in STAGE_CHOICES:
        raise ValueError(f"Unknown stages '{stages}', expected one of {STAGE_CHOICES}")

    run_id = str(uuid.uuid4())[:8]
    start_time = datetime.now()
    stage_results = []

    print("\n" + "#"*60)
    print(f"ENCOUNTER ANALYTICS PIPELINE - Run: {run_id}")
    print("#"*60)

    print_config_summary(config)
    print(f"\nStages to run: {stages}")

    print("\n[Setup] Creating schemas...")
    setup_catalog_and_schemas(spark, config)
    print("[Setup] Done")

    run_encounters = stages in ("all", "encounters")
    run_downstream = stages in ("all", "downstream")

    if run_encounters:
        stage_results.append(run_stage(spark, config, "encounters", "Encounter Consolidation"))

    # Downstream tables read the fact table, so a failed consolidation stops here
    downstream_skipped = False
    if run_downstream and all(s.success for s in stage_results):
        stage_results.append(run_stage(spark, config, "downstream", "Aggregates, Cohorts and Pivots"))
    elif run_downstream:
        print("\nSkipping downstream stage: encounter consolidation failed")
        downstream_skipped = True

    end_time = datetime.now()

    result = PipelineResult(
        run_id=run_id,
        config=config,
        start_time=start_time,
        end_time=end_time,
        stages=stage_results,
        success=all(s.success for s in stage_results) and not downstream_skipped
    )

    print("\n" + "#"*60)
    print("PIPELINE EXECUTION SUMMARY")
    print("#"*60)
    print(f"\nRun ID:       {result.run_id}")
    print(f"Status:       {'SUCCESS' if result.success else 'FAILED'}")
    print(f"Duration:     {result.total_elapsed_seconds:.1f} seconds")
    print(f"Total Rows:   {result.total_rows:,}")

    print("\nStage Results:")
    print("-" * 60)
    for stage in result.stages:
        status = "OK" if stage.success else "FAILED"
        print(f"  {stage.stage_name.upper():10} | {status:6} | {stage.tables_successful}/{stage.tables_processed} tables | {stage.total_rows:,} rows | {stage.elapsed_seconds}s")
        if stage.errors:
            for err in stage.errors:
                print(f"    ERROR: {err}")

    print("\n" + "#"*60)

    return result


def main_with_widgets(spark: SparkSession, dbutils) -> PipelineResult:
    """Main entry point when running with Databricks widgets."""
    setup_widgets(dbutils)
    dbutils.widgets.dropdown("stages", "all", STAGE_CHOICES, "Pipeline Stages")

    config = create_config_from_widgets(dbutils)
    stages = dbutils.widgets.get("stages")

    return run_pipeline(spark, config, stages=stages)


def main(
    spark: SparkSession,
    catalog: str = "healthcare_dev",
    source_schema: str = "source",
    analytics_schema: str = "analytics",
    table_format: str = "delta",
    readmission_window_days: int = 30,
    urgent_readmission_days: int = 7,
    specialty_categories: Tuple[str, ...] = DEFAULT_SPECIALTY_CATEGORIES,
    pivot_periods: Optional[Tuple[str, ...]] = None,
    reject_inverted_stays: bool = False,
    stages: str = "all"
) -> PipelineResult:
    """Main entry point with explicit parameters."""
    config = create_config(
        catalog=catalog,
        source_schema=source_schema,
        analytics_schema=analytics_schema,
        table_format=table_format,
        readmission_window_days=readmission_window_days,
        urgent_readmission_days=urgent_readmission_days,
        specialty_categories=specialty_categories,
        pivot_periods=pivot_periods,
        reject_inverted_stays=reject_inverted_stays
    )

    return run_pipeline(spark, config, stages=stages)


# Entry point for running as a script
if __name__ == "__main__":
    spark = SparkSession.builder.getOrCreate()
    result = main(spark)
    print("\nPipeline run metadata (JSON):")
    print(json.dumps(result.to_dict(), indent=2))
