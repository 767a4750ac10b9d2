"""Shared fixtures: a local Spark session and the sample encounter snapshot."""

import uuid
from datetime import date
from decimal import Decimal

import pytest
from pyspark.sql import SparkSession
from pyspark.sql.types import StructType, StructField

from encounterAnalytics.config import create_config, setup_catalog_and_schemas, get_full_table_name
from encounterAnalytics.source_tables import SOURCE_SCHEMAS


ADMISSION_TYPES = [
    (1, "ER", "Emergency Room", True, True),
    (2, "URG", "Urgent Care", True, True),
    (3, "ELE", "Elective/Scheduled", False, True),
    (4, "OBS", "Observation", False, True),
    (5, "TRN", "Transfer from Another Facility", False, True),
    (6, "NB", "Newborn", False, True),
]

DISCHARGE_TYPES = [
    (1, "HOME", "Discharged to Home", True),
    (2, "SNF", "Skilled Nursing Facility", True),
    (3, "REHAB", "Rehabilitation Facility", True),
    (4, "AMA", "Left Against Medical Advice", True),
    (5, "TRANS", "Transferred to Another Hospital", True),
    (6, "EXP", "Expired", True),
    (7, "HOS", "Hospice Care", True),
]

PHYSICIANS = [
    (101, "1234567890", "Sarah", "Chen", "Cardiology", "Heart Center", None, True),
    (102, "2345678901", "Michael", "Johnson", "Orthopedics", "Musculoskeletal", None, True),
    (103, "3456789012", "Emily", "Williams", "Neurology", "Neuroscience", None, True),
    (104, "4567890123", "David", "Brown", "Internal Medicine", "General Medicine", None, True),
    (105, "5678901234", "Jessica", "Davis", "Emergency Medicine", "Emergency Dept", None, True),
    (106, "6789012345", "Robert", "Miller", "Oncology", "Cancer Center", None, True),
    (107, "7890123456", "Amanda", "Wilson", "Surgery", "Surgical Services", None, True),
    (108, "8901234567", "James", "Taylor", "Pediatrics", "Childrens Center", None, True),
    (109, "9012345678", "Lisa", "Anderson", "Cardiology", "Heart Center", None, True),
    (110, "0123456789", "Kevin", "Thomas", "Internal Medicine", "General Medicine", None, True),
]

PATIENTS = [
    (1001, "MRN001", "John", "Smith", date(1955, 3, 15), "M", "22101"),
    (1002, "MRN002", "Mary", "Johnson", date(1968, 7, 22), "F", "22102"),
    (1003, "MRN003", "Robert", "Williams", date(1945, 11, 30), "M", "22103"),
    (1004, "MRN004", "Patricia", "Brown", date(1978, 4, 18), "F", "22104"),
    (1005, "MRN005", "Michael", "Jones", date(1982, 9, 5), "M", "22105"),
    (1006, "MRN006", "Jennifer", "Garcia", date(1990, 1, 12), "F", "22106"),
    (1007, "MRN007", "William", "Miller", date(1938, 6, 28), "M", "22107"),
    (1008, "MRN008", "Elizabeth", "Davis", date(2015, 8, 20), "F", "22108"),
    (1009, "MRN009", "David", "Rodriguez", date(1972, 12, 3), "M", "22109"),
    (1010, "MRN010", "Susan", "Martinez", date(1960, 5, 25), "F", "22110"),
]


def event(event_id, patient_id, physician_id, admit, discharge, admission_type_id,
          discharge_type_id, cost, diagnosis, department):
    return (
        event_id, patient_id, physician_id, admit, discharge, admission_type_id,
        discharge_type_id, Decimal(cost) if cost is not None else None, diagnosis, department
    )


MEDICAL_EVENTS = [
    # Patient 1001: readmitted two days after discharge
    event(1, 1001, 101, date(2024, 1, 15), date(2024, 1, 18), 1, 1, "15000.00", "I21.0", "Heart Center"),
    event(2, 1001, 101, date(2024, 1, 20), date(2024, 1, 22), 1, 1, "8500.00", "I21.0", "Heart Center"),
    event(3, 1001, 104, date(2024, 6, 10), date(2024, 6, 12), 3, 1, "4200.00", "J18.9", "General Medicine"),
    event(4, 1002, 107, date(2024, 2, 20), date(2024, 2, 24), 3, 1, "32000.00", "K80.2", "Surgical Services"),
    event(5, 1003, 103, date(2024, 3, 5), date(2024, 3, 15), 1, 2, "45000.00", "I63.9", "Neuroscience"),
    event(6, 1003, 101, date(2024, 7, 20), date(2024, 7, 25), 3, 1, "18000.00", "I25.1", "Heart Center"),
    event(7, 1004, 104, date(2024, 1, 30), date(2024, 1, 31), 4, 1, "2100.00", "R10.9", "General Medicine"),
    event(8, 1004, 102, date(2024, 4, 15), date(2024, 4, 18), 3, 1, "28000.00", "M17.1", "Musculoskeletal"),
    event(9, 1005, 105, date(2024, 2, 14), date(2024, 2, 14), 1, 1, "3500.00", "S52.5", "Emergency Dept"),
    event(10, 1005, 105, date(2024, 8, 22), date(2024, 8, 23), 1, 1, "4800.00", "K35.8", "Emergency Dept"),
    event(11, 1006, 104, date(2024, 5, 10), date(2024, 5, 11), 4, 1, "1800.00", "J06.9", "General Medicine"),
    # Patient 1007: readmitted five days after discharge
    event(12, 1007, 106, date(2024, 3, 1), date(2024, 3, 10), 3, 1, "52000.00", "C34.9", "Cancer Center"),
    event(13, 1007, 106, date(2024, 3, 15), date(2024, 3, 20), 1, 7, "28000.00", "C34.9", "Cancer Center"),
    event(14, 1008, 108, date(2024, 4, 5), date(2024, 4, 6), 1, 1, "2800.00", "J21.0", "Childrens Center"),
    # Patient 1009: no physician assigned
    event(15, 1009, None, date(2024, 6, 15), date(2024, 6, 17), 1, 1, "6500.00", "N39.0", "General Medicine"),
    # Patient 1010: still admitted
    event(16, 1010, 103, date(2024, 9, 1), None, 1, None, None, "G45.9", "Neuroscience"),
]

SAMPLE_SNAPSHOT = {
    "admission_types": ADMISSION_TYPES,
    "discharge_types": DISCHARGE_TYPES,
    "physicians": PHYSICIANS,
    "patients": PATIENTS,
    "medical_events": MEDICAL_EVENTS,
}


def nullable(schema: StructType) -> StructType:
    """Copy of a schema with every field nullable, so tests can land bad rows."""
    return StructType([StructField(f.name, f.dataType, True) for f in schema.fields])


def write_source(spark, config, table_name, rows, schema=None):
    """Land rows as a source table, replacing any previous contents."""
    schema = schema or nullable(SOURCE_SCHEMAS[table_name])
    full_table = get_full_table_name(config, "source", table_name)
    spark.createDataFrame(rows, schema).write.format("parquet").mode("overwrite").saveAsTable(full_table)
    return full_table


def write_snapshot(spark, config, overrides=None):
    """Land the sample snapshot, with per-table row overrides."""
    tables = dict(SAMPLE_SNAPSHOT)
    tables.update(overrides or {})
    for table_name, rows in tables.items():
        write_source(spark, config, table_name, rows)


def read_target(spark, config, table_name, order_by):
    return spark.table(get_full_table_name(config, "analytics", table_name)).orderBy(*order_by).collect()


@pytest.fixture(scope="session")
def spark(tmp_path_factory):
    warehouse = tmp_path_factory.mktemp("warehouse")
    session = (
        SparkSession.builder
        .master("local[1]")
        .appName("encounter-analytics-tests")
        .config("spark.sql.warehouse.dir", str(warehouse))
        .config("spark.sql.session.timeZone", "UTC")
        .config("spark.sql.shuffle.partitions", "1")
        .config("spark.ui.enabled", "false")
        .getOrCreate()
    )
    yield session
    session.stop()


@pytest.fixture
def config(spark):
    """Config pointing at fresh, per-test schemas in the session catalog."""
    suffix = uuid.uuid4().hex[:8]
    cfg = create_config(
        catalog="",
        source_schema=f"source_{suffix}",
        analytics_schema=f"analytics_{suffix}",
        table_format="parquet",
    )
    setup_catalog_and_schemas(spark, cfg)
    return cfg


@pytest.fixture
def sample_config(spark, config):
    """Config whose source schema holds the sample snapshot."""
    write_snapshot(spark, config)
    return config
