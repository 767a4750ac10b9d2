"""
Encounter Consolidation

Joins raw medical events with physician, patient, admission type and discharge
type lookups into one denormalized fact row per event.
"""

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as F

from .config import PipelineConfig
from .errors import DataQualityError
from .source_tables import read_source_table
from .validation import check_references, find_inverted_stays, sample_ids


UNASSIGNED_PHYSICIAN = "Unassigned"
UNKNOWN_LABEL = "Unknown"
NOT_DISCHARGED = "Not Discharged"


def age_years(birth_col: str, at_col: str) -> F.Column:
    """Age as the number of calendar-year boundaries crossed (not birthday precise)."""
    return F.year(F.col(at_col)) - F.year(F.col(birth_col))


def age_group(age: F.Column) -> F.Column:
    """Bucket an age into reporting groups. First match wins."""
    return (
        F.when(age.isNull(), UNKNOWN_LABEL)
         .when(age < 18, "0-17")
         .when(age < 45, "18-44")
         .when(age < 65, "45-64")
         .otherwise("65+")
    )


def length_of_stay(start_col: str, end_col: str) -> F.Column:
    """Whole days between start and end; NULL while the stay is open."""
    return F.datediff(F.col(end_col), F.col(start_col))


def handle_inverted_stays(events: DataFrame, config: PipelineConfig) -> DataFrame:
    """Warn about (or reject) events discharged before they were admitted."""
    inverted = find_inverted_stays(events)
    count = inverted.count()
    if count == 0:
        return events
    ids = sample_ids(inverted, "event_id")
    if config.reject_inverted_stays:
        raise DataQualityError(f"{count} event(s) discharged before admission, e.g. {ids}")
    print(f"  Warning: {count} event(s) discharged before admission (negative length of stay), e.g. {ids}")
    return events


def build_medical_encounters(spark: SparkSession, config: PipelineConfig) -> DataFrame:
    """Build the consolidated encounter fact table.

    Every raw event produces exactly one row. Physician, admission type and
    discharge type misses fall back to sentinel labels; an event whose patient
    does not exist raises UnresolvedReferenceError.
    """
    events = read_source_table(spark, config, "medical_events")
    physicians = read_source_table(spark, config, "physicians")
    patients = read_source_table(spark, config, "patients")
    admission_types = read_source_table(spark, config, "admission_types")
    discharge_types = read_source_table(spark, config, "discharge_types")

    check_references(events, "medical_events", "patient_id", patients, "patient_id", id_column="event_id")
    events = handle_inverted_stays(events, config)

    e = events.alias("e")
    p = physicians.alias("p")
    pat = patients.alias("pat")
    at = admission_types.alias("at")
    dt = discharge_types.alias("dt")

    joined = (
        e.join(p, F.col("e.physician_id") == F.col("p.physician_id"), "left")
         .join(pat, F.col("e.patient_id") == F.col("pat.patient_id"), "left")
         .join(at, F.col("e.admission_type_id") == F.col("at.admission_type_id"), "left")
         .join(dt, F.col("e.discharge_type_id") == F.col("dt.discharge_type_id"), "left")
    )

    patient_age = age_years("pat.date_of_birth", "e.admit_date")

    return joined.select(
        F.col("e.event_id"),
        F.col("e.patient_id"),
        F.col("e.physician_id"),
        F.when(F.col("p.physician_id").isNotNull(),
               F.concat_ws(" ", F.col("p.first_name"), F.col("p.last_name")))
         .otherwise(F.lit(UNASSIGNED_PHYSICIAN)).alias("physician_name"),
        F.coalesce(F.col("p.specialty"), F.lit(UNKNOWN_LABEL)).alias("specialty"),
        F.col("e.admit_date"),
        F.col("e.discharge_date"),
        length_of_stay("e.admit_date", "e.discharge_date").alias("length_of_stay"),
        F.coalesce(F.col("at.admission_type_desc"), F.lit(UNKNOWN_LABEL)).alias("admission_type"),
        F.coalesce(F.col("at.is_emergency"), F.lit(False)).alias("is_emergency"),
        F.coalesce(F.col("dt.discharge_type_desc"), F.lit(NOT_DISCHARGED)).alias("discharge_type"),
        patient_age.alias("patient_age"),
        age_group(patient_age).alias("age_group"),
        F.col("e.total_cost"),
        F.col("e.diagnosis_code"),
        F.col("e.department"),
    )
