from datetime import date

import pytest

from encounterAnalytics.errors import ConstraintViolationError, UnresolvedReferenceError
from encounterAnalytics.validation import (
    check_not_null,
    check_references,
    check_unique,
    find_inverted_stays,
)


def test_check_not_null_passes_and_returns_frame(spark):
    df = spark.createDataFrame([(1, "a"), (2, None)], "id int, label string")
    assert check_not_null(df, "t", ["id"]) is df


def test_check_not_null_reports_column(spark):
    df = spark.createDataFrame([(1, "a"), (None, "b"), (None, "c")], "id int, label string")
    with pytest.raises(ConstraintViolationError) as excinfo:
        check_not_null(df, "t", ["label", "id"])
    assert excinfo.value.table == "t"
    assert "2 null value(s)" in excinfo.value.constraint
    assert "'id'" in excinfo.value.constraint


def test_check_unique_reports_duplicate_keys(spark):
    df = spark.createDataFrame([(1, "a"), (1, "b"), (2, "c")], "id int, label string")
    with pytest.raises(ConstraintViolationError) as excinfo:
        check_unique(df, "t", ["id"])
    assert excinfo.value.sample == [(1,)]


def test_check_unique_on_composite_key(spark):
    df = spark.createDataFrame([(1, "a"), (1, "b")], "id int, label string")
    check_unique(df, "t", ["id", "label"])


def test_check_references_ignores_null_foreign_keys(spark):
    events = spark.createDataFrame([(1, 10), (2, None)], "event_id int, patient_id int")
    patients = spark.createDataFrame([(10,)], "patient_id int")
    check_references(events, "events", "patient_id", patients, "patient_id")


def test_check_references_lists_unresolved_keys(spark):
    events = spark.createDataFrame([(1, 10), (2, 99), (3, 98), (4, 99)], "event_id int, patient_id int")
    patients = spark.createDataFrame([(10,)], "patient_id int")
    with pytest.raises(UnresolvedReferenceError) as excinfo:
        check_references(events, "events", "patient_id", patients, "patient_id")
    assert excinfo.value.column == "patient_id"
    assert excinfo.value.keys == [98, 99]


def test_find_inverted_stays(spark):
    df = spark.createDataFrame(
        [
            (1, date(2024, 1, 10), date(2024, 1, 12)),
            (2, date(2024, 1, 10), date(2024, 1, 9)),
            (3, date(2024, 1, 10), None),
            (4, date(2024, 1, 10), date(2024, 1, 10)),
        ],
        "event_id int, admit_date date, discharge_date date",
    )
    assert [r.event_id for r in find_inverted_stays(df).collect()] == [2]


def test_check_references_names_offending_rows(spark):
    events = spark.createDataFrame([(1, 10), (7, 99), (4, 99)], "event_id int, patient_id int")
    patients = spark.createDataFrame([(10,)], "patient_id int")
    with pytest.raises(UnresolvedReferenceError) as excinfo:
        check_references(events, "events", "patient_id", patients, "patient_id", id_column="event_id")
    assert excinfo.value.keys == [99]
    assert excinfo.value.rows == [4, 7]
    assert "in rows [4, 7]" in str(excinfo.value)
