"""
Pipeline Errors

Exceptions raised by builders and validators. They propagate out of a build and
are turned into a failed LoadResult at the table write boundary.
"""

from typing import Any, Sequence


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class SourceSchemaError(PipelineError):
    """A source relation is missing columns the pipeline reads."""

    def __init__(self, table: str, missing: Sequence[str]):
        self.table = table
        self.missing = list(missing)
        super().__init__(f"{table} is missing columns: {', '.join(self.missing)}")


class ConstraintViolationError(PipelineError):
    """A row violates a structural constraint (null required field, duplicate key)."""

    def __init__(self, table: str, constraint: str, sample: Sequence[Any] = ()):
        self.table = table
        self.constraint = constraint
        self.sample = list(sample)
        message = f"{table}: {constraint}"
        if self.sample:
            message += f" (e.g. {self.sample})"
        super().__init__(message)


class UnresolvedReferenceError(PipelineError):
    """A required foreign key has no matching row in its reference table."""

    def __init__(self, table: str, column: str, keys: Sequence[Any], rows: Sequence[Any] = ()):
        self.table = table
        self.column = column
        self.keys = list(keys)
        self.rows = list(rows)
        message = f"{table}.{column} has unresolved references: {self.keys}"
        if self.rows:
            message += f" in rows {self.rows}"
        super().__init__(message)


class DataQualityError(PipelineError):
    """Input rows fail a data-quality rule the run is configured to enforce."""
