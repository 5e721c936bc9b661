"""
Validation outcome models (ephemeral, produced per batch).
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .raw_record import RawRecord


class ViolationKind(str, Enum):
    """Per-record violation kinds; none of them aborts a batch."""

    MISSING_FIELD = "MissingField"
    INVALID_FORMAT = "InvalidFormat"
    TEMPORAL_INCONSISTENCY = "TemporalInconsistency"
    DUPLICATE_RECORD = "DuplicateRecord"


class Violation(BaseModel):
    """
    A single broken rule.

    Attributes:
        kind: Violation kind
        field: Field the rule applies to (None for record-level rules)
        rule: Name of the rule that failed
        message: Human-readable explanation
    """

    kind: ViolationKind
    field: str | None = None
    rule: str
    message: str

    class Config:
        frozen = True


class TypedRecord(BaseModel):
    """
    A RawRecord that passed every rule, with values parsed to declared types.

    Attributes:
        identifier: Business key of the loan or device
        timestamp: Observation time
        source: Ingestion source tag
        values: Field name -> typed value (only fields declared by the schema)
        schema_version: Schema version the record was validated against
    """

    identifier: str
    timestamp: datetime
    source: str
    values: dict[str, Any]
    schema_version: int

    class Config:
        frozen = True


class Rejection(BaseModel):
    """
    An invalid record together with every violation it accumulated.
    """

    record: RawRecord
    violations: list[Violation] = Field(..., min_length=1)

    @property
    def kinds(self) -> set[ViolationKind]:
        return {v.kind for v in self.violations}

    class Config:
        frozen = True


class ValidationReport(BaseModel):
    """
    Partition of a batch into valid and invalid records.

    Attributes:
        schema_version: Schema version applied to the whole batch
        valid: Typed records with zero violations, in input order
        invalid: Rejected records with their violations, in input order
    """

    schema_version: int
    valid: list[TypedRecord] = Field(default_factory=list)
    invalid: list[Rejection] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.valid) + len(self.invalid)

    def violation_counts(self) -> dict[str, int]:
        """Count violations by kind across all rejected records."""
        counts: dict[str, int] = {}
        for rejection in self.invalid:
            for violation in rejection.violations:
                counts[violation.kind.value] = counts.get(violation.kind.value, 0) + 1
        return counts
