"""
Core data models for the risk scoring pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .batch_event import BatchEvent, BatchState
from .feature_vector import FeatureVector
from .lineage_entry import LineageEntry
from .raw_record import RawRecord
from .reference_value import ReferenceValue
from .schema_version import FieldDefinition, FieldRule, SchemaVersion
from .score_result import RiskSegment, ScoreResult, ThresholdLadder, ThresholdStep
from .validation_result import (
    Rejection,
    TypedRecord,
    ValidationReport,
    Violation,
    ViolationKind,
)

__all__ = [
    "RawRecord",
    "FieldRule",
    "FieldDefinition",
    "SchemaVersion",
    "Violation",
    "ViolationKind",
    "TypedRecord",
    "Rejection",
    "ValidationReport",
    "ReferenceValue",
    "FeatureVector",
    "RiskSegment",
    "ThresholdStep",
    "ThresholdLadder",
    "ScoreResult",
    "LineageEntry",
    "BatchState",
    "BatchEvent",
]
