"""
SchemaVersion model representing an immutable, published record schema.
"""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from riskflow.utils.timestamps import utcnow

FieldType = Literal["string", "integer", "double", "boolean", "date", "timestamp"]


class FieldRule(BaseModel):
    """
    Value constraints attached to a field definition.

    Attributes:
        min: Inclusive numeric lower bound
        max: Inclusive numeric upper bound
        pattern: Regular expression a string value must match
        allowed: Enumerated set of permitted values
        not_before: Earliest permitted date (date/timestamp fields)
        not_after: Latest permitted date (date/timestamp fields)
        not_after_timestamp: Value may not be later than the record timestamp
        on_or_after: Name of a field this value must not precede (end >= start)
    """

    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    allowed: list[Any] | None = None
    not_before: date | None = None
    not_after: date | None = None
    not_after_timestamp: bool = False
    on_or_after: str | None = None

    class Config:
        frozen = True


class FieldDefinition(BaseModel):
    """
    A single field of a record schema.

    Attributes:
        name: Field name in RawRecord.fields
        required: Whether an absent or empty value is a violation
        type: Declared type the raw value must parse as
        rule: Additional value constraints
    """

    name: str = Field(..., min_length=1)
    required: bool = False
    type: FieldType = "string"
    rule: FieldRule = Field(default_factory=FieldRule)

    class Config:
        frozen = True


class SchemaVersion(BaseModel):
    """
    Snapshot of the record schema, immutable once published.

    Attributes:
        version: Monotonically increasing version number
        fields: Ordered field definitions
        description: Optional change note
        published_at: When the version was published
    """

    version: int = Field(..., gt=0)
    fields: list[FieldDefinition]
    description: str | None = None
    published_at: datetime = Field(default_factory=utcnow)

    @field_validator("fields")
    @classmethod
    def check_unique_names(cls, v: list[FieldDefinition]) -> list[FieldDefinition]:
        """Validate that field names are unique within a version."""
        seen = set()
        for field in v:
            if field.name in seen:
                raise ValueError(f"Duplicate field definition: {field.name}")
            seen.add(field.name)
        return v

    def field(self, name: str) -> FieldDefinition | None:
        for field in self.fields:
            if field.name == name:
                return field
        return None

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "version": 1,
                "fields": [
                    {"name": "principal_balance", "required": True, "type": "double", "rule": {"min": 0}},
                    {"name": "credit_score", "required": True, "type": "integer", "rule": {"min": 300, "max": 850}},
                    {"name": "effective_date", "required": True, "type": "date"},
                    {"name": "termination_date", "type": "date", "rule": {"on_or_after": "effective_date"}}
                ],
                "description": "Initial loan tape schema"
            }
        }
