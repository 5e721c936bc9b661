"""
RequiredFieldValidator - ensures a field is present and not null/empty.
"""

from datetime import datetime
from typing import Any

from riskflow.core.models import ViolationKind

from .base_validator import BaseValidator


class RequiredFieldValidator(BaseValidator):
    """
    Validates that a required field is present and not null/empty.

    Fails if:
    - Field is missing from the record
    - Field value is None
    - Field value is an empty or whitespace-only string
    """

    violation_kind = ViolationKind.MISSING_FIELD

    def validate(self, value: Any, record: dict[str, Any], timestamp: datetime | None = None) -> Any:
        if self.field_name not in record:
            raise self.fail("Field is missing from record")

        if value is None:
            raise self.fail("Field value is null")

        if isinstance(value, str) and value.strip() == "":
            raise self.fail("Field value is empty string")

        return value

    @property
    def rule_type(self) -> str:
        return "required_field"


def is_blank(value: Any) -> bool:
    """True for values the completeness rule treats as absent."""
    return value is None or (isinstance(value, str) and value.strip() == "")
