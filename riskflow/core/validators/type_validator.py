"""
TypeValidator - parses raw values into their declared field type.
"""

import math
from datetime import datetime
from typing import Any

from riskflow.utils.timestamps import parse_date, parse_timestamp

from .base_validator import BaseValidator


class TypeValidator(BaseValidator):
    """
    Validates that a field parses as the declared type and returns the parsed value.

    Supported types: string, integer, double, boolean, date, timestamp.
    Numeric strings are coerced ("0.75" -> 0.75); booleans accept
    true/false/1/0/yes/no; dates and timestamps accept ISO-8601.
    """

    SUPPORTED_TYPES = ("string", "integer", "double", "boolean", "date", "timestamp")

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)

        expected_type = self.parameters.get("expected_type")
        if not expected_type:
            raise ValueError("TypeValidator requires 'expected_type' parameter")
        if expected_type not in self.SUPPORTED_TYPES:
            raise ValueError(f"Unsupported type: {expected_type}")
        self.expected_type = expected_type

    def validate(self, value: Any, record: dict[str, Any], timestamp: datetime | None = None) -> Any:
        try:
            return self._coerce_type(value)
        except (ValueError, TypeError) as e:
            raise self.fail(f"Cannot parse {value!r} as {self.expected_type}: {e}")

    def _coerce_type(self, value: Any) -> Any:
        """
        Coerce value to the expected type.

        Raises:
            ValueError: If coercion fails
        """
        if self.expected_type == "string":
            if not isinstance(value, str):
                raise ValueError(f"expected text, got {type(value).__name__}")
            return value.strip()

        if self.expected_type == "boolean":
            if isinstance(value, bool):
                return value
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in ("true", "1", "yes"):
                    return True
                if lowered in ("false", "0", "no"):
                    return False
            raise ValueError(f"Cannot parse '{value}' as boolean")

        if self.expected_type == "integer":
            # bool is an int subclass; "True" is not a credit score
            if isinstance(value, bool):
                raise ValueError("boolean is not an integer")
            if isinstance(value, int):
                return value
            if isinstance(value, float):
                if not value.is_integer():
                    raise ValueError("value has a fractional part")
                return int(value)
            return int(str(value).strip())

        if self.expected_type == "double":
            if isinstance(value, bool):
                raise ValueError("boolean is not a number")
            parsed = float(str(value).strip()) if isinstance(value, str) else float(value)
            if math.isnan(parsed) or math.isinf(parsed):
                raise ValueError("value is not a finite number")
            return parsed

        if self.expected_type == "date":
            return parse_date(value)

        return parse_timestamp(value)

    @property
    def rule_type(self) -> str:
        return "type_check"
