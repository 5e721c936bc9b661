"""
RegexValidator - validates field values against a regular expression pattern.
"""

import re
from datetime import datetime
from re import Pattern
from typing import Any

from .base_validator import BaseValidator


class RegexValidator(BaseValidator):
    """
    Validates that a field value matches a regular expression pattern.

    Parameters:
    - pattern: Regular expression pattern (string or compiled Pattern)
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)

        pattern = self.parameters.get("pattern")
        if not pattern:
            raise ValueError("RegexValidator requires 'pattern' parameter")

        try:
            if isinstance(pattern, str):
                self.pattern: Pattern = re.compile(pattern)
            elif isinstance(pattern, Pattern):
                self.pattern = pattern
            else:
                raise ValueError(f"Pattern must be string or compiled Pattern, got {type(pattern)}")
        except re.error as e:
            raise ValueError(f"Invalid regex pattern: {e}")

    def validate(self, value: Any, record: dict[str, Any], timestamp: datetime | None = None) -> Any:
        value_str = value if isinstance(value, str) else str(value)

        if not self.pattern.fullmatch(value_str):
            raise self.fail(f"Value '{value_str}' does not match pattern '{self.pattern.pattern}'")

        return value

    @property
    def rule_type(self) -> str:
        return "regex"


class AllowedValuesValidator(BaseValidator):
    """
    Validates that a field value is one of an enumerated set.

    Parameters:
    - allowed: List of permitted values
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)

        allowed = self.parameters.get("allowed")
        if not allowed:
            raise ValueError("AllowedValuesValidator requires a non-empty 'allowed' parameter")
        self.allowed = list(allowed)

    def validate(self, value: Any, record: dict[str, Any], timestamp: datetime | None = None) -> Any:
        if value not in self.allowed:
            raise self.fail(f"Value {value!r} is not one of {self.allowed}")
        return value

    @property
    def rule_type(self) -> str:
        return "allowed_values"
