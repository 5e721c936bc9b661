"""
Base validator interface for all field rules.

All validators inherit from BaseValidator and implement validate(), which
either returns the (possibly coerced) value or raises ValidationError.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from riskflow.core.models import Violation, ViolationKind


class ValidationError(Exception):
    """Raised when a validation rule fails."""

    def __init__(self, rule_name: str, field_name: str | None, message: str, kind: ViolationKind):
        self.rule_name = rule_name
        self.field_name = field_name
        self.message = message
        self.kind = kind
        super().__init__(f"[{rule_name}] {field_name}: {message}")

    def to_violation(self) -> Violation:
        return Violation(
            kind=self.kind,
            field=self.field_name,
            rule=self.rule_name,
            message=self.message,
        )


class BaseValidator(ABC):
    """
    Abstract base class for all validators.

    Each validator implements a specific rule type (required_field,
    type_check, range, regex, allowed_values, temporal).
    """

    violation_kind: ViolationKind = ViolationKind.INVALID_FORMAT

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        """
        Initialize validator.

        Args:
            field_name: Name of the field to validate
            parameters: Rule-specific parameters (e.g., min/max for range)
        """
        self.field_name = field_name
        self.parameters = parameters or {}

    @abstractmethod
    def validate(self, value: Any, record: dict[str, Any], timestamp: datetime | None = None) -> Any:
        """
        Validate a value against this rule.

        Args:
            value: The field value to validate
            record: The record's values (typed where already parsed)
            timestamp: The record's observation time

        Returns:
            The value, coerced to its declared type where applicable

        Raises:
            ValidationError: If validation fails
        """

    @property
    @abstractmethod
    def rule_type(self) -> str:
        """Return the rule type identifier."""

    @property
    def rule_name(self) -> str:
        return f"{self.field_name}_{self.rule_type}"

    def fail(self, message: str) -> ValidationError:
        return ValidationError(
            rule_name=self.rule_name,
            field_name=self.field_name,
            message=message,
            kind=self.violation_kind,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(field={self.field_name}, params={self.parameters})"
