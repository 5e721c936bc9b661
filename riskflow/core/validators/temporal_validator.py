"""
TemporalValidator - checks effective-date style fields for temporal consistency.
"""

from datetime import date, datetime
from typing import Any

from riskflow.core.models import ViolationKind
from riskflow.utils.timestamps import parse_date

from .base_validator import BaseValidator


class TemporalValidator(BaseValidator):
    """
    Validates a parsed date/timestamp field against temporal constraints.

    Parameters:
    - not_before: Earliest permitted date (inclusive)
    - not_after: Latest permitted date (inclusive)
    - not_after_timestamp: Value may not be later than the record timestamp
    - on_or_after: Field name this value must not precede (end date vs start date)

    Cross-field checks are skipped when the other field is absent or did not
    parse; that field's own rules report the problem.
    """

    violation_kind = ViolationKind.TEMPORAL_INCONSISTENCY

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)

        self.not_before = self._as_date(self.parameters.get("not_before"))
        self.not_after = self._as_date(self.parameters.get("not_after"))
        self.not_after_timestamp = bool(self.parameters.get("not_after_timestamp", False))
        self.on_or_after = self.parameters.get("on_or_after")

        if (
            self.not_before is None
            and self.not_after is None
            and not self.not_after_timestamp
            and not self.on_or_after
        ):
            raise ValueError("TemporalValidator requires at least one temporal constraint")

    @staticmethod
    def _as_date(value: Any) -> date | None:
        return None if value is None else parse_date(value)

    def validate(self, value: Any, record: dict[str, Any], timestamp: datetime | None = None) -> Any:
        value_date = self._as_date(value)

        if self.not_before is not None and value_date < self.not_before:
            raise self.fail(f"{value_date} is before the earliest allowed date {self.not_before}")

        if self.not_after is not None and value_date > self.not_after:
            raise self.fail(f"{value_date} is after the latest allowed date {self.not_after}")

        if self.not_after_timestamp and timestamp is not None:
            if isinstance(value, datetime) and value > timestamp:
                raise self.fail(f"{value.isoformat()} is later than the record timestamp {timestamp.isoformat()}")
            if not isinstance(value, datetime) and value_date > timestamp.date():
                raise self.fail(f"{value_date} is later than the record timestamp {timestamp.date()}")

        if self.on_or_after:
            start = record.get(self.on_or_after)
            if isinstance(start, date) and value_date < self._as_date(start):
                raise self.fail(
                    f"{self.field_name} {value_date} precedes {self.on_or_after} {self._as_date(start)}"
                )

        return value

    @property
    def rule_type(self) -> str:
        return "temporal"
