"""
Unit tests for field rules.

Includes property-based testing with hypothesis for validators.
"""

from datetime import date, datetime, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from riskflow.core.models import ViolationKind
from riskflow.core.validators import (
    AllowedValuesValidator,
    RangeValidator,
    RegexValidator,
    RequiredFieldValidator,
    TemporalValidator,
    TypeValidator,
    ValidationError,
    is_blank,
)


class TestRequiredFieldValidator:
    """Tests for RequiredFieldValidator"""

    def test_present_field_passes(self):
        validator = RequiredFieldValidator("principal_balance")
        record = {"principal_balance": "185000"}
        assert validator.validate(record["principal_balance"], record) == "185000"

    def test_missing_field_raises_missing_field(self):
        validator = RequiredFieldValidator("principal_balance")

        with pytest.raises(ValidationError) as exc_info:
            validator.validate(None, {"ltv": "0.75"})

        assert exc_info.value.kind == ViolationKind.MISSING_FIELD
        assert exc_info.value.field_name == "principal_balance"
        assert "missing" in exc_info.value.message.lower()

    def test_null_field_raises_error(self):
        validator = RequiredFieldValidator("principal_balance")
        with pytest.raises(ValidationError, match="null"):
            validator.validate(None, {"principal_balance": None})

    def test_whitespace_only_string_raises_error(self):
        validator = RequiredFieldValidator("geography")
        with pytest.raises(ValidationError, match="empty"):
            validator.validate("   ", {"geography": "   "})

    @given(st.text(min_size=1).filter(lambda s: s.strip() != ""))
    def test_property_any_nonblank_string_passes(self, value):
        """Property test: any non-blank string should pass"""
        validator = RequiredFieldValidator("field")
        validator.validate(value, {"field": value})
        assert not is_blank(value)


class TestTypeValidator:
    """Tests for TypeValidator parsing"""

    def test_numeric_string_coerced_to_double(self):
        validator = TypeValidator("ltv", {"expected_type": "double"})
        assert validator.validate("0.75", {}) == 0.75

    def test_integer_parsing(self):
        validator = TypeValidator("credit_score", {"expected_type": "integer"})
        assert validator.validate(" 720 ", {}) == 720
        assert validator.validate(720.0, {}) == 720

    def test_fractional_integer_rejected(self):
        validator = TypeValidator("credit_score", {"expected_type": "integer"})
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(720.5, {})
        assert exc_info.value.kind == ViolationKind.INVALID_FORMAT

    def test_boolean_is_not_a_number(self):
        validator = TypeValidator("ltv", {"expected_type": "double"})
        with pytest.raises(ValidationError):
            validator.validate(True, {})

    def test_boolean_coercion_from_string(self):
        validator = TypeValidator("escrow", {"expected_type": "boolean"})
        for true_val in ["true", "True", "1", "yes"]:
            assert validator.validate(true_val, {}) is True
        for false_val in ["false", "FALSE", "0", "no"]:
            assert validator.validate(false_val, {}) is False

    def test_date_parsing(self):
        validator = TypeValidator("effective_date", {"expected_type": "date"})
        assert validator.validate("2021-06-01", {}) == date(2021, 6, 1)

    def test_timestamp_parsing_with_zulu_suffix(self):
        validator = TypeValidator("observed_at", {"expected_type": "timestamp"})
        assert validator.validate("2024-03-31T12:00:00Z", {}) == datetime(2024, 3, 31, 12, tzinfo=timezone.utc)

    def test_invalid_date_raises_invalid_format(self):
        validator = TypeValidator("effective_date", {"expected_type": "date"})
        with pytest.raises(ValidationError) as exc_info:
            validator.validate("2021-13-45", {})
        assert exc_info.value.kind == ViolationKind.INVALID_FORMAT
        assert exc_info.value.rule_name == "effective_date_type_check"

    def test_unsupported_type_rejected(self):
        with pytest.raises(ValueError):
            TypeValidator("x", {"expected_type": "decimal"})

    @given(st.floats(allow_nan=False, allow_infinity=False))
    def test_property_float_strings_round_trip(self, value):
        """Property test: any finite float rendered as text parses back"""
        validator = TypeValidator("amount", {"expected_type": "double"})
        assert validator.validate(repr(value), {}) == value


class TestRangeValidator:
    """Tests for RangeValidator"""

    def test_bounds_are_inclusive(self):
        validator = RangeValidator("credit_score", {"min": 300, "max": 850})
        validator.validate(300, {})
        validator.validate(850, {})

    def test_below_minimum(self):
        validator = RangeValidator("credit_score", {"min": 300, "max": 850})
        with pytest.raises(ValidationError, match="less than minimum"):
            validator.validate(299, {})

    def test_above_maximum(self):
        validator = RangeValidator("credit_score", {"min": 300, "max": 850})
        with pytest.raises(ValidationError, match="exceeds maximum"):
            validator.validate(851, {})

    def test_requires_a_bound(self):
        with pytest.raises(ValueError):
            RangeValidator("x", {})

    @given(st.floats(min_value=0, max_value=1000, allow_nan=False))
    def test_property_values_in_range_pass(self, value):
        """Property test: values within range should always pass"""
        RangeValidator("amount", {"min": 0, "max": 1000}).validate(value, {})


class TestRegexAndAllowedValues:
    """Tests for RegexValidator and AllowedValuesValidator"""

    def test_pattern_must_match_whole_value(self):
        validator = RegexValidator("geography", {"pattern": r"[A-Z]{2}-\d{5}"})
        validator.validate("CA-06037", {})
        with pytest.raises(ValidationError):
            validator.validate("CA-060371", {})

    def test_invalid_pattern_rejected(self):
        with pytest.raises(ValueError):
            RegexValidator("geography", {"pattern": "[unclosed"})

    def test_allowed_values(self):
        validator = AllowedValuesValidator("loan_status", {"allowed": ["current", "delinquent"]})
        validator.validate("current", {})
        with pytest.raises(ValidationError) as exc_info:
            validator.validate("foreclosed", {})
        assert exc_info.value.kind == ViolationKind.INVALID_FORMAT


class TestTemporalValidator:
    """Tests for TemporalValidator"""

    def test_end_before_start_is_temporal_inconsistency(self):
        validator = TemporalValidator("termination_date", {"on_or_after": "effective_date"})
        record = {"effective_date": date(2021, 6, 1), "termination_date": date(2020, 1, 1)}

        with pytest.raises(ValidationError) as exc_info:
            validator.validate(record["termination_date"], record)

        assert exc_info.value.kind == ViolationKind.TEMPORAL_INCONSISTENCY

    def test_same_day_is_consistent(self):
        validator = TemporalValidator("termination_date", {"on_or_after": "effective_date"})
        record = {"effective_date": date(2021, 6, 1), "termination_date": date(2021, 6, 1)}
        validator.validate(record["termination_date"], record)

    def test_missing_start_skips_cross_field_check(self):
        validator = TemporalValidator("termination_date", {"on_or_after": "effective_date"})
        validator.validate(date(2020, 1, 1), {"termination_date": date(2020, 1, 1)})

    def test_date_after_record_timestamp(self):
        validator = TemporalValidator("effective_date", {"not_after_timestamp": True})
        observed = datetime(2024, 3, 31, tzinfo=timezone.utc)

        validator.validate(date(2024, 3, 31), {}, observed)
        with pytest.raises(ValidationError):
            validator.validate(date(2024, 4, 1), {}, observed)

    def test_date_bounds(self):
        validator = TemporalValidator("effective_date", {"not_before": "1970-01-01", "not_after": "2100-12-31"})
        validator.validate(date(1970, 1, 1), {})
        with pytest.raises(ValidationError):
            validator.validate(date(1969, 12, 31), {})

    def test_requires_a_constraint(self):
        with pytest.raises(ValueError):
            TemporalValidator("effective_date", {})
