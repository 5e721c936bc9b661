"""
Unit tests for the per-record rule engine and the batch validator.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from riskflow.core.models import FieldDefinition, FieldRule, RawRecord, SchemaVersion, ViolationKind
from riskflow.core.rules import RuleEngine, Validator


class TestRuleEngine:
    """Tests for RuleEngine.validate_record"""

    def test_valid_record_is_typed(self, loan_schema, make_record):
        typed, violations = RuleEngine(loan_schema).validate_record(make_record())

        assert violations == []
        assert typed["principal_balance"] == 185000.0
        assert typed["credit_score"] == 720
        assert typed["ltv"] == 0.75
        assert typed["effective_date"] == date(2021, 6, 1)

    def test_missing_required_field_gives_one_violation(self, loan_schema, make_record):
        _, violations = RuleEngine(loan_schema).validate_record(make_record(drop=("principal_balance",)))

        assert len(violations) == 1
        assert violations[0].kind == ViolationKind.MISSING_FIELD
        assert violations[0].field == "principal_balance"

    def test_blank_optional_field_is_skipped(self, loan_schema, make_record):
        typed, violations = RuleEngine(loan_schema).validate_record(make_record(loan_status=" "))

        assert violations == []
        assert "loan_status" not in typed

    def test_unparseable_value_skips_remaining_field_checks(self, loan_schema, make_record):
        _, violations = RuleEngine(loan_schema).validate_record(make_record(credit_score="seven hundred"))

        assert [v.rule for v in violations] == ["credit_score_type_check"]

    def test_out_of_range_value_is_invalid_format(self, loan_schema, make_record):
        _, violations = RuleEngine(loan_schema).validate_record(make_record(credit_score="900"))

        assert [(v.kind, v.rule) for v in violations] == [(ViolationKind.INVALID_FORMAT, "credit_score_range")]

    def test_termination_before_effective_date(self, loan_schema, make_record):
        record = make_record(effective_date="2021-06-01", termination_date="2020-06-01")
        _, violations = RuleEngine(loan_schema).validate_record(record)

        assert [(v.kind, v.field) for v in violations] == [
            (ViolationKind.TEMPORAL_INCONSISTENCY, "termination_date")
        ]

    def test_temporal_rule_skipped_when_start_is_unparseable(self, loan_schema, make_record):
        record = make_record(effective_date="not-a-date", termination_date="2020-06-01")
        _, violations = RuleEngine(loan_schema).validate_record(record)

        assert [v.kind for v in violations] == [ViolationKind.INVALID_FORMAT]

    def test_all_violations_are_collected(self, loan_schema, make_record):
        record = make_record(drop=("principal_balance",), ltv="abc", geography="california")
        _, violations = RuleEngine(loan_schema).validate_record(record)

        assert {v.field for v in violations} == {"principal_balance", "ltv", "geography"}

    def test_undeclared_fields_are_dropped(self, loan_schema, make_record):
        typed, _ = RuleEngine(loan_schema).validate_record(make_record(servicer_note="call back"))
        assert "servicer_note" not in typed

    def test_unknown_cross_field_reference_rejected(self):
        schema = SchemaVersion(
            version=1,
            fields=[FieldDefinition(name="end", type="date", rule=FieldRule(on_or_after="start"))],
        )
        with pytest.raises(ValueError, match="unknown field"):
            RuleEngine(schema)

    def test_rule_summary(self, loan_schema):
        summary = RuleEngine(loan_schema).get_rule_summary()

        assert summary["schema_version"] == 1
        assert summary["rules_by_type"]["type_check"] == len(loan_schema.fields)
        assert summary["rules_by_type"]["required_field"] == 5


class TestValidator:
    """Tests for batch validation"""

    def test_partition_preserves_input_order(self, loan_schema, make_record):
        batch = [
            make_record("L1"),
            make_record("L2", drop=("ltv",)),
            make_record("L3"),
            make_record("L4", credit_score="1"),
        ]
        report = Validator().validate(batch, loan_schema)

        assert [r.identifier for r in report.valid] == ["L1", "L3"]
        assert [r.record.identifier for r in report.invalid] == ["L2", "L4"]
        assert all(r.schema_version == 1 for r in report.valid)

    def test_duplicates_are_all_rejected(self, loan_schema, make_record):
        """Two records sharing identifier and timestamp are both invalid; no winner"""
        batch = [make_record("L1"), make_record("L1", credit_score="700"), make_record("L2")]
        report = Validator().validate(batch, loan_schema)

        assert [r.identifier for r in report.valid] == ["L2"]
        assert len(report.invalid) == 2
        for rejection in report.invalid:
            assert ViolationKind.DUPLICATE_RECORD in rejection.kinds

    def test_same_identifier_different_timestamps_is_not_duplicate(self, loan_schema, make_record):
        t0 = datetime(2024, 3, 1, tzinfo=timezone.utc)
        batch = [make_record("L1", timestamp=t0), make_record("L1", timestamp=t0 + timedelta(days=30))]

        report = Validator().validate(batch, loan_schema)
        assert len(report.valid) == 2

    def test_duplicate_adds_to_existing_violations(self, loan_schema, make_record):
        batch = [make_record("L1", drop=("ltv",)), make_record("L1")]
        report = Validator().validate(batch, loan_schema)

        assert report.invalid[0].kinds == {ViolationKind.MISSING_FIELD, ViolationKind.DUPLICATE_RECORD}
        assert report.invalid[1].kinds == {ViolationKind.DUPLICATE_RECORD}

    def test_parallel_validation_matches_sequential(self, loan_schema, make_record):
        batch = [make_record(f"L{i}", credit_score=str(250 + 10 * i)) for i in range(40)]

        sequential = Validator(max_workers=1).validate(batch, loan_schema)
        parallel = Validator(max_workers=4).validate(batch, loan_schema)

        assert sequential.valid == parallel.valid
        assert sequential.invalid == parallel.invalid

    def test_empty_batch(self, loan_schema):
        report = Validator().validate([], loan_schema)
        assert report.total == 0

    @settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        rows=st.lists(
            st.tuples(
                st.sampled_from(["L1", "L2", "L3", "L4"]),
                st.integers(min_value=0, max_value=3),
                st.sampled_from(["720", "", "abc", "900", "300"]),
            ),
            max_size=12,
        )
    )
    def test_property_every_record_classified_exactly_once(self, loan_schema, rows):
        """Property test: valid + invalid partitions the batch, in input order"""
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        batch = [
            RawRecord(
                identifier=identifier,
                timestamp=base + timedelta(days=day),
                fields={
                    "principal_balance": "1000",
                    "credit_score": score,
                    "ltv": "0.5",
                    "geography": "CA-06037",
                    "effective_date": "2020-01-01",
                },
            )
            for identifier, day, score in rows
        ]

        report = Validator().validate(batch, loan_schema)

        assert report.total == len(batch)
        classified = [(r.identifier, r.timestamp) for r in report.valid] + [
            (r.record.identifier, r.record.timestamp) for r in report.invalid
        ]
        assert sorted(classified) == sorted((r.identifier, r.timestamp) for r in batch)
        assert all(r.violations for r in report.invalid)
