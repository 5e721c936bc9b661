"""
Unit tests for feature sets and feature derivation.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from riskflow.core.errors import FeatureSetConflict, UnknownVersion
from riskflow.core.rules import Validator
from riskflow.features import (
    NO_OBSERVATION,
    FeatureDefinition,
    FeatureDeriver,
    FeatureSetRegistry,
    FeatureSetVersion,
    ReferenceSnapshot,
    default_feature_set,
    load_feature_set,
)

AS_OF = datetime(2024, 3, 31, tzinfo=timezone.utc)


@pytest.fixture
def typed(loan_schema):
    """Validate raw records and return the typed ones"""
    def _typed(records):
        report = Validator().validate(records, loan_schema)
        assert not report.invalid, report.invalid
        return report.valid

    return _typed


@pytest.fixture
def deriver():
    return FeatureDeriver()


class TestFeatureDerivation:
    """Tests for FeatureDeriver.derive"""

    def test_derives_every_feature(self, deriver, typed, make_record, reference_snapshot, feature_set):
        report = deriver.derive(typed([make_record("L1")]), AS_OF, reference_snapshot, feature_set)

        assert report.excluded == []
        vector = report.vectors[0]
        assert vector.identifier == "L1"
        assert vector.as_of == AS_OF
        assert vector.feature_set_version == "loan-risk-v1"
        assert vector.features == {
            "credit_score": 720.0,
            "loan_to_value": 0.75,
            "balance_to_valuation": pytest.approx(185000.0 / 260000.0),
            "delinquency_count_90d": 0.0,
            "loan_age_days": 1034.0,
            "unemployment_rate": 4.8,
        }

    def test_reference_join_is_as_of(self, deriver, typed, make_record, reference_snapshot, feature_set):
        """The June 2024 reference values exist in the snapshot but postdate as_of"""
        report = deriver.derive(typed([make_record("L1")]), AS_OF, reference_snapshot, feature_set)
        vector = report.vectors[0]

        assert vector.reference_times["property_value"] == AS_OF.replace(month=3, day=1)
        assert vector.reference_times["unemployment_rate"] == AS_OF.replace(month=1, day=1)
        for effective_at in vector.reference_times.values():
            assert effective_at <= vector.as_of

    def test_later_records_are_ignored(self, deriver, typed, make_record, reference_snapshot, feature_set):
        records = typed([
            make_record("L1", timestamp=AS_OF, ltv="0.75"),
            make_record("L1", timestamp=AS_OF + timedelta(days=5), ltv="1.90", days_past_due="120"),
        ])
        vector = deriver.derive(records, AS_OF, reference_snapshot, feature_set).vectors[0]

        assert vector.features["loan_to_value"] == 0.75
        assert vector.features["delinquency_count_90d"] == 0.0

    def test_no_observation_before_as_of(self, deriver, typed, make_record, reference_snapshot, feature_set):
        records = typed([make_record("L9", timestamp=AS_OF + timedelta(days=1))])
        report = deriver.derive(records, AS_OF, reference_snapshot, feature_set)

        assert report.vectors == []
        assert report.excluded[0].reason == NO_OBSERVATION
        assert report.excluded_count(NO_OBSERVATION) == 1

    def test_trailing_window_bounds(self, deriver, typed, make_record, reference_snapshot, feature_set):
        """The window is (as_of - 90 days, as_of]: the left edge is excluded"""
        records = typed([
            make_record("L1", timestamp=AS_OF - timedelta(days=90), days_past_due="60"),
            make_record("L1", timestamp=AS_OF - timedelta(days=60), days_past_due="45"),
            make_record("L1", timestamp=AS_OF - timedelta(days=30), days_past_due="10"),
            make_record("L1", timestamp=AS_OF, days_past_due="30"),
        ])
        vector = deriver.derive(records, AS_OF, reference_snapshot, feature_set).vectors[0]

        assert vector.features["delinquency_count_90d"] == 2.0

    def test_current_observation_is_latest_at_or_before_as_of(
        self, deriver, typed, make_record, reference_snapshot, feature_set
    ):
        records = typed([
            make_record("L1", timestamp=AS_OF - timedelta(days=1), credit_score="690"),
            make_record("L1", timestamp=AS_OF - timedelta(days=40), credit_score="750"),
        ])
        vector = deriver.derive(records, AS_OF, reference_snapshot, feature_set).vectors[0]
        assert vector.features["credit_score"] == 690.0

    def test_missing_reference_excludes_record(self, deriver, typed, make_record, reference_snapshot, feature_set):
        records = typed([make_record("L1"), make_record("L2", geography="NY-36061")])
        report = deriver.derive(records, AS_OF, reference_snapshot, feature_set)

        assert [v.identifier for v in report.vectors] == ["L1"]
        exclusion = report.excluded[0]
        assert exclusion.identifier == "L2"
        assert exclusion.reason == "MissingReferenceData"
        assert exclusion.indicator == "property_value"
        assert exclusion.geography == "NY-36061"

    def test_reference_published_after_as_of_is_missing(
        self, deriver, typed, make_record, reference_snapshot, feature_set
    ):
        as_of = AS_OF.replace(month=1, day=10)
        records = typed([make_record("L3", timestamp=as_of, geography="TX-48201")])
        report = deriver.derive(records, as_of, reference_snapshot, feature_set)

        assert report.excluded_count("MissingReferenceData") == 1

    def test_optional_reference_falls_back_to_default(self, deriver, typed, make_record, reference_values):
        snapshot = ReferenceSnapshot([v for v in reference_values if "unemployment_rate" not in v.values])
        records = typed([make_record("L1")])
        vector = deriver.derive(records, AS_OF, snapshot, default_feature_set()).vectors[0]

        assert vector.features["unemployment_rate"] == 0.0
        assert "unemployment_rate" not in vector.reference_times

    def test_missing_feature_input(self, deriver, typed, make_record, reference_snapshot):
        feature_set = FeatureSetVersion(
            version="dpd-only",
            features=[FeatureDefinition(name="dpd", kind="field", field="days_past_due")],
        )
        records = typed([make_record("L1", drop=("days_past_due",))])
        report = deriver.derive(records, AS_OF, reference_snapshot, feature_set)

        assert report.excluded[0].reason == "MissingFeatureInput"
        assert report.excluded[0].feature == "dpd"

    def test_zero_denominator_is_missing_input(self, deriver, typed, make_record, reference_snapshot):
        feature_set = FeatureSetVersion(
            version="balance-per-score",
            features=[
                FeatureDefinition(
                    name="balance_per_dpd", kind="ratio", numerator="principal_balance",
                    denominator_field="days_past_due",
                )
            ],
        )
        report = deriver.derive(typed([make_record("L1")]), AS_OF, reference_snapshot, feature_set)
        assert report.excluded[0].reason == "MissingFeatureInput"

    def test_one_vector_per_identifier_in_first_appearance_order(
        self, typed, make_record, reference_snapshot, feature_set
    ):
        records = typed([
            make_record("L3", geography="TX-48201"),
            make_record("L1"),
            make_record("L3", timestamp=AS_OF - timedelta(days=10), geography="TX-48201"),
            make_record("L2"),
        ])
        sequential = FeatureDeriver().derive(records, AS_OF, reference_snapshot, feature_set)
        parallel = FeatureDeriver(max_workers=4).derive(records, AS_OF, reference_snapshot, feature_set)

        assert [v.identifier for v in sequential.vectors] == ["L3", "L1", "L2"]
        assert sequential.vectors == parallel.vectors

    def test_derivation_is_deterministic(self, deriver, typed, make_record, reference_snapshot, feature_set):
        records = typed([make_record("L1"), make_record("L2", ltv="1.1")])
        first = deriver.derive(records, AS_OF, reference_snapshot, feature_set)
        second = deriver.derive(records, AS_OF, reference_snapshot, feature_set)
        assert first == second


class TestFeatureSets:
    """Tests for feature set definitions and the registry"""

    def test_ratio_requires_exactly_one_denominator(self):
        with pytest.raises(ValidationError):
            FeatureDefinition(name="r", kind="ratio", numerator="a", denominator_field="b", indicator="c")
        with pytest.raises(ValidationError):
            FeatureDefinition(name="r", kind="ratio", numerator="a")

    def test_optional_requires_default(self):
        with pytest.raises(ValidationError):
            FeatureDefinition(name="u", kind="reference", indicator="u", optional=True)

    def test_duplicate_feature_names_rejected(self):
        with pytest.raises(ValidationError):
            FeatureSetVersion(
                version="dup",
                features=[
                    FeatureDefinition(name="a", kind="field", field="x"),
                    FeatureDefinition(name="a", kind="field", field="y"),
                ],
            )

    def test_fingerprint_ignores_description(self, feature_set):
        relabelled = feature_set.model_copy(update={"description": "renamed"})
        assert relabelled.fingerprint == feature_set.fingerprint

    def test_reregistering_same_formulas_is_noop(self, feature_set):
        registry = FeatureSetRegistry([feature_set])
        assert registry.register(default_feature_set()) is feature_set
        assert registry.list_versions() == ["loan-risk-v1"]

    def test_changed_formula_needs_new_version(self, feature_set):
        registry = FeatureSetRegistry([feature_set])
        changed = feature_set.model_copy(update={"window_days": 60})

        with pytest.raises(FeatureSetConflict):
            registry.register(changed)
        assert registry.resolve("loan-risk-v1").window_days == 90

    def test_unknown_version(self):
        with pytest.raises(UnknownVersion):
            FeatureSetRegistry().resolve("loan-risk-v9")

    def test_load_from_yaml(self, tmp_path):
        config_file = tmp_path / "features.yaml"
        config_file.write_text(
            """
feature_set:
  version: small-v1
  window_days: 30
  features:
    ltv:
      kind: field
      field: ltv
    late_payments:
      kind: trailing_count
      field: days_past_due
      threshold: 30
"""
        )
        feature_set = load_feature_set(config_file)

        assert feature_set.version == "small-v1"
        assert feature_set.window_days == 30
        assert feature_set.feature_names == ["ltv", "late_payments"]
