"""
Unit tests for Prometheus metric helpers.
"""

import pytest

from riskflow.observability import metrics


def sample(name: str, **labels) -> float:
    return metrics.REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricHelpers:
    """Tests for counter and histogram helpers"""

    def test_increment_counter_ignores_non_positive_values(self):
        before = sample("riskflow_retries_total", operation="unit_test", status="retrying")

        metrics.increment_counter(metrics.retries_total, 0, operation="unit_test", status="retrying")
        metrics.increment_counter(metrics.retries_total, 2, operation="unit_test", status="retrying")

        after = sample("riskflow_retries_total", operation="unit_test", status="retrying")
        assert after - before == 2

    def test_record_violation_without_field(self):
        before = sample("riskflow_validation_violations_total", kind="DuplicateIdentifier", field_name="_record")

        metrics.record_violation("DuplicateIdentifier", None)

        after = sample("riskflow_validation_violations_total", kind="DuplicateIdentifier", field_name="_record")
        assert after - before == 1

    def test_record_batch_outcome(self):
        before_failed = sample("riskflow_batches_processed_total", state="Failed", error_kind="UnitTestError")
        before_invalid = sample("riskflow_records_processed_total", status="invalid")

        metrics.record_batch_outcome(
            state="Failed",
            total_records=5,
            valid_records=3,
            invalid_records=2,
            scored_records=0,
            excluded_records=0,
            error_kind="UnitTestError",
        )

        assert sample("riskflow_batches_processed_total", state="Failed", error_kind="UnitTestError") - before_failed == 1
        assert sample("riskflow_records_processed_total", status="invalid") - before_invalid == 2

    def test_track_duration_observes_even_on_error(self):
        before = sample("riskflow_stage_duration_seconds_count", stage="unit_test")

        with pytest.raises(RuntimeError):
            with metrics.track_duration(metrics.stage_duration_seconds, stage="unit_test"):
                raise RuntimeError("boom")

        assert sample("riskflow_stage_duration_seconds_count", stage="unit_test") - before == 1


class TestExposition:
    """Tests for the text exposition format"""

    def test_generate_metrics_lists_pipeline_metrics(self):
        metrics.increment_counter(metrics.scores_total, 1, model_version="exposition-test", segment="low")

        text = metrics.generate_metrics().decode()

        assert "riskflow_scores_total" in text
        assert 'model_version="exposition-test"' in text
        assert "riskflow_stage_duration_seconds" in text

    def test_content_type(self):
        assert metrics.get_content_type().startswith("text/plain")


class TestBatchRunMetrics:
    """Metrics recorded by the orchestrator"""

    def test_committed_batch_counted(self, make_orchestrator, make_request, make_record):
        before = sample("riskflow_batches_processed_total", state="Committed", error_kind="none")

        report = make_orchestrator().run(make_request([make_record("M1")]))

        assert report.committed
        assert sample("riskflow_batches_processed_total", state="Committed", error_kind="none") - before == 1
