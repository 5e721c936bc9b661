"""
Unit tests for pipeline configuration and the CLI parser.
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from riskflow.cli.batch_cli import build_parser, main, summarize
from riskflow.config import PipelineConfigLoader, build_orchestrator, parse_pipeline_config
from riskflow.core.models import RiskSegment
from riskflow.features import ReferenceSnapshot, StaticReferenceSource, default_feature_set
from riskflow.pipeline import BatchRequest

CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "pipeline.yaml"


@pytest.fixture
def config():
    return PipelineConfigLoader(CONFIG_PATH).load()


class TestPipelineConfig:
    """Tests for loading config/pipeline.yaml"""

    def test_shipped_config_loads(self, config):
        assert [f.name for f in config.schema_fields][:3] == ["principal_balance", "credit_score", "ltv"]
        assert config.feature_set.version == "loan-risk-v1"
        assert config.model.version == "scorecard-2024.1"
        assert config.retry.max_attempts == 3
        assert config.workers.batches == 2
        assert config.thresholds.assign(0.05) == RiskSegment.MEDIUM

    def test_configured_feature_set_matches_builtin(self, config):
        """The YAML and the built-in definition must pin the same formulas"""
        assert config.feature_set.fingerprint == default_feature_set().fingerprint

    def test_missing_sections(self):
        with pytest.raises(ValueError, match="feature_set, model"):
            parse_pipeline_config({"schema": {"fields": {"a": {}}}})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PipelineConfigLoader(tmp_path / "absent.yaml")

    def test_defaults_for_optional_sections(self):
        with open(CONFIG_PATH) as f:
            raw = yaml.safe_load(f)
        for section in ("thresholds", "retry", "workers", "scoring_timeout_seconds", "claim_timeout_seconds"):
            raw.pop(section)

        config = parse_pipeline_config(raw)

        assert config.retry.max_attempts == 3
        assert config.workers.validation == 1
        assert config.claim_timeout_seconds == 30.0

    def test_build_orchestrator_runs_a_batch(self, config, make_record, reference_values):
        orchestrator = build_orchestrator(config, StaticReferenceSource(ReferenceSnapshot(reference_values)))
        try:
            report = orchestrator.run(
                BatchRequest(
                    batch_id="b1",
                    records=[make_record("L1"), make_record("L2", credit_score="999")],
                    schema_version=1,
                    feature_set_version="loan-risk-v1",
                    model_version="scorecard-2024.1",
                )
            )
        finally:
            orchestrator.scorer.close()

        assert report.committed
        assert report.scored == 1
        result = orchestrator.store.results("b1")[0]
        assert result.segment == RiskSegment.LOW
        assert report.lineage.thresholds == config.thresholds

        summary = summarize(report)
        assert summary["state"] == "Committed"
        assert summary["lineage"]["batch_id"] == "b1"
        assert "rejections" not in summary


class TestCliParser:
    """Tests for the argparse CLI"""

    def test_run_arguments(self):
        args = build_parser().parse_args([
            "run", "--input", "tape.csv", "--reference", "ref.csv",
            "--as-of", "2024-03-31T00:00:00Z", "--store", "postgres", "--supersedes", "b1",
        ])

        assert args.command == "run"
        assert args.as_of == datetime(2024, 3, 31, tzinfo=timezone.utc)
        assert args.store == "postgres"
        assert args.supersedes == "b1"
        assert args.format == "csv"
        assert args.db_host is None

    def test_invalid_as_of(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["run", "--input", "a", "--reference", "b", "--as-of", "last tuesday"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "Batch risk scoring pipeline" in capsys.readouterr().out

    def test_missing_input_file(self, tmp_path):
        assert main(["run", "--input", str(tmp_path / "tape.csv"), "--reference", str(tmp_path / "ref.csv")]) == 1
