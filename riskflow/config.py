"""
Pipeline configuration.

Everything that pins the semantics of a run (schema fields, feature set,
threshold ladder, model coefficients) and the operational knobs (retry
policy, worker counts, timeouts) come from one YAML file.

Expected YAML format (see config/pipeline.yaml):
```yaml
schema:
  fields: {...}
feature_set:
  version: loan-risk-v1
  features: {...}
thresholds:
  steps: [{upper: 0.05, segment: low}, {upper: 0.20, segment: medium}]
  top: high
model:
  version: scorecard-2024.1
  intercept: -4.0
  coefficients: {...}
retry: {max_attempts: 3, backoff_seconds: 0.5, multiplier: 2.0, timeout_seconds: 10}
workers: {validation: 4, derivation: 4, scoring: 4, batches: 2}
claim_timeout_seconds: 30
```
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from riskflow.core.models import FieldDefinition, ThresholdLadder
from riskflow.core.rules import Validator
from riskflow.core.schema import SchemaRegistry, parse_fields
from riskflow.features import (
    FeatureDeriver,
    FeatureSetRegistry,
    FeatureSetVersion,
    ReferenceDataSource,
    parse_feature_set,
)
from riskflow.observability.logger import get_logger
from riskflow.pipeline import PipelineOrchestrator, RetryPolicy
from riskflow.scoring import LogisticScorecardModel, ModelRegistry, Scorer, parse_threshold_ladder
from riskflow.store import InMemoryRejectionSink, InMemoryResultStore, RejectionSink, ResultStore

logger = get_logger(__name__)


class ScorecardConfig(BaseModel):
    """Coefficients of the logistic scorecard model."""

    version: str = Field(..., min_length=1)
    intercept: float = 0.0
    coefficients: dict[str, float] = Field(default_factory=dict)

    class Config:
        frozen = True


class WorkerConfig(BaseModel):
    """Thread counts per stage."""

    validation: int = Field(1, ge=1)
    derivation: int = Field(1, ge=1)
    batches: int = Field(1, ge=1)

    class Config:
        frozen = True


class PipelineConfig(BaseModel):
    """Parsed pipeline configuration."""

    schema_fields: list[FieldDefinition]
    schema_description: str | None = None
    feature_set: FeatureSetVersion
    thresholds: ThresholdLadder = Field(default_factory=ThresholdLadder.default)
    model: ScorecardConfig
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    workers: WorkerConfig = Field(default_factory=WorkerConfig)
    scoring_timeout_seconds: float = Field(5.0, gt=0.0)
    claim_timeout_seconds: float = Field(30.0, gt=0.0)

    class Config:
        frozen = True
        protected_namespaces = ()


class PipelineConfigLoader:
    """
    Loads the pipeline configuration from a YAML file.
    """

    REQUIRED_SECTIONS = ("schema", "feature_set", "model")

    def __init__(self, config_path: str | Path):
        """
        Initialize the config loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Pipeline configuration file not found: {config_path}")

    def load(self) -> PipelineConfig:
        """
        Load and parse the configuration.

        Raises:
            ValueError: If YAML is invalid or required sections are missing
        """
        with open(self.config_path) as f:
            config = yaml.safe_load(f)

        if not isinstance(config, dict):
            raise ValueError("Pipeline configuration must be a mapping")
        return parse_pipeline_config(config)


def parse_pipeline_config(config: dict[str, Any]) -> PipelineConfig:
    """Build a PipelineConfig from an already-parsed mapping."""
    missing = [section for section in PipelineConfigLoader.REQUIRED_SECTIONS if section not in config]
    if missing:
        raise ValueError(f"Configuration is missing section(s): {', '.join(missing)}")

    schema_section = config["schema"] or {}
    return PipelineConfig(
        schema_fields=parse_fields(schema_section.get("fields")),
        schema_description=schema_section.get("description"),
        feature_set=parse_feature_set(config["feature_set"]),
        thresholds=parse_threshold_ladder(config.get("thresholds")),
        model=ScorecardConfig(**config["model"]),
        retry=RetryPolicy(**(config.get("retry") or {})),
        workers=WorkerConfig(**(config.get("workers") or {})),
        scoring_timeout_seconds=config.get("scoring_timeout_seconds", 5.0),
        claim_timeout_seconds=config.get("claim_timeout_seconds", 30.0),
    )


def build_orchestrator(
    config: PipelineConfig,
    reference_source: ReferenceDataSource,
    store: ResultStore | None = None,
    rejection_sink: RejectionSink | None = None,
) -> PipelineOrchestrator:
    """
    Wire a PipelineOrchestrator from configuration.

    The configured schema is published as version 1 of a fresh registry, and
    the feature set and model are registered under their versions.
    """
    schemas = SchemaRegistry()
    schemas.publish(config.schema_fields, config.schema_description)

    feature_sets = FeatureSetRegistry([config.feature_set])
    models = ModelRegistry([
        LogisticScorecardModel(
            version=config.model.version,
            intercept=config.model.intercept,
            coefficients=config.model.coefficients,
        )
    ])
    scorer = Scorer(
        models,
        ladder=config.thresholds,
        timeout_seconds=config.scoring_timeout_seconds,
    )

    logger.info(
        "Pipeline configured",
        extra={
            "feature_set_version": config.feature_set.version,
            "model_version": config.model.version,
            "retry_max_attempts": config.retry.max_attempts,
        },
    )

    return PipelineOrchestrator(
        schemas=schemas,
        feature_sets=feature_sets,
        scorer=scorer,
        reference_source=reference_source,
        store=store or InMemoryResultStore(),
        rejection_sink=rejection_sink or InMemoryRejectionSink(),
        validator=Validator(max_workers=config.workers.validation),
        deriver=FeatureDeriver(max_workers=config.workers.derivation),
        retry_policy=config.retry,
        claim_timeout_seconds=config.claim_timeout_seconds,
    )
