"""
Feature set versions: named, fixed derivation formulas.

A feature set version pins its formulas by fingerprint. Changing a formula
means registering a new version; re-registering an existing version with
different formulas is refused so historical vectors stay reproducible.
"""

import hashlib
import json
import threading
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from riskflow.core.errors import FeatureSetConflict, UnknownVersion
from riskflow.observability.logger import get_logger

logger = get_logger(__name__)

FeatureKind = Literal["field", "ratio", "reference", "trailing_count", "age_days"]


class FeatureDefinition(BaseModel):
    """
    One named feature and its formula.

    Kinds:
        field: numeric value of ``field`` on the current observation
        ratio: ``numerator`` / (``denominator_field`` or reference ``indicator``)
        reference: reference ``indicator`` joined as of the vector's as_of
        trailing_count: records with ``field`` >= ``threshold`` inside the
            trailing window (``window_days`` or the set's default) ending at as_of
        age_days: days from the date in ``field`` to as_of

    Attributes:
        optional: When True a missing input falls back to ``default``;
            otherwise the record is excluded and reported
    """

    name: str = Field(..., min_length=1)
    kind: FeatureKind
    field: str | None = None
    numerator: str | None = None
    denominator_field: str | None = None
    indicator: str | None = None
    threshold: float | None = None
    window_days: int | None = Field(None, gt=0)
    optional: bool = False
    default: float | None = None

    @model_validator(mode="after")
    def check_inputs(self) -> "FeatureDefinition":
        """Validate that each kind declares the inputs its formula needs."""
        if self.kind in ("field", "age_days", "trailing_count") and not self.field:
            raise ValueError(f"Feature '{self.name}' of kind {self.kind} requires 'field'")
        if self.kind == "trailing_count" and self.threshold is None:
            raise ValueError(f"Feature '{self.name}' requires 'threshold'")
        if self.kind == "reference" and not self.indicator:
            raise ValueError(f"Feature '{self.name}' requires 'indicator'")
        if self.kind == "ratio":
            if not self.numerator:
                raise ValueError(f"Feature '{self.name}' requires 'numerator'")
            if bool(self.denominator_field) == bool(self.indicator):
                raise ValueError(
                    f"Feature '{self.name}' requires exactly one of 'denominator_field' or 'indicator'"
                )
        if self.optional and self.default is None:
            raise ValueError(f"Optional feature '{self.name}' must declare a default")
        return self

    @property
    def uses_reference(self) -> bool:
        return self.indicator is not None

    class Config:
        frozen = True


class FeatureSetVersion(BaseModel):
    """
    An immutable set of feature formulas identified by ``version``.

    Attributes:
        version: Feature set version identifier (e.g. "loan-risk-v1")
        window_days: Default trailing window length
        geography_field: Record field used as the reference join key
        features: Ordered feature definitions
        description: Free-text note (not part of the fingerprint)
    """

    version: str = Field(..., min_length=1)
    window_days: int = Field(90, gt=0)
    geography_field: str = "geography"
    features: list[FeatureDefinition] = Field(..., min_length=1)
    description: str | None = None

    @model_validator(mode="after")
    def check_unique_names(self) -> "FeatureSetVersion":
        names = [f.name for f in self.features]
        if len(names) != len(set(names)):
            raise ValueError(f"Feature set {self.version} has duplicate feature names")
        return self

    @property
    def fingerprint(self) -> str:
        """SHA-256 of the canonical formula definition."""
        payload = json.dumps(
            self.model_dump(mode="json", exclude={"description"}),
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode()).hexdigest()

    @property
    def feature_names(self) -> list[str]:
        return [f.name for f in self.features]

    class Config:
        frozen = True


class FeatureSetRegistry:
    """Append-only registry of feature set versions."""

    def __init__(self, feature_sets: list[FeatureSetVersion] | None = None):
        self._sets: dict[str, FeatureSetVersion] = {}
        self._lock = threading.Lock()
        for feature_set in feature_sets or []:
            self.register(feature_set)

    def register(self, feature_set: FeatureSetVersion) -> FeatureSetVersion:
        """
        Register a feature set version.

        Re-registering an identical definition is a no-op.

        Raises:
            FeatureSetConflict: If the version exists with different formulas
        """
        with self._lock:
            existing = self._sets.get(feature_set.version)
            if existing is not None:
                if existing.fingerprint != feature_set.fingerprint:
                    raise FeatureSetConflict(
                        f"Feature set {feature_set.version} is already registered with different "
                        "formulas; register the change under a new version"
                    )
                return existing
            self._sets[feature_set.version] = feature_set

        logger.info(
            f"Registered feature set {feature_set.version}",
            extra={"feature_set_version": feature_set.version, "fingerprint": feature_set.fingerprint[:12]},
        )
        return feature_set

    def resolve(self, version: str) -> FeatureSetVersion:
        """
        Raises:
            UnknownVersion: If the version was never registered
        """
        with self._lock:
            feature_set = self._sets.get(version)
        if feature_set is None:
            raise UnknownVersion("feature set", version)
        return feature_set

    def list_versions(self) -> list[str]:
        with self._lock:
            return sorted(self._sets)


def parse_feature_set(section: dict[str, Any]) -> FeatureSetVersion:
    """
    Build a FeatureSetVersion from a config mapping.

    Expected format:
    ```yaml
    feature_set:
      version: loan-risk-v1
      window_days: 90
      features:
        credit_score: {kind: field, field: credit_score}
        balance_to_valuation: {kind: ratio, numerator: principal_balance, indicator: property_value}
    ```
    """
    features_section = section.get("features")
    if not isinstance(features_section, dict) or not features_section:
        raise ValueError("Feature set 'features' must be a non-empty mapping")

    features = [
        FeatureDefinition(name=name, **(definition or {}))
        for name, definition in features_section.items()
    ]
    return FeatureSetVersion(
        version=section["version"],
        window_days=section.get("window_days", 90),
        geography_field=section.get("geography_field", "geography"),
        features=features,
        description=section.get("description"),
    )


def load_feature_set(config_path: str | Path) -> FeatureSetVersion:
    """Load a feature set from the ``feature_set`` section of a YAML file."""
    with open(config_path) as f:
        config = yaml.safe_load(f)
    if not config or "feature_set" not in config:
        raise ValueError("Configuration file must contain 'feature_set' section")
    return parse_feature_set(config["feature_set"])


def default_feature_set() -> FeatureSetVersion:
    """The standard loan risk feature set."""
    return FeatureSetVersion(
        version="loan-risk-v1",
        window_days=90,
        features=[
            FeatureDefinition(name="credit_score", kind="field", field="credit_score"),
            FeatureDefinition(name="loan_to_value", kind="field", field="ltv"),
            FeatureDefinition(
                name="balance_to_valuation",
                kind="ratio",
                numerator="principal_balance",
                indicator="property_value",
            ),
            FeatureDefinition(
                name="delinquency_count_90d",
                kind="trailing_count",
                field="days_past_due",
                threshold=30,
            ),
            FeatureDefinition(name="loan_age_days", kind="age_days", field="effective_date"),
            FeatureDefinition(
                name="unemployment_rate",
                kind="reference",
                indicator="unemployment_rate",
                optional=True,
                default=0.0,
            ),
        ],
        description="Credit, collateral, delinquency and macro features for loan tapes",
    )
