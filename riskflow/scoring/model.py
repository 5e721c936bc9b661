"""
Risk model capability and a local logistic scorecard implementation.

The pipeline only depends on ``predict(feature_vector) -> float in [0, 1]``
and a ``version``; training happens elsewhere.
"""

import math
import threading
from abc import ABC, abstractmethod
from typing import Any

from riskflow.core.errors import UnknownVersion
from riskflow.core.models import FeatureVector
from riskflow.observability.logger import get_logger

logger = get_logger(__name__)


class RiskModel(ABC):
    """A versioned, pluggable scoring model."""

    @property
    @abstractmethod
    def version(self) -> str:
        """Version identifier recorded with every score."""
        pass

    @abstractmethod
    def predict(self, feature_vector: FeatureVector) -> float:
        """
        Score one feature vector.

        Returns:
            Probability-like score in [0, 1]
        """
        pass


class LogisticScorecardModel(RiskModel):
    """
    Deterministic scorecard: logistic(intercept + sum(weight * feature)).

    Features without a coefficient are ignored; a weighted feature missing
    from the vector is an error.
    """

    def __init__(self, version: str, intercept: float, coefficients: dict[str, float]):
        if not version:
            raise ValueError("Model version must not be empty")
        self._version = version
        self.intercept = float(intercept)
        self.coefficients = {name: float(weight) for name, weight in coefficients.items()}

    @property
    def version(self) -> str:
        return self._version

    def predict(self, feature_vector: FeatureVector) -> float:
        logit = self.intercept
        for name, weight in self.coefficients.items():
            if name not in feature_vector.features:
                raise ValueError(
                    f"Model {self.version} needs feature '{name}', absent from "
                    f"feature set {feature_vector.feature_set_version}"
                )
            logit += weight * feature_vector.features[name]
        return round(_sigmoid(logit), 6)

    @classmethod
    def from_config(cls, section: dict[str, Any]) -> "LogisticScorecardModel":
        """
        Build a scorecard from a config mapping.

        Expected format:
        ```yaml
        model:
          version: scorecard-2024.1
          intercept: -4.0
          coefficients:
            loan_to_value: 2.5
        ```
        """
        return cls(
            version=str(section["version"]),
            intercept=section.get("intercept", 0.0),
            coefficients=section.get("coefficients") or {},
        )


def _sigmoid(x: float) -> float:
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


class ModelRegistry:
    """Resolves model versions to RiskModel instances."""

    def __init__(self, models: list[RiskModel] | None = None):
        self._models: dict[str, RiskModel] = {}
        self._lock = threading.Lock()
        for model in models or []:
            self.register(model)

    def register(self, model: RiskModel) -> RiskModel:
        """
        Raises:
            ValueError: If a different model is already registered under the version
        """
        with self._lock:
            existing = self._models.get(model.version)
            if existing is not None and existing is not model:
                raise ValueError(f"Model version {model.version} is already registered")
            self._models[model.version] = model
        logger.info(f"Registered model {model.version}", extra={"model_version": model.version})
        return model

    def resolve(self, version: str) -> RiskModel:
        """
        Raises:
            UnknownVersion: If the version was never registered
        """
        with self._lock:
            model = self._models.get(version)
        if model is None:
            raise UnknownVersion("model", version)
        return model

    def list_versions(self) -> list[str]:
        with self._lock:
            return sorted(self._models)
