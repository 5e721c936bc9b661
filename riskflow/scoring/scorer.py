"""
Risk scorer.

Applies a versioned model to feature vectors and assigns risk segments.
Every predict call is bounded by a timeout; failures surface as
ModelUnavailable and are left to the orchestrator's retry policy.
"""

import math
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from riskflow.core.errors import ModelUnavailable
from riskflow.core.models import FeatureVector, ScoreResult, ThresholdLadder
from riskflow.observability import metrics
from riskflow.observability.logger import get_logger

from .model import ModelRegistry

logger = get_logger(__name__)


class Scorer:
    """
    Scores feature vectors with a model version and a threshold ladder.

    Scoring is a pure function of (vector, model version, ladder): the
    result's ``scored_at`` is the vector's ``as_of``, so re-scoring yields an
    identical ScoreResult.
    """

    def __init__(
        self,
        models: ModelRegistry,
        ladder: ThresholdLadder | None = None,
        timeout_seconds: float = 5.0,
    ):
        """
        Initialize the scorer.

        Args:
            models: Registry resolving model versions
            ladder: Threshold ladder (defaults to the standard ladder)
            timeout_seconds: Upper bound for a single predict call
        """
        self.models = models
        self.ladder = ladder or ThresholdLadder.default()
        self.timeout_seconds = timeout_seconds
        self._closed = False

    def score(self, feature_vector: FeatureVector, model_version: str) -> ScoreResult:
        """
        Score one feature vector.

        Raises:
            UnknownVersion: If the model version cannot be resolved
            ModelUnavailable: On timeout, model failure, NaN or out-of-range output
        """
        if self._closed:
            raise RuntimeError("Scorer is closed")
        model = self.models.resolve(model_version)

        # One executor per call: a hung predict keeps only its own thread.
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scorer")
        start = time.monotonic()
        future = executor.submit(model.predict, feature_vector)
        try:
            raw = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            raise ModelUnavailable(
                f"Model {model_version} did not answer within {self.timeout_seconds}s "
                f"(record {feature_vector.identifier})"
            )
        except Exception as e:
            raise ModelUnavailable(
                f"Model {model_version} failed for record {feature_vector.identifier}: {e}"
            ) from e
        finally:
            executor.shutdown(wait=False)
            metrics.observe_histogram(
                metrics.model_latency_seconds, time.monotonic() - start, model_version=model_version
            )

        try:
            score = float(raw)
        except (TypeError, ValueError) as e:
            raise ModelUnavailable(f"Model {model_version} returned a non-numeric score: {raw!r}") from e
        if math.isnan(score) or not 0.0 <= score <= 1.0:
            raise ModelUnavailable(f"Model {model_version} returned an out-of-range score: {score}")

        segment = self.ladder.assign(score)
        metrics.increment_counter(metrics.scores_total, 1, model_version=model_version, segment=segment.value)

        return ScoreResult(
            identifier=feature_vector.identifier,
            feature_set_version=feature_vector.feature_set_version,
            model_version=model_version,
            score=score,
            segment=segment,
            scored_at=feature_vector.as_of,
        )

    def score_all(self, feature_vectors: list[FeatureVector], model_version: str) -> list[ScoreResult]:
        """Score vectors in order; the first failure aborts the call."""
        results = [self.score(vector, model_version) for vector in feature_vectors]
        logger.debug(
            f"Scored {len(results)} feature vectors",
            extra={"model_version": model_version},
        )
        return results

    def close(self) -> None:
        """Refuse further score calls. Predict calls still running are abandoned."""
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
