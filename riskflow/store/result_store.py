"""
Lineage and result store.

A batch's score results and its LineageEntry are committed together or not
at all. Committed batches are never updated or deleted; corrections are new
batches that reference the batch they supersede.
"""

import hashlib
import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime

from riskflow.core.errors import StorageWriteFailure, UnknownBatch
from riskflow.core.models import BatchEvent, LineageEntry, ScoreResult, ThresholdLadder
from riskflow.observability.logger import get_logger

logger = get_logger(__name__)


def compute_results_digest(results: list[ScoreResult]) -> str:
    """SHA-256 over the canonical JSON of the ordered results."""
    payload = json.dumps([r.model_dump(mode="json") for r in results], sort_keys=True)
    return hashlib.sha256(payload.encode()).hexdigest()


class ResultStore(ABC):
    """
    Append-only store for score results, lineage entries and batch events.

    Subclasses implement the atomic ``_commit`` and the queries.
    """

    def record(
        self,
        batch_id: str,
        schema_version: int,
        feature_set_version: str,
        model_version: str,
        results: list[ScoreResult],
        invalid_count: int,
        *,
        thresholds: ThresholdLadder,
        reference_snapshot_id: str | None = None,
        as_of: datetime | None = None,
        total_count: int | None = None,
        valid_count: int | None = None,
        excluded_count: int = 0,
        supersedes: str | None = None,
    ) -> LineageEntry:
        """
        Atomically commit a batch's results with its lineage entry.

        Args:
            batch_id: Unique batch identifier
            schema_version: Schema version used for validation
            feature_set_version: Feature set version used for derivation
            model_version: Model version used for scoring
            results: Ordered score results
            invalid_count: Records routed to the rejection sink
            thresholds: Threshold ladder in force
            reference_snapshot_id: Reference snapshot the batch joined against
            as_of: As-of boundary of the batch
            total_count: Records ingested (defaults to valid + invalid)
            valid_count: Valid records (defaults to scored + excluded)
            excluded_count: Identifiers excluded during derivation
            supersedes: Batch this run corrects

        Returns:
            The committed LineageEntry

        Raises:
            StorageWriteFailure: If the batch id already exists or the write fails;
                nothing from the batch is visible afterwards
        """
        for result in results:
            if result.model_version != model_version or result.feature_set_version != feature_set_version:
                raise StorageWriteFailure(
                    f"Result for {result.identifier} was produced with "
                    f"({result.feature_set_version}, {result.model_version}), "
                    f"not ({feature_set_version}, {model_version})"
                )

        if valid_count is None:
            valid_count = len(results) + excluded_count
        if total_count is None:
            total_count = valid_count + invalid_count

        entry = LineageEntry(
            batch_id=batch_id,
            schema_version=schema_version,
            feature_set_version=feature_set_version,
            model_version=model_version,
            thresholds=thresholds,
            reference_snapshot_id=reference_snapshot_id,
            as_of=as_of,
            total_count=total_count,
            valid_count=valid_count,
            invalid_count=invalid_count,
            scored_count=len(results),
            excluded_count=excluded_count,
            results_digest=compute_results_digest(results),
            supersedes=supersedes,
        )

        self._commit(entry, list(results))

        logger.info(
            f"Committed batch {batch_id} with {len(results)} results",
            extra={
                "batch_id": batch_id,
                "schema_version": schema_version,
                "feature_set_version": feature_set_version,
                "model_version": model_version,
                "results_digest": entry.results_digest[:12],
            },
        )
        return entry

    @abstractmethod
    def _commit(self, entry: LineageEntry, results: list[ScoreResult]) -> None:
        """Persist entry and results as one atomic unit."""
        pass

    @abstractmethod
    def get(self, batch_id: str) -> LineageEntry:
        """
        Raises:
            UnknownBatch: If no lineage entry exists for the batch
        """
        pass

    @abstractmethod
    def results(self, batch_id: str) -> list[ScoreResult]:
        pass

    @abstractmethod
    def results_for_record(self, identifier: str) -> list[tuple[str, ScoreResult]]:
        """All committed results for an identifier as (batch_id, result), oldest batch first."""
        pass

    @abstractmethod
    def list_batches(self) -> list[LineageEntry]:
        pass

    @abstractmethod
    def on_event(self, event: BatchEvent) -> None:
        """Append a batch state-transition event."""
        pass

    @abstractmethod
    def events(self, batch_id: str) -> list[BatchEvent]:
        pass

    def has_batch(self, batch_id: str) -> bool:
        try:
            self.get(batch_id)
        except UnknownBatch:
            return False
        return True


class InMemoryResultStore(ResultStore):
    """
    Thread-safe in-memory store.

    Results are staged outside the lock and swapped in together with the
    lineage entry under it, so readers see either the whole batch or nothing.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._lineage: dict[str, LineageEntry] = {}
        self._results: dict[str, tuple[ScoreResult, ...]] = {}
        self._events: dict[str, list[BatchEvent]] = {}

    def _stage_result(self, result: ScoreResult) -> ScoreResult:
        """
        Re-check a result before it becomes visible.

        Results built with ``model_construct`` bypass validation; staging
        rebuilds each one so an out-of-range score fails the whole commit.
        """
        return ScoreResult.model_validate(result.model_dump())

    def _commit(self, entry: LineageEntry, results: list[ScoreResult]) -> None:
        try:
            staged = tuple(self._stage_result(result) for result in results)
        except Exception as e:
            raise StorageWriteFailure(f"Failed to stage results for batch {entry.batch_id}: {e}") from e

        with self._lock:
            if entry.batch_id in self._lineage:
                raise StorageWriteFailure(f"Batch {entry.batch_id} is already committed")
            self._results[entry.batch_id] = staged
            self._lineage[entry.batch_id] = entry

    def get(self, batch_id: str) -> LineageEntry:
        with self._lock:
            entry = self._lineage.get(batch_id)
        if entry is None:
            raise UnknownBatch(batch_id)
        return entry

    def results(self, batch_id: str) -> list[ScoreResult]:
        with self._lock:
            if batch_id not in self._lineage:
                raise UnknownBatch(batch_id)
            return list(self._results[batch_id])

    def results_for_record(self, identifier: str) -> list[tuple[str, ScoreResult]]:
        with self._lock:
            return [
                (batch_id, result)
                for batch_id in self._lineage
                for result in self._results[batch_id]
                if result.identifier == identifier
            ]

    def list_batches(self) -> list[LineageEntry]:
        with self._lock:
            return list(self._lineage.values())

    def on_event(self, event: BatchEvent) -> None:
        with self._lock:
            self._events.setdefault(event.batch_id, []).append(event)

    def events(self, batch_id: str) -> list[BatchEvent]:
        with self._lock:
            return list(self._events.get(batch_id, []))
