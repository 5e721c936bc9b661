"""
Rejection sink for invalid records.

Invalid records are kept with every violation they accumulated, tagged with
the batch that rejected them, so they can be reviewed and resubmitted.
"""

import threading
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any

from riskflow.core.models import Rejection
from riskflow.observability.logger import get_logger

logger = get_logger(__name__)


class RejectionSink(ABC):
    """Destination for rejected records."""

    @abstractmethod
    def emit(self, batch_id: str, rejections: list[Rejection]) -> int:
        """
        Store the rejections of one batch.

        Returns:
            Number of rejections written
        """
        pass

    @abstractmethod
    def statistics(self, batch_id: str | None = None) -> dict[str, Any]:
        """
        Summary of stored rejections.

        Returns:
            Dictionary with total_rejected, by_kind and by_batch
        """
        pass


class InMemoryRejectionSink(RejectionSink):
    """Thread-safe in-memory sink."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: list[tuple[str, Rejection]] = []

    def emit(self, batch_id: str, rejections: list[Rejection]) -> int:
        if not rejections:
            return 0
        with self._lock:
            self._entries.extend((batch_id, rejection) for rejection in rejections)
        logger.info(
            f"Quarantined {len(rejections)} records",
            extra={"batch_id": batch_id, "rejected": len(rejections)},
        )
        return len(rejections)

    def rejections(self, batch_id: str) -> list[Rejection]:
        with self._lock:
            return [rejection for bid, rejection in self._entries if bid == batch_id]

    def statistics(self, batch_id: str | None = None) -> dict[str, Any]:
        with self._lock:
            entries = [(bid, r) for bid, r in self._entries if batch_id is None or bid == batch_id]

        by_kind: Counter = Counter()
        by_batch: Counter = Counter()
        for bid, rejection in entries:
            by_batch[bid] += 1
            for kind in rejection.kinds:
                by_kind[kind.value] += 1

        return {
            "total_rejected": len(entries),
            "by_kind": dict(by_kind),
            "by_batch": dict(by_batch),
        }
