"""
Batch lineage tracking.

The LineageTracker drives the batch state machine and emits one ordered
BatchEvent per transition to its sinks (the result store's ``on_event``) and
to the log, giving an explicit audit trail instead of implicit triggers.

Usage:
    tracker = LineageTracker(sinks=[store.on_event])
    tracker.start("batch_001")
    tracker.transition("batch_001", BatchState.VALIDATING)
"""

import threading
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from riskflow.core.errors import StorageWriteFailure
from riskflow.core.models import BatchEvent, BatchState
from riskflow.observability.logger import get_logger

logger = get_logger(__name__)

EventSink = Callable[[BatchEvent], None]

ALLOWED_TRANSITIONS: dict[BatchState, set[BatchState]] = {
    BatchState.RECEIVED: {BatchState.VALIDATING, BatchState.FAILED},
    BatchState.VALIDATING: {BatchState.DERIVING, BatchState.FAILED},
    BatchState.DERIVING: {BatchState.SCORING, BatchState.FAILED},
    BatchState.SCORING: {BatchState.COMMITTED, BatchState.FAILED},
    BatchState.COMMITTED: set(),
    BatchState.FAILED: set(),
}


class LineageTracker:
    """
    Tracks batch states and emits ordered transition events.

    Events are recorded under the tracker lock and handed to the sinks after
    it is released; a batch's transitions come from the single thread
    running it, so per-batch order is preserved. Histories of the most
    recent ``max_finished`` terminal batches are retained.
    """

    def __init__(self, sinks: list[EventSink] | None = None, max_finished: int = 1000):
        """
        Initialize lineage tracker.

        Args:
            sinks: Callables receiving every event, in order
            max_finished: Terminal batch histories kept in memory
        """
        self.sinks = list(sinks or [])
        self.max_finished = max(1, max_finished)
        self._lock = threading.Lock()
        self._history: dict[str, list[BatchEvent]] = {}
        self._finished: OrderedDict[str, None] = OrderedDict()

    def start(self, batch_id: str, **detail: Any) -> BatchEvent:
        """
        Register a new batch in state Received.

        Raises:
            ValueError: If the batch id was already started
        """
        with self._lock:
            if batch_id in self._history:
                raise ValueError(f"Batch {batch_id} was already started")
            event = BatchEvent(
                batch_id=batch_id,
                sequence=1,
                from_state=None,
                to_state=BatchState.RECEIVED,
                detail=detail,
            )
            self._history[batch_id] = [event]
        self._emit(event)
        return event

    def transition(self, batch_id: str, to_state: BatchState, **detail: Any) -> BatchEvent:
        """
        Move a batch to ``to_state``.

        The new state is recorded before the sinks run, so a failing sink
        does not undo the transition.

        Raises:
            ValueError: If the batch is unknown or the transition is not allowed
            StorageWriteFailure: If a sink fails to record the event
        """
        with self._lock:
            history = self._history.get(batch_id)
            if not history:
                raise ValueError(f"Batch {batch_id} was never started")
            current = history[-1].to_state
            if to_state not in ALLOWED_TRANSITIONS[current]:
                raise ValueError(f"Batch {batch_id} cannot move from {current.value} to {to_state.value}")
            event = BatchEvent(
                batch_id=batch_id,
                sequence=len(history) + 1,
                from_state=current,
                to_state=to_state,
                detail=detail,
            )
            history.append(event)
            if to_state.terminal:
                self._finish(batch_id)
        self._emit(event)
        return event

    def state(self, batch_id: str) -> BatchState | None:
        with self._lock:
            history = self._history.get(batch_id)
            return history[-1].to_state if history else None

    def history(self, batch_id: str) -> list[BatchEvent]:
        with self._lock:
            return list(self._history.get(batch_id, []))

    def _finish(self, batch_id: str) -> None:
        self._finished[batch_id] = None
        while len(self._finished) > self.max_finished:
            evicted, _ = self._finished.popitem(last=False)
            self._history.pop(evicted, None)

    def _emit(self, event: BatchEvent) -> None:
        log = logger.warning if event.to_state == BatchState.FAILED else logger.info
        log(
            f"Batch {event.batch_id}: "
            f"{event.from_state.value if event.from_state else '-'} -> {event.to_state.value}",
            extra={
                "batch_id": event.batch_id,
                "sequence": event.sequence,
                "from_state": event.from_state.value if event.from_state else None,
                "to_state": event.to_state.value,
                **{f"detail_{k}": v for k, v in event.detail.items()},
            },
        )
        for sink in self.sinks:
            try:
                sink(event)
            except Exception as e:
                raise StorageWriteFailure(
                    f"Recording {event.to_state.value} event of batch {event.batch_id} failed: {e}"
                ) from e
