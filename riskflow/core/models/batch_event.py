"""
Batch state machine states and the ordered transition events it emits.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from riskflow.utils.timestamps import utcnow


class BatchState(str, Enum):
    """Orchestration states of a batch."""

    RECEIVED = "Received"
    VALIDATING = "Validating"
    DERIVING = "Deriving"
    SCORING = "Scoring"
    COMMITTED = "Committed"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self in (BatchState.COMMITTED, BatchState.FAILED)


class BatchEvent(BaseModel):
    """
    One state transition of a batch, emitted in order by the orchestrator.

    Attributes:
        batch_id: Batch the transition belongs to
        sequence: Position of the event within the batch (starting at 1)
        from_state: State before the transition (None for the initial event)
        to_state: State after the transition
        occurred_at: When the transition happened
        detail: Counts or error information attached to the transition
    """

    batch_id: str
    sequence: int = Field(..., ge=1)
    from_state: BatchState | None = None
    to_state: BatchState
    occurred_at: datetime = Field(default_factory=utcnow)
    detail: dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "batch_id": "batch_20240331_001",
                "sequence": 2,
                "from_state": "Received",
                "to_state": "Validating",
                "detail": {}
            }
        }
