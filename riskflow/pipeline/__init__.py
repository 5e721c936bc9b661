"""
Batch orchestration: state machine, retries and batch isolation.
"""

from .claims import KeyClaims
from .orchestrator import (
    BatchReport,
    BatchRequest,
    CancellationToken,
    PipelineOrchestrator,
    generate_batch_id,
)
from .retry import RetryPolicy, call_with_retry, call_with_timeout

__all__ = [
    "PipelineOrchestrator",
    "BatchRequest",
    "BatchReport",
    "CancellationToken",
    "generate_batch_id",
    "RetryPolicy",
    "call_with_retry",
    "call_with_timeout",
    "KeyClaims",
]
