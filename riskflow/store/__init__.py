"""
In-memory lineage/result store and rejection sink.
"""

from .rejection import InMemoryRejectionSink, RejectionSink
from .result_store import InMemoryResultStore, ResultStore, compute_results_digest

__all__ = [
    "ResultStore",
    "InMemoryResultStore",
    "compute_results_digest",
    "RejectionSink",
    "InMemoryRejectionSink",
]
