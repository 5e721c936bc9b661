"""
Batch isolation by (identifier, as_of) claims.

Two in-flight batches never derive or score the same (identifier, as_of)
key at the same time; the later batch waits for the earlier one.
"""

import threading
import time
from collections.abc import Hashable, Iterable
from contextlib import contextmanager

from riskflow.core.errors import BatchConflict


class KeyClaims:
    """Exclusive claims on sets of keys, held by batch id."""

    def __init__(self):
        self._condition = threading.Condition()
        self._owners: dict[Hashable, str] = {}

    def _blocked(self, owner: str, keys: set) -> bool:
        return any(self._owners.get(key, owner) != owner for key in keys)

    @contextmanager
    def claim(self, owner: str, keys: Iterable[Hashable], timeout: float):
        """
        Hold every key in ``keys`` for the duration of the block.

        Raises:
            BatchConflict: If another owner still holds one of the keys after ``timeout``
        """
        wanted = set(keys)
        deadline = time.monotonic() + timeout
        with self._condition:
            while self._blocked(owner, wanted):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    holders = sorted({self._owners[k] for k in wanted if k in self._owners} - {owner})
                    raise BatchConflict(
                        f"Batch {owner} overlaps in-flight batch(es) {', '.join(holders)} "
                        f"and could not claim its records within {timeout}s"
                    )
                self._condition.wait(remaining)
            for key in wanted:
                self._owners[key] = owner
        try:
            yield
        finally:
            with self._condition:
                for key in wanted:
                    if self._owners.get(key) == owner:
                        del self._owners[key]
                self._condition.notify_all()

    def held_by(self, owner: str) -> set:
        with self._condition:
            return {key for key, holder in self._owners.items() if holder == owner}
