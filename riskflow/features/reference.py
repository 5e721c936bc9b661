"""
Reference data snapshots with as-of lookup semantics.

A snapshot is acquired once at batch start and never changes afterwards,
so every record of a batch is joined against the same reference state.
"""

import bisect
import hashlib
import json
from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from riskflow.core.models import ReferenceValue
from riskflow.utils.timestamps import ensure_utc


class ReferenceSnapshot:
    """
    Immutable, indexed view of reference values by geography.

    Lookups return the newest value whose ``effective_at`` is at or before the
    requested time (nearest available prior value); future-dated values are
    never returned.
    """

    def __init__(self, values: Iterable[ReferenceValue], snapshot_id: str | None = None):
        """
        Build a snapshot.

        Args:
            values: Reference values; at most one per (geography, effective_at)
            snapshot_id: Stable identifier (defaults to a content hash)

        Raises:
            ValueError: If two values share a geography and effective time
        """
        ordered = sorted(values, key=lambda v: (v.geography, v.effective_at))

        self._times: dict[str, list[datetime]] = {}
        self._values: dict[str, list[ReferenceValue]] = {}
        for value in ordered:
            times = self._times.setdefault(value.geography, [])
            if times and times[-1] == value.effective_at:
                raise ValueError(
                    f"Duplicate reference value for {value.geography} at {value.effective_at.isoformat()}"
                )
            times.append(value.effective_at)
            self._values.setdefault(value.geography, []).append(value)

        self._count = len(ordered)
        self.snapshot_id = snapshot_id or self._content_hash(ordered)

    @staticmethod
    def _content_hash(values: list[ReferenceValue]) -> str:
        payload = json.dumps(
            [v.model_dump(mode="json") for v in values],
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode()).hexdigest()[:16]

    def get(self, geography: str, at: datetime) -> ReferenceValue | None:
        """
        As-of lookup of the full reference value for a geography.

        Args:
            geography: Join key
            at: Point in time; only values effective at or before it qualify

        Returns:
            The newest qualifying ReferenceValue, or None
        """
        times = self._times.get(geography)
        if not times:
            return None
        index = bisect.bisect_right(times, ensure_utc(at)) - 1
        if index < 0:
            return None
        return self._values[geography][index]

    def get_indicator(self, geography: str, indicator: str, at: datetime) -> tuple[float, datetime] | None:
        """
        As-of lookup of a single indicator.

        Walks back from the newest qualifying value until one carries the
        indicator, so a sparse publication schedule still resolves to the
        nearest prior observation of that indicator.

        Returns:
            Tuple of (value, effective_at), or None when no prior value exists
        """
        times = self._times.get(geography)
        if not times:
            return None
        index = bisect.bisect_right(times, ensure_utc(at)) - 1
        values = self._values[geography]
        while index >= 0:
            candidate = values[index]
            if indicator in candidate.values:
                return candidate.values[indicator], candidate.effective_at
            index -= 1
        return None

    @property
    def geographies(self) -> list[str]:
        return sorted(self._times)

    def __len__(self) -> int:
        return self._count


class ReferenceDataSource(Protocol):
    """External reference-data service boundary."""

    def snapshot(self) -> ReferenceSnapshot:
        """Return a consistent, read-only snapshot of the reference data."""
        ...


class StaticReferenceSource:
    """Reference source serving one fixed snapshot (files, tests, replays)."""

    def __init__(self, snapshot: ReferenceSnapshot):
        self._snapshot = snapshot

    def snapshot(self) -> ReferenceSnapshot:
        return self._snapshot
