"""Snapshot cache with a freshness window.

Holds the most recently published RateSnapshot. The snapshot is immutable
and replaced by reference, so readers always see either the previous or
the next complete snapshot and never a half-merged one.
"""

from collections.abc import Callable
from datetime import UTC, datetime

from ratewatch.models import RateSnapshot


class SnapshotCache:
    """Current snapshot plus the rule for whether it may be served again.

    Attributes:
        freshness_window_sec: Age under which a snapshot is served without I/O.
    """

    def __init__(
        self,
        freshness_window_sec: float = 300.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.freshness_window_sec = freshness_window_sec
        self._clock = clock or (lambda: datetime.now(UTC))
        self._snapshot = RateSnapshot.empty()

    @property
    def snapshot(self) -> RateSnapshot:
        return self._snapshot

    def is_fresh(self, now: datetime | None = None) -> bool:
        """Whether the current snapshot is younger than the window.

        A snapshot that was never fetched, or is mid-load, is never fresh.
        """
        fetched = self._snapshot.last_fetch_date
        if fetched is None or self._snapshot.is_loading:
            return False
        age = ((now or self._clock()) - fetched).total_seconds()
        return age < self.freshness_window_sec

    def replace(self, snapshot: RateSnapshot) -> RateSnapshot:
        """Swap in a new snapshot and return the one it replaced."""
        previous, self._snapshot = self._snapshot, snapshot
        return previous

    def mark_loading(self) -> RateSnapshot:
        """Publish the current rates with the loading flag set."""
        self._snapshot = self._snapshot.model_copy(update={"is_loading": True})
        return self._snapshot

    def invalidate(self) -> None:
        """Forget the fetch time so the next aggregation goes to the network."""
        self._snapshot = self._snapshot.model_copy(update={"last_fetch_date": None})

    def now(self) -> datetime:
        return self._clock()
