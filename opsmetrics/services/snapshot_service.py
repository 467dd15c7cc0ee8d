"""
Snapshot service - latest-wins coordination of snapshot builds.

Every refresh (filter change, period change, explicit reload) starts an
independent build; in-flight builds are never cancelled. Each build is
tagged with a generation number when it starts, and its result is applied
as the latest snapshot only if no newer build was requested meanwhile, so a
slow stale build can never overwrite a more recent one.
"""

from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

import structlog

from opsmetrics.engine.assembler import MetricsAssembler
from opsmetrics.models.filters import SnapshotFilters
from opsmetrics.models.snapshot import OperationalSnapshot
from opsmetrics.storage import get_collection_store

logger = structlog.get_logger()


class SnapshotService:
    """
    Holds the most recently requested snapshot.

    Attributes:
        assembler: Builds snapshots
        clock: Reference clock used when a refresh passes no instant
        _generation: Number of the most recently requested build
        _latest: Last applied snapshot
    """

    def __init__(
        self,
        assembler: MetricsAssembler,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.assembler = assembler
        self.clock = clock
        self._generation = 0
        self._latest: Optional[OperationalSnapshot] = None

    @property
    def latest(self) -> Optional[OperationalSnapshot]:
        return self._latest

    @property
    def generation(self) -> int:
        return self._generation

    async def refresh(
        self, filters: SnapshotFilters, now: Optional[datetime] = None
    ) -> OperationalSnapshot:
        """
        Build a snapshot and apply it if it is still the latest request.

        Args:
            filters: Caller filters
            now: Reference instant passed to the assembler

        Returns:
            The snapshot built for this request, applied or not

        Raises:
            ValueError: If the filters describe an invalid period
        """
        if now is None and self.clock is not None:
            now = self.clock()
        self._generation += 1
        generation = self._generation

        snapshot = await self.assembler.build_snapshot(filters, now=now)

        if generation != self._generation:
            logger.info(
                "stale_snapshot_discarded",
                generation=generation,
                latest_generation=self._generation,
            )
            return snapshot

        self._latest = snapshot
        logger.debug("snapshot_applied", generation=generation)
        return snapshot


@lru_cache
def get_snapshot_service() -> SnapshotService:
    """
    Get cached snapshot service instance (singleton).

    Returns:
        SnapshotService over the configured collection store
    """
    return SnapshotService(MetricsAssembler.from_settings(get_collection_store()))
