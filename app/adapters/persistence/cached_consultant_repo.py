"""Short-lived read cache in front of a ConsultantRepository."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from app.application.ports.consultant_repo import ConsultantRepository, ResourceCriteria
from app.config import MAX_READ_CACHE_TTL_SECONDS
from app.domain.entities.consultant import Consultant

logger = logging.getLogger(__name__)


class CachedConsultantRepository(ConsultantRepository):
    """Caches eligible-resource reads for at most a minute.

    Staleness is tolerated because the ledger re-validates every commit;
    a stale snapshot can only turn into a CONTENTION result, never into an
    over-allocated consultant.
    """

    def __init__(
        self,
        inner: ConsultantRepository,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds > MAX_READ_CACHE_TTL_SECONDS:
            raise ValueError(
                f"Read cache TTL {ttl_seconds}s exceeds {MAX_READ_CACHE_TTL_SECONDS}s"
            )
        self._inner = inner
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: dict[tuple[bool, frozenset[int]], tuple[float, list[Consultant]]] = {}

    async def get_eligible_resources(self, criteria: ResourceCriteria) -> list[Consultant]:
        if self._ttl <= 0:
            return await self._inner.get_eligible_resources(criteria)

        # recent_since moves with the clock; it is not part of the key
        key = (criteria.active_only, criteria.exclude_ids)
        now = self._clock()
        hit = self._cache.get(key)
        if hit is not None and hit[0] > now:
            logger.debug("Consultant cache hit for %s", key)
            return list(hit[1])

        consultants = await self._inner.get_eligible_resources(criteria)
        self._cache[key] = (now + self._ttl, consultants)
        return list(consultants)

    async def get_by_id(self, consultant_id: int) -> Consultant | None:
        return await self._inner.get_by_id(consultant_id)

    def invalidate(self) -> None:
        self._cache.clear()
