"""
Analytics Cache

Opt-in, in-memory report cache used by the HTTP router.
Entries are keyed by (period, data source, time bucket), so a report is reused
until the clock crosses into the next ANALYTICS_CACHE_SECONDS bucket.
A TTL of 0 (the default) disables caching entirely.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional, Tuple

from app.models.analytics_models import AnalyticsReport
from app.models.enums import AnalyticsPeriod, DataSource
from app.services.analytics_service import get_analytics_data

logger = logging.getLogger(__name__)

# Cache TTL
CACHE_TTL_SECONDS = int(os.getenv("ANALYTICS_CACHE_SECONDS", "0"))

CacheKey = Tuple[str, str, int]
ReportLoader = Callable[..., Awaitable[AnalyticsReport]]


class AnalyticsCache:
    """TTL wrapper around get_analytics_data"""

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        loader: Optional[ReportLoader] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.ttl_seconds = CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._loader = loader or get_analytics_data
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._entries: Dict[CacheKey, AnalyticsReport] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def _bucket(self, now: datetime) -> int:
        return int(now.timestamp() // self.ttl_seconds)

    async def get_report(
        self,
        period: AnalyticsPeriod,
        data_source: DataSource,
        force_refresh: bool = False
    ) -> AnalyticsReport:
        period = AnalyticsPeriod(period)
        data_source = DataSource(data_source)
        now = self._clock()

        if not self.enabled:
            return await self._loader(period.value, data_source.value, now=now)

        key = (period.value, data_source.value, self._bucket(now))
        if not force_refresh and key in self._entries:
            logger.debug(f"[Cache] Hit {key}")
            return self._entries[key]

        report = await self._loader(period.value, data_source.value, now=now)

        # Older buckets can never be hit again
        self._entries = {k: v for k, v in self._entries.items() if k[2] == key[2]}
        self._entries[key] = report
        logger.debug(f"[Cache] Stored {key}")
        return report

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# Singleton instance
_analytics_cache: Optional[AnalyticsCache] = None


def get_analytics_cache() -> AnalyticsCache:
    """Get or create the shared analytics cache"""
    global _analytics_cache
    if _analytics_cache is None:
        _analytics_cache = AnalyticsCache()
    return _analytics_cache
