"""Quota manager: daily like allowance per viewer.

Counts are read from the interaction log, so the quota auto-resets at local
midnight with no explicit reset. Only likes and superlikes count; dislikes
are free. The count may trail concurrent swipes slightly, which is fine.
"""

import logging
import sqlite3
from datetime import date, datetime, time, timedelta

from src.core.config import QuotaConfig
from src.core.db import count_positive_interactions

logger = logging.getLogger(__name__)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Return [local midnight, next local midnight) for ``day``."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


class QuotaManager:
    """Enforces the daily like limit per viewer.

    Usage::

        qm = QuotaManager(conn, QuotaConfig(daily_like_limit=30))
        if not qm.has_reached_limit(viewer_id):
            ...  # accept the like
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        config: QuotaConfig | None = None,
    ) -> None:
        self._conn = conn
        self._config = config or QuotaConfig()

    def daily_like_count(self, viewer_id: str, today: date | None = None) -> int:
        """Return how many likes/superlikes the viewer has sent today."""
        start, end = day_bounds(today or date.today())
        return count_positive_interactions(self._conn, viewer_id, start, end)

    def remaining_likes(
        self,
        viewer_id: str,
        daily_limit: int | None = None,
        today: date | None = None,
    ) -> int:
        """Return how many more likes the viewer may send today."""
        limit = self._config.daily_like_limit if daily_limit is None else daily_limit
        return max(0, limit - self.daily_like_count(viewer_id, today))

    def has_reached_limit(
        self,
        viewer_id: str,
        daily_limit: int | None = None,
        today: date | None = None,
    ) -> bool:
        """Return True if the viewer has used up today's likes."""
        reached = self.remaining_likes(viewer_id, daily_limit, today) == 0
        if reached:
            logger.info("Daily like limit reached for '%s'", viewer_id)
        return reached
