"""Hard-filter chain applied to the candidate pool before scoring.

Filter order:
  1. SelfMatchFilter          — drop the viewer's own profiles/postings
  2. EligibilityFilter        — batch mismatch; an unset key on either side passes
  3. InteractionHistoryFilter — DB lookup; latest swipe per candidate governs:
                                like/superlike always hides, dislike hides for
                                the cooldown window only

Filters never reorder and never mutate; ordering is decided by the scorer.
"""

import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime, timedelta

from src.core.config import FilterConfig
from src.core.db import latest_interactions
from src.core.schemas import EntityType, InteractionRecord, Profile, Stage

logger = logging.getLogger(__name__)

# A filter is a callable that takes candidates and returns a subset.
Filter = Callable[[list[Profile]], list[Profile]]


class SelfMatchFilter:
    """Remove candidates owned or authored by the viewer."""

    def __init__(self, viewer_id: str) -> None:
        self._viewer_id = viewer_id

    def __call__(self, candidates: list[Profile]) -> list[Profile]:
        result = [c for c in candidates if c.owner_id != self._viewer_id]
        excluded = len(candidates) - len(result)
        if excluded:
            logger.debug("SelfMatchFilter: removed %d candidates", excluded)
        return result


class EligibilityFilter:
    """Remove candidates whose batch is set and differs from the viewer's.

    A viewer without a batch sees everything.
    """

    def __init__(self, eligibility_key: int | None) -> None:
        self._key = eligibility_key

    def __call__(self, candidates: list[Profile]) -> list[Profile]:
        if self._key is None:
            return candidates
        result = [
            c for c in candidates
            if c.eligibility_key is None or c.eligibility_key == self._key
        ]
        excluded = len(candidates) - len(result)
        if excluded:
            logger.debug("EligibilityFilter: removed %d candidates", excluded)
        return result


class InteractionHistoryFilter:
    """Remove candidates the viewer already liked or recently disliked."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        viewer_id: str,
        cooldown_days: float = 7.0,
        now: datetime | None = None,
    ) -> None:
        self._conn = conn
        self._viewer_id = viewer_id
        self._cooldown = timedelta(days=cooldown_days)
        self._now = now

    def __call__(self, candidates: list[Profile]) -> list[Profile]:
        if not candidates:
            return candidates
        cutoff = (self._now or datetime.now()) - self._cooldown
        latest: dict[tuple[EntityType, str], InteractionRecord] = {}
        for kind in dict.fromkeys(c.kind for c in candidates):
            ids = [c.id for c in candidates if c.kind == kind]
            for entity_id, record in latest_interactions(
                self._conn, self._viewer_id, kind, ids,
            ).items():
                latest[(kind, entity_id)] = record

        result = [
            c for c in candidates
            if not self._is_hidden(latest.get((c.kind, c.id)), cutoff)
        ]
        excluded = len(candidates) - len(result)
        if excluded:
            logger.debug("InteractionHistoryFilter: removed %d candidates", excluded)
        return result

    @staticmethod
    def _is_hidden(record: InteractionRecord | None, cutoff: datetime) -> bool:
        if record is None:
            return False
        if record.stage != Stage.DISLIKE:
            return True
        return record.created_at >= cutoff


def run_filter_chain(
    candidates: list[Profile],
    filters: list[Filter],
) -> list[Profile]:
    """Apply filters in order, returning the surviving candidates."""
    result = candidates
    for f in filters:
        result = f(result)
    return result


def build_filters(
    conn: sqlite3.Connection,
    viewer_id: str,
    viewer_eligibility_key: int | None,
    config: FilterConfig,
    now: datetime | None = None,
) -> list[Filter]:
    """Build the hard-filter chain for one viewer."""
    return [
        SelfMatchFilter(viewer_id),
        EligibilityFilter(viewer_eligibility_key),
        InteractionHistoryFilter(conn, viewer_id, config.dislike_cooldown_days, now),
    ]


def filter_candidates(
    conn: sqlite3.Connection,
    viewer_id: str,
    pool: list[Profile],
    viewer_eligibility_key: int | None,
    config: FilterConfig | None = None,
    now: datetime | None = None,
) -> list[Profile]:
    """Return the candidates from ``pool`` the viewer may be shown, in pool order."""
    filters = build_filters(
        conn, viewer_id, viewer_eligibility_key, config or FilterConfig(), now,
    )
    result = run_filter_chain(pool, filters)
    logger.debug("Filtered pool for %s: %d -> %d", viewer_id, len(pool), len(result))
    return result
