"""Feed assembler: wires filter chain, scorer, exploration, diversity and exposure.

Data flow:
  0. Remaining likes for the acting user
  1. Hard filters (self, eligibility, swipe history)
  2. Empty pool → "no more items" page (not an error)
  3. Impression counts (failure → all zero)
  4. Score with a vocabulary built over viewer + filtered candidates
  5. Stable sort by score desc
  6. Explore/exploit: shuffle the tail slice, keep the head in rank order
  7. Per-organization diversity cap
  8. Paginate
  9. Record exposures (failures logged and swallowed)
"""

import json
import logging
import math
import random
import sqlite3
from datetime import datetime

from src.core.config import Settings
from src.core.db import get_impression_counts, record_exposure
from src.core.schemas import (
    EntityType,
    FeedPage,
    FeedRequest,
    Profile,
    ScoredCandidate,
)
from src.pipeline.matcher import filter_candidates
from src.pipeline.quota_manager import QuotaManager
from src.pipeline.scorer import score_candidates

logger = logging.getLogger(__name__)


def explore_exploit(
    ranked: list[ScoredCandidate],
    exploration_ratio: float,
    rng: random.Random | None = None,
) -> list[ScoredCandidate]:
    """Shuffle the lowest-ranked ``floor(N * ratio)`` candidates, keep the rest.

    The explored slice is always drawn from the tail, so it never outranks
    the exploited head.
    """
    k = math.floor(len(ranked) * exploration_ratio)
    # Shuffling fewer than two cards changes nothing.
    if k < 2:
        return list(ranked)
    head = ranked[: len(ranked) - k]
    tail = ranked[len(ranked) - k:]
    (rng or random.Random()).shuffle(tail)
    return head + tail


def apply_diversity_cap(
    ranked: list[ScoredCandidate],
    max_per_company: int = 3,
) -> list[ScoredCandidate]:
    """Keep at most ``max_per_company`` cards per organization, first seen wins.

    Candidates without an organization are never capped.
    """
    seen: dict[str, int] = {}
    result: list[ScoredCandidate] = []
    for scored in ranked:
        org = scored.item.organization.strip().lower()
        if org:
            if seen.get(org, 0) >= max_per_company:
                continue
            seen[org] = seen.get(org, 0) + 1
        result.append(scored)
    dropped = len(ranked) - len(result)
    if dropped:
        logger.debug("Diversity cap: removed %d candidates", dropped)
    return result


def paginate(
    ranked: list[ScoredCandidate],
    page: int,
    page_size: int,
) -> list[ScoredCandidate]:
    """Return the 1-based ``page`` of ``page_size`` items."""
    start = (page - 1) * page_size
    return ranked[start:start + page_size]


def _impression_counts(
    conn: sqlite3.Connection,
    candidates: list[Profile],
) -> dict[str, int]:
    counts: dict[str, int] = {}
    try:
        for kind in dict.fromkeys(c.kind for c in candidates):
            ids = [c.id for c in candidates if c.kind == kind]
            counts.update(get_impression_counts(conn, kind, ids))
    except sqlite3.Error as exc:
        logger.warning("Impression lookup failed, treating counts as zero: %s", exc)
        return {}
    return counts


def _record_exposures(
    conn: sqlite3.Connection,
    viewer_id: str,
    items: list[ScoredCandidate],
    shown_at: datetime | None = None,
) -> int:
    """Write one exposure per shown card. Returns how many rows were new."""
    written = 0
    for scored in items:
        try:
            if record_exposure(conn, viewer_id, scored.item.kind, scored.item.id, shown_at):
                written += 1
        except sqlite3.Error as exc:
            logger.warning(
                "Failed to record exposure of %s %s for %s: %s",
                scored.item.kind.value, scored.item.id, viewer_id, exc,
            )
    return written


def _empty_message(pool: list[Profile]) -> str:
    if pool and all(c.kind == EntityType.JOB for c in pool):
        return "No more jobs available"
    if pool and all(c.kind == EntityType.STUDENT for c in pool):
        return "No more students available"
    return "No more items available"


def build_feed(
    conn: sqlite3.Connection,
    viewer: Profile,
    pool: list[Profile],
    request: FeedRequest | None = None,
    settings: Settings | None = None,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> FeedPage:
    """Rank ``pool`` for ``viewer`` and return the requested page.

    The acting user is ``viewer.owner_id``: the student for a job feed, the
    recruiter for a student feed built around one of their postings.

    Storage errors while reading swipe history or the like quota propagate;
    an exhausted pool is reported through ``FeedPage.message`` instead.
    """
    settings = settings or Settings()
    request = request or FeedRequest(
        page_size=settings.feed.page_size,
        exploration_ratio=settings.feed.exploration_ratio,
    )
    viewer_id = viewer.owner_id
    max_per_company = settings.feed.max_per_company

    quota = QuotaManager(conn, settings.quota)
    remaining_likes = quota.remaining_likes(
        viewer_id, today=now.date() if now else None,
    )

    # Step 1: Hard filters
    filtered = filter_candidates(
        conn, viewer_id, pool, viewer.eligibility_key, settings.filters, now,
    )

    # Step 2: Nothing left to rank
    if not filtered:
        logger.info("Feed for %s: pool of %d exhausted by filters", viewer_id, len(pool))
        return FeedPage(
            page=request.page,
            page_size=request.page_size,
            remaining_likes=remaining_likes,
            message=_empty_message(pool),
            exploration_ratio=request.exploration_ratio,
            max_per_company=max_per_company,
        )

    # Steps 3-5: Impressions, score, sort
    impressions = _impression_counts(conn, filtered)
    ranked = score_candidates(viewer, filtered, settings.scoring, impressions, now)

    # Step 6: Explore/exploit
    ranked = explore_exploit(ranked, request.exploration_ratio, rng)

    # Step 7: Diversity
    ranked = apply_diversity_cap(ranked, max_per_company)

    # Step 8: Paginate
    items = paginate(ranked, request.page, request.page_size)

    # Step 9: Exposure write-back
    new_exposures = _record_exposures(conn, viewer_id, items, now)

    total = len(ranked)
    logger.info(
        "Feed for %s: %d pooled, %d filtered, %d ranked, %d shown (%d new exposures)",
        viewer_id, len(pool), len(filtered), total, len(items), new_exposures,
    )

    return FeedPage(
        items=items,
        page=request.page,
        page_size=request.page_size,
        total=total,
        has_more=request.page * request.page_size < total,
        remaining_likes=remaining_likes,
        exploration_ratio=request.exploration_ratio,
        max_per_company=max_per_company,
    )


def export_feed_json(page: FeedPage) -> str:
    """Export a feed page as a JSON string."""
    data = {
        "data": [
            {
                "id": s.item.id,
                "kind": s.item.kind.value,
                "owner_id": s.item.owner_id,
                "organization": s.item.organization,
                "skills": s.item.skills,
                "eligibility_key": s.item.eligibility_key,
                "created_at": s.item.created_at.isoformat(),
                "match_score": s.score,
                "ranking": s.breakdown.model_dump(),
            }
            for s in page.items
        ],
        "pagination": {
            "page": page.page,
            "limit": page.page_size,
            "total": page.total,
            "has_more": page.has_more,
        },
        "remaining_likes": page.remaining_likes,
        "filters": {
            "exploration_ratio": page.exploration_ratio,
            "max_per_company": page.max_per_company,
        },
    }
    if page.is_exhausted and page.message:
        data["message"] = page.message
    return json.dumps(data, indent=2)
