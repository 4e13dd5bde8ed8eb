"""Multi-factor relevance scoring for feed candidates.

score = skills_weight * jaccard(skills)
      + text_weight * tfidf_cosine(free_text)
      + eligibility_weight * (1 if batch open or matching else 0)
      + freshness_weight * clamp(exp(-age_days / decay_days), floor, ceiling)
      + novelty_bonus (only while the candidate has few impressions)

Scoring is pure: no storage access, no side effects.
"""

import logging
import math
from collections.abc import Mapping
from datetime import datetime

from src.core.config import ScoringConfig
from src.core.schemas import Profile, ScoreBreakdown, ScoredCandidate, Vocabulary
from src.pipeline.similarity import jaccard_similarity
from src.pipeline.vocabulary import build_vocabulary, text_similarity

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86_400.0


def eligibility_score(viewer: Profile, candidate: Profile) -> float:
    """1.0 if either side is open to all batches or both batches match."""
    if (
        viewer.eligibility_key is None
        or candidate.eligibility_key is None
        or candidate.eligibility_key == viewer.eligibility_key
    ):
        return 1.0
    return 0.0


def freshness_score(
    created_at: datetime,
    config: ScoringConfig,
    now: datetime | None = None,
) -> float:
    """Exponential time decay on profile age, clamped to [floor, ceiling]."""
    now = now or datetime.now()
    days = (now - created_at).total_seconds() / _SECONDS_PER_DAY
    decay = math.exp(-days / config.freshness_decay_days)
    return max(config.freshness_floor, min(config.freshness_ceiling, decay))


def novelty_bonus(impression_count: int, config: ScoringConfig) -> float:
    """Flat boost for candidates shown fewer than ``novelty_threshold`` times."""
    if impression_count < config.novelty_threshold:
        return config.novelty_bonus
    return 0.0


def score_candidate(
    viewer: Profile,
    candidate: Profile,
    impression_count: int,
    vocabulary: Vocabulary,
    config: ScoringConfig,
    now: datetime | None = None,
) -> ScoredCandidate:
    """Score a single candidate against the viewer.

    Args:
        viewer: The student profile or job posting the feed is built for.
        candidate: The profile being ranked.
        impression_count: Times the candidate has been shown, across viewers.
        vocabulary: Vocabulary built over the current batch.
        config: Scoring weights from settings.
        now: Reference time for freshness (defaults to the current time).

    Returns:
        ScoredCandidate wrapping the candidate with its score and breakdown.
    """
    skills = jaccard_similarity(viewer.skills, candidate.skills)
    text = text_similarity(
        viewer.free_text, candidate.free_text, vocabulary, config.idf_floor,
    )
    eligibility = eligibility_score(viewer, candidate)
    freshness = freshness_score(candidate.created_at, config, now)
    bonus = novelty_bonus(impression_count, config)

    score = (
        config.skills_weight * skills
        + config.text_weight * text
        + config.eligibility_weight * eligibility
        + config.freshness_weight * freshness
        + bonus
    )

    return ScoredCandidate(
        item=candidate,
        score=score,
        breakdown=ScoreBreakdown(
            skills_score=skills,
            text_score=text,
            eligibility_score=eligibility,
            freshness_score=freshness,
            novelty_bonus=bonus if bonus > 0 else None,
        ),
    )


def score_candidates(
    viewer: Profile,
    candidates: list[Profile],
    config: ScoringConfig,
    impression_counts: Mapping[str, int] | None = None,
    now: datetime | None = None,
) -> list[ScoredCandidate]:
    """Score a batch of candidates, returning them sorted by score desc.

    A fresh vocabulary is built over the viewer and this batch. The sort is
    stable, so equal scores keep their pool order.
    """
    if not candidates:
        return []
    impression_counts = impression_counts or {}
    now = now or datetime.now()
    vocabulary = build_vocabulary(
        [(viewer.id, viewer.free_text)] + [(c.id, c.free_text) for c in candidates],
    )
    scored = [
        score_candidate(
            viewer, c, impression_counts.get(c.id, 0), vocabulary, config, now,
        )
        for c in candidates
    ]
    scored.sort(key=lambda s: s.score, reverse=True)
    logger.debug(
        "Scored %d candidates (top %.3f, bottom %.3f)",
        len(scored), scored[0].score, scored[-1].score,
    )
    return scored
