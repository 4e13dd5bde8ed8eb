"""Tests for the feed assembler: exploration, diversity, pagination, build_feed."""

import json
import random
import sqlite3
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from src.core.config import FeedConfig, Settings
from src.core.db import init_db, insert_interaction, record_exposure
from src.core.schemas import (
    EntityType,
    FeedPage,
    FeedRequest,
    InteractionRecord,
    Profile,
    ScoreBreakdown,
    ScoredCandidate,
    Stage,
)
from src.pipeline.feed import (
    apply_diversity_cap,
    build_feed,
    explore_exploit,
    export_feed_json,
    paginate,
)

NOW = datetime(2026, 10, 19, 12, 0, 0)


def _job(
    job_id: str,
    *,
    skills: list[str] | None = None,
    organization: str = "",
    owner_id: str = "recruiter-1",
) -> Profile:
    return Profile(
        id=job_id,
        kind=EntityType.JOB,
        owner_id=owner_id,
        skills=skills if skills is not None else ["Python"],
        organization=organization,
        created_at=NOW,
    )


def _viewer() -> Profile:
    return Profile(
        id="student-1",
        kind=EntityType.STUDENT,
        owner_id="student-1",
        skills=["Python", "SQL"],
        free_text="Backend developer",
        eligibility_key=2026,
        created_at=NOW - timedelta(days=30),
    )


def _scored(job_id: str, score: float, organization: str = "") -> ScoredCandidate:
    return ScoredCandidate(
        item=_job(job_id, organization=organization),
        score=score,
        breakdown=ScoreBreakdown(
            skills_score=0.0, text_score=0.0, eligibility_score=1.0, freshness_score=1.0,
        ),
    )


def _ranked(n: int) -> list[ScoredCandidate]:
    return [_scored(f"j{i}", 1.0 - i * 0.05) for i in range(n)]


def _ids(items: list[ScoredCandidate]) -> list[str]:
    return [s.item.id for s in items]


@pytest.fixture
def db(tmp_path) -> sqlite3.Connection:  # type: ignore[no-untyped-def]
    return init_db(tmp_path / "test.db")


# ---------------------------------------------------------------------------
# explore_exploit
# ---------------------------------------------------------------------------


class TestExploreExploit:
    def test_only_bottom_slice_moves(self) -> None:
        ranked = _ranked(10)
        bottom = set(_ids(ranked[8:]))
        for seed in range(25):
            mixed = explore_exploit(ranked, 0.2, random.Random(seed))
            assert _ids(mixed[:8]) == _ids(ranked[:8])
            assert set(_ids(mixed[8:])) == bottom

    def test_tail_is_actually_shuffled_sometimes(self) -> None:
        ranked = _ranked(10)
        orders = {
            tuple(_ids(explore_exploit(ranked, 0.5, random.Random(seed))[5:]))
            for seed in range(25)
        }
        assert len(orders) > 1

    def test_zero_ratio_keeps_order(self) -> None:
        ranked = _ranked(6)
        assert explore_exploit(ranked, 0.0, random.Random(1)) == ranked

    def test_floor_of_slice_size(self) -> None:
        # floor(4 * 0.2) = 0 → nothing explored
        ranked = _ranked(4)
        assert explore_exploit(ranked, 0.2, random.Random(1)) == ranked

    def test_single_card_slice_keeps_order(self) -> None:
        # floor(5 * 0.3) = 1
        ranked = _ranked(5)
        assert explore_exploit(ranked, 0.3, random.Random(1)) == ranked

    def test_full_ratio_keeps_membership(self) -> None:
        ranked = _ranked(5)
        mixed = explore_exploit(ranked, 1.0, random.Random(3))
        assert sorted(_ids(mixed)) == sorted(_ids(ranked))

    def test_input_not_mutated(self) -> None:
        ranked = _ranked(10)
        before = _ids(ranked)
        explore_exploit(ranked, 0.5, random.Random(7))
        assert _ids(ranked) == before

    def test_empty(self) -> None:
        assert explore_exploit([], 0.2) == []


# ---------------------------------------------------------------------------
# apply_diversity_cap
# ---------------------------------------------------------------------------


class TestDiversityCap:
    def test_first_seen_wins(self) -> None:
        ranked = [_scored(f"a{i}", 1.0 - i * 0.1, "Acme") for i in range(5)]
        ranked.insert(2, _scored("g1", 0.85, "Globex"))
        result = apply_diversity_cap(ranked, max_per_company=3)
        assert _ids(result) == ["a0", "a1", "g1", "a2"]

    def test_org_match_is_case_insensitive(self) -> None:
        ranked = [_scored("a", 0.9, "Acme"), _scored("b", 0.8, "acme "), _scored("c", 0.7, "ACME")]
        assert _ids(apply_diversity_cap(ranked, max_per_company=2)) == ["a", "b"]

    def test_no_organization_is_uncapped(self) -> None:
        ranked = [_scored(f"x{i}", 0.5) for i in range(6)]
        assert len(apply_diversity_cap(ranked, max_per_company=1)) == 6


# ---------------------------------------------------------------------------
# paginate
# ---------------------------------------------------------------------------


class TestPaginate:
    def test_pages(self) -> None:
        ranked = _ranked(5)
        assert _ids(paginate(ranked, 1, 2)) == ["j0", "j1"]
        assert _ids(paginate(ranked, 2, 2)) == ["j2", "j3"]
        assert _ids(paginate(ranked, 3, 2)) == ["j4"]
        assert paginate(ranked, 4, 2) == []


# ---------------------------------------------------------------------------
# build_feed
# ---------------------------------------------------------------------------


class TestBuildFeed:
    def test_empty_pool_returns_message_not_error(self, db: sqlite3.Connection) -> None:
        page = build_feed(db, _viewer(), [], now=NOW)
        assert page.items == []
        assert page.has_more is False
        assert page.total == 0
        assert page.is_exhausted
        assert page.remaining_likes == 30
        assert page.message == "No more items available"

    def test_fully_filtered_pool_names_the_kind(self, db: sqlite3.Connection) -> None:
        own = _job("mine", owner_id="student-1")
        page = build_feed(db, _viewer(), [own], now=NOW)
        assert page.items == []
        assert page.message == "No more jobs available"

    def test_ranks_by_skill_overlap(self, db: sqlite3.Connection) -> None:
        pool = [_job("weak", skills=["Java"]), _job("strong", skills=["Python", "SQL"])]
        page = build_feed(db, _viewer(), pool, FeedRequest(exploration_ratio=0.0), now=NOW)
        assert _ids(page.items) == ["strong", "weak"]
        assert page.message is None
        assert page.total == 2

    def test_records_exposures_for_shown_items_only(self, db: sqlite3.Connection) -> None:
        pool = [_job(f"j{i}") for i in range(5)]
        page = build_feed(
            db, _viewer(), pool, FeedRequest(page_size=2, exploration_ratio=0.0), now=NOW,
        )
        rows = db.execute(
            "SELECT viewer_id, entity_type, entity_id FROM exposures ORDER BY id"
        ).fetchall()
        assert [tuple(r) for r in rows] == [
            ("student-1", "job", s.item.id) for s in page.items
        ]

    def test_repeat_request_tolerates_duplicate_exposures(self, db: sqlite3.Connection) -> None:
        pool = [_job("j1"), _job("j2")]
        build_feed(db, _viewer(), pool, now=NOW)
        page = build_feed(db, _viewer(), pool, now=NOW)
        assert len(page.items) == 2
        assert db.execute("SELECT COUNT(*) FROM exposures").fetchone()[0] == 2

    def test_exposure_failure_is_swallowed(
        self, db: sqlite3.Connection, caplog: pytest.LogCaptureFixture,
    ) -> None:
        pool = [_job("j1"), _job("j2")]
        with patch(
            "src.pipeline.feed.record_exposure",
            side_effect=sqlite3.OperationalError("database is locked"),
        ):
            page = build_feed(db, _viewer(), pool, now=NOW)
        assert len(page.items) == 2
        assert "Failed to record exposure" in caplog.text

    def test_impression_lookup_failure_defaults_to_zero(
        self, db: sqlite3.Connection, caplog: pytest.LogCaptureFixture,
    ) -> None:
        with patch(
            "src.pipeline.feed.get_impression_counts",
            side_effect=sqlite3.OperationalError("no such table"),
        ):
            page = build_feed(db, _viewer(), [_job("j1")], now=NOW)
        assert page.items[0].breakdown.novelty_bonus == 0.05
        assert "Impression lookup failed" in caplog.text

    def test_overexposed_candidate_loses_novelty_bonus(self, db: sqlite3.Connection) -> None:
        for n in range(20):
            record_exposure(db, f"viewer-{n}", EntityType.JOB, "popular", NOW)
        pool = [_job("popular"), _job("fresh")]
        page = build_feed(db, _viewer(), pool, FeedRequest(exploration_ratio=0.0), now=NOW)
        assert _ids(page.items) == ["fresh", "popular"]
        assert page.items[1].breakdown.novelty_bonus is None

    def test_pagination_and_has_more(self, db: sqlite3.Connection) -> None:
        pool = [_job(f"j{i}") for i in range(5)]
        request = FeedRequest(page=1, page_size=2, exploration_ratio=0.0)
        first = build_feed(db, _viewer(), pool, request, now=NOW)
        assert _ids(first.items) == ["j0", "j1"]
        assert first.has_more is True

        last = build_feed(
            db, _viewer(), pool, FeedRequest(page=3, page_size=2, exploration_ratio=0.0), now=NOW,
        )
        assert _ids(last.items) == ["j4"]
        assert last.has_more is False
        assert last.total == 5

    def test_diversity_cap_is_applied(self, db: sqlite3.Connection) -> None:
        pool = [_job(f"a{i}", organization="Acme") for i in range(5)] + [
            _job("g1", organization="Globex"),
        ]
        settings = Settings(feed=FeedConfig(max_per_company=3))
        page = build_feed(
            db, _viewer(), pool, FeedRequest(exploration_ratio=0.0), settings, now=NOW,
        )
        assert _ids(page.items) == ["a0", "a1", "a2", "g1"]
        assert page.total == 4
        assert page.max_per_company == 3

    def test_remaining_likes_reported(self, db: sqlite3.Connection) -> None:
        for i in range(3):
            insert_interaction(db, InteractionRecord(
                from_viewer="student-1",
                to_entity_type=EntityType.JOB,
                to_entity_id=f"liked-{i}",
                stage=Stage.LIKE,
                created_at=NOW - timedelta(hours=1),
            ))
        page = build_feed(db, _viewer(), [_job("j1")], now=NOW)
        assert page.remaining_likes == 27

    def test_defaults_come_from_settings(self, db: sqlite3.Connection) -> None:
        settings = Settings(feed=FeedConfig(page_size=3, exploration_ratio=0.0))
        pool = [_job(f"j{i}") for i in range(5)]
        page = build_feed(db, _viewer(), pool, settings=settings, now=NOW)
        assert page.page_size == 3
        assert page.exploration_ratio == 0.0
        assert _ids(page.items) == ["j0", "j1", "j2"]

    def test_open_posting_does_not_penalise_students_with_batch(
        self, db: sqlite3.Connection,
    ) -> None:
        posting = Profile(
            id="job-open", kind=EntityType.JOB, owner_id="recruiter-1",
            skills=["Python"], eligibility_key=None, created_at=NOW,
        )
        students = [
            Profile(
                id=f"s-{batch}", kind=EntityType.STUDENT, owner_id=f"s-{batch}",
                skills=["Python"], eligibility_key=batch, created_at=NOW,
            )
            for batch in (2026, None, 2025)
        ]
        page = build_feed(db, posting, students, FeedRequest(exploration_ratio=0.0), now=NOW)
        assert _ids(page.items) == ["s-2026", "s-None", "s-2025"]
        assert {s.breakdown.eligibility_score for s in page.items} == {1.0}
        assert len({s.score for s in page.items}) == 1

    def test_seeded_rng_is_reproducible(self, db: sqlite3.Connection) -> None:
        pool = [_job(f"j{i}", skills=["Python"] if i < 5 else ["Go"]) for i in range(10)]
        request = FeedRequest(exploration_ratio=0.5)
        a = build_feed(db, _viewer(), pool, request, rng=random.Random(11), now=NOW)
        b = build_feed(db, _viewer(), pool, request, rng=random.Random(11), now=NOW)
        assert _ids(a.items) == _ids(b.items)


class TestExportFeedJson:
    def test_contains_ranking_and_pagination(self, db: sqlite3.Connection) -> None:
        page = build_feed(db, _viewer(), [_job("j1")], now=NOW)
        data = json.loads(export_feed_json(page))
        assert data["data"][0]["id"] == "j1"
        assert data["data"][0]["ranking"]["eligibility_score"] == 1.0
        assert data["pagination"]["has_more"] is False
        assert data["remaining_likes"] == 30
        assert "message" not in data

    def test_empty_page_has_message(self, db: sqlite3.Connection) -> None:
        data = json.loads(export_feed_json(build_feed(db, _viewer(), [], now=NOW)))
        assert data["data"] == []
        assert data["message"] == "No more items available"

    def test_message_only_exported_for_exhausted_page(self) -> None:
        page = FeedPage(
            items=_ranked(1), page=1, page_size=20, total=1, remaining_likes=30,
            message="stale", exploration_ratio=0.2, max_per_company=3,
        )
        assert not page.is_exhausted
        assert "message" not in json.loads(export_feed_json(page))
