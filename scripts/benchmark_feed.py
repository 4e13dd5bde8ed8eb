#!/usr/bin/env python3
"""Benchmark the feed pipeline stages on a synthetic candidate pool.

Generates a viewer and N random job postings, seeds some swipe history and
exposures into a scratch SQLite DB, then times filter, score, explore and
the full ``build_feed`` call, printing a summary table.

Usage:
    python scripts/benchmark_feed.py
    python scripts/benchmark_feed.py --pool 2000 --runs 10
    python scripts/benchmark_feed.py --db data/bench.db --seed 7
"""

import argparse
import logging
import random
import statistics
import sys
import tempfile
import time
from datetime import datetime, timedelta
from pathlib import Path

# Ensure project root is on the path when run as a script
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import Settings
from src.core.db import init_db, insert_interaction, record_exposure
from src.core.schemas import EntityType, FeedRequest, InteractionRecord, Profile, Stage
from src.pipeline.feed import build_feed, explore_exploit
from src.pipeline.matcher import filter_candidates
from src.pipeline.scorer import score_candidates

logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

_SKILLS = [
    "Python", "Java", "React", "Node.js", "SQL", "Go", "Rust", "Docker",
    "Kubernetes", "AWS", "TypeScript", "Django", "Spark", "ML", "C++",
]
_WORDS = [
    "backend", "frontend", "platform", "data", "pipeline", "intern", "engineer",
    "graduate", "analytics", "cloud", "mobile", "services", "distributed",
    "systems", "product", "research", "infrastructure", "payments", "search",
]
_ORGS = ["Acme", "Globex", "Initech", "Umbrella", "Hooli", "Stark", "Wayne"]


def _synthetic_pool(size: int, rng: random.Random) -> list[Profile]:
    now = datetime.now()
    return [
        Profile(
            id=f"job-{i}",
            kind=EntityType.JOB,
            owner_id=f"recruiter-{rng.randrange(50)}",
            skills=rng.sample(_SKILLS, rng.randint(1, 5)),
            free_text=" ".join(rng.choices(_WORDS, k=rng.randint(8, 40))),
            eligibility_key=rng.choice([None, 2025, 2026]),
            organization=rng.choice(_ORGS),
            created_at=now - timedelta(days=rng.uniform(0, 45)),
        )
        for i in range(size)
    ]


def _seed_history(conn, viewer_id: str, pool: list[Profile], rng: random.Random) -> None:  # type: ignore[no-untyped-def]
    now = datetime.now()
    for p in rng.sample(pool, len(pool) // 10):
        insert_interaction(conn, InteractionRecord(
            from_viewer=viewer_id,
            to_entity_type=p.kind,
            to_entity_id=p.id,
            stage=rng.choice(list(Stage)),
            created_at=now - timedelta(days=rng.uniform(0, 14)),
        ))
    for p in rng.sample(pool, len(pool) // 4):
        for n in range(rng.randint(1, 30)):
            record_exposure(conn, f"viewer-{n}", p.kind, p.id)


def _timed(fn, runs: int) -> list[float]:  # type: ignore[no-untyped-def]
    samples = []
    for _ in range(runs):
        start = time.perf_counter()
        fn()
        samples.append((time.perf_counter() - start) * 1000)
    return samples


def main() -> None:
    parser = argparse.ArgumentParser(description="Benchmark the feed pipeline")
    parser.add_argument("--pool", type=int, default=500, help="Candidate pool size")
    parser.add_argument("--runs", type=int, default=5, help="Timed runs per stage")
    parser.add_argument("--seed", type=int, default=42, help="RNG seed")
    parser.add_argument("--db", default=None, help="SQLite path (default: temp file)")
    args = parser.parse_args()

    rng = random.Random(args.seed)
    settings = Settings()
    db_path = args.db or str(Path(tempfile.mkdtemp()) / "bench.db")
    conn = init_db(db_path)

    viewer = Profile(
        id="student-1",
        kind=EntityType.STUDENT,
        owner_id="student-1",
        skills=["Python", "React", "SQL"],
        free_text="data platform engineer interested in backend pipeline systems",
        eligibility_key=2026,
    )
    pool = _synthetic_pool(args.pool, rng)
    _seed_history(conn, viewer.owner_id, pool, rng)

    filtered = filter_candidates(
        conn, viewer.owner_id, pool, viewer.eligibility_key, settings.filters,
    )
    ranked = score_candidates(viewer, filtered, settings.scoring)

    stages = {
        "filter": lambda: filter_candidates(
            conn, viewer.owner_id, pool, viewer.eligibility_key, settings.filters,
        ),
        "score": lambda: score_candidates(viewer, filtered, settings.scoring),
        "explore": lambda: explore_exploit(ranked, 0.2, rng),
        "build_feed": lambda: build_feed(
            conn, viewer, pool, FeedRequest(page_size=20), settings, rng,
        ),
    }

    print(f"\nPool: {len(pool)} candidates, {len(filtered)} after filters, "
          f"{args.runs} runs per stage\n")
    print(f"{'Stage':<12} {'Mean ms':>10} {'Median ms':>10} {'Max ms':>10}")
    print("-" * 45)
    for name, fn in stages.items():
        samples = _timed(fn, args.runs)
        print(f"{name:<12} {statistics.mean(samples):>10.2f} "
              f"{statistics.median(samples):>10.2f} {max(samples):>10.2f}")

    conn.close()


if __name__ == "__main__":
    main()
