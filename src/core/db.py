"""SQLite storage collaborator for interaction history and exposure tracking.

The ranking core only reads interactions and impression counts and writes
exposures. Interactions are appended by the like/dislike endpoint, which lives
outside this package (the CLI ``interact`` command stands in for it).
"""

import sqlite3
from collections.abc import Iterable, Iterator
from datetime import date, datetime
from pathlib import Path

from src.core.schemas import (
    EntityType,
    ExposureRecord,
    InteractionRecord,
    Stage,
    to_local_naive,
)

# Keeps IN (...) lists under SQLite's bound-parameter limit.
_CHUNK_SIZE = 500

_INTERACTIONS_TABLE = """
CREATE TABLE IF NOT EXISTS interactions (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    from_viewer     TEXT    NOT NULL,
    to_entity_type  TEXT    NOT NULL,
    to_entity_id    TEXT    NOT NULL,
    stage           INTEGER NOT NULL,
    created_at      TEXT    NOT NULL
);
"""

_INTERACTIONS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_interactions_viewer
    ON interactions (from_viewer, to_entity_type, to_entity_id);
"""

_EXPOSURES_TABLE = """
CREATE TABLE IF NOT EXISTS exposures (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    viewer_id       TEXT NOT NULL,
    entity_type     TEXT NOT NULL,
    entity_id       TEXT NOT NULL,
    shown_at        TEXT NOT NULL,
    shown_on        TEXT NOT NULL,
    UNIQUE(viewer_id, entity_type, entity_id, shown_on)
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_INTERACTIONS_TABLE)
    conn.execute(_INTERACTIONS_INDEX)
    conn.execute(_EXPOSURES_TABLE)
    conn.commit()
    return conn


def _chunks(ids: list[str]) -> Iterator[list[str]]:
    for start in range(0, len(ids), _CHUNK_SIZE):
        yield ids[start:start + _CHUNK_SIZE]


def insert_interaction(conn: sqlite3.Connection, record: InteractionRecord) -> int:
    """Append an interaction record. Returns the row ID."""
    cursor = conn.execute(
        """
        INSERT INTO interactions
            (from_viewer, to_entity_type, to_entity_id, stage, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            record.from_viewer,
            record.to_entity_type.value,
            record.to_entity_id,
            int(record.stage),
            record.created_at.isoformat(),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


def latest_interactions(
    conn: sqlite3.Connection,
    viewer_id: str,
    entity_type: EntityType,
    entity_ids: Iterable[str],
) -> dict[str, InteractionRecord]:
    """Return the most recent interaction per entity for this viewer.

    Entities the viewer never acted on are absent from the result. Records
    with equal timestamps are ordered by insertion.
    """
    ids = list(dict.fromkeys(entity_ids))
    latest: dict[str, InteractionRecord] = {}
    for chunk in _chunks(ids):
        placeholders = ", ".join("?" for _ in chunk)
        rows = conn.execute(
            f"""
            SELECT to_entity_id, stage, created_at FROM interactions
            WHERE from_viewer = ? AND to_entity_type = ?
              AND to_entity_id IN ({placeholders})
            ORDER BY created_at, id
            """,
            (viewer_id, entity_type.value, *chunk),
        ).fetchall()
        for row in rows:
            latest[row["to_entity_id"]] = InteractionRecord(
                from_viewer=viewer_id,
                to_entity_type=entity_type,
                to_entity_id=row["to_entity_id"],
                stage=Stage(row["stage"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
    return latest


def count_positive_interactions(
    conn: sqlite3.Connection,
    viewer_id: str,
    start: datetime,
    end: datetime,
) -> int:
    """Count like/superlike records by this viewer in [start, end)."""
    row = conn.execute(
        """
        SELECT COUNT(*) FROM interactions
        WHERE from_viewer = ? AND stage >= 0
          AND created_at >= ? AND created_at < ?
        """,
        (viewer_id, to_local_naive(start).isoformat(), to_local_naive(end).isoformat()),
    ).fetchone()
    return int(row[0])


def record_exposure(
    conn: sqlite3.Connection,
    viewer_id: str,
    entity_type: EntityType,
    entity_id: str,
    shown_at: datetime | None = None,
) -> bool:
    """Record that a card was shown, ignoring repeats on the same day.

    Returns True if a new row was inserted, False if it was a duplicate.
    """
    shown_at = to_local_naive(shown_at or datetime.now())
    cursor = conn.execute(
        """
        INSERT OR IGNORE INTO exposures
            (viewer_id, entity_type, entity_id, shown_at, shown_on)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            viewer_id,
            entity_type.value,
            entity_id,
            shown_at.isoformat(),
            shown_at.date().isoformat(),
        ),
    )
    conn.commit()
    return cursor.rowcount > 0


def get_impression_counts(
    conn: sqlite3.Connection,
    entity_type: EntityType,
    entity_ids: Iterable[str],
) -> dict[str, int]:
    """Return exposure counts across all viewers; unknown ids map to 0."""
    ids = list(dict.fromkeys(entity_ids))
    counts = dict.fromkeys(ids, 0)
    for chunk in _chunks(ids):
        placeholders = ", ".join("?" for _ in chunk)
        rows = conn.execute(
            f"""
            SELECT entity_id, COUNT(*) AS n FROM exposures
            WHERE entity_type = ? AND entity_id IN ({placeholders})
            GROUP BY entity_id
            """,
            (entity_type.value, *chunk),
        ).fetchall()
        for row in rows:
            counts[row["entity_id"]] = int(row["n"])
    return counts


def list_exposures(
    conn: sqlite3.Connection,
    viewer_id: str,
    shown_on: date | None = None,
) -> list[ExposureRecord]:
    """Return the cards shown to a viewer, oldest first, optionally for one day."""
    sql = "SELECT entity_type, entity_id, shown_at FROM exposures WHERE viewer_id = ?"
    params: list[str] = [viewer_id]
    if shown_on is not None:
        sql += " AND shown_on = ?"
        params.append(shown_on.isoformat())
    rows = conn.execute(sql + " ORDER BY shown_at, id", params).fetchall()
    return [
        ExposureRecord(
            viewer_id=viewer_id,
            entity_type=EntityType(row["entity_type"]),
            entity_id=row["entity_id"],
            shown_at=datetime.fromisoformat(row["shown_at"]),
        )
        for row in rows
    ]
