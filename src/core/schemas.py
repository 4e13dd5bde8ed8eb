"""Core data models for the feed ranking engine.

All timestamps are normalized to naive local time on validation. The quota
day boundary and the dislike cooldown window are both computed in that
single clock.
"""

from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class EntityType(str, Enum):
    JOB = "job"
    STUDENT = "student"


class Stage(IntEnum):
    DISLIKE = -1
    LIKE = 1
    SUPERLIKE = 2


class Profile(BaseModel):
    """A student profile or a job posting, as seen by the ranking core.

    Frozen: profiles are immutable for the duration of a scoring pass.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    kind: EntityType
    owner_id: str
    skills: list[str] = Field(default_factory=list)
    free_text: str = ""
    eligibility_key: int | None = None
    organization: str = ""
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("created_at")
    @classmethod
    def created_at_local(cls, v: datetime) -> datetime:
        return to_local_naive(v)


class InteractionRecord(BaseModel):
    """One swipe: append-only, latest per (viewer, entity) wins."""

    model_config = ConfigDict(frozen=True)

    from_viewer: str
    to_entity_type: EntityType
    to_entity_id: str
    stage: Stage
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("created_at")
    @classmethod
    def created_at_local(cls, v: datetime) -> datetime:
        return to_local_naive(v)


class ExposureRecord(BaseModel):
    """A card shown to a viewer. At most one is kept per viewer, entity and day."""

    model_config = ConfigDict(frozen=True)

    viewer_id: str
    entity_type: EntityType
    entity_id: str
    shown_at: datetime = Field(default_factory=datetime.now)

    @field_validator("shown_at")
    @classmethod
    def shown_at_local(cls, v: datetime) -> datetime:
        return to_local_naive(v)


class Vocabulary(BaseModel):
    """Term index and document frequencies for one batch of documents."""

    model_config = ConfigDict(frozen=True)

    terms: dict[str, int] = Field(default_factory=dict)
    document_frequency: dict[str, int] = Field(default_factory=dict)
    total_documents: int = 0

    @property
    def size(self) -> int:
        return len(self.terms)


class ScoreBreakdown(BaseModel):
    """Per-factor contributions behind a candidate's score."""

    model_config = ConfigDict(frozen=True)

    skills_score: float
    text_score: float
    eligibility_score: float
    freshness_score: float
    novelty_bonus: float | None = None


class ScoredCandidate(BaseModel):
    """Wrapper that pairs a frozen Profile with its score. Never persisted."""

    model_config = ConfigDict(frozen=True)

    item: Profile
    score: float
    breakdown: ScoreBreakdown


class FeedRequest(BaseModel):
    """Pagination and exploration parameters for one feed request."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=50)
    exploration_ratio: float = Field(default=0.2, ge=0.0, le=1.0)


class FeedPage(BaseModel):
    """One page of ranked candidates plus the viewer's remaining like allowance."""

    items: list[ScoredCandidate] = Field(default_factory=list)
    page: int
    page_size: int
    total: int = 0
    has_more: bool = False
    remaining_likes: int
    message: str | None = None
    exploration_ratio: float
    max_per_company: int

    @property
    def is_exhausted(self) -> bool:
        """True when no candidate survived filtering."""
        return self.total == 0


class FeedFixture(BaseModel):
    """A viewer and a pre-fetched candidate pool, loaded from YAML."""

    viewer: Profile
    candidates: list[Profile] = Field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "FeedFixture":
        """Load a fixture from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Fixture file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
