"""Configuration models and YAML loader for the feed ranking engine."""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


class ScoringConfig(BaseModel):
    """Weights and constants for multi-factor candidate scoring."""

    skills_weight: float = Field(default=0.55, ge=0.0)
    text_weight: float = Field(default=0.20, ge=0.0)
    eligibility_weight: float = Field(default=0.15, ge=0.0)
    freshness_weight: float = Field(default=0.10, ge=0.0)
    novelty_bonus: float = Field(default=0.05, ge=0.0)
    novelty_threshold: int = Field(default=20, ge=0)
    freshness_decay_days: float = Field(default=7.0, gt=0.0)
    freshness_floor: float = 0.7
    freshness_ceiling: float = 1.2
    idf_floor: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def freshness_bounds_ordered(self) -> "ScoringConfig":
        if self.freshness_floor > self.freshness_ceiling:
            msg = "freshness_floor must not exceed freshness_ceiling"
            raise ValueError(msg)
        total = (
            self.skills_weight + self.text_weight
            + self.eligibility_weight + self.freshness_weight
        )
        if abs(total - 1.0) > 1e-6:
            logger.warning("Scoring weights sum to %.3f, not 1.0", total)
        return self


class FilterConfig(BaseModel):
    """Hard-filter settings."""

    dislike_cooldown_days: float = Field(default=7.0, ge=0.0)


class QuotaConfig(BaseModel):
    """Daily interaction allowance per viewer."""

    daily_like_limit: int = Field(default=30, ge=0)


class FeedConfig(BaseModel):
    """Feed assembly defaults."""

    page_size: int = Field(default=20, ge=1, le=50)
    exploration_ratio: float = Field(default=0.2, ge=0.0, le=1.0)
    max_per_company: int = Field(default=3, ge=1)


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/feed.db"


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    quota: QuotaConfig = Field(default_factory=QuotaConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
