from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class ClassifierSettings(BaseModel):
    section_score_threshold: int = 2
    structural_signal_threshold: int = 2
    repeat_threshold: int = 2
    max_field_index: int = 50


class KeySettings(BaseModel):
    ml_confidence_threshold: float = 0.80


class MatchSettings(BaseModel):
    match_threshold: float = 0.75
    read_threshold: float = 0.80
    recall_threshold: float = 0.60
    recall_confidence_factor: float = 0.80
    variant_confidence: float = 0.70
    hint_tolerance: float = 0.05


class CacheSettings(BaseModel):
    backend: Literal["sqlite", "memory"] = "sqlite"
    path: Path = Field(default=Path("~/.cache/form-recall/cache.sqlite3"), validate_default=True)
    ttl_days: int = 90
    min_replay_confidence: float = 0.6
    cleanup_interval_hours: float = 24.0

    @field_validator("path", mode="before")
    @classmethod
    def _expand_path(cls, value: str | Path) -> Path:
        return Path(value).expanduser().resolve()

    @field_validator("ttl_days")
    @classmethod
    def _positive_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("ttl_days must be positive")
        return value


class PipelineSettings(BaseModel):
    pacing_min_seconds: float = 0.03
    pacing_max_seconds: float = 0.15
    disabled_plugins: List[str] = Field(default_factory=list)
    plugin_order: Dict[str, List[str]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _ordered_pacing(self) -> "PipelineSettings":
        if self.pacing_min_seconds < 0 or self.pacing_max_seconds < self.pacing_min_seconds:
            raise ValueError("pacing bounds must satisfy 0 <= pacing_min_seconds <= pacing_max_seconds")
        return self


class Settings(BaseModel):
    classifier: ClassifierSettings = ClassifierSettings()
    keys: KeySettings = KeySettings()
    matching: MatchSettings = MatchSettings()
    cache: CacheSettings = CacheSettings()
    pipeline: PipelineSettings = PipelineSettings()

    @classmethod
    def load(cls, path: Path) -> "Settings":
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
        return cls.model_validate(raw or {})


def find_config(explicit_path: Optional[Path]) -> Path:
    if explicit_path:
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "config.yaml", cwd / "config.yml"):
        if candidate.exists():
            return candidate
    raise FileNotFoundError("Could not find config.yaml - pass --config explicitly.")
