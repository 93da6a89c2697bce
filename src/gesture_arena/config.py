"""Arena configuration: match rules, classifier and AI tuning.

Every section has working defaults; a YAML file only needs the keys it
changes:

    match:
      total_rounds: 5
      round_duration_seconds: 120
    classifier:
      profile: boxing
    ai:
      block_probability: 0.6
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from gesture_arena.gestures import PROFILES
from gesture_arena.landmarks import FINGER_NAMES


class ConfigError(ValueError):
    """Invalid configuration value or file."""


def _from_mapping(cls, data: Optional[dict], section: str):
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError(f"[{section}] must be a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"[{section}] unknown keys: {sorted(unknown)}")
    config = cls(**data)
    try:
        config.validate()
    except TypeError as e:
        raise ConfigError(f"[{section}] {e}") from e
    return config


@dataclass
class MatchConfig:
    total_rounds: int = 3
    round_duration_seconds: int = 180
    action_debounce_seconds: float = 0.2
    fighter_ids: tuple[str, str] = ("player1", "player2")
    fighter_names: tuple[str, str] = ("Player", "AI Opponent")
    draw_label: str = "draw"

    def validate(self):
        if self.total_rounds < 1:
            raise ConfigError("total_rounds must be >= 1")
        if self.round_duration_seconds <= 0:
            raise ConfigError("round_duration_seconds must be > 0")
        if self.action_debounce_seconds < 0:
            raise ConfigError("action_debounce_seconds must be >= 0")
        self.fighter_ids = tuple(self.fighter_ids)
        self.fighter_names = tuple(self.fighter_names)
        if len(self.fighter_ids) != 2 or len(self.fighter_names) != 2:
            raise ConfigError("exactly two fighter ids and names are required")
        if self.fighter_names[0] == self.fighter_names[1]:
            raise ConfigError("fighter names must differ")
        if self.draw_label in self.fighter_names:
            raise ConfigError("draw_label must differ from both fighter names")


@dataclass
class ClassifierConfig:
    profile: str = "finger"
    process_interval: float = 0.1
    extension_threshold: float = 0.7
    priority_finger: Optional[str] = None
    min_confidence: float = 0.5  # forwarding threshold for gesture input

    def validate(self):
        if self.profile not in PROFILES:
            raise ConfigError(f"unknown profile {self.profile!r}, expected one of {sorted(PROFILES)}")
        if self.process_interval < 0:
            raise ConfigError("process_interval must be >= 0")
        if self.extension_threshold <= 0:
            raise ConfigError("extension_threshold must be > 0")
        if self.priority_finger is not None and self.priority_finger not in FINGER_NAMES:
            raise ConfigError(f"unknown priority_finger {self.priority_finger!r}")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ConfigError("min_confidence must be within [0, 1]")


@dataclass
class AIConfig:
    min_interval: float = 1.0
    max_interval: float = 3.0
    block_probability: float = 0.4
    revert_probability: float = 0.3
    revert_delay: float = 0.5

    def validate(self):
        if not 0 < self.min_interval <= self.max_interval:
            raise ConfigError("AI interval must satisfy 0 < min_interval <= max_interval")
        for name in ("block_probability", "revert_probability"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ConfigError(f"{name} must be within [0, 1]")
        if self.revert_delay < 0:
            raise ConfigError("revert_delay must be >= 0")


@dataclass
class ArenaConfig:
    match: MatchConfig = field(default_factory=MatchConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    ai: AIConfig = field(default_factory=AIConfig)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> ArenaConfig:
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError("config root must be a mapping")
        unknown = set(data) - {"match", "classifier", "ai"}
        if unknown:
            raise ConfigError(f"unknown config sections: {sorted(unknown)}")
        return cls(
            match=_from_mapping(MatchConfig, data.get("match"), "match"),
            classifier=_from_mapping(ClassifierConfig, data.get("classifier"), "classifier"),
            ai=_from_mapping(AIConfig, data.get("ai"), "ai"),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["match"]["fighter_ids"] = list(self.match.fighter_ids)
        data["match"]["fighter_names"] = list(self.match.fighter_names)
        return data

    @classmethod
    def from_yaml(cls, path: str | Path) -> ArenaConfig:
        """Load a config file; missing sections and keys keep their defaults."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"cannot read config {path}: {e}") from e
        return cls.from_dict(data)

    def to_yaml(self, path: str | Path):
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
