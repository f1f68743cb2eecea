"""Engine settings loaded from YAML with environment overrides.

Usage:
    settings = load_settings()                 # SMARTMEAL_CONFIG or defaults
    settings = load_settings("config/settings.yaml")
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

CONFIG_ENV_VAR = "SMARTMEAL_CONFIG"


@dataclass
class CacheSettings:
    """TTLs are in seconds."""

    key_prefix: str = "smartmeal"
    redis_url: Optional[str] = None
    local_ttl_cap: int = 5 * 60
    default_ttl: int = 30 * 60
    empty_result_ttl: int = 5 * 60
    recommendations_ttl: int = 5 * 60
    templates_ttl: int = 6 * 60 * 60
    local_max_entries: int = 10_000


@dataclass
class RetrievalSettings:
    timeout_seconds: float = 5.0
    generator_url: Optional[str] = None
    generator_timeout_seconds: float = 20.0


@dataclass
class ScoringSettings:
    quality_weight: float = 0.30
    variety_weight: float = 0.25
    time_weight: float = 0.20
    nutrition_weight: float = 0.15
    preference_weight: float = 0.10
    min_rating_count: int = 3
    workers: int = 1


@dataclass
class PlanningSettings:
    variety_window: int = 7
    history_lookback_days: int = 14
    max_plan_days: int = 90
    # Nominal eating time per meal type, "HH:MM"
    meal_times: Dict[str, str] = field(default_factory=lambda: {
        "Breakfast": "07:30",
        "Lunch": "12:30",
        "Dinner": "18:30",
        "Snack": "15:30",
    })


@dataclass
class EngineSettings:
    cache: CacheSettings = field(default_factory=CacheSettings)
    retrieval: RetrievalSettings = field(default_factory=RetrievalSettings)
    scoring: ScoringSettings = field(default_factory=ScoringSettings)
    planning: PlanningSettings = field(default_factory=PlanningSettings)
    log_level: str = "INFO"


def _apply(section: Any, values: Dict[str, Any]) -> None:
    for key, value in (values or {}).items():
        if not hasattr(section, key):
            raise KeyError(f"Unknown setting '{key}' in section {type(section).__name__}")
        setattr(section, key, value)


def load_settings(path: Optional[str] = None) -> EngineSettings:
    """Load settings from YAML, then apply environment overrides.

    Args:
        path: YAML file path; defaults to $SMARTMEAL_CONFIG. When neither is
            set, built-in defaults are used.

    Returns:
        EngineSettings

    Raises:
        FileNotFoundError: If an explicit path does not exist
        KeyError: If the YAML contains an unknown setting
    """
    settings = EngineSettings()

    config_path = path or os.environ.get(CONFIG_ENV_VAR)
    if config_path:
        with open(Path(config_path), "r") as f:
            data = yaml.safe_load(f) or {}
        _apply(settings.cache, data.get("cache"))
        _apply(settings.retrieval, data.get("retrieval"))
        _apply(settings.scoring, data.get("scoring"))
        _apply(settings.planning, data.get("planning"))
        if "log_level" in data:
            settings.log_level = str(data["log_level"])

    redis_url = os.environ.get("SMARTMEAL_REDIS_URL")
    if redis_url:
        settings.cache.redis_url = redis_url
    timeout = os.environ.get("SMARTMEAL_RETRIEVAL_TIMEOUT")
    if timeout:
        settings.retrieval.timeout_seconds = float(timeout)
    generator_url = os.environ.get("SMARTMEAL_GENERATOR_URL")
    if generator_url:
        settings.retrieval.generator_url = generator_url
    log_level = os.environ.get("SMARTMEAL_LOG_LEVEL")
    if log_level:
        settings.log_level = log_level

    return settings
