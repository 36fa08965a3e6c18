"""Soulweaver configuration management.

Loads configuration from .soulweaver/config.yaml with sensible defaults.
All settings can be overridden via environment variables (SOULWEAVER_*).

Config locations (in priority order):
1. Environment variables (SOULWEAVER_SECTION_KEY)
2. Explicit path passed to load_config()
3. .soulweaver/config.yaml (project-local)
4. ~/.soulweaver/config.yaml (user-global)
5. Built-in defaults

Thread Safety:
    Uses threading.Lock for thread-safe lazy initialization of the
    cached instance returned by get_config().
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from soulweaver.core.errors import config_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MatchingConfig:
    """Principle matching settings."""

    threshold: float = 0.7
    """Minimum oracle confidence for a signal to reinforce a principle."""


@dataclass(frozen=True, slots=True)
class PromotionCriteria:
    """Anti-echo-chamber admission rules for axiom promotion."""

    min_principle_count: int = 3
    """Minimum N before a principle may be promoted."""

    min_provenance_diversity: int = 2
    """Minimum number of distinct provenance tags among supporting signals."""

    require_external_or_questioning: bool = True
    """Require external evidence or a questioning/denying stance."""


@dataclass(frozen=True, slots=True)
class CompressionConfig:
    """Cascade and guardrail settings."""

    cascade_thresholds: tuple[int, ...] = (3, 2, 1)
    """N-thresholds tried in order, strictest first."""

    min_axiom_target: int = 3
    """Accept the first cascade level producing at least this many axioms."""

    axiom_cap: int = 25
    """Axioms beyond this count are pruned (kept for auditing)."""

    cognitive_load_cap: int = 30
    """Upper bound used by the cognitive-load guardrail."""


@dataclass(frozen=True, slots=True)
class CycleConfig:
    """Cycle mode detection settings."""

    new_principle_ratio: float = 0.3
    """New principles as a fraction of existing ones; above this forces full resynthesis."""

    contradiction_count: int = 2
    """Axiom contradictions at or above this count force full resynthesis."""

    state_dir: str = ".soulweaver"
    """Directory (relative to the workspace) holding soul state and the lock file."""


@dataclass(frozen=True, slots=True)
class SoulweaverConfig:
    """Root configuration for Soulweaver."""

    matching: MatchingConfig = field(default_factory=MatchingConfig)
    promotion: PromotionCriteria = field(default_factory=PromotionCriteria)
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    cycle: CycleConfig = field(default_factory=CycleConfig)
    debug: bool = False


# Global config instance (lazy-loaded, thread-safe)
_config: SoulweaverConfig | None = None
_config_lock = threading.Lock()

_SECTIONS: dict[str, set[str]] = {
    "matching": {"threshold"},
    "promotion": {
        "min_principle_count",
        "min_provenance_diversity",
        "require_external_or_questioning",
    },
    "compression": {
        "cascade_thresholds",
        "min_axiom_target",
        "axiom_cap",
        "cognitive_load_cap",
    },
    "cycle": {"new_principle_ratio", "contradiction_count", "state_dir"},
}


def _deep_update(base: dict, updates: dict) -> dict:
    """Recursively update a dict with another dict."""
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def _coerce(value: str) -> Any:
    """Coerce an environment string to bool, int, float, list or str."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if "," in value:
        return [_coerce(part.strip()) for part in value.split(",") if part.strip()]
    if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


def _apply_env_overrides(config_dict: dict, environ: dict[str, str] | None = None) -> dict:
    """Apply environment variable overrides.

    Environment variables follow pattern: SOULWEAVER_SECTION_KEY

    Examples:
        SOULWEAVER_MATCHING_THRESHOLD=0.8
        SOULWEAVER_CYCLE_NEW_PRINCIPLE_RATIO=0.25
        SOULWEAVER_COMPRESSION_CASCADE_THRESHOLDS=4,3,2,1
        SOULWEAVER_DEBUG=true
    """
    prefix = "SOULWEAVER_"
    env = os.environ if environ is None else environ

    for key, value in env.items():
        if not key.startswith(prefix):
            continue

        path_str = key[len(prefix):].lower()
        if path_str == "debug":
            config_dict["debug"] = _coerce(value)
            continue

        for section, keys in _SECTIONS.items():
            if not path_str.startswith(section + "_"):
                continue
            name = path_str[len(section) + 1:]
            if name in keys:
                config_dict.setdefault(section, {})[name] = _coerce(value)
            break

    return config_dict


def _require_fraction(key: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise config_error(key, f"expected a value in [0, 1], got {value}")


def _require_positive(key: str, value: int) -> None:
    if value < 1:
        raise config_error(key, f"expected a positive integer, got {value}")


def _dict_to_config(data: dict) -> SoulweaverConfig:
    """Convert a dict to SoulweaverConfig, validating ranges."""
    try:
        matching = MatchingConfig(**data.get("matching", {}))
        promotion = PromotionCriteria(**data.get("promotion", {}))
        compression_data = dict(data.get("compression", {}))
        thresholds = compression_data.get("cascade_thresholds", (3, 2, 1))
        if isinstance(thresholds, int):
            thresholds = [thresholds]
        compression_data["cascade_thresholds"] = tuple(int(t) for t in thresholds)
        compression = CompressionConfig(**compression_data)
        cycle = CycleConfig(**data.get("cycle", {}))
    except TypeError as e:
        raise config_error("config", str(e)) from e

    _require_fraction("matching.threshold", matching.threshold)
    _require_fraction("cycle.new_principle_ratio", cycle.new_principle_ratio)
    _require_positive("promotion.min_principle_count", promotion.min_principle_count)
    _require_positive("promotion.min_provenance_diversity", promotion.min_provenance_diversity)
    _require_positive("compression.min_axiom_target", compression.min_axiom_target)
    _require_positive("compression.axiom_cap", compression.axiom_cap)
    _require_positive("compression.cognitive_load_cap", compression.cognitive_load_cap)
    _require_positive("cycle.contradiction_count", cycle.contradiction_count)
    if not compression.cascade_thresholds:
        raise config_error("compression.cascade_thresholds", "at least one threshold is required")
    for threshold in compression.cascade_thresholds:
        _require_positive("compression.cascade_thresholds", threshold)

    return SoulweaverConfig(
        matching=matching,
        promotion=promotion,
        compression=compression,
        cycle=cycle,
        debug=bool(data.get("debug", False)),
    )


def load_config(
    path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> SoulweaverConfig:
    """Load configuration from file with defaults and env overrides.

    Args:
        path: Optional explicit config file path.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Merged SoulweaverConfig instance.

    Raises:
        SoulweaverError: CONFIG_INVALID when a value is out of range.
    """
    config_dict: dict[str, Any] = {
        "matching": {"threshold": 0.7},
        "promotion": {
            "min_principle_count": 3,
            "min_provenance_diversity": 2,
            "require_external_or_questioning": True,
        },
        "compression": {
            "cascade_thresholds": [3, 2, 1],
            "min_axiom_target": 3,
            "axiom_cap": 25,
            "cognitive_load_cap": 30,
        },
        "cycle": {
            "new_principle_ratio": 0.3,
            "contradiction_count": 2,
            "state_dir": ".soulweaver",
        },
        "debug": False,
    }

    config_paths = []
    if path:
        config_paths.append(Path(path))
    config_paths.extend([
        Path(".soulweaver/config.yaml"),
        Path.home() / ".soulweaver" / "config.yaml",
    ])

    for config_path in config_paths:
        if config_path.exists():
            try:
                with open(config_path) as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Skipping unreadable config file %s: %s", config_path, e)
                continue
            _deep_update(config_dict, file_config)
            logger.debug("Loaded config from %s", config_path)
            break

    config_dict = _apply_env_overrides(config_dict, environ)
    return _dict_to_config(config_dict)


def get_config() -> SoulweaverConfig:
    """Get the current configuration, loading if needed.

    Thread-safe with double-check locking.
    """
    global _config

    if _config is not None:
        return _config

    with _config_lock:
        if _config is None:
            _config = load_config()
        return _config


def reset_config() -> None:
    """Reset the global config (useful for testing)."""
    global _config
    with _config_lock:
        _config = None
