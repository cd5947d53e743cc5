from __future__ import annotations

"""Configuration loading and validation for qcmtrainer.

This module loads YAML configuration, applies defaults, and validates
enumerations and numeric ranges. Unsupported enum values fall back to their
default with a warning; values that cannot be repaired raise ``ConfigError``.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..errors import ConfigError

logger = logging.getLogger(__name__)

ALLOWED_FLOWS = {"training", "td", "exam"}
ALLOWED_ORDER_MODES = {"by_year", "random"}
DEFAULTS_PATH = Path(__file__).with_name("defaults.yml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping: {path}")
    return data


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML or defaults.

    Args:
        path: Optional path to a YAML config. If None, use package defaults.

    Returns:
        A dictionary with configuration values.
    """
    if path:
        return _load_yaml(Path(path))
    return _load_yaml(DEFAULTS_PATH)


def _positive(section: Dict[str, Any], key: str, default: float, *, integer: bool = False) -> None:
    raw = section.get(key, default)
    try:
        value = int(raw) if integer else float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value <= 0:
        logger.warning("%s must be > 0 (got %r), using %r", key, raw, default)
        value = default
    section[key] = value


def validate_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply defaults and validate configuration values.

    Args:
        cfg: The raw configuration dictionary.

    Returns:
        The validated and merged configuration dictionary.
    """
    # Shallow defaults for missing sections
    for section in ("scoring", "timers", "exam", "session", "storage", "explain"):
        if not isinstance(cfg.get(section), dict):
            cfg[section] = {}

    scoring = cfg["scoring"]
    timers = cfg["timers"]
    exam = cfg["exam"]
    session = cfg["session"]
    storage = cfg["storage"]

    scoring.setdefault("penalty_per_wrong", 0.25)
    scoring.setdefault("scale", 20)
    scoring.setdefault("decimals", 2)

    timers.setdefault("tick_s", 1)
    timers.setdefault("autosave_interval_s", 30)

    exam.setdefault("default_duration_s", 30 * 60)

    session.setdefault("flow", "training")
    session.setdefault("order_mode", "by_year")
    session.setdefault("num_questions", None)

    storage.setdefault("data_dir", "./qcm_data")
    storage.setdefault("history_enabled", True)

    cfg["explain"].setdefault("enabled", False)

    # Numeric checks
    try:
        penalty = float(scoring["penalty_per_wrong"])
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"penalty_per_wrong must be a number, got {scoring['penalty_per_wrong']!r}") from exc
    if not (0.0 <= penalty <= 1.0):
        logger.warning("penalty_per_wrong %r outside 0..1, using 0.25", penalty)
        penalty = 0.25
    scoring["penalty_per_wrong"] = penalty

    _positive(scoring, "scale", 20)
    try:
        scoring["decimals"] = max(0, int(scoring["decimals"]))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"decimals must be an integer, got {scoring['decimals']!r}") from exc

    _positive(timers, "tick_s", 1.0)
    _positive(timers, "autosave_interval_s", 30.0)
    _positive(exam, "default_duration_s", 30 * 60, integer=True)

    # Enum validations
    flow = session.get("flow")
    if flow not in ALLOWED_FLOWS:
        logger.warning("Unsupported flow '%s', using 'training'.", flow)
        session["flow"] = "training"

    order_mode = session.get("order_mode")
    if order_mode not in ALLOWED_ORDER_MODES:
        logger.warning("Unsupported order_mode '%s', using 'by_year'.", order_mode)
        session["order_mode"] = "by_year"

    num = session.get("num_questions")
    if num is not None:
        try:
            num = int(num)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"num_questions must be an integer, got {num!r}") from exc
        session["num_questions"] = num if num > 0 else None

    storage["data_dir"] = str(storage["data_dir"])
    storage["history_enabled"] = bool(storage["history_enabled"])
    cfg["explain"]["enabled"] = bool(cfg["explain"]["enabled"])

    return cfg
