"""
Centralized Constants Module.

Single source of truth for detection vocabularies, scoring weights and
coaching copy, loaded from constants.yaml.

Usage:
    from dooriq.yaml_config.constants import (
        SIGNAL_PATTERNS, VALUE_THEMES, METRIC_CEILING, METRIC_WEIGHTS,
        SUGGESTIONS, COACHING_STRENGTHS, COACHING_MISSED,
    )
"""

from typing import Dict, List, Any
from pathlib import Path
import yaml
import logging

logger = logging.getLogger(__name__)


def _load_yaml(file_path: Path) -> Dict[str, Any]:
    """Load YAML file safely."""
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except Exception as e:
        logger.warning(f"Failed to load {file_path}: {e}")
        return {}


_config_dir = Path(__file__).parent
_constants = _load_yaml(_config_dir / "constants.yaml")


# =============================================================================
# SIGNALS
# =============================================================================

_signals = _constants.get("signals", {})

# Flat categories: name -> list of regex strings
SIGNAL_PATTERNS: Dict[str, List[str]] = {
    name: patterns
    for name, patterns in _signals.items()
    if isinstance(patterns, list)
}

# Value themes: theme -> list of regex strings
VALUE_THEMES: Dict[str, List[str]] = _signals.get("value_themes", {})


# =============================================================================
# LIVE METRICS
# =============================================================================

_metrics = _constants.get("metrics", {})

METRIC_CEILING: int = _metrics.get("ceiling", 25)
METRIC_WEIGHTS: Dict[str, int] = _metrics.get("weights", {})
OBJECTION_WINDOW_REP_TURNS: int = _metrics.get("objection_window_rep_turns", 3)
MONOLOGUE_WORDS: int = _metrics.get("monologue_words", 60)

RUBRIC_CATEGORIES: List[str] = ["discovery", "value", "objection", "cta"]


# =============================================================================
# SUGGESTIONS & COACHING
# =============================================================================

SUGGESTIONS: Dict[str, Any] = _constants.get("suggestions", {})
MAX_SUGGESTIONS: int = SUGGESTIONS.get("max_items", 3)

_coaching = _constants.get("coaching", {})

COACHING_STRENGTHS: Dict[str, str] = _coaching.get("strengths", {})
COACHING_MISSED: Dict[str, str] = _coaching.get("missed", {})
COACHING_LATE_DISCOVERY: str = _coaching.get("late_discovery", "")
COACHING_LATE_CTA: str = _coaching.get("late_cta", "")


def get_weight(name: str, default: int = 0) -> int:
    """Weight from metrics.weights with a default."""
    return int(METRIC_WEIGHTS.get(name, default))


# =============================================================================
# PROMPTS & SCRIPTED REPLIES
# =============================================================================

_prompts = _load_yaml(_config_dir / "prompts.yaml")

SYSTEM_PROMPT: str = _prompts.get("system", "")
STATE_GUIDANCE: Dict[str, str] = _prompts.get("state_guidance", {})
SCRIPTED_REPLIES: Dict[str, Any] = _prompts.get("scripted", {})
