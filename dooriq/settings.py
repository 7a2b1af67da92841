"""
Settings loader for settings.yaml

Usage:
    from dooriq.settings import settings

    model = settings.llm.model
    max_turns = settings.simulation.max_turns
"""

import yaml
from pathlib import Path
from typing import List, Any


SETTINGS_FILE = Path(__file__).parent / "settings.yaml"

# Defaults (used when a key is missing from YAML)
DEFAULTS = {
    "llm": {
        "model": "Qwen/Qwen3-4B-AWQ",
        "base_url": "http://localhost:8000/v1",
        "timeout": 8,
        "temperature": 0.8,
        "max_tokens": 120,
    },
    "simulation": {
        "max_turns": 20,
        "opening_max_turns": 2,
        "discovery_max_turns": 4,
        "value_max_turns": 3,
        "objection_max_turns": 3,
        "close_max_turns": 3,
        "close_turn_threshold": 10,
        "duplicate_window_seconds": 5.0,
        "max_utterance_chars": 2000,
        "history_window": 8,
        "reply_backend": "llm",
        "fallback_reply": "I see.",
    },
    "evaluation": {
        "pass_threshold": 80,
        "partial_threshold": 50,
        "strength_threshold": 18,
        "weakness_threshold": 12,
    },
    "storage": {
        "backend": "sqlite",
        "db_path": "data/attempts.db",
        "lock_dir": "/tmp/dooriq_attempt_locks",
    },
    "logging": {
        "level": "INFO",
        "log_prompts": False,
    },
}


class DotDict(dict):
    """Dict with attribute access: d.key instead of d['key']"""

    def __getattr__(self, key: str) -> Any:
        try:
            value = self[key]
            if isinstance(value, dict):
                return DotDict(value)
            return value
        except KeyError:
            raise AttributeError(f"Setting '{key}' not found")

    def __setattr__(self, key: str, value: Any) -> None:
        self[key] = value

    def get_nested(self, path: str, default: Any = None) -> Any:
        """Get a value by dotted path: 'llm.model'"""
        keys = path.split('.')
        value = self
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge (override wins)"""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(filepath: Path = None) -> DotDict:
    """
    Load settings from a YAML file.

    Priority:
    1. Values from the YAML file
    2. DEFAULTS

    Args:
        filepath: Path to the settings file (settings.yaml by default)

    Returns:
        DotDict with settings
    """
    filepath = filepath or SETTINGS_FILE

    config = _deep_merge({}, DEFAULTS)

    if filepath.exists():
        with open(filepath, "r", encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        config = _deep_merge(config, yaml_config)
    else:
        print(f"[settings] Settings file not found: {filepath}")
        print("[settings] Using defaults")

    return DotDict(config)


def validate_settings(settings: DotDict) -> List[str]:
    """
    Validate settings.

    Returns:
        List of errors (empty when everything is OK)
    """
    errors = []

    # LLM
    if not settings.llm.model:
        errors.append("llm.model is not set")
    if not settings.llm.base_url:
        errors.append("llm.base_url is not set")
    if settings.llm.timeout <= 0:
        errors.append("llm.timeout must be > 0")

    # Simulation pacing
    sim = settings.simulation
    for name in [
        "max_turns",
        "opening_max_turns",
        "discovery_max_turns",
        "value_max_turns",
        "objection_max_turns",
        "close_max_turns",
        "close_turn_threshold",
    ]:
        if sim.get(name, 0) < 1:
            errors.append(f"simulation.{name} must be >= 1")
    if sim.close_turn_threshold >= sim.max_turns:
        errors.append("simulation.close_turn_threshold must be < simulation.max_turns")
    if sim.reply_backend not in ("llm", "scripted"):
        errors.append("simulation.reply_backend must be 'llm' or 'scripted'")

    # Evaluation cut-offs
    ev = settings.evaluation
    if not (0 < ev.partial_threshold < ev.pass_threshold <= 100):
        errors.append("evaluation thresholds must satisfy 0 < partial < pass <= 100")
    if ev.weakness_threshold > ev.strength_threshold:
        errors.append("evaluation.weakness_threshold must be <= strength_threshold")

    # Storage
    if settings.storage.backend not in ("sqlite", "memory"):
        errors.append("storage.backend must be 'sqlite' or 'memory'")

    return errors


_settings = None


def get_settings() -> DotDict:
    """Global settings (singleton)"""
    global _settings
    if _settings is None:
        _settings = load_settings()
        errors = validate_settings(_settings)
        if errors:
            print("[settings] Invalid settings:")
            for err in errors:
                print(f"  - {err}")
    return _settings


def reload_settings() -> DotDict:
    """Reload settings from file"""
    global _settings
    _settings = None
    return get_settings()


# from dooriq.settings import settings
settings = get_settings()


if __name__ == "__main__":
    import json

    s = load_settings()
    errors = validate_settings(s)
    if errors:
        print("\n[!] ERRORS:")
        for err in errors:
            print(f"  - {err}")
    else:
        print("\n[+] Settings are valid")

    print(json.dumps(dict(s), indent=2, ensure_ascii=False))
