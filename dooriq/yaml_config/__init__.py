"""
YAML-backed configuration.

Usage:
    from dooriq.yaml_config.constants import SIGNAL_PATTERNS, METRIC_CEILING
"""
