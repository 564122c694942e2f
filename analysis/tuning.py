"""
Tunable constants for capacity planning and scaling-impact analysis.

None of these numbers is empirically calibrated. They are kept here, named, so
an operator can override them from a YAML file instead of editing code.
"""
import copy
import logging
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


# =============================================================================
# Default Tuning (overridden by TUNING_CONFIG_PATH yaml)
# =============================================================================
DEFAULT_TUNING: Dict[str, Any] = {
    "capacity": {
        # Fraction removed from the raw estimate to get a "safe" count
        "default_safety_margin": 0.15,
        # Pod profile presets: millicores / MiB
        "profiles": {
            "small": {"cpu_millicores": 100, "memory_mb": 64},
            "medium": {"cpu_millicores": 200, "memory_mb": 128},
            "large": {"cpu_millicores": 400, "memory_mb": 256},
        },
        # Current memory usage above which recommendations ask for monitoring
        "memory_pressure_percent": 70.0,
    },
    "trending": {
        "default_cpu_growth_percent": 1.0,
        "default_memory_growth_percent": 1.5,
        "threshold_percent": 85.0,
        "max_days": 365,
        # Days below which the capacity recommendation mentions exhaustion
        "exhaustion_notice_days": 30,
    },
    "scaling": {
        # Per-replica coordination cost (service discovery, mesh registration)
        "overhead_per_replica": 0.02,
        "overhead_cap": 1.15,
        "warning_percent": 85.0,
        "critical_percent": 95.0,
        "exceeded_percent": 100.0,
        "low_headroom_percent": 10.0,
        "safe_target_percent": 85.0,
        "scenario_display_cap_percent": 150.0,
        # Reported when a quota with zero limits has usage against it
        "zero_limit_sentinel_percent": 999.0,
        "scenario_steps": 2,
    },
    "infrastructure": {
        "etcd": {"high_delta": 10, "high_target": 20, "medium_delta": 5, "medium_target": 10},
        "api_server": {"high_delta": 8, "high_target": 15, "medium_delta": 4, "medium_target": 8},
        "scheduler": {"high_delta": 10, "medium_delta": 5},
        # Textual control-plane overhead estimate: percent per replica changed
        "overhead_percent_per_replica": 2,
        "overhead_percent_cap": 20,
        "infra_namespace_prefixes": ["openshift-", "kube-"],
    },
    "defaults": {
        # Substituted when a namespace has no quota or the lookup fails
        "quota": {
            "cpu_limit_millicores": 4000,
            "memory_limit_bytes": 8 * 1024 * 1024 * 1024,
            "pod_count_limit": 100,
            "cpu_used_millicores": 1000,
            "memory_used_bytes": 2 * 1024 * 1024 * 1024,
        },
        "pod_baseline": {"cpu_millicores": 100, "memory_mb": 128},
        "deployment_replicas": 2,
        # Pods schedulable per node when deriving a cluster-wide quota
        "pods_per_node": 110,
    },
}


def get_config_value(config: Dict[str, Any], *keys, default=None):
    """Safely get nested config value with default fallback"""
    value = config
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_tuning(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load YAML tuning overrides and merge them onto DEFAULT_TUNING.

    Without a path the defaults are returned as a fresh copy.
    """
    if not config_path:
        return copy.deepcopy(DEFAULT_TUNING)
    with open(config_path, 'r') as f:
        overrides = yaml.safe_load(f) or {}
    if not isinstance(overrides, dict):
        raise ValueError(f"tuning file {config_path} must contain a mapping")
    logger.info(f"Loaded tuning overrides from {config_path}")
    return _deep_merge(DEFAULT_TUNING, overrides)
