"""
Infrastructure impact - control plane severity heuristics for a replica change.

etcd, API server and scheduler severities are independent ordinal ratings
(low / medium / high) bucketed on the size of the replica change and the
absolute target size. The estimated overhead is a textual heuristic, not a
measured quantity.
"""
from typing import Dict, List, Optional

from analysis.models import InfrastructureImpact
from analysis.tuning import DEFAULT_TUNING, get_config_value

LOW = "low"
MEDIUM = "medium"
HIGH = "high"


def _bucket(abs_delta: int, target: int, thresholds: Dict[str, int]) -> str:
    """Rate a change against high/medium delta and target boundaries (strictly greater than)"""
    high_delta = thresholds.get("high_delta")
    high_target = thresholds.get("high_target")
    medium_delta = thresholds.get("medium_delta")
    medium_target = thresholds.get("medium_target")

    if (high_delta is not None and abs_delta > high_delta) or (high_target is not None and target > high_target):
        return HIGH
    if (medium_delta is not None and abs_delta > medium_delta) or (medium_target is not None and target > medium_target):
        return MEDIUM
    return LOW


def is_infrastructure_namespace(namespace: str, prefixes: Optional[List[str]] = None) -> bool:
    if prefixes is None:
        prefixes = DEFAULT_TUNING["infrastructure"]["infra_namespace_prefixes"]
    return any(namespace.startswith(p) for p in prefixes)


def estimate_overhead(replica_delta: int, tuning: Dict = None) -> str:
    """Asymmetric control plane overhead estimate: scale-downs relieve about half of what scale-ups add"""
    tuning = tuning or DEFAULT_TUNING
    per_replica = get_config_value(tuning, "infrastructure", "overhead_percent_per_replica", default=2)
    cap = get_config_value(tuning, "infrastructure", "overhead_percent_cap", default=20)

    overhead_pct = min(abs(replica_delta) * per_replica, cap)
    if replica_delta < 0:
        return f"{overhead_pct // 2}% decrease in control plane load"
    return f"{overhead_pct}% increase in control plane CPU"


def analyze_infrastructure_impact(current_replicas: int, target_replicas: int, namespace: str,
                                  tuning: Dict = None) -> InfrastructureImpact:
    tuning = tuning or DEFAULT_TUNING
    cfg = get_config_value(tuning, "infrastructure", default={})
    delta = target_replicas - current_replicas
    abs_delta = abs(delta)

    etcd = _bucket(abs_delta, target_replicas, cfg.get("etcd", {}))
    api_server = _bucket(abs_delta, target_replicas, cfg.get("api_server", {}))
    scheduler = _bucket(abs_delta, target_replicas, cfg.get("scheduler", {}))

    # Platform namespaces never rate below medium for etcd and the API server
    if is_infrastructure_namespace(namespace, cfg.get("infra_namespace_prefixes")):
        if etcd == LOW:
            etcd = MEDIUM
        if api_server == LOW:
            api_server = MEDIUM

    return InfrastructureImpact(
        etcd_impact=etcd,
        api_server_impact=api_server,
        scheduler_impact=scheduler,
        estimated_overhead=estimate_overhead(delta, tuning),
    )
