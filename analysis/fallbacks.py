"""
Snapshot resolution with conservative defaults.

Each resolver asks a snapshot provider for one input, and on
UpstreamUnavailable substitutes a documented default instead of failing the
call. The returned DataQuality tag tells callers whether a value was measured,
estimated from related data, or a default, so that a quiet namespace can be
told apart from a failed fetch.
"""
import logging
from typing import Dict, List, Tuple

from analysis.errors import UpstreamUnavailable
from analysis.models import (
    DataQuality,
    DeploymentSnapshot,
    NamespaceQuota,
    PodMetricsSnapshot,
)
from analysis.tuning import DEFAULT_TUNING, get_config_value
from normalize.units import MIB

logger = logging.getLogger(__name__)


def default_quota(tuning: Dict = None) -> NamespaceQuota:
    tuning = tuning or DEFAULT_TUNING
    q = get_config_value(tuning, "defaults", "quota", default={})
    return NamespaceQuota(
        cpu_limit_millicores=int(q.get("cpu_limit_millicores", 4000)),
        memory_limit_bytes=int(q.get("memory_limit_bytes", 8 * 1024 * MIB)),
        pod_count_limit=int(q.get("pod_count_limit", 100)),
        cpu_used_millicores=int(q.get("cpu_used_millicores", 1000)),
        memory_used_bytes=int(q.get("memory_used_bytes", 2 * 1024 * MIB)),
        current_pod_count=0,
        has_quota=False,
    )


def default_deployment(namespace: str, name: str, tuning: Dict = None) -> DeploymentSnapshot:
    tuning = tuning or DEFAULT_TUNING
    replicas = int(get_config_value(tuning, "defaults", "deployment_replicas", default=2))
    return DeploymentSnapshot(name=name, namespace=namespace, replicas=replicas, available_replicas=replicas)


def default_pod_baseline(tuning: Dict = None) -> PodMetricsSnapshot:
    tuning = tuning or DEFAULT_TUNING
    b = get_config_value(tuning, "defaults", "pod_baseline", default={})
    return PodMetricsSnapshot(
        cpu_millicores=int(b.get("cpu_millicores", 100)),
        memory_mb=int(b.get("memory_mb", 128)),
        pod_count=0,
    )


def resolve_namespace_quota(provider, namespace: str, tuning: Dict = None) -> Tuple[NamespaceQuota, DataQuality]:
    """Quota snapshot for a namespace.

    A namespace without a ResourceQuota keeps the default limits but uses its
    measured requests when those can be read.
    """
    try:
        quota = provider.get_namespace_quota(namespace)
    except UpstreamUnavailable as e:
        logger.warning(f"[{namespace}] quota lookup failed, using default quota: {e}")
        return default_quota(tuning), DataQuality.DEFAULT

    if quota is not None:
        return quota, DataQuality.MEASURED

    base = default_quota(tuning)
    try:
        cpu_used, memory_used, pod_count = provider.get_namespace_usage(namespace)
    except UpstreamUnavailable as e:
        logger.warning(f"[{namespace}] no quota and usage lookup failed, using default quota: {e}")
        return base, DataQuality.DEFAULT

    logger.info(f"[{namespace}] no ResourceQuota found, estimating limits from defaults")
    return NamespaceQuota(
        cpu_limit_millicores=base.cpu_limit_millicores,
        memory_limit_bytes=base.memory_limit_bytes,
        pod_count_limit=base.pod_count_limit,
        cpu_used_millicores=cpu_used,
        memory_used_bytes=memory_used,
        current_pod_count=pod_count,
        has_quota=False,
    ), DataQuality.ESTIMATED


def resolve_deployment(provider, namespace: str, name: str,
                       tuning: Dict = None) -> Tuple[DeploymentSnapshot, DataQuality]:
    try:
        return provider.get_deployment(namespace, name), DataQuality.MEASURED
    except UpstreamUnavailable as e:
        logger.warning(f"[{namespace}/{name}] deployment lookup failed, using defaults: {e}")
        return default_deployment(namespace, name, tuning), DataQuality.DEFAULT


def resolve_pod_baseline(provider, namespace: str, name: str,
                         deployment: DeploymentSnapshot, deployment_quality: DataQuality,
                         tuning: Dict = None) -> Tuple[PodMetricsSnapshot, DataQuality]:
    """Per-pod CPU/memory baseline for a deployment.

    Running pods are matched by name substring, which can attribute pods of a
    similarly named deployment. With no matching pods the deployment's own
    container requests are used, then the fixed default baseline.
    """
    try:
        metrics = provider.get_pod_metrics(namespace, name)
    except UpstreamUnavailable as e:
        logger.warning(f"[{namespace}/{name}] pod metrics lookup failed, using default baseline: {e}")
        return default_pod_baseline(tuning), DataQuality.DEFAULT

    if metrics is not None and metrics.pod_count > 0:
        return metrics, DataQuality.MEASURED

    if (deployment_quality == DataQuality.MEASURED
            and deployment.cpu_request_millicores > 0 and deployment.memory_request_bytes > 0):
        return PodMetricsSnapshot(
            cpu_millicores=deployment.cpu_request_millicores,
            memory_mb=deployment.memory_request_bytes // MIB,
            pod_count=0,
        ), DataQuality.ESTIMATED

    logger.info(f"[{namespace}/{name}] no running pods matched, using default baseline")
    return default_pod_baseline(tuning), DataQuality.DEFAULT


def resolve_cluster_quota(provider, tuning: Dict = None) -> Tuple[NamespaceQuota, DataQuality]:
    """Cluster-wide pseudo quota built from node allocatable"""
    try:
        return provider.get_cluster_quota(), DataQuality.MEASURED
    except UpstreamUnavailable as e:
        logger.warning(f"[cluster] node capacity lookup failed, using default quota: {e}")
        return default_quota(tuning), DataQuality.DEFAULT


def resolve_usage_history(provider, namespace: str, days: int) -> Tuple[List[float], List[float], DataQuality]:
    """Daily cpu/memory usage percentages; empty lists make the forecaster use default growth rates"""
    try:
        cpu, memory = provider.get_usage_history(namespace, days)
    except UpstreamUnavailable as e:
        logger.warning(f"[{namespace}] usage history lookup failed, using default growth rates: {e}")
        return [], [], DataQuality.DEFAULT
    cpu, memory = list(cpu or []), list(memory or [])
    if len(cpu) < 2 or len(memory) < 2:
        return cpu, memory, DataQuality.ESTIMATED
    return cpu, memory, DataQuality.MEASURED
