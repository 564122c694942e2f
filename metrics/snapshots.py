"""
Snapshot providers backed by Prometheus / kube-state-metrics.

Every method performs its reads once and returns an immutable snapshot.
Prometheus failures are re-raised as UpstreamUnavailable; deciding what to
substitute is left to the caller.
"""
import logging
import re
from typing import Dict, List, Optional, Tuple

from analysis.errors import UpstreamUnavailable
from analysis.models import DeploymentSnapshot, NamespaceQuota, PodMetricsSnapshot
from analysis.tuning import DEFAULT_TUNING, get_config_value
from normalize.series import daily_values
from . import prometheus_client as prom
from .prometheus_client import PrometheusError

logger = logging.getLogger(__name__)

# ResourceQuota keys in order of preference; limits first, requests as fallback
CPU_QUOTA_KEYS = ("limits.cpu", "requests.cpu", "cpu")
MEMORY_QUOTA_KEYS = ("limits.memory", "requests.memory", "memory")


def _escape(value: str) -> str:
    return value.replace('\\', '\\\\').replace('"', '\\"')


def _selector(**labels: str) -> str:
    parts = []
    for key, value in labels.items():
        if key.endswith("_re"):
            parts.append(f'{key[:-3]}=~"{_escape(value)}"')
        else:
            parts.append(f'{key}="{_escape(value)}"')
    return "{" + ",".join(parts) + "}"


def _first_present(values: Dict[str, float], keys: Tuple[str, ...]) -> Tuple[Optional[str], Optional[float]]:
    for key in keys:
        if key in values:
            return key, values[key]
    return None, None


class PrometheusSnapshotProvider:
    """Reads quota, deployment and pod snapshots from kube-state-metrics series."""

    def __init__(self, base_url: Optional[str] = None, tuning: Optional[Dict] = None):
        self.base_url = base_url
        tuning = tuning or DEFAULT_TUNING
        # Pod limit assumed when a quota object sets no "pods" hard limit
        self.default_pod_count_limit = int(
            get_config_value(tuning, "defaults", "quota", "pod_count_limit", default=100)
        )
        self.pods_per_node = int(get_config_value(tuning, "defaults", "pods_per_node", default=110))

    def _instant(self, promql: str) -> List[Dict]:
        try:
            return prom.query_instant(promql, base_url=self.base_url)
        except PrometheusError as e:
            raise UpstreamUnavailable(f"prometheus query failed: {e}") from e

    def _range(self, promql: str, days: int) -> List[Dict]:
        try:
            return prom.query_range(promql, step="1d", base_url=self.base_url, window_seconds=days * 86400)
        except PrometheusError as e:
            raise UpstreamUnavailable(f"prometheus range query failed: {e}") from e

    # -------------------------------------------------------------------------
    # Namespace quota
    # -------------------------------------------------------------------------
    def get_namespace_quota(self, namespace: str) -> Optional[NamespaceQuota]:
        """Quota snapshot, or None when the namespace has no ResourceQuota object."""
        result = self._instant(f'kube_resourcequota{_selector(namespace=namespace)}')
        if not result:
            logger.debug(f"[{namespace}] no kube_resourcequota series")
            return None

        hard: Dict[str, float] = {}
        used: Dict[str, float] = {}
        for item in result:
            metric = item.get("metric", {})
            resource = metric.get("resource")
            try:
                value = float(item.get("value", [None, None])[1])
            except (TypeError, ValueError, IndexError):
                continue
            # Several quota objects in one namespace: keep the tightest hard limit.
            # Every object reports the same namespace-wide usage, so used is not summed.
            if metric.get("type") == "hard":
                hard[resource] = min(hard[resource], value) if resource in hard else value
            else:
                used[resource] = max(used.get(resource, 0.0), value)

        cpu_key, cpu_limit = _first_present(hard, CPU_QUOTA_KEYS)
        mem_key, mem_limit = _first_present(hard, MEMORY_QUOTA_KEYS)
        pod_limit = hard.get("pods")

        if "pods" in used:
            pod_count = int(used["pods"])
        else:
            pod_count = self._count_active_pods(namespace)

        return NamespaceQuota(
            cpu_limit_millicores=int(round((cpu_limit or 0) * 1000)),
            memory_limit_bytes=int(mem_limit or 0),
            pod_count_limit=int(pod_limit) if pod_limit is not None else self.default_pod_count_limit,
            cpu_used_millicores=int(round(used.get(cpu_key, 0.0) * 1000)) if cpu_key else 0,
            memory_used_bytes=int(used.get(mem_key, 0.0)) if mem_key else 0,
            current_pod_count=pod_count,
            has_quota=True,
        )

    def _count_active_pods(self, namespace: Optional[str] = None) -> int:
        labels = {"phase_re": "Running|Pending"}
        if namespace:
            labels["namespace"] = namespace
        value = prom.extract_value(self._instant(f'sum(kube_pod_status_phase{_selector(**labels)} == 1)'), 0.0)
        return int(value or 0)

    def _active_requests(self, resource: str, namespace: Optional[str] = None) -> float:
        labels = {"resource": resource}
        phase_labels = {"phase_re": "Running|Pending"}
        if namespace:
            labels["namespace"] = namespace
            phase_labels["namespace"] = namespace
        promql = (
            f'sum(kube_pod_container_resource_requests{_selector(**labels)} '
            f'* on(namespace, pod) group_left() (kube_pod_status_phase{_selector(**phase_labels)} == 1))'
        )
        return prom.extract_value(self._instant(promql), 0.0) or 0.0

    def get_namespace_usage(self, namespace: str) -> Tuple[int, int, int]:
        """(cpu millicores, memory bytes, pod count) requested by running and pending pods"""
        cpu = self._active_requests("cpu", namespace)
        memory = self._active_requests("memory", namespace)
        return int(round(cpu * 1000)), int(memory), self._count_active_pods(namespace)

    def get_cluster_quota(self) -> NamespaceQuota:
        """Cluster-wide pseudo quota: allocatable of Ready nodes against all active pod requests"""
        ready = 'on(node) group_left() (kube_node_status_condition{condition="Ready",status="true"} == 1)'
        cpu = prom.extract_value(self._instant(
            f'sum(kube_node_status_allocatable{{resource="cpu"}} * {ready})'), None)
        memory = prom.extract_value(self._instant(
            f'sum(kube_node_status_allocatable{{resource="memory"}} * {ready})'), None)
        if cpu is None or memory is None:
            raise UpstreamUnavailable("node allocatable metrics not available")
        pods = prom.extract_value(self._instant(
            f'sum(kube_node_status_allocatable{{resource="pods"}} * {ready})'), None)
        if pods is None:
            nodes = prom.extract_value(self._instant(
                'count(kube_node_status_condition{condition="Ready",status="true"} == 1)'), 0.0)
            pods = (nodes or 0) * self.pods_per_node

        return NamespaceQuota(
            cpu_limit_millicores=int(round(cpu * 1000)),
            memory_limit_bytes=int(memory),
            pod_count_limit=int(pods),
            cpu_used_millicores=int(round(self._active_requests("cpu") * 1000)),
            memory_used_bytes=int(self._active_requests("memory")),
            current_pod_count=self._count_active_pods(),
            has_quota=True,
        )

    # -------------------------------------------------------------------------
    # Deployment and pods
    # -------------------------------------------------------------------------
    def get_deployment(self, namespace: str, name: str) -> DeploymentSnapshot:
        sel = _selector(namespace=namespace, deployment=name)
        replicas = prom.extract_value(self._instant(f'kube_deployment_spec_replicas{sel}'), None)
        if replicas is None:
            raise UpstreamUnavailable(f"deployment {namespace}/{name} not found")
        available = prom.extract_value(self._instant(f'kube_deployment_status_replicas_available{sel}'), 0.0)

        pod_sel = {"namespace": namespace, "pod_re": f"{re.escape(name)}-.*"}
        requests_ = self._first_container_values('kube_pod_container_resource_requests', pod_sel)
        limits = self._first_container_values('kube_pod_container_resource_limits', pod_sel)

        return DeploymentSnapshot(
            name=name,
            namespace=namespace,
            replicas=int(replicas),
            available_replicas=int(available or 0),
            cpu_request_millicores=int(round(requests_.get("cpu", 0.0) * 1000)),
            memory_request_bytes=int(requests_.get("memory", 0.0)),
            cpu_limit_millicores=int(round(limits.get("cpu", 0.0) * 1000)),
            memory_limit_bytes=int(limits.get("memory", 0.0)),
        )

    def _first_container_values(self, metric: str, labels: Dict[str, str]) -> Dict[str, float]:
        """resource -> value for the first container (by name) of the first pod (by name)"""
        result = self._instant(f'{metric}{_selector(**labels)}')
        series = sorted(
            result,
            key=lambda r: (r.get("metric", {}).get("pod", ""), r.get("metric", {}).get("container", "")),
        )
        if not series:
            return {}
        first = series[0].get("metric", {})
        out: Dict[str, float] = {}
        for item in series:
            m = item.get("metric", {})
            if m.get("pod") != first.get("pod") or m.get("container") != first.get("container"):
                continue
            try:
                out[m.get("resource")] = float(item.get("value", [None, None])[1])
            except (TypeError, ValueError, IndexError):
                continue
        return out

    def get_pod_metrics(self, namespace: str, deployment: str) -> Optional[PodMetricsSnapshot]:
        """Average per-pod requests over running pods whose name contains the deployment name.

        Returns None when no running pod matches.
        """
        running = prom.values_by_label(
            self._instant(f'kube_pod_status_phase{_selector(namespace=namespace, phase="Running")} == 1'),
            "pod",
        )
        pods = [p for p in running if deployment in p]
        if not pods:
            return None

        cpu_by_pod = prom.values_by_label(self._instant(
            f'sum by (pod) (kube_pod_container_resource_requests{_selector(namespace=namespace, resource="cpu")})'
        ), "pod")
        mem_by_pod = prom.values_by_label(self._instant(
            f'sum by (pod) (kube_pod_container_resource_requests{_selector(namespace=namespace, resource="memory")})'
        ), "pod")

        total_cpu = sum(cpu_by_pod.get(p, 0.0) for p in pods)
        total_mem = sum(mem_by_pod.get(p, 0.0) for p in pods)
        count = len(pods)
        return PodMetricsSnapshot(
            cpu_millicores=int(round(total_cpu * 1000 / count)),
            memory_mb=int(total_mem / count) // (1024 * 1024),
            pod_count=count,
        )

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------
    def get_usage_history(self, namespace: str, days: int = 7) -> Tuple[List[float], List[float]]:
        """Daily quota usage percentages (oldest first) for cpu and memory"""
        return (
            self._quota_usage_series(namespace, CPU_QUOTA_KEYS, days),
            self._quota_usage_series(namespace, MEMORY_QUOTA_KEYS, days),
        )

    def _quota_usage_series(self, namespace: str, keys: Tuple[str, ...], days: int) -> List[float]:
        for key in keys:
            used = _selector(namespace=namespace, type="used", resource=key)
            hard = _selector(namespace=namespace, type="hard", resource=key)
            result = self._range(f'100 * sum(kube_resourcequota{used}) / sum(kube_resourcequota{hard})', days)
            if result:
                return daily_values(prom.parse_matrix_values(result[0]))
        return []
