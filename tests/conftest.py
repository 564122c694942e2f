"""
Test fixtures and configuration for pytest
"""
import pytest
from datetime import date, datetime, timezone

from analysis.errors import UpstreamUnavailable
from analysis.models import DeploymentSnapshot, NamespaceQuota, PodMetricsSnapshot
from analysis.tuning import load_tuning

GIB = 1024 * 1024 * 1024
MIB = 1024 * 1024


class FakeProvider:
    """In-memory snapshot provider.

    Any snapshot set to an exception instance is raised instead of returned.
    Calls are recorded so tests can assert each snapshot is read once.
    """

    def __init__(self, quota=None, usage=(0, 0, 0), deployment=None, pod_metrics=None,
                 history=([], []), cluster_quota=None):
        self.quota = quota
        self.usage = usage
        self.deployment = deployment
        self.pod_metrics = pod_metrics
        self.history = history
        self.cluster_quota = cluster_quota
        self.calls = []

    def _answer(self, name, value):
        self.calls.append(name)
        if isinstance(value, Exception):
            raise value
        return value

    def get_namespace_quota(self, namespace):
        return self._answer("quota", self.quota)

    def get_namespace_usage(self, namespace):
        return self._answer("usage", self.usage)

    def get_deployment(self, namespace, name):
        if self.deployment is None:
            return self._answer("deployment", UpstreamUnavailable(f"deployment {namespace}/{name} not found"))
        return self._answer("deployment", self.deployment)

    def get_pod_metrics(self, namespace, deployment):
        return self._answer("pod_metrics", self.pod_metrics)

    def get_usage_history(self, namespace, days):
        return self._answer("history", self.history)

    def get_cluster_quota(self):
        if self.cluster_quota is None:
            return self._answer("cluster_quota", UpstreamUnavailable("no nodes"))
        return self._answer("cluster_quota", self.cluster_quota)


@pytest.fixture
def tuning():
    """Fresh copy of the default tuning"""
    return load_tuning(None)


@pytest.fixture
def quota():
    """4 cores / 8Gi / 50 pods with 1 core / 2Gi / 10 pods used"""
    return NamespaceQuota(
        cpu_limit_millicores=4000,
        memory_limit_bytes=8 * GIB,
        pod_count_limit=50,
        cpu_used_millicores=1000,
        memory_used_bytes=2 * GIB,
        current_pod_count=10,
    )


@pytest.fixture
def deployment():
    return DeploymentSnapshot(
        name="web",
        namespace="shop",
        replicas=3,
        available_replicas=3,
        cpu_request_millicores=200,
        memory_request_bytes=256 * MIB,
        cpu_limit_millicores=500,
        memory_limit_bytes=512 * MIB,
    )


@pytest.fixture
def pod_metrics():
    return PodMetricsSnapshot(cpu_millicores=200, memory_mb=256, pod_count=3)


@pytest.fixture
def provider(quota, deployment, pod_metrics):
    return FakeProvider(quota=quota, deployment=deployment, pod_metrics=pod_metrics)


@pytest.fixture
def fixed_now():
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_today():
    return date(2026, 3, 1)


@pytest.fixture
def mock_prometheus_response():
    """Mock Prometheus API response"""
    return {
        "status": "success",
        "data": {
            "resultType": "matrix",
            "result": [
                {
                    "metric": {"namespace": "shop"},
                    "values": [[1704355200, "40"], [1704441600, "42"]]
                }
            ]
        }
    }


@pytest.fixture
def temp_output_dir(tmp_path):
    """Temporary directory for test output files"""
    output_dir = tmp_path / "output"
    output_dir.mkdir()
    return output_dir
