"""
Immutable snapshots and result structures for capacity planning.

Every instance is built fresh for a single call and discarded once the result
has been serialized. Units are carried in field names: millicores for CPU,
bytes for quota memory, MB (MiB) for per-pod memory.
"""
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class PodProfile(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PodProfile":
        if value is None or value == "":
            return cls.MEDIUM
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"unknown pod profile: {value!r}")


class DataQuality(str, Enum):
    MEASURED = "measured"
    ESTIMATED = "estimated"
    DEFAULT = "default"


def to_plain(value: Any) -> Any:
    """Convert dataclasses, enums and tuples into JSON-ready builtins."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(to_plain(k)): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        return to_plain(self)


# =============================================================================
# Input snapshots
# =============================================================================
@dataclass(frozen=True)
class PodResources(_Serializable):
    cpu_millicores: int
    memory_mb: int

    @property
    def memory_bytes(self) -> int:
        return self.memory_mb * 1024 * 1024


@dataclass(frozen=True)
class NamespaceQuota(_Serializable):
    cpu_limit_millicores: int
    memory_limit_bytes: int
    pod_count_limit: int
    cpu_used_millicores: int = 0
    memory_used_bytes: int = 0
    current_pod_count: int = 0
    has_quota: bool = True


@dataclass(frozen=True)
class DeploymentSnapshot(_Serializable):
    name: str
    namespace: str
    replicas: int
    available_replicas: int = 0
    cpu_request_millicores: int = 0
    memory_request_bytes: int = 0
    cpu_limit_millicores: int = 0
    memory_limit_bytes: int = 0


@dataclass(frozen=True)
class PodMetricsSnapshot(_Serializable):
    """Average requests of running pods attributed to a deployment by name substring"""
    cpu_millicores: int
    memory_mb: int
    pod_count: int = 0


# =============================================================================
# Capacity results
# =============================================================================
@dataclass(frozen=True)
class PodEstimate(_Serializable):
    cpu_millicores: int
    memory_mb: int
    max_pods: int
    safe_pods: int
    limiting_factor: str


@dataclass(frozen=True)
class AvailableCapacity(_Serializable):
    cpu_millicores: int
    memory_bytes: int
    pod_slots: int

    @property
    def exhausted(self) -> bool:
        return self.cpu_millicores <= 0 or self.memory_bytes <= 0 or self.pod_slots <= 0


@dataclass(frozen=True)
class NamespaceQuotaOutput(_Serializable):
    cpu_limit: str
    memory_limit: str
    pod_count_limit: int


@dataclass(frozen=True)
class CurrentUsageOutput(_Serializable):
    cpu: str
    memory: str
    cpu_percent: float
    memory_percent: float
    pod_count: int


@dataclass(frozen=True)
class AvailableCapacityOutput(_Serializable):
    cpu: str
    memory: str
    pod_slots: int


@dataclass(frozen=True)
class RecommendedLimit(_Serializable):
    pod_profile: str
    safe_pod_count: int
    max_pod_count: int
    limiting_factor: str
    explanation: str


@dataclass(frozen=True)
class TrendingInfo(_Serializable):
    daily_cpu_growth_percent: float
    daily_memory_growth_percent: float
    days_until_85_percent: int
    projected_date: Optional[str] = None
    threshold_already_exceeded: bool = False


@dataclass(frozen=True)
class CapacityResult(_Serializable):
    available: AvailableCapacity
    namespace_quota: NamespaceQuotaOutput
    current_usage: CurrentUsageOutput
    available_capacity: AvailableCapacityOutput
    pod_estimates: Dict[str, PodEstimate]
    recommended_limit: RecommendedLimit
    recommendation: str
    safety_margin: float
    trending: Optional[TrendingInfo] = None


# =============================================================================
# Scaling impact results
# =============================================================================
@dataclass(frozen=True)
class ScalingImpactInput(_Serializable):
    deployment: str
    namespace: str
    target_replicas: int
    current_replicas: Optional[int] = None
    include_infrastructure: bool = True


@dataclass(frozen=True)
class ResourceState(_Serializable):
    """Per-pod and total CPU (millicores) and memory (MB) for a replica count"""
    replicas: int
    cpu_per_pod: float
    memory_per_pod_mb: float
    total_cpu: float
    total_memory_mb: float


@dataclass(frozen=True)
class NamespaceImpact(_Serializable):
    current_usage_percent: float
    projected_usage_percent: float
    cpu_projected_percent: float
    memory_projected_percent: float
    quota_exceeded: bool
    headroom_remaining_percent: float
    limiting_factor: str
    cpu_quota_millicores: int
    memory_quota_bytes: int
    cpu_used_millicores: int
    memory_used_bytes: int
    cpu_projected_millicores: int
    memory_projected_bytes: int


@dataclass(frozen=True)
class InfrastructureImpact(_Serializable):
    etcd_impact: str
    api_server_impact: str
    scheduler_impact: str
    estimated_overhead: str


@dataclass(frozen=True)
class AlternativeScenario(_Serializable):
    replicas: int
    projected_usage: float
    safe: bool


@dataclass(frozen=True)
class ScalingImpactOutput(_Serializable):
    deployment: str
    namespace: str
    current_state: ResourceState
    projected_state: ResourceState
    namespace_impact: NamespaceImpact
    infrastructure_impact: Optional[InfrastructureImpact]
    warnings: Tuple[str, ...]
    recommendation: str
    alternative_scenarios: Tuple[AlternativeScenario, ...]
    analyzed_at: str
    overhead_factor: float
    data_quality: Dict[str, DataQuality] = field(default_factory=dict)
