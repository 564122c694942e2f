"""
Scaling impact analysis - what happens to a namespace when a deployment is
scaled from its current replica count to a target.

Execute flow:
  1. resolve current replicas (explicit override wins over the deployment snapshot)
  2. resolve per-pod baseline and namespace quota, with conservative defaults
  3. apply the replica overhead factor and project totals
  4. compute namespace impact, optional infrastructure impact
  5. derive warnings, one recommendation and alternative scenarios

Percentages here are not clamped: values above 100 signal an exceeded quota.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from analysis.errors import InvalidInput
from analysis.fallbacks import resolve_deployment, resolve_namespace_quota, resolve_pod_baseline
from analysis.infrastructure_impact import HIGH, analyze_infrastructure_impact
from analysis.models import (
    AlternativeScenario,
    InfrastructureImpact,
    NamespaceImpact,
    NamespaceQuota,
    PodMetricsSnapshot,
    ResourceState,
    ScalingImpactInput,
    ScalingImpactOutput,
)
from analysis.tuning import DEFAULT_TUNING, get_config_value
from normalize.units import MIB, clamp, safe_percent

logger = logging.getLogger(__name__)


def _scaling_cfg(tuning: Dict) -> Dict:
    return get_config_value(tuning or DEFAULT_TUNING, "scaling", default={})


def limiting_factor_by_percent(cpu_percent: float, memory_percent: float) -> str:
    """Memory when its projected percentage is strictly higher, otherwise cpu"""
    return "memory" if memory_percent > cpu_percent else "cpu"


def overhead_factor(current_replicas: int, target_replicas: int, tuning: Dict = None) -> float:
    """Per-pod cost inflation from fleet coordination, never below 1.0 even when scaling down"""
    cfg = _scaling_cfg(tuning)
    per_replica = cfg.get("overhead_per_replica", 0.02)
    cap = cfg.get("overhead_cap", 1.15)
    return clamp(1.0 + per_replica * (target_replicas - current_replicas), 1.0, cap)


def project_state(baseline: PodMetricsSnapshot, replicas: int, factor: float = 1.0) -> ResourceState:
    cpu_per_pod = baseline.cpu_millicores * factor
    memory_per_pod = baseline.memory_mb * factor
    return ResourceState(
        replicas=replicas,
        cpu_per_pod=round(cpu_per_pod, 2),
        memory_per_pod_mb=round(memory_per_pod, 2),
        total_cpu=round(cpu_per_pod * replicas, 2),
        total_memory_mb=round(memory_per_pod * replicas, 2),
    )


def calculate_namespace_impact(current: ResourceState, projected: ResourceState,
                               quota: NamespaceQuota, tuning: Dict = None) -> NamespaceImpact:
    cfg = _scaling_cfg(tuning)
    sentinel = cfg.get("zero_limit_sentinel_percent", 999.0)
    exceeded = cfg.get("exceeded_percent", 100.0)

    additional_cpu = projected.total_cpu - current.total_cpu
    # States carry MB; the quota is in bytes
    additional_memory = (projected.total_memory_mb - current.total_memory_mb) * MIB

    current_cpu_pct = safe_percent(quota.cpu_used_millicores, quota.cpu_limit_millicores, sentinel)
    current_mem_pct = safe_percent(quota.memory_used_bytes, quota.memory_limit_bytes, sentinel)

    projected_cpu_used = quota.cpu_used_millicores + additional_cpu
    projected_mem_used = quota.memory_used_bytes + additional_memory
    cpu_pct = safe_percent(projected_cpu_used, quota.cpu_limit_millicores, sentinel)
    mem_pct = safe_percent(projected_mem_used, quota.memory_limit_bytes, sentinel)
    usage_pct = max(cpu_pct, mem_pct)

    return NamespaceImpact(
        current_usage_percent=round(clamp(max(current_cpu_pct, current_mem_pct), 0, 100), 2),
        projected_usage_percent=round(usage_pct, 2),
        cpu_projected_percent=round(cpu_pct, 2),
        memory_projected_percent=round(mem_pct, 2),
        quota_exceeded=cpu_pct > exceeded or mem_pct > exceeded,
        headroom_remaining_percent=round(max(0.0, 100 - usage_pct), 2),
        limiting_factor=limiting_factor_by_percent(cpu_pct, mem_pct),
        cpu_quota_millicores=quota.cpu_limit_millicores,
        memory_quota_bytes=quota.memory_limit_bytes,
        cpu_used_millicores=quota.cpu_used_millicores,
        memory_used_bytes=quota.memory_used_bytes,
        cpu_projected_millicores=int(projected_cpu_used),
        memory_projected_bytes=int(projected_mem_used),
    )


def generate_warnings(impact: NamespaceImpact, infra: Optional[InfrastructureImpact],
                      tuning: Dict = None) -> List[str]:
    cfg = _scaling_cfg(tuning)
    warnings: List[str] = []
    projected = impact.projected_usage_percent

    if impact.quota_exceeded:
        warnings.append(f"CRITICAL: Namespace quota will be exceeded (projected: {projected:.1f}%)")
    elif projected >= cfg.get("critical_percent", 95.0):
        warnings.append(f"CRITICAL: Resource usage will approach critical levels (projected: {projected:.1f}%)")
    elif projected >= cfg.get("warning_percent", 85.0):
        warnings.append(f"WARNING: Resource usage will approach threshold (projected: {projected:.1f}%)")

    if impact.headroom_remaining_percent < cfg.get("low_headroom_percent", 10.0):
        warnings.append(
            f"{impact.limiting_factor.capitalize()} is the limiting factor with only "
            f"{impact.headroom_remaining_percent:.1f}% headroom remaining"
        )

    if infra is not None:
        if infra.api_server_impact == HIGH:
            warnings.append("Control plane API server load will increase significantly")
        if infra.etcd_impact == HIGH:
            warnings.append("etcd storage and performance may be impacted")
        if infra.scheduler_impact == HIGH:
            warnings.append("Scheduler may experience increased load during scaling")

    return warnings


def safe_replica_count(projected_percent: float, target_replicas: int, tuning: Dict = None) -> int:
    """Replica count expected to land near the safe target usage, strictly below target when possible"""
    if projected_percent <= 0:
        return target_replicas
    ratio = _scaling_cfg(tuning).get("safe_target_percent", 85.0) / projected_percent
    safe = int(target_replicas * ratio)
    return max(1, min(safe, target_replicas - 1))


def generate_recommendation(impact: NamespaceImpact, infra: Optional[InfrastructureImpact],
                            target_replicas: int, tuning: Dict = None) -> str:
    cfg = _scaling_cfg(tuning)
    projected = impact.projected_usage_percent

    if impact.quota_exceeded:
        return (f"Scaling to {target_replicas} replicas will exceed namespace quota. "
                f"Consider increasing namespace {impact.limiting_factor} quota or reducing target replicas.")

    if projected >= cfg.get("critical_percent", 95.0):
        safe = safe_replica_count(projected, target_replicas, tuning)
        return (f"Scaling to {target_replicas} replicas will put resources at critical levels ({projected:.1f}%). "
                f"Consider scaling to {safe} replicas instead (projected: ~{cfg.get('safe_target_percent', 85.0):.0f}%) "
                f"or increase namespace quota by 20%.")

    if projected >= cfg.get("warning_percent", 85.0):
        return (f"Scaling to {target_replicas} replicas is possible but will approach capacity limits "
                f"({projected:.1f}%). Monitor closely after scaling.")

    if infra is not None and HIGH in (infra.api_server_impact, infra.etcd_impact):
        return (f"Scaling to {target_replicas} replicas is safe from a quota perspective ({projected:.1f}%), "
                f"but may impact control plane performance. Consider scaling gradually.")

    return (f"Scaling to {target_replicas} replicas is safe. Projected resource usage: {projected:.1f}% "
            f"with {impact.headroom_remaining_percent:.1f}% headroom remaining.")


def generate_alternative_scenarios(current_replicas: int, target_replicas: int,
                                   baseline: PodMetricsSnapshot, quota: NamespaceQuota,
                                   factor: float, tuning: Dict = None) -> List[AlternativeScenario]:
    """Nearby replica counts below the target, then the current fleet as a reference point"""
    cfg = _scaling_cfg(tuning)
    safe_limit = cfg.get("warning_percent", 85.0)
    display_cap = cfg.get("scenario_display_cap_percent", 150.0)
    sentinel = cfg.get("zero_limit_sentinel_percent", 999.0)

    current = project_state(baseline, current_replicas)
    scenarios: List[AlternativeScenario] = []

    for step in range(1, int(cfg.get("scenario_steps", 2)) + 1):
        replicas = target_replicas - step
        if replicas < 1 or replicas <= current_replicas:
            continue
        impact = calculate_namespace_impact(current, project_state(baseline, replicas, factor), quota, tuning)
        usage = impact.projected_usage_percent
        scenarios.append(AlternativeScenario(
            replicas=replicas,
            projected_usage=round(clamp(usage, 0, display_cap), 2),
            safe=usage <= safe_limit,
        ))

    if target_replicas > current_replicas:
        usage = max(
            safe_percent(quota.cpu_used_millicores, quota.cpu_limit_millicores, sentinel),
            safe_percent(quota.memory_used_bytes, quota.memory_limit_bytes, sentinel),
        )
        scenarios.append(AlternativeScenario(
            replicas=current_replicas,
            projected_usage=round(clamp(usage, 0, display_cap), 2),
            safe=usage <= safe_limit,
        ))

    return scenarios


def _validate(request: ScalingImpactInput) -> None:
    if not request.deployment or not str(request.deployment).strip():
        raise InvalidInput("deployment name is required")
    if not request.namespace or not str(request.namespace).strip():
        raise InvalidInput("namespace is required")
    if not isinstance(request.target_replicas, int) or request.target_replicas < 1:
        raise InvalidInput("target_replicas must be at least 1")
    if request.current_replicas is not None and (
            not isinstance(request.current_replicas, int) or request.current_replicas < 0):
        raise InvalidInput("current_replicas must be zero or greater")


class ScalingImpactAnalyzer:
    """Models current and projected resource state for a replica change.

    `provider` supplies snapshots through get_deployment, get_pod_metrics,
    get_namespace_quota and get_namespace_usage; each is read once per call.
    """

    def __init__(self, provider, tuning: Optional[Dict] = None):
        self.provider = provider
        self.tuning = tuning or DEFAULT_TUNING

    def execute(self, deployment: str, namespace: str, target_replicas: int,
                current_replicas: Optional[int] = None, include_infrastructure: bool = True,
                now: Optional[datetime] = None) -> ScalingImpactOutput:
        request = ScalingImpactInput(
            deployment=deployment,
            namespace=namespace,
            target_replicas=target_replicas,
            current_replicas=current_replicas,
            include_infrastructure=include_infrastructure,
        )
        return self.analyze(request, now=now)

    def analyze(self, request: ScalingImpactInput, now: Optional[datetime] = None) -> ScalingImpactOutput:
        _validate(request)
        ns, name = request.namespace, request.deployment

        deployment, deployment_quality = resolve_deployment(self.provider, ns, name, self.tuning)
        current_replicas = request.current_replicas
        if current_replicas is None:
            current_replicas = deployment.replicas

        baseline, baseline_quality = resolve_pod_baseline(
            self.provider, ns, name, deployment, deployment_quality, self.tuning
        )
        quota, quota_quality = resolve_namespace_quota(self.provider, ns, self.tuning)

        target = request.target_replicas
        factor = overhead_factor(current_replicas, target, self.tuning)
        current_state = project_state(baseline, current_replicas)
        projected_state = project_state(baseline, target, factor)

        impact = calculate_namespace_impact(current_state, projected_state, quota, self.tuning)

        infra = None
        if request.include_infrastructure:
            infra = analyze_infrastructure_impact(current_replicas, target, ns, self.tuning)

        logger.debug(
            f"[{ns}/{name}] {current_replicas}->{target} replicas: overhead={factor:.2f} "
            f"projected={impact.projected_usage_percent:.1f}% limiting={impact.limiting_factor}"
        )

        now = now or datetime.now(timezone.utc)
        return ScalingImpactOutput(
            deployment=name,
            namespace=ns,
            current_state=current_state,
            projected_state=projected_state,
            namespace_impact=impact,
            infrastructure_impact=infra,
            warnings=tuple(generate_warnings(impact, infra, self.tuning)),
            recommendation=generate_recommendation(impact, infra, target, self.tuning),
            alternative_scenarios=tuple(generate_alternative_scenarios(
                current_replicas, target, baseline, quota, factor, self.tuning
            )),
            analyzed_at=now.isoformat(timespec='seconds').replace('+00:00', 'Z'),
            overhead_factor=round(factor, 4),
            data_quality={
                "deployment": deployment_quality,
                "pod_metrics": baseline_quality,
                "quota": quota_quality,
            },
        )
