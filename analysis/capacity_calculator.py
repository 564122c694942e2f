"""
Capacity calculator - multi-constraint pod admission estimates and usage trending.

Deterministic and side-effect free: the same quota snapshot always produces
the same CapacityResult.
"""
import logging
from datetime import date, timedelta
from typing import Dict, List, Optional

from analysis.errors import InvalidInput, InvalidQuota
from analysis.models import (
    AvailableCapacity,
    AvailableCapacityOutput,
    CapacityResult,
    CurrentUsageOutput,
    NamespaceQuota,
    NamespaceQuotaOutput,
    PodEstimate,
    PodProfile,
    PodResources,
    RecommendedLimit,
    TrendingInfo,
)
from analysis.tuning import DEFAULT_TUNING, get_config_value
from normalize.units import MIB, calculate_percent, format_cpu, format_memory

logger = logging.getLogger(__name__)

FALLBACK_SAFETY_MARGIN = 0.15

LIMIT_CPU = "cpu"
LIMIT_MEMORY = "memory"
LIMIT_POD_COUNT = "pod_count"


def _valid_margin(margin) -> bool:
    return margin is not None and 0 <= margin <= 1


def limiting_factor_by_smallest_count(by_cpu: int, by_memory: int, by_slots: int) -> str:
    """Name the constraint that admits the fewest pods.

    Ties resolve in fixed order cpu, memory, pod_count.
    """
    smallest = min(by_cpu, by_memory, by_slots)
    if by_cpu == smallest:
        return LIMIT_CPU
    if by_memory == smallest:
        return LIMIT_MEMORY
    return LIMIT_POD_COUNT


def profile_resources(profile: PodProfile, tuning: Dict = None) -> PodResources:
    """Resource preset for a non-custom profile"""
    tuning = tuning or DEFAULT_TUNING
    preset = get_config_value(tuning, "capacity", "profiles", profile.value)
    if preset is None:
        raise InvalidInput(f"profile {profile.value!r} has no preset; supply custom resources")
    return PodResources(cpu_millicores=int(preset["cpu_millicores"]), memory_mb=int(preset["memory_mb"]))


class CapacityCalculator:
    """Estimates how many pods of a given shape still fit into a namespace quota."""

    def __init__(self, safety_margin: Optional[float] = None, tuning: Optional[Dict] = None):
        self.tuning = tuning or DEFAULT_TUNING
        fallback = get_config_value(self.tuning, "capacity", "default_safety_margin", default=FALLBACK_SAFETY_MARGIN)
        if not _valid_margin(fallback):
            fallback = FALLBACK_SAFETY_MARGIN
        if not _valid_margin(safety_margin):
            if safety_margin is not None:
                logger.debug(f"Safety margin {safety_margin} outside [0,1], using {fallback}")
            safety_margin = fallback
        self.safety_margin = safety_margin

    # -------------------------------------------------------------------------
    # Pod capacity
    # -------------------------------------------------------------------------
    def calculate_pod_capacity(
        self,
        quota: Optional[NamespaceQuota],
        profile: PodProfile = PodProfile.MEDIUM,
        custom_resources: Optional[PodResources] = None,
        margin_override: Optional[float] = None,
    ) -> CapacityResult:
        if quota is None:
            raise InvalidQuota("namespace quota is required")
        try:
            profile = PodProfile(profile)
        except ValueError:
            raise InvalidInput(f"unknown pod profile: {profile!r}")
        if profile == PodProfile.CUSTOM and custom_resources is None:
            raise InvalidInput("custom pod profile requires custom resources")
        if custom_resources is not None and (custom_resources.cpu_millicores <= 0 or custom_resources.memory_mb <= 0):
            raise InvalidInput("custom resources must request positive cpu and memory")

        margin = margin_override if _valid_margin(margin_override) else self.safety_margin

        available = AvailableCapacity(
            cpu_millicores=max(0, quota.cpu_limit_millicores - quota.cpu_used_millicores),
            memory_bytes=max(0, quota.memory_limit_bytes - quota.memory_used_bytes),
            pod_slots=max(0, quota.pod_count_limit - quota.current_pod_count),
        )

        estimates: Dict[str, PodEstimate] = {}
        for preset in (PodProfile.SMALL, PodProfile.MEDIUM, PodProfile.LARGE):
            estimates[preset.value] = self.estimate(profile_resources(preset, self.tuning), available, margin)
        if custom_resources is not None:
            estimates[PodProfile.CUSTOM.value] = self.estimate(custom_resources, available, margin)

        if custom_resources is not None:
            recommended_profile = PodProfile.CUSTOM
            recommended_resources = custom_resources
        else:
            recommended_profile = profile
            recommended_resources = profile_resources(profile, self.tuning)
        recommended = estimates[recommended_profile.value]

        logger.debug(
            f"Capacity for {recommended_profile.value}: max={recommended.max_pods} "
            f"safe={recommended.safe_pods} limited by {recommended.limiting_factor}"
        )

        return CapacityResult(
            available=available,
            namespace_quota=NamespaceQuotaOutput(
                cpu_limit=format_cpu(quota.cpu_limit_millicores),
                memory_limit=format_memory(quota.memory_limit_bytes),
                pod_count_limit=quota.pod_count_limit,
            ),
            current_usage=CurrentUsageOutput(
                cpu=format_cpu(quota.cpu_used_millicores),
                memory=format_memory(quota.memory_used_bytes),
                cpu_percent=calculate_percent(quota.cpu_used_millicores, quota.cpu_limit_millicores),
                memory_percent=calculate_percent(quota.memory_used_bytes, quota.memory_limit_bytes),
                pod_count=quota.current_pod_count,
            ),
            available_capacity=AvailableCapacityOutput(
                cpu=format_cpu(available.cpu_millicores),
                memory=format_memory(available.memory_bytes),
                pod_slots=available.pod_slots,
            ),
            pod_estimates=estimates,
            recommended_limit=RecommendedLimit(
                pod_profile=recommended_profile.value,
                safe_pod_count=recommended.safe_pods,
                max_pod_count=recommended.max_pods,
                limiting_factor=recommended.limiting_factor,
                explanation=self._explanation(recommended, recommended_resources, available),
            ),
            recommendation=self._recommendation(recommended, recommended_profile, quota, margin),
            safety_margin=margin,
        )

    def estimate(self, resources: PodResources, available: AvailableCapacity, margin: float) -> PodEstimate:
        """Admission estimate for one pod shape against the available capacity"""
        slots = available.pod_slots
        by_cpu = available.cpu_millicores // resources.cpu_millicores if resources.cpu_millicores > 0 else slots
        by_memory = available.memory_bytes // resources.memory_bytes if resources.memory_bytes > 0 else slots

        max_pods = max(0, min(by_cpu, by_memory, slots))
        if available.exhausted:
            max_pods = 0
        safe_pods = max(0, int(max_pods * (1 - margin)))

        return PodEstimate(
            cpu_millicores=resources.cpu_millicores,
            memory_mb=resources.memory_mb,
            max_pods=max_pods,
            safe_pods=min(safe_pods, max_pods),
            limiting_factor=limiting_factor_by_smallest_count(by_cpu, by_memory, slots),
        )

    def _explanation(self, estimate: PodEstimate, resources: PodResources, available: AvailableCapacity) -> str:
        if estimate.limiting_factor == LIMIT_MEMORY:
            cpu_pods = available.cpu_millicores // resources.cpu_millicores if resources.cpu_millicores > 0 else 0
            return f"Memory constrains capacity. CPU could support {cpu_pods} more pods."
        if estimate.limiting_factor == LIMIT_CPU:
            mem_pods = available.memory_bytes // resources.memory_bytes if resources.memory_bytes > 0 else 0
            return f"CPU constrains capacity. Memory could support {mem_pods} more pods."
        return "Pod count limit constrains capacity. Consider increasing ResourceQuota pod limit."

    def _recommendation(self, estimate: PodEstimate, profile: PodProfile, quota: NamespaceQuota, margin: float) -> str:
        target_percent = int(round((1 - margin) * 100))

        if estimate.max_pods == 0:
            return ("No capacity available for additional pods. "
                    "Consider increasing namespace quota or removing unused pods.")

        if estimate.safe_pods == 0:
            return (f"Very limited capacity. Only {estimate.max_pods} pods can be added, "
                    f"but this would exceed {target_percent}% target utilization.")

        text = (f"Can safely run {estimate.safe_pods} more {profile.value}-profile pods. "
                f"Keep {estimate.limiting_factor} below {target_percent}% of quota for stability.")

        memory_percent = calculate_percent(quota.memory_used_bytes, quota.memory_limit_bytes)
        pressure = get_config_value(self.tuning, "capacity", "memory_pressure_percent", default=70.0)
        if memory_percent > pressure:
            text += f" Current memory usage is {memory_percent:.1f}%, monitor closely."
        return text

    # -------------------------------------------------------------------------
    # Trending
    # -------------------------------------------------------------------------
    def calculate_trending(
        self,
        historical_cpu: Optional[List[float]],
        historical_memory: Optional[List[float]],
        current_cpu_percent: float,
        current_memory_percent: float,
        today: Optional[date] = None,
    ) -> TrendingInfo:
        """Linear growth forecast from daily usage percentages (oldest first).

        Fewer than two samples for a resource means its default growth rate is used.
        """
        cfg = get_config_value(self.tuning, "trending", default={})
        threshold = float(cfg.get("threshold_percent", 85.0))
        max_days = int(cfg.get("max_days", 365))

        cpu_growth = daily_growth(historical_cpu)
        if cpu_growth is None:
            cpu_growth = float(cfg.get("default_cpu_growth_percent", 1.0))
        memory_growth = daily_growth(historical_memory)
        if memory_growth is None:
            memory_growth = float(cfg.get("default_memory_growth_percent", 1.5))

        days = days_until_threshold(
            current_cpu_percent, current_memory_percent, cpu_growth, memory_growth, threshold, max_days
        )

        projected_date = None
        if 0 < days < max_days:
            projected_date = ((today or date.today()) + timedelta(days=days)).isoformat()

        return TrendingInfo(
            daily_cpu_growth_percent=cpu_growth,
            daily_memory_growth_percent=memory_growth,
            days_until_85_percent=days,
            projected_date=projected_date,
            threshold_already_exceeded=current_cpu_percent >= threshold or current_memory_percent >= threshold,
        )


def daily_growth(values: Optional[List[float]]) -> Optional[float]:
    """Endpoint slope (last - first) / intervals, rounded to 2 decimals. None below two samples."""
    if not values or len(values) < 2:
        return None
    return round((values[-1] - values[0]) / (len(values) - 1), 2)


def days_until_threshold(current_cpu: float, current_memory: float,
                         cpu_growth: float, memory_growth: float,
                         threshold: float = 85.0, max_days: int = 365) -> int:
    """Days until the first resource crosses `threshold`, capped at `max_days`.

    A resource already at or past the threshold, or not growing, never crosses.
    """
    crossings = []
    if cpu_growth > 0 and current_cpu < threshold:
        crossings.append(int((threshold - current_cpu) / cpu_growth))
    if memory_growth > 0 and current_memory < threshold:
        crossings.append(int((threshold - current_memory) / memory_growth))

    days = min(crossings) if crossings else max_days
    return max(0, min(days, max_days))
