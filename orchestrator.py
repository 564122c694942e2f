"""Orchestrator: tool entry points -> fetch snapshots -> engine -> JSON.

Both tools take a plain argument dict (as received over HTTP or built by the
CLI) and return a JSON-ready dict. Snapshots are fetched once per call;
upstream failures are replaced with defaults and reported in `data_quality`.
"""
import argparse
import dataclasses
import json
import logging
import os
import sys
import tempfile
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from config import (
    setup_logging, validate_config, ConfigValidationError,
    DEFAULT_SAFETY_MARGIN_PERCENT, TREND_HISTORY_DAYS, TUNING_CONFIG_PATH, get_output_path,
)
from analysis.capacity_calculator import CapacityCalculator
from analysis.errors import InvalidInput
from analysis.fallbacks import resolve_cluster_quota, resolve_namespace_quota, resolve_usage_history
from analysis.models import DataQuality, PodProfile, PodResources
from analysis.scaling_impact import ScalingImpactAnalyzer
from analysis.tuning import get_config_value, load_tuning
from metrics.snapshots import PrometheusSnapshotProvider
from normalize.units import parse_cpu_millicores, parse_memory_mb

# Configure logging
logger = logging.getLogger(__name__)

CLUSTER_SCOPE = "cluster"
MAX_SAFETY_MARGIN_PERCENT = 50.0


def _atomic_write(path: str, data: str) -> None:
    dirp = os.path.dirname(path) or '.'
    fd, tmp = tempfile.mkstemp(prefix='.tmp_capacity_', dir=dirp)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(data)
        # Atomic replace
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


def _default_tuning() -> Dict[str, Any]:
    return load_tuning(TUNING_CONFIG_PATH)


# =============================================================================
# Argument parsing
# =============================================================================
def _parse_bool(args: Dict[str, Any], key: str, default: bool) -> bool:
    v = args.get(key)
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    if isinstance(v, str) and v.lower() in ("true", "false"):
        return v.lower() == "true"
    raise InvalidInput(f"{key} must be a boolean, got {v!r}")


def _parse_int(args: Dict[str, Any], key: str, required: bool = False) -> Optional[int]:
    v = args.get(key)
    if v is None:
        if required:
            raise InvalidInput(f"{key} is required")
        return None
    if isinstance(v, bool):
        raise InvalidInput(f"{key} must be an integer, got {v!r}")
    if isinstance(v, float):
        if not v.is_integer():
            raise InvalidInput(f"{key} must be a whole number, got {v}")
        return int(v)
    try:
        return int(v)
    except (TypeError, ValueError):
        raise InvalidInput(f"{key} must be an integer, got {v!r}")


def _parse_safety_margin(args: Dict[str, Any]) -> float:
    v = args.get("safety_margin")
    if v is None:
        return float(DEFAULT_SAFETY_MARGIN_PERCENT)
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise InvalidInput(f"safety_margin must be a number, got {v!r}")
    if not 0 <= v <= MAX_SAFETY_MARGIN_PERCENT:
        raise InvalidInput(f"safety_margin must be between 0 and {MAX_SAFETY_MARGIN_PERCENT:.0f}, got {v}")
    return float(v)


def _parse_custom_resources(args: Dict[str, Any]) -> Optional[PodResources]:
    raw = args.get("custom_resources")
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise InvalidInput("custom_resources must be an object with cpu and memory")
    try:
        return PodResources(
            cpu_millicores=parse_cpu_millicores(raw.get("cpu")),
            memory_mb=parse_memory_mb(raw.get("memory")),
        )
    except ValueError as e:
        raise InvalidInput(f"invalid custom_resources: {e}")


# =============================================================================
# Tools
# =============================================================================
def calculate_pod_capacity(args: Optional[Dict[str, Any]] = None, provider=None,
                           tuning: Optional[Dict] = None, today: Optional[date] = None) -> Dict[str, Any]:
    """How many more pods of a profile fit into a namespace (or the whole cluster).

    Raises:
        InvalidInput: malformed tool arguments
    """
    args = args or {}
    namespace = str(args.get("namespace") or CLUSTER_SCOPE)
    try:
        profile = PodProfile.parse(args.get("pod_profile"))
    except ValueError as e:
        raise InvalidInput(str(e))
    custom = _parse_custom_resources(args)
    margin_percent = _parse_safety_margin(args)
    include_trending = _parse_bool(args, "include_trending", True)

    tuning = tuning or _default_tuning()
    provider = provider or PrometheusSnapshotProvider(tuning=tuning)
    cluster_scope = namespace.lower() == CLUSTER_SCOPE

    if cluster_scope:
        namespace = CLUSTER_SCOPE
        quota, quota_quality = resolve_cluster_quota(provider, tuning)
    else:
        quota, quota_quality = resolve_namespace_quota(provider, namespace, tuning)

    margin = margin_percent / 100.0
    calc = CapacityCalculator(margin, tuning)
    result = calc.calculate_pod_capacity(quota, profile, custom, margin_override=margin)

    data_quality = {"quota": quota_quality}

    if include_trending:
        if cluster_scope:
            cpu_hist: List[float] = []
            mem_hist: List[float] = []
            history_quality = DataQuality.DEFAULT
        else:
            cpu_hist, mem_hist, history_quality = resolve_usage_history(provider, namespace, TREND_HISTORY_DAYS)
        trending = calc.calculate_trending(
            cpu_hist, mem_hist,
            result.current_usage.cpu_percent,
            result.current_usage.memory_percent,
            today=today,
        )
        recommendation = result.recommendation
        notice_days = get_config_value(tuning, "trending", "exhaustion_notice_days", default=30)
        if 0 < trending.days_until_85_percent < notice_days:
            recommendation += (f" Current trend suggests capacity exhaustion in "
                               f"{trending.days_until_85_percent} days.")
        result = dataclasses.replace(result, trending=trending, recommendation=recommendation)
        data_quality["history"] = history_quality

    logger.info(
        f"[{namespace}] capacity: {result.recommended_limit.safe_pod_count} safe "
        f"{result.recommended_limit.pod_profile} pods (quota={quota_quality.value})"
    )

    out = result.to_dict()
    output: Dict[str, Any] = {
        "status": "success",
        "namespace": namespace,
        "namespace_quota": out["namespace_quota"],
        "current_usage": out["current_usage"],
        "available_capacity": out["available_capacity"],
        "pod_estimates": out["pod_estimates"],
        "recommended_limit": out["recommended_limit"],
        "recommendation": out["recommendation"],
        "safety_margin_percent": margin_percent,
        "data_quality": {k: v.value for k, v in data_quality.items()},
    }
    if out["trending"] is not None:
        output["trending"] = out["trending"]
    return output


def analyze_scaling_impact(args: Optional[Dict[str, Any]] = None, provider=None,
                           tuning: Optional[Dict] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """What happens to the namespace when a deployment is scaled to target_replicas.

    Raises:
        InvalidInput: malformed tool arguments
    """
    args = args or {}
    tuning = tuning or _default_tuning()
    analyzer = ScalingImpactAnalyzer(provider or PrometheusSnapshotProvider(tuning=tuning), tuning)
    result = analyzer.execute(
        deployment=str(args.get("deployment") or ""),
        namespace=str(args.get("namespace") or ""),
        target_replicas=_parse_int(args, "target_replicas", required=True),
        current_replicas=_parse_int(args, "current_replicas"),
        include_infrastructure=_parse_bool(args, "include_infrastructure", True),
        now=now,
    )

    logger.info(
        f"[{result.namespace}/{result.deployment}] {result.current_state.replicas}->"
        f"{result.projected_state.replicas} replicas: {result.namespace_impact.projected_usage_percent:.1f}% "
        f"projected, {len(result.warnings)} warning(s)"
    )

    output: Dict[str, Any] = {"status": "success"}
    output.update(result.to_dict())
    if output["infrastructure_impact"] is None:
        del output["infrastructure_impact"]
    return output


# =============================================================================
# CLI
# =============================================================================
def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--output", help="write JSON result to this path instead of stdout")
    common.add_argument("--save", action="store_true",
                        help="write JSON result to OUTPUT_DIR/<command>_output.json")

    parser = argparse.ArgumentParser(description="Kubernetes capacity planning tools")
    sub = parser.add_subparsers(dest="command", required=True)

    cap = sub.add_parser("capacity", parents=[common], help="remaining pod capacity")
    cap.add_argument("--namespace", default=CLUSTER_SCOPE)
    cap.add_argument("--pod-profile", default=PodProfile.MEDIUM.value,
                     choices=[p.value for p in PodProfile])
    cap.add_argument("--cpu", help="custom pod cpu request, e.g. 250m")
    cap.add_argument("--memory", help="custom pod memory request, e.g. 256Mi")
    cap.add_argument("--safety-margin", type=float, default=None, help="percent, 0-50")
    cap.add_argument("--no-trending", action="store_true")

    scale = sub.add_parser("scaling-impact", parents=[common], help="what-if scaling analysis")
    scale.add_argument("--deployment", required=True)
    scale.add_argument("--namespace", required=True)
    scale.add_argument("--target-replicas", type=int, required=True)
    scale.add_argument("--current-replicas", type=int, default=None)
    scale.add_argument("--no-infrastructure", action="store_true")
    return parser


def _tool_args(ns: argparse.Namespace) -> Dict[str, Any]:
    if ns.command == "capacity":
        args: Dict[str, Any] = {
            "namespace": ns.namespace,
            "pod_profile": ns.pod_profile,
            "safety_margin": ns.safety_margin,
            "include_trending": not ns.no_trending,
        }
        if ns.cpu or ns.memory:
            args["custom_resources"] = {"cpu": ns.cpu, "memory": ns.memory}
        return args
    return {
        "deployment": ns.deployment,
        "namespace": ns.namespace,
        "target_replicas": ns.target_replicas,
        "current_replicas": ns.current_replicas,
        "include_infrastructure": not ns.no_infrastructure,
    }


def main(argv: Optional[List[str]] = None) -> int:
    ns = _build_parser().parse_args(argv)

    # Setup logging first
    setup_logging()

    # Validate configuration
    try:
        validate_config()
    except ConfigValidationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    tool = calculate_pod_capacity if ns.command == "capacity" else analyze_scaling_impact
    try:
        out = tool(_tool_args(ns))
    except InvalidInput as e:
        logger.error(f"Invalid input: {e}")
        return 2

    data = json.dumps(out, indent=2)
    output_path = ns.output or (get_output_path(ns.command) if ns.save else None)
    if output_path:
        dirp = os.path.dirname(output_path)
        if dirp:
            os.makedirs(dirp, exist_ok=True)
        _atomic_write(output_path, data)
        logger.info(f"Wrote {ns.command} result to {output_path}")
    else:
        sys.stdout.write(data + "\n")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
