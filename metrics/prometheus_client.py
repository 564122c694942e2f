import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from config import (
    PROMETHEUS_URL,
    PROMETHEUS_TIMEOUT_SECONDS,
    PROMETHEUS_RETRY_COUNT,
    PROMETHEUS_RETRY_BACKOFF_BASE,
)

logger = logging.getLogger(__name__)


class PrometheusError(Exception):
    pass


class PrometheusConnectionError(PrometheusError):
    """Prometheus could not be reached after all retries"""
    pass


class PrometheusQueryError(PrometheusError):
    """Prometheus answered but rejected the query"""
    pass


def _now() -> float:
    return time.time()


def _get(path: str, params: Dict[str, Any], base_url: Optional[str] = None) -> Dict[str, Any]:
    """GET a Prometheus API path, retrying connection failures with exponential backoff.

    Query errors (non-200 or status != success) are not retried.
    """
    url = f"{(base_url or PROMETHEUS_URL).rstrip('/')}{path}"
    last_error: Optional[Exception] = None
    for attempt in range(PROMETHEUS_RETRY_COUNT):
        try:
            r = requests.get(url, params=params, timeout=PROMETHEUS_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            last_error = e
            delay = PROMETHEUS_RETRY_BACKOFF_BASE ** attempt
            logger.warning(f"Prometheus request failed (attempt {attempt + 1}/{PROMETHEUS_RETRY_COUNT}): {e}")
            time.sleep(delay)
            continue
        if r.status_code != 200:
            raise PrometheusQueryError(f"prometheus returned status {r.status_code}: {r.text}")
        data = r.json()
        if data.get("status") != "success":
            raise PrometheusQueryError(f"prometheus error: {data}")
        return data
    raise PrometheusConnectionError(f"request failed: {last_error}")


def query_instant(promql: str, base_url: Optional[str] = None) -> List[Dict[str, Any]]:
    """Query `/api/v1/query` and return the `data.result` vector."""
    data = _get("/api/v1/query", {"query": promql}, base_url=base_url)
    return data.get("data", {}).get("result", [])


def query_range(promql: str, start_ts: Optional[float] = None, end_ts: Optional[float] = None,
                step: str = "1d", base_url: Optional[str] = None,
                window_seconds: int = 7 * 86400) -> List[Dict[str, Any]]:
    """
    Query Prometheus `/api/v1/query_range` and return the `data.result` matrix.
    Caller is responsible for deterministic parsing.
    """
    if end_ts is None:
        end_ts = _now()
    if start_ts is None:
        start_ts = end_ts - window_seconds

    params = {
        "query": promql,
        "start": str(start_ts),
        "end": str(end_ts),
        "step": step,
    }
    data = _get("/api/v1/query_range", params, base_url=base_url)
    return data.get("data", {}).get("result", [])


def parse_matrix_values(matrix: Dict[str, Any]) -> List[Tuple[float, float]]:
    """
    Parse a Prometheus matrix result (single timeseries) into list of (timestamp, value).
    Expects `matrix` to be one element of `data['result']` as returned from query_range.
    """
    values = matrix.get("values") or []
    parsed: List[Tuple[float, float]] = []
    for ts_str, val_str in values:
        try:
            ts = float(ts_str)
            val = float(val_str)
        except (TypeError, ValueError):
            continue
        parsed.append((ts, val))
    return parsed


def extract_value(result: List[Dict[str, Any]], default: Optional[float] = None) -> Optional[float]:
    """Extract numeric value from the first sample of an instant vector"""
    if not result:
        return default
    try:
        val = result[0].get("value", [None, None])[1]
        return float(val) if val is not None else default
    except (ValueError, IndexError, TypeError):
        return default


def values_by_label(result: List[Dict[str, Any]], label: str) -> Dict[str, float]:
    """Map one label's value to the sample value for every series of an instant vector"""
    out: Dict[str, float] = {}
    for item in result:
        key = item.get("metric", {}).get(label)
        if key is None:
            continue
        try:
            out[key] = float(item.get("value", [None, None])[1])
        except (TypeError, ValueError, IndexError):
            continue
    return out
