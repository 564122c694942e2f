import math
import re
from typing import Optional


KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB
TIB = 1024 * GIB

_MEMORY_SUFFIXES = {
    "Ki": KIB,
    "Mi": MIB,
    "Gi": GIB,
    "Ti": TIB,
    "K": 1000,
    "M": 1000 ** 2,
    "G": 1000 ** 3,
    "T": 1000 ** 4,
}

_QUANTITY_RE = re.compile(r'^(?P<num>[0-9]*\.?[0-9]+)(?P<suffix>[A-Za-z]*)$')


def format_cpu(millicores: int) -> str:
    if millicores >= 1000:
        return f"{millicores // 1000} cores"
    return f"{millicores}m"


def format_memory(num_bytes: int) -> str:
    """Render bytes with binary units. Gi and above carry one decimal place."""
    if num_bytes >= TIB:
        return f"{num_bytes / TIB:.1f}Ti"
    if num_bytes >= GIB:
        return f"{num_bytes / GIB:.1f}Gi"
    if num_bytes >= MIB:
        return f"{num_bytes // MIB}Mi"
    if num_bytes >= KIB:
        return f"{num_bytes // KIB}Ki"
    return f"{num_bytes} bytes"


def calculate_percent(used: float, total: float) -> float:
    """Percentage rounded to one decimal. A zero or negative total yields 0."""
    if total <= 0:
        return 0.0
    return round(used / total * 100.0, 1)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def safe_percent(used: float, limit: float, sentinel: float) -> float:
    """Unrounded usage percentage for impact math.

    A non-positive limit cannot produce a finite ratio: nothing used reads as 0,
    anything used reads as `sentinel`.
    """
    if limit <= 0:
        return 0.0 if used <= 0 else sentinel
    pct = used / limit * 100.0
    if math.isnan(pct) or math.isinf(pct):
        return sentinel
    return pct


def _split_quantity(quantity: str) -> Optional[tuple]:
    m = _QUANTITY_RE.match(quantity.strip())
    if not m:
        return None
    return float(m.group('num')), m.group('suffix')


def parse_cpu_millicores(quantity: str) -> int:
    """Parse a Kubernetes CPU quantity ('200m', '0.5', '2') into millicores."""
    if quantity is None or str(quantity).strip() == "":
        raise ValueError("cpu quantity must not be empty")
    parts = _split_quantity(str(quantity))
    if parts is None:
        raise ValueError(f"invalid cpu quantity: {quantity!r}")
    value, suffix = parts
    if suffix == "m":
        return int(value)
    if suffix:
        raise ValueError(f"invalid cpu quantity: {quantity!r}")
    return int(round(value * 1000))


def parse_memory_bytes(quantity: str) -> int:
    """Parse a Kubernetes memory quantity ('128Mi', '1Gi', '500M', '1048576') into bytes."""
    if quantity is None or str(quantity).strip() == "":
        raise ValueError("memory quantity must not be empty")
    parts = _split_quantity(str(quantity))
    if parts is None:
        raise ValueError(f"invalid memory quantity: {quantity!r}")
    value, suffix = parts
    if not suffix:
        return int(value)
    if suffix not in _MEMORY_SUFFIXES:
        raise ValueError(f"invalid memory quantity: {quantity!r}")
    return int(value * _MEMORY_SUFFIXES[suffix])


def parse_memory_mb(quantity: str) -> int:
    """Memory quantity in whole MiB, rounded up so a non-zero request never becomes 0"""
    return -(-parse_memory_bytes(quantity) // MIB)
