import dataclasses

import pytest

from analysis.errors import CapacityPlanningError, InvalidInput, InvalidQuota, UpstreamUnavailable
from analysis.models import (
    AvailableCapacity,
    DataQuality,
    NamespaceQuota,
    PodProfile,
    PodResources,
    to_plain,
)


@pytest.mark.parametrize("value,expected", [
    (None, PodProfile.MEDIUM),
    ("", PodProfile.MEDIUM),
    ("small", PodProfile.SMALL),
    ("LARGE", PodProfile.LARGE),
    ("custom", PodProfile.CUSTOM),
])
def test_pod_profile_parse(value, expected):
    assert PodProfile.parse(value) is expected


def test_pod_profile_parse_rejects_unknown():
    with pytest.raises(ValueError):
        PodProfile.parse("xl")


def test_snapshots_are_frozen():
    q = NamespaceQuota(cpu_limit_millicores=1000, memory_limit_bytes=1, pod_count_limit=1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        q.cpu_used_millicores = 5


def test_pod_resources_memory_bytes():
    assert PodResources(cpu_millicores=100, memory_mb=128).memory_bytes == 128 * 1024 * 1024


@pytest.mark.parametrize("cpu,mem,slots,exhausted", [
    (1, 1, 1, False),
    (0, 1, 1, True),
    (1, 0, 1, True),
    (1, 1, 0, True),
])
def test_available_capacity_exhausted(cpu, mem, slots, exhausted):
    assert AvailableCapacity(cpu_millicores=cpu, memory_bytes=mem, pod_slots=slots).exhausted is exhausted


def test_to_plain_handles_enums_and_tuples():
    assert to_plain({"q": DataQuality.ESTIMATED, "t": (1, 2)}) == {"q": "estimated", "t": [1, 2]}


def test_error_hierarchy():
    assert issubclass(InvalidInput, CapacityPlanningError)
    assert issubclass(InvalidInput, ValueError)
    assert issubclass(InvalidQuota, InvalidInput)
    assert issubclass(UpstreamUnavailable, CapacityPlanningError)
    assert not issubclass(UpstreamUnavailable, InvalidInput)
