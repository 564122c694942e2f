import json
import os

import pytest

import orchestrator
from analysis.errors import InvalidInput, UpstreamUnavailable
from conftest import FakeProvider


@pytest.fixture
def capacity_provider(quota):
    return FakeProvider(quota=quota, cluster_quota=quota, history=([40.0, 42.0], [20.0, 21.0]))


class TestCalculatePodCapacity:

    def test_namespace_capacity(self, capacity_provider, tuning, fixed_today):
        out = orchestrator.calculate_pod_capacity(
            {"namespace": "shop"}, provider=capacity_provider, tuning=tuning, today=fixed_today
        )

        assert out["status"] == "success"
        assert out["namespace"] == "shop"
        assert out["namespace_quota"] == {"cpu_limit": "4 cores", "memory_limit": "8.0Gi", "pod_count_limit": 50}
        assert out["recommended_limit"]["pod_profile"] == "medium"
        assert out["recommended_limit"]["safe_pod_count"] == 12
        assert set(out["pod_estimates"]) == {"small", "medium", "large"}
        assert out["safety_margin_percent"] == 15.0
        assert out["data_quality"] == {"quota": "measured", "history": "measured"}
        assert out["trending"]["daily_cpu_growth_percent"] == 2.0
        assert out["trending"]["daily_memory_growth_percent"] == 1.0
        assert out["trending"]["days_until_85_percent"] == 30
        json.dumps(out)

    def test_exhaustion_notice(self, quota, tuning, fixed_today):
        provider = FakeProvider(quota=quota, history=([15.0, 25.0], [25.0, 25.0]))
        out = orchestrator.calculate_pod_capacity(
            {"namespace": "shop"}, provider=provider, tuning=tuning, today=fixed_today
        )
        assert out["trending"]["days_until_85_percent"] == 6
        assert out["trending"]["projected_date"] == "2026-03-07"
        assert out["recommendation"].endswith(" Current trend suggests capacity exhaustion in 6 days.")

    def test_cluster_scope_is_default(self, capacity_provider, tuning):
        out = orchestrator.calculate_pod_capacity({}, provider=capacity_provider, tuning=tuning)
        assert out["namespace"] == "cluster"
        assert "cluster_quota" in capacity_provider.calls
        assert "history" not in capacity_provider.calls
        assert out["data_quality"] == {"quota": "measured", "history": "default"}
        assert out["trending"]["daily_cpu_growth_percent"] == 1.0

    def test_cluster_scope_case_insensitive(self, capacity_provider, tuning):
        out = orchestrator.calculate_pod_capacity({"namespace": "Cluster"}, provider=capacity_provider, tuning=tuning)
        assert out["namespace"] == "cluster"

    def test_trending_can_be_disabled(self, capacity_provider, tuning):
        out = orchestrator.calculate_pod_capacity(
            {"namespace": "shop", "include_trending": False}, provider=capacity_provider, tuning=tuning
        )
        assert "trending" not in out
        assert out["data_quality"] == {"quota": "measured"}

    def test_safety_margin_percent(self, capacity_provider, tuning):
        out = orchestrator.calculate_pod_capacity(
            {"namespace": "shop", "safety_margin": 50}, provider=capacity_provider, tuning=tuning
        )
        assert out["recommended_limit"]["safe_pod_count"] == 7
        assert out["safety_margin_percent"] == 50.0

    def test_custom_resources(self, capacity_provider, tuning):
        out = orchestrator.calculate_pod_capacity(
            {"namespace": "shop", "pod_profile": "custom", "custom_resources": {"cpu": "300m", "memory": "512Mi"}},
            provider=capacity_provider, tuning=tuning,
        )
        assert out["recommended_limit"]["pod_profile"] == "custom"
        assert out["pod_estimates"]["custom"]["max_pods"] == 10

    def test_quota_failure_degrades_to_default(self, tuning):
        provider = FakeProvider(quota=UpstreamUnavailable("down"), history=UpstreamUnavailable("down"))
        out = orchestrator.calculate_pod_capacity({"namespace": "shop"}, provider=provider, tuning=tuning)
        assert out["status"] == "success"
        assert out["data_quality"] == {"quota": "default", "history": "default"}
        assert out["namespace_quota"]["cpu_limit"] == "4 cores"

    @pytest.mark.parametrize("args", [
        {"safety_margin": 60},
        {"safety_margin": -1},
        {"safety_margin": "15"},
        {"safety_margin": True},
        {"pod_profile": "huge"},
        {"pod_profile": "custom"},
        {"custom_resources": {"cpu": "lots", "memory": "128Mi"}},
        {"custom_resources": {"cpu": "100m"}},
        {"custom_resources": "100m"},
        {"include_trending": "maybe"},
    ])
    def test_invalid_arguments(self, capacity_provider, tuning, args):
        args = dict(args, namespace="shop")
        with pytest.raises(InvalidInput):
            orchestrator.calculate_pod_capacity(args, provider=capacity_provider, tuning=tuning)


class TestAnalyzeScalingImpact:

    def test_scaling_impact(self, provider, tuning, fixed_now):
        out = orchestrator.analyze_scaling_impact(
            {"deployment": "web", "namespace": "shop", "target_replicas": 5},
            provider=provider, tuning=tuning, now=fixed_now,
        )

        assert out["status"] == "success"
        assert out["deployment"] == "web"
        assert out["namespace_impact"]["projected_usage_percent"] == 36.0
        assert out["infrastructure_impact"]["etcd_impact"] == "low"
        assert out["analyzed_at"] == "2026-03-01T12:00:00Z"
        assert out["alternative_scenarios"][0] == {"replicas": 4, "projected_usage": 30.8, "safe": True}
        assert out["data_quality"]["quota"] == "measured"
        json.dumps(out)

    def test_without_infrastructure(self, provider, tuning):
        out = orchestrator.analyze_scaling_impact(
            {"deployment": "web", "namespace": "shop", "target_replicas": 5, "include_infrastructure": False},
            provider=provider, tuning=tuning,
        )
        assert "infrastructure_impact" not in out

    def test_numeric_coercion(self, provider, tuning):
        out = orchestrator.analyze_scaling_impact(
            {"deployment": "web", "namespace": "shop", "target_replicas": 5.0, "current_replicas": "2"},
            provider=provider, tuning=tuning,
        )
        assert out["projected_state"]["replicas"] == 5
        assert out["current_state"]["replicas"] == 2

    @pytest.mark.parametrize("args", [
        {"deployment": "web", "namespace": "shop"},
        {"deployment": "web", "namespace": "shop", "target_replicas": 0},
        {"deployment": "web", "namespace": "shop", "target_replicas": 2.5},
        {"deployment": "web", "namespace": "shop", "target_replicas": True},
        {"deployment": "web", "namespace": "shop", "target_replicas": "many"},
        {"deployment": "", "namespace": "shop", "target_replicas": 3},
        {"namespace": "shop", "target_replicas": 3},
        {"deployment": "web", "namespace": "shop", "target_replicas": 3, "current_replicas": -1},
    ])
    def test_invalid_arguments(self, provider, tuning, args):
        with pytest.raises(InvalidInput):
            orchestrator.analyze_scaling_impact(args, provider=provider, tuning=tuning)


class TestCli:

    @pytest.fixture(autouse=True)
    def _quiet(self, monkeypatch):
        monkeypatch.setattr(orchestrator, 'setup_logging', lambda: None)

    def test_scaling_impact_writes_output(self, monkeypatch, provider, temp_output_dir):
        monkeypatch.setattr(orchestrator, 'PrometheusSnapshotProvider', lambda **_: provider)
        path = temp_output_dir / "nested" / "impact.json"

        rc = orchestrator.main([
            "scaling-impact", "--deployment", "web", "--namespace", "shop",
            "--target-replicas", "5", "--output", str(path),
        ])

        assert rc == 0
        data = json.loads(path.read_text())
        assert data["status"] == "success"
        assert data["projected_state"]["replicas"] == 5
        # no temp files left behind
        assert [p.name for p in path.parent.iterdir()] == ["impact.json"]

    def test_save_uses_output_dir(self, monkeypatch, quota, temp_output_dir):
        monkeypatch.setattr(orchestrator, 'PrometheusSnapshotProvider', lambda **_: FakeProvider(cluster_quota=quota))
        monkeypatch.setattr(orchestrator, 'get_output_path',
                            lambda command: str(temp_output_dir / f"{command}_output.json"))

        assert orchestrator.main(["capacity", "--save"]) == 0
        data = json.loads((temp_output_dir / "capacity_output.json").read_text())
        assert data["namespace"] == "cluster"

    def test_capacity_to_stdout(self, monkeypatch, capsys, quota):
        monkeypatch.setattr(orchestrator, 'PrometheusSnapshotProvider', lambda **_: FakeProvider(quota=quota))

        rc = orchestrator.main(["capacity", "--namespace", "shop", "--no-trending"])

        assert rc == 0
        data = json.loads(capsys.readouterr().out)
        assert data["namespace"] == "shop"
        assert "trending" not in data

    def test_custom_resources_from_flags(self, monkeypatch, capsys, quota):
        monkeypatch.setattr(orchestrator, 'PrometheusSnapshotProvider', lambda **_: FakeProvider(quota=quota))

        rc = orchestrator.main([
            "capacity", "--namespace", "shop", "--pod-profile", "custom",
            "--cpu", "300m", "--memory", "512Mi", "--no-trending",
        ])

        assert rc == 0
        assert json.loads(capsys.readouterr().out)["recommended_limit"]["pod_profile"] == "custom"

    def test_invalid_input_exit_code(self, monkeypatch, provider):
        monkeypatch.setattr(orchestrator, 'PrometheusSnapshotProvider', lambda **_: provider)
        rc = orchestrator.main([
            "scaling-impact", "--deployment", "web", "--namespace", "shop", "--target-replicas", "0",
        ])
        assert rc == 2

    def test_invalid_safety_margin_exit_code(self, monkeypatch, provider):
        monkeypatch.setattr(orchestrator, 'PrometheusSnapshotProvider', lambda **_: provider)
        assert orchestrator.main(["capacity", "--safety-margin", "75"]) == 2


def test_atomic_write_replaces_existing(tmp_path):
    path = tmp_path / "out.json"
    path.write_text("old")
    orchestrator._atomic_write(str(path), "new")
    assert path.read_text() == "new"
    assert os.listdir(tmp_path) == ["out.json"]
