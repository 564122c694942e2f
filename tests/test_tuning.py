import pytest

from analysis.tuning import DEFAULT_TUNING, get_config_value, load_tuning


def test_get_config_value_nested():
    assert get_config_value(DEFAULT_TUNING, "scaling", "overhead_cap") == 1.15
    assert get_config_value(DEFAULT_TUNING, "scaling", "missing", default=7) == 7
    assert get_config_value(DEFAULT_TUNING, "capacity", "profiles", "medium", "memory_mb") == 128


def test_load_tuning_without_path_is_a_copy():
    t = load_tuning(None)
    t["scaling"]["overhead_cap"] = 2.0
    assert DEFAULT_TUNING["scaling"]["overhead_cap"] == 1.15


def test_load_tuning_merges_yaml(tmp_path):
    path = tmp_path / "tuning.yaml"
    path.write_text(
        "capacity:\n"
        "  profiles:\n"
        "    medium:\n"
        "      cpu_millicores: 250\n"
        "scaling:\n"
        "  warning_percent: 80\n"
    )
    t = load_tuning(str(path))
    assert t["capacity"]["profiles"]["medium"] == {"cpu_millicores": 250, "memory_mb": 128}
    assert t["capacity"]["profiles"]["small"]["cpu_millicores"] == 100
    assert t["scaling"]["warning_percent"] == 80
    assert t["scaling"]["critical_percent"] == 95.0


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_tuning(str(path)) == DEFAULT_TUNING


def test_non_mapping_yaml_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError):
        load_tuning(str(path))
