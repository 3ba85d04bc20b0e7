"""Tests for config loading and schema validation."""
from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from flightdeck.config import DEFAULT_CONFIG, FlightdeckConfig, get_config, load_config
from flightdeck.config import loader as config_loader
from flightdeck.config.schema import (
    CatalogConfig,
    CommitLintConfig,
    GatesConfig,
    TelemetryConfig,
    WorktreeConfig,
)
from flightdeck.domain.errors import ConfigError


def test_get_config_default():
    cfg = get_config()
    assert cfg is DEFAULT_CONFIG
    assert "default" in cfg.models
    assert cfg.workspace_dir == ".flightdeck"


def test_default_gate_table():
    profiles = DEFAULT_CONFIG.gates.profiles
    assert profiles["application_code"] == [["test-runner"], ["code-reviewer", "security-auditor"]]
    assert profiles["infrastructure_config"] == [["security-auditor"], ["deployment-engineer"]]
    assert profiles["agent_prompt"] == [["ai-prompt-engineer"], ["code-reviewer"]]
    assert DEFAULT_CONFIG.gates.retry_limits == {"test-runner": 3, "code-reviewer": 2, "security-auditor": 2}
    assert DEFAULT_CONFIG.gates.coverage_threshold == 80.0


def test_load_config_from_json(tmp_path, monkeypatch):
    path = tmp_path / "flightdeck.json"
    path.write_text(json.dumps({
        "models": {"default": {"base_url": "http://127.0.0.1:9000/v1", "model": "my-model"}},
        "workspace_dir": ".runs",
    }), encoding="utf-8")
    monkeypatch.setenv("FLIGHTDECK_CONFIG_PATH", str(path))
    cfg = load_config()
    assert cfg.models["default"].model == "my-model"
    assert cfg.workspace_dir == ".runs"


def test_load_config_from_yaml(tmp_path, monkeypatch):
    path = tmp_path / "flightdeck.yaml"
    path.write_text(
        "gates:\n"
        "  coverage_threshold: 90\n"
        "  retry_limits:\n"
        "    test-runner: 5\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("FLIGHTDECK_CONFIG_PATH", str(path))
    cfg = load_config()
    assert cfg.gates.coverage_threshold == 90
    assert cfg.gates.retry_limits == {"test-runner": 5}


def test_load_config_missing_file_returns_default(tmp_path, monkeypatch):
    monkeypatch.setenv("FLIGHTDECK_CONFIG_PATH", str(tmp_path / "nope.json"))
    assert load_config() is DEFAULT_CONFIG


def test_load_config_non_mapping_raises(tmp_path, monkeypatch):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    monkeypatch.setenv("FLIGHTDECK_CONFIG_PATH", str(path))
    with pytest.raises(ConfigError, match="mapping"):
        load_config()


def test_load_config_invalid_yaml_raises_config_error(tmp_path, monkeypatch):
    path = tmp_path / "bad.yaml"
    path.write_text("gates: [unclosed\n", encoding="utf-8")
    monkeypatch.setenv("FLIGHTDECK_CONFIG_PATH", str(path))
    with pytest.raises(ConfigError, match="bad.yaml"):
        load_config()


def test_load_config_invalid_json_raises_config_error(tmp_path, monkeypatch):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    monkeypatch.setenv("FLIGHTDECK_CONFIG_PATH", str(path))
    with pytest.raises(ConfigError):
        load_config()


def test_load_config_failed_validation_raises_config_error(tmp_path, monkeypatch):
    path = tmp_path / "limits.yaml"
    path.write_text("gates:\n  retry_limits:\n    test-runner: 0\n", encoding="utf-8")
    monkeypatch.setenv("FLIGHTDECK_CONFIG_PATH", str(path))
    with pytest.raises(ConfigError, match="Retry limits must be at least 1"):
        load_config()


def test_load_config_is_cached(tmp_path, monkeypatch):
    path = tmp_path / "c.json"
    path.write_text("{}", encoding="utf-8")
    monkeypatch.setenv("FLIGHTDECK_CONFIG_PATH", str(path))
    assert load_config() is load_config()


def test_workspace_and_pushover_env(monkeypatch):
    monkeypatch.setenv("FLIGHTDECK_WORKSPACE", "/tmp/ws")
    monkeypatch.setenv("FLIGHTDECK_PUSHOVER_TOKEN", "tok")
    monkeypatch.setenv("FLIGHTDECK_PUSHOVER_USER", "usr")
    monkeypatch.setattr(config_loader, "_env", None)
    assert config_loader.workspace_override() == "/tmp/ws"
    assert config_loader.pushover_credentials() == ("tok", "usr")


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------

def test_catalog_rejects_agent_in_two_categories():
    with pytest.raises(ValidationError, match="listed under both"):
        CatalogConfig(agent_types={"coding": ["bug-fixer"], "review": ["bug-fixer"]},
                      tdd_agents=[], gate_capable_agents=[])


def test_catalog_rejects_tdd_agent_that_is_not_coding():
    with pytest.raises(ValidationError, match="tdd_agents"):
        CatalogConfig(agent_types={"coding": ["bug-fixer"], "review": ["code-reviewer"]},
                      tdd_agents=["code-reviewer"], gate_capable_agents=[])


def test_catalog_rejects_unclassified_gate_agent():
    with pytest.raises(ValidationError, match="gate_capable_agents"):
        CatalogConfig(agent_types={"coding": ["bug-fixer"]}, tdd_agents=[], gate_capable_agents=["ghost"])


def test_gates_reject_unknown_default_profile():
    with pytest.raises(ValidationError, match="default_profile"):
        GatesConfig(profiles={"docs": [["code-reviewer"]]})


def test_gates_reject_empty_stage():
    with pytest.raises(ValidationError, match="empty stage"):
        GatesConfig(profiles={"application_code": [[]]})


def test_gates_reject_zero_retry_limit():
    with pytest.raises(ValidationError, match="at least 1"):
        GatesConfig(retry_limits={"test-runner": 0})


def test_gates_reject_bad_coverage_threshold():
    with pytest.raises(ValidationError, match="coverage_threshold"):
        GatesConfig(coverage_threshold=120)


def test_worktree_timeouts_have_a_floor():
    with pytest.raises(ValidationError, match="at least"):
        WorktreeConfig(remove_timeout_s=5)


def test_commit_lint_rejects_invalid_regex():
    with pytest.raises(ValidationError, match="valid regex"):
        CommitLintConfig(ref_pattern="([unclosed")


def test_telemetry_rejects_unknown_exporter():
    with pytest.raises(ValidationError, match="exporter"):
        TelemetryConfig(exporter="zipkin")


def test_profile_with_unclassified_agent_rejected():
    with pytest.raises(ValidationError, match="unclassified"):
        FlightdeckConfig(gates={"profiles": {"application_code": [["mystery-gate"]]}})


def test_agent_model_map_must_point_at_known_model():
    with pytest.raises(ValidationError, match="unknown model key"):
        FlightdeckConfig(agent_model_map={"opus": "big"})


def test_catalog_config_to_catalog():
    cat = DEFAULT_CONFIG.catalog.to_catalog()
    assert cat.is_coding("feature-developer")
    assert cat.is_gate_capable("deployment-engineer")
