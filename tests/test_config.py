from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

from conductor.engine.config import EngineConfig
from conductor.engine.errors import ConfigError
from conductor.engine.models import AgentRole
from conductor.engine.yaml_config import load_yaml_config


def test_engine_config_defaults():
    cfg = EngineConfig()
    assert cfg.assistant_candidates[0] == "claude"
    assert cfg.auto_approve is True
    assert cfg.approve_probability == 0.95
    assert cfg.hivemind_phases == ["architect", "implementer", "reviewer"]
    assert cfg.delegation_timeout_seconds is None
    assert cfg.delegation_thresholds["filesChanged"] == 5


def test_engine_config_from_env(monkeypatch):
    monkeypatch.setenv("CONDUCTOR_ASSISTANT_COMMAND", "/opt/bin/claude")
    monkeypatch.setenv("CONDUCTOR_AUTO_APPROVE", "false")
    monkeypatch.setenv("CONDUCTOR_MAX_ITERATIONS", "7")
    monkeypatch.setenv("CONDUCTOR_DELEGATION_TIMEOUT", "30")
    monkeypatch.setenv("CONDUCTOR_HOOK_TIMEOUT", "12.5")

    cfg = EngineConfig.from_env()

    assert cfg.assistant_candidates[0] == "/opt/bin/claude"
    assert cfg.assistant_candidates.count("/opt/bin/claude") == 1
    assert cfg.auto_approve is False
    assert cfg.max_iterations == 7
    assert cfg.delegation_timeout_seconds == 30.0
    assert cfg.hook_timeout_seconds == 12.5


def test_yaml_config_layers_sections():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "conductor.yaml"
        config_path.write_text(
            "engine:\n"
            "  assistant_command: /usr/local/bin/claude\n"
            "  projects_dir: ~/work\n"
            "  max_iterations: 3\n"
            "  auto_approve: 'no'\n"
            "  hivemind_phases: [plan, build]\n"
            "hooks:\n"
            "  dir: ./my-hooks\n"
            "  timeout_seconds: 10\n"
            "  delegation_timeout_seconds: 45\n"
            "  thresholds:\n"
            "    filesChanged: 20\n"
            "presets:\n"
            "  docs-team:\n"
            "    - type: writer\n"
            "      name: Technical Writer\n"
            "      focus: Guides\n"
            "    - type: reviewer\n"
        )
        cfg = load_yaml_config(config_path, base=EngineConfig())

    engine = cfg.engine
    assert engine.assistant_candidates[0] == "/usr/local/bin/claude"
    assert engine.projects_dir == "~/work"
    assert engine.max_iterations == 3
    assert engine.auto_approve is False
    assert engine.hivemind_phases == ["plan", "build"]
    assert engine.hooks_dir == "./my-hooks"
    assert engine.hook_timeout_seconds == 10.0
    assert engine.delegation_timeout_seconds == 45.0
    # Thresholds merge over the defaults
    assert engine.delegation_thresholds["filesChanged"] == 20
    assert engine.delegation_thresholds["linesChanged"] == 100
    assert cfg.presets["docs-team"] == [
        AgentRole("writer", "Technical Writer", "Guides"),
        AgentRole("reviewer", "Reviewer", ""),
    ]
    assert cfg.source == config_path


def test_yaml_config_does_not_mutate_base(tmp_path):
    base = EngineConfig()
    path = tmp_path / "c.yaml"
    path.write_text("engine:\n  max_iterations: 9\n")
    cfg = load_yaml_config(path, base=base)
    assert cfg.engine.max_iterations == 9
    assert base.max_iterations == 5


def test_yaml_config_empty_file_uses_base(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    cfg = load_yaml_config(path, base=EngineConfig(max_iterations=2))
    assert cfg.engine.max_iterations == 2
    assert cfg.presets == {}


def test_yaml_config_unknown_keys_are_ignored(tmp_path, caplog):
    path = tmp_path / "c.yaml"
    path.write_text("engine:\n  warp_speed: 9\nextras:\n  a: 1\n")
    cfg = load_yaml_config(path, base=EngineConfig())
    assert not hasattr(cfg.engine, "warp_speed")
    assert "warp_speed" in caplog.text
    assert "extras" in caplog.text


@pytest.mark.parametrize("content,fragment", [
    ("engine: [1, 2]\n", "must be a mapping"),
    ("- just\n- a list\n", "must be a mapping"),
    ("engine:\n  max_iterations: lots\n", "max_iterations"),
    ("engine:\n  hivemind_phases: architect\n", "hivemind_phases"),
    ("hooks:\n  thresholds: 3\n", "thresholds"),
    ("presets:\n  team: []\n", "non-empty"),
    ("presets:\n  team:\n    - name: No Type\n", "missing 'type'"),
    ("engine: {unclosed\n", "Invalid YAML"),
])
def test_yaml_config_errors(tmp_path, content, fragment):
    path = tmp_path / "bad.yaml"
    path.write_text(content)
    with pytest.raises(ConfigError) as exc_info:
        load_yaml_config(path, base=EngineConfig())
    assert fragment in str(exc_info.value)


def test_yaml_config_missing_file(tmp_path):
    with pytest.raises(ConfigError) as exc_info:
        load_yaml_config(tmp_path / "nope.yaml")
    assert "not found" in str(exc_info.value)


def test_yaml_config_defaults_to_env(tmp_path):
    old_value = os.environ.get("CONDUCTOR_QUALITY_THRESHOLD")
    os.environ["CONDUCTOR_QUALITY_THRESHOLD"] = "0.5"
    try:
        path = tmp_path / "c.yaml"
        path.write_text("engine:\n  max_iterations: 4\n")
        cfg = load_yaml_config(path)
        assert cfg.engine.quality_threshold == 0.5
        assert cfg.engine.max_iterations == 4
    finally:
        if old_value is None:
            os.environ.pop("CONDUCTOR_QUALITY_THRESHOLD", None)
        else:
            os.environ["CONDUCTOR_QUALITY_THRESHOLD"] = old_value
