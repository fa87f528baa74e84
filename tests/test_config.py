"""
Covers:
  - v1 YAML config loading and validation
  - Legacy flat JSON format upgrade (ms → s, env overrides)
  - ${VAR} expansion
  - Config path resolution
"""

from __future__ import annotations

import json
import os
import textwrap

import pytest
from pydantic import ValidationError

from webmon.config.loader import find_config_file, load_webmon_config, validate_config
from webmon.config.migration import expand_env_vars, is_legacy_config, migrate_legacy_config
from webmon.config.schema import OutcomeRuleConfig, ProbeConfig, WebmonConfig
from webmon.errors import ConfigurationError

V1_YAML = textwrap.dedent(
    """
    version: "1"
    target:
      url: http://127.0.0.1:3000/getbalance
    child:
      command: node
      args: [server/server.js]
    probe:
      timeout: 5
      interval: 10
    outcomes:
      forbidden: {threshold: 3, action: restart}
      server_error: {threshold: 3, action: nothing}
      timeout: {threshold: 2, action: restart}
    """
)

LEGACY = {
    "waittime": 5000,
    "interval": 10000,
    "http403": {"retrytimes": 3, "action": "restart"},
    "http500": {"retrytimes": 4, "action": "restart"},
    "timeoutConfig": {"retrytimes": 2, "action": "restart"},
    "http200": {"retrytimes": 1, "action": "nothing"},
}


class TestLoadV1:
    def test_load_yaml(self, tmp_path) -> None:
        path = tmp_path / "webmon.yaml"
        path.write_text(V1_YAML)
        cfg = load_webmon_config(str(path))
        assert isinstance(cfg, WebmonConfig)
        assert cfg.target.url == "http://127.0.0.1:3000/getbalance"
        assert cfg.child.command == "node"
        assert cfg.child.args == ["server/server.js"]
        assert cfg.probe.timeout == 5.0
        assert cfg.probe.interval == 10.0
        assert cfg.probe.overlap == "allow"
        assert cfg.outcomes.server_error.action == "none"
        assert cfg.eventlog.path == "webmon_logs.txt"
        assert cfg.eventlog.format == "text"

    def test_config_is_frozen(self, make_config) -> None:
        cfg = make_config()
        with pytest.raises(ValidationError):
            cfg.probe.interval = 3  # type: ignore[misc]

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="does not exist"):
            load_webmon_config(str(tmp_path / "nope.yaml"))

    def test_bad_extension(self, tmp_path) -> None:
        path = tmp_path / "webmon.toml"
        path.write_text("x = 1")
        with pytest.raises(ConfigurationError, match="extension"):
            load_webmon_config(str(path))

    def test_top_level_must_be_mapping(self, tmp_path) -> None:
        path = tmp_path / "webmon.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_webmon_config(str(path))

    def test_all_errors_reported_together(self, make_config) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            make_config(
                target={"url": "ftp://example"},
                probe={"timeout": 0, "interval": -1},
            )
        message = str(exc_info.value)
        assert "3 error(s)" in message
        assert "target → url" in message
        assert "probe → timeout" in message

    def test_unknown_keys_rejected(self, make_config) -> None:
        with pytest.raises(ConfigurationError, match="bogus"):
            make_config(bogus=True)

    def test_missing_outcome_rule(self) -> None:
        raw = {
            "target": {"url": "http://x.test/"},
            "child": {"command": "node"},
            "probe": {"timeout": 1, "interval": 1},
            "outcomes": {
                "forbidden": {"threshold": 1},
                "server_error": {"threshold": 1},
            },
        }
        with pytest.raises(ConfigurationError, match="timeout"):
            validate_config(raw)

    def test_integer_version_is_accepted(self, make_config) -> None:
        assert make_config(version=1).version == "1"


class TestSchemaValidation:
    def test_threshold_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            OutcomeRuleConfig(threshold=0, action="restart")

    def test_unknown_action(self) -> None:
        with pytest.raises(ValidationError):
            OutcomeRuleConfig(threshold=1, action="reboot")

    @pytest.mark.parametrize("raw", ["nothing", "", "NONE", " none "])
    def test_action_normalisation(self, raw: str) -> None:
        assert OutcomeRuleConfig(threshold=1, action=raw).action == "none"

    def test_overlap_values(self) -> None:
        assert ProbeConfig(timeout=1, interval=1, overlap="skip").overlap == "skip"
        with pytest.raises(ValidationError):
            ProbeConfig(timeout=1, interval=1, overlap="queue")

    def test_timeout_may_exceed_interval(self) -> None:
        cfg = ProbeConfig(timeout=30, interval=5)
        assert cfg.timeout > cfg.interval


class TestLegacyFormat:
    def test_detection(self) -> None:
        assert is_legacy_config(LEGACY)
        assert not is_legacy_config({"version": "1", "interval": 5})
        assert not is_legacy_config({"target": {}})

    def test_upgrade(self, monkeypatch) -> None:
        monkeypatch.delenv("WEBMON_TARGET_HOST", raising=False)
        monkeypatch.delenv("WEBMON_TARGET_PORT", raising=False)
        cfg = validate_config(dict(LEGACY))
        assert cfg.probe.timeout == 5.0
        assert cfg.probe.interval == 10.0
        assert cfg.target.url == "http://127.0.0.1:3000/getbalance"
        assert cfg.child.command == "node"
        assert cfg.child.args == ["server/server.js"]
        assert cfg.outcomes.server_error.threshold == 4
        assert cfg.outcomes.timeout.threshold == 2

    def test_host_port_and_env_override(self, monkeypatch) -> None:
        monkeypatch.setenv("WEBMON_TARGET_PORT", "8080")
        monkeypatch.delenv("WEBMON_TARGET_HOST", raising=False)
        cfg = validate_config(dict(LEGACY, host="10.0.0.5", port=3001))
        assert cfg.target.url == "http://10.0.0.5:8080/getbalance"

    def test_child_passthrough(self) -> None:
        child = {"command": "python", "args": ["-m", "webmon", "demo-target"]}
        cfg = validate_config(dict(LEGACY, child=child))
        assert cfg.child.command == "python"

    def test_load_legacy_json_file(self, tmp_path) -> None:
        path = tmp_path / "webmon.json"
        path.write_text(json.dumps(LEGACY))
        cfg = load_webmon_config(str(path))
        assert cfg.outcomes.forbidden.threshold == 3

    def test_v1_is_untouched(self) -> None:
        raw = {"version": "1", "target": {"url": "http://x/"}}
        assert migrate_legacy_config(raw) is raw


class TestEnvExpansion:
    def test_expand(self, monkeypatch) -> None:
        monkeypatch.setenv("WEBMON_TEST_HOST", "db.internal")
        data = {"url": "http://${WEBMON_TEST_HOST}/health", "args": ["${WEBMON_TEST_HOST}", 3]}
        assert expand_env_vars(data) == {
            "url": "http://db.internal/health",
            "args": ["db.internal", 3],
        }

    def test_unset_variable_left_in_place(self, monkeypatch) -> None:
        monkeypatch.delenv("WEBMON_TEST_UNSET", raising=False)
        assert expand_env_vars("${WEBMON_TEST_UNSET}") == "${WEBMON_TEST_UNSET}"


class TestFindConfigFile:
    def test_explicit_wins(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("WEBMON_CONFIG", "/elsewhere.yaml")
        assert find_config_file("my.yaml") == os.path.abspath("my.yaml")

    def test_env_var(self, monkeypatch) -> None:
        monkeypatch.setenv("WEBMON_CONFIG", "/etc/webmon/webmon.yaml")
        assert find_config_file() == "/etc/webmon/webmon.yaml"

    def test_auto_detect_order(self, tmp_path, monkeypatch) -> None:
        monkeypatch.delenv("WEBMON_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / "webmon.json").write_text("{}")
        assert find_config_file() == str(tmp_path / "webmon.json")
        (tmp_path / "webmon.yaml").write_text("{}")
        assert find_config_file() == str(tmp_path / "webmon.yaml")

    def test_default_when_nothing_found(self, tmp_path, monkeypatch) -> None:
        monkeypatch.delenv("WEBMON_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        assert find_config_file() == str(tmp_path / "webmon.yaml")
