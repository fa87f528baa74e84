"""
Covers:
  - ``webmon check-config`` exit codes and summary
  - ``webmon logs`` text/JSON output and --tail
  - Parser wiring
"""

from __future__ import annotations

import json
import textwrap

import pytest

from webmon.cli import EXIT_CONFIG_ERROR, EXIT_OK, _build_parser, main

VALID = textwrap.dedent(
    """
    version: "1"
    target: {url: "http://127.0.0.1:3000/getbalance"}
    child: {command: node, args: [server/server.js]}
    probe: {timeout: 5, interval: 10, overlap: skip}
    outcomes:
      forbidden: {threshold: 3, action: restart}
      server_error: {threshold: 3, action: restart}
      timeout: {threshold: 2, action: none}
    eventlog: {path: EVENTS}
    """
)

EVENTS = (
    "2024-05-01T12:00:00.000Z [INFO] Starting monitoring of http://127.0.0.1:3000/getbalance...\n"
    "2024-05-01T12:00:10.000Z [ERROR] Target returned 403. Count=1\n"
    "2024-05-01T12:00:20.000Z [INFO] Success (200) from target.\n"
)


def _exit_code(argv) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


@pytest.fixture()
def config_file(tmp_path):
    events = tmp_path / "events.txt"
    events.write_text(EVENTS)
    path = tmp_path / "webmon.yaml"
    path.write_text(VALID.replace("EVENTS", str(events)))
    return path


class TestCheckConfig:
    def test_valid(self, config_file, capsys) -> None:
        assert _exit_code(["check-config", "--config", str(config_file)]) == EXIT_OK
        out = capsys.readouterr().out
        assert "Configuration OK" in out
        assert "http://127.0.0.1:3000/getbalance" in out
        assert "overlap skip" in out
        assert "action none" in out

    def test_invalid(self, tmp_path, capsys) -> None:
        path = tmp_path / "webmon.yaml"
        path.write_text("version: '1'\ntarget: {url: 'nope'}\n")
        assert _exit_code(["check-config", "--config", str(path)]) == EXIT_CONFIG_ERROR
        assert "Configuration validation failed" in capsys.readouterr().err

    def test_missing(self, tmp_path, capsys) -> None:
        missing = tmp_path / "missing.yaml"
        assert _exit_code(["check-config", "--config", str(missing)]) == EXIT_CONFIG_ERROR
        assert "does not exist" in capsys.readouterr().err

    def test_env_var(self, config_file, monkeypatch, capsys) -> None:
        monkeypatch.setenv("WEBMON_CONFIG", str(config_file))
        assert _exit_code(["check-config"]) == EXIT_OK


class TestLogs:
    def test_from_config(self, config_file, capsys) -> None:
        assert _exit_code(["logs", "--config", str(config_file)]) == EXIT_OK
        out = capsys.readouterr().out
        assert "[ERROR] Target returned 403. Count=1" in out
        assert "[INFO] Success (200) from target." in out

    def test_tail_and_json(self, config_file, capsys) -> None:
        events = config_file.parent / "events.txt"
        assert _exit_code(["logs", "--path", str(events), "--tail", "1", "--json"]) == EXIT_OK
        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == "Success (200) from target."

    def test_empty(self, tmp_path, capsys) -> None:
        assert _exit_code(["logs", "--path", str(tmp_path / "none.txt")]) == EXIT_OK
        assert "No event log entries" in capsys.readouterr().out

    def test_default_path_without_config(self, tmp_path, monkeypatch, capsys) -> None:
        monkeypatch.delenv("WEBMON_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / "webmon_logs.txt").write_text(EVENTS)
        assert _exit_code(["logs"]) == EXIT_OK
        assert "Starting monitoring" in capsys.readouterr().out


class TestParser:
    def test_no_command(self, capsys) -> None:
        assert _exit_code([]) == 1

    def test_demo_target_defaults(self) -> None:
        args = _build_parser().parse_args(["demo-target"])
        assert args.host == "127.0.0.1"
        assert args.port == 3000
        assert args.request_log == "logs.txt"

    def test_run_defaults(self) -> None:
        args = _build_parser().parse_args(["run"])
        assert args.config is None
        assert args.log_level == "info"
