import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

import terranix.cli.app as app_mod
from terranix.dispatcher import Command, RunReport
from terranix.errors import ExitCode

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger("terranix")
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = True


class RecordingDispatcher:
    calls = []
    exit_code = ExitCode.OK

    def __init__(self, settings, observers=None, run_id=None):
        self.settings = settings

    def dispatch(self, command, names):
        RecordingDispatcher.calls.append((command, list(names), self.settings.workdir))
        return RunReport(command=command, nodes=list(names), exit_code=RecordingDispatcher.exit_code)


@pytest.fixture
def recorder(monkeypatch):
    RecordingDispatcher.calls = []
    RecordingDispatcher.exit_code = ExitCode.OK
    monkeypatch.setattr(app_mod, "CommandDispatcher", RecordingDispatcher)
    return RecordingDispatcher


def test_version():
    result = runner.invoke(app_mod.app, ["version"])
    assert result.exit_code == 0
    assert result.output.startswith("terranix ")


def test_help_lists_commands():
    result = runner.invoke(app_mod.app, ["help"])
    assert result.exit_code == 0
    for cmd in ("init", "initFromJSON", "input", "check", "build", "push"):
        assert cmd in result.output


def test_unknown_command_is_usage_error():
    result = runner.invoke(app_mod.app, ["deploy-everything"])
    assert result.exit_code == ExitCode.USAGE


@pytest.mark.parametrize("argv,command", [
    (["init", "a", "b"], Command.INIT),
    (["initFromJSON", "a"], Command.INIT_FROM_JSON),
    (["check"], Command.CHECK),
    (["build", "a"], Command.BUILD),
    (["push", "a", "b"], Command.PUSH),
])
def test_verbs_dispatch(recorder, tmp_path: Path, argv, command):
    result = runner.invoke(app_mod.app, ["--workdir", str(tmp_path)] + argv)
    assert result.exit_code == 0, result.output
    assert recorder.calls == [(command, argv[1:], tmp_path.resolve())]


def test_failed_report_sets_exit_code(recorder, tmp_path: Path):
    recorder.exit_code = ExitCode.UNREACHABLE
    result = runner.invoke(app_mod.app, ["-C", str(tmp_path), "check", "a"])
    assert result.exit_code == ExitCode.UNREACHABLE


def test_input_then_check_without_reachable_nodes(tmp_path: Path):
    doc = tmp_path / "nodes.json"
    doc.write_text(json.dumps({"meta": {}, "nodes": {"b": {"ip": "", "provider": "aws", "ssh_key": "K"}}}))

    result = runner.invoke(app_mod.app, ["-C", str(tmp_path), "input", str(doc)])
    assert result.exit_code == 0, result.output
    assert (tmp_path / ".terranix" / "input-hook").is_file()

    # b has no ip: unreachable without any network access
    result = runner.invoke(app_mod.app, ["-C", str(tmp_path), "check", "b"])
    assert result.exit_code == ExitCode.UNREACHABLE
    assert not (tmp_path / ".terranix" / "input.cache.json").exists()
    assert list((tmp_path / ".terranix" / "logs").glob("*.jsonl"))


def test_input_with_invalid_json(tmp_path: Path):
    bad = tmp_path / "bad.json"
    bad.write_text("{")
    result = runner.invoke(app_mod.app, ["-C", str(tmp_path), "input", str(bad)])
    assert result.exit_code == ExitCode.NO_INPUT


def test_check_without_input(tmp_path: Path):
    result = runner.invoke(app_mod.app, ["-C", str(tmp_path), "check", "a"])
    assert result.exit_code == ExitCode.NO_INPUT
