import json
import subprocess
import types
from pathlib import Path

import pytest

import terranix.build.compiler as compiler_mod
from terranix.build.builder import Builder
from terranix.build.compiler import NixCompiler
from terranix.config.loader import load_settings
from terranix.errors import BuildFailure, NoConfigFile
from terranix.generator.generator import artifact_path
from terranix.state.models import Node

NODE = Node(name="web", ip="10.0.0.1", provider="libvirt", ssh_key="K")


class SpyRun:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.calls = []
        self.result = types.SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)

    def __call__(self, argv, check=False, text=False, capture_output=False):
        self.calls.append(argv)
        return self.result


class FakeCompiler:
    def __init__(self):
        self.built = []

    def node_names(self, config_file, input_path):
        return []

    def build(self, config_path):
        self.built.append(config_path)
        return "/nix/store/abc-nixos-system-web"


def test_nix_build_argv_and_store_path(monkeypatch, tmp_path: Path):
    spy = SpyRun(stdout="these derivations will be built:\n/nix/store/abc-nixos-system-web\n")
    monkeypatch.setattr(compiler_mod.subprocess, "run", spy)

    cfg = tmp_path / "configuration.nix"
    path = NixCompiler(["--show-trace"]).build(cfg)

    assert path == "/nix/store/abc-nixos-system-web"
    assert spy.calls == [[
        "nix-build", "<nixpkgs/nixos>", "-A", "system",
        "-I", f"nixos-config={cfg.resolve()}", "--no-out-link", "--show-trace",
    ]]


def test_nix_build_failure_is_opaque(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(compiler_mod.subprocess, "run", SpyRun(returncode=1, stderr="error: infinite recursion"))
    with pytest.raises(BuildFailure) as exc:
        NixCompiler().build(tmp_path / "configuration.nix")
    assert exc.value.returncode == 1


def test_nix_build_without_output_is_failure(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(compiler_mod.subprocess, "run", SpyRun(stdout="\n"))
    with pytest.raises(BuildFailure):
        NixCompiler().build(tmp_path / "configuration.nix")


def test_node_names_evaluates_config_against_input(monkeypatch, tmp_path: Path):
    spy = SpyRun(stdout=json.dumps(["a", "b"]))
    monkeypatch.setattr(compiler_mod.subprocess, "run", spy)

    names = NixCompiler().node_names(tmp_path / "config.nix", tmp_path / "input.cache.json")

    assert names == ["a", "b"]
    argv = spy.calls[0]
    assert argv[:5] == ["nix-instantiate", "--eval", "--strict", "--json", "-E"]
    assert f'"{(tmp_path / "config.nix").resolve()}"' in argv[5]
    assert "builtins.attrNames" in argv[5]


def test_missing_nix_binary(monkeypatch, tmp_path: Path):
    def _raise(*a, **k):
        raise FileNotFoundError("nix-build")
    monkeypatch.setattr(subprocess, "run", _raise)
    with pytest.raises(BuildFailure, match="not installed"):
        NixCompiler().build(tmp_path / "configuration.nix")


def test_builder_compiles_generated_config(tmp_path: Path):
    settings = load_settings(tmp_path, environ={})
    target = artifact_path(settings, NODE)
    target.parent.mkdir(parents=True)
    target.write_text("{ ... }: { }\n")
    compiler = FakeCompiler()

    assert Builder(settings, compiler).build_instance(NODE) == "/nix/store/abc-nixos-system-web"
    assert compiler.built == [target]


@pytest.mark.parametrize("content", [None, ""])
def test_builder_without_config_is_no_config(tmp_path: Path, content):
    settings = load_settings(tmp_path, environ={})
    if content is not None:
        target = artifact_path(settings, NODE)
        target.parent.mkdir(parents=True)
        target.write_text(content)
    compiler = FakeCompiler()

    with pytest.raises(NoConfigFile):
        Builder(settings, compiler).build_instance(NODE)
    assert compiler.built == []
