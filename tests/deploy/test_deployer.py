from pathlib import Path

import pytest

from terranix.config.loader import load_settings
from terranix.deploy.deployer import Deployer, PushResult
from terranix.errors import (
    CopyFailure,
    InvalidArtifact,
    NoDeployFile,
    RemoteProcedureFailure,
    TransportError,
)
from terranix.state.models import Node

NODE = Node(name="x", ip="10.0.0.9", provider="hcloud", ssh_key="K")


class FakeTransport:
    """
    Records every remote interaction in order. `has_nix` and `switch_rc`
    drive the infect verbs; `rc_for` maps command prefixes to exit codes.
    """

    def __init__(self, has_nix=True, switch_rc=0, copy_fails=False, rc_for=None, reboot_raises=False):
        self.has_nix = has_nix
        self.switch_rc = switch_rc
        self.copy_fails = copy_fails
        self.rc_for = rc_for or {}
        self.reboot_raises = reboot_raises
        self.log = []

    def run(self, node, cmd, *, stdin=None, timeout=None):
        if cmd.startswith("bash -s -- "):
            verb = cmd.split()[3]
            self.log.append(("infect", verb))
            assert stdin and "switch_system" in stdin
            if verb == "hasNix":
                return (0 if self.has_nix else 1), "", ""
            if verb == "switch":
                return self.switch_rc, "", ""
        if cmd == "bash -s":
            self.log.append(("install", stdin))
            return self.rc_for.get("install", 0), "", ""
        if "reboot" in cmd:
            self.log.append(("reboot", cmd))
            if self.reboot_raises:
                raise TransportError("connection reset")
            return 0, "", ""
        self.log.append(("exec", cmd))
        for prefix, rc in self.rc_for.items():
            if cmd.startswith(prefix):
                return rc, "", "already exists"
        return 0, "", ""

    def copy_closure(self, node, path):
        self.log.append(("copy", path))
        if self.copy_fails:
            raise CopyFailure("nix-copy-closure failed")

    def kinds(self):
        return [e[0] if e[0] != "infect" else f"infect:{e[1]}" for e in self.log]


@pytest.fixture
def artifact(tmp_path: Path) -> str:
    p = tmp_path / "store" / "abc-nixos-system-x"
    p.mkdir(parents=True)
    return str(p)


@pytest.fixture
def settings(tmp_path: Path):
    return load_settings(tmp_path, environ={})


def test_push_to_nixos_machine(settings, artifact):
    t = FakeTransport(has_nix=True, switch_rc=0)
    assert Deployer(settings, t).push_instance(NODE, artifact) is PushResult.SWITCHED
    assert t.kinds() == ["infect:hasNix", "copy", "infect:switch"]


def test_push_bootstraps_nix_when_missing(settings, artifact):
    t = FakeTransport(has_nix=False, rc_for={"groupadd": 9, "useradd -c 'Nix build user 3'": 9})
    Deployer(settings, t).push_instance(NODE, artifact)

    kinds = t.kinds()
    assert kinds[0] == "infect:hasNix"
    assert kinds[-2:] == ["copy", "infect:switch"]
    execs = [e[1] for e in t.log if e[0] == "exec"]
    assert execs[0] == "groupadd -r nixbld"
    assert len([c for c in execs if c.startswith("useradd")]) == settings.nix_build_users
    install = next(e[1] for e in t.log if e[0] == "install")
    assert f"nix-{settings.nix_version}/install" in install
    assert kinds.index("install") < kinds.index("copy")


def test_bootstrap_aborts_on_real_useradd_failure(settings, artifact):
    t = FakeTransport(has_nix=False, rc_for={"useradd": 1})
    with pytest.raises(RemoteProcedureFailure):
        Deployer(settings, t).push_instance(NODE, artifact)
    assert "copy" not in t.kinds()


def test_missing_artifact(settings, tmp_path):
    t = FakeTransport()
    with pytest.raises(InvalidArtifact):
        Deployer(settings, t).push_instance(NODE, str(tmp_path / "nope"))
    assert t.log == []


def test_missing_infect_script(settings, artifact, tmp_path):
    settings.infect_script = tmp_path / "missing.sh"
    t = FakeTransport()
    with pytest.raises(NoDeployFile):
        Deployer(settings, t).push_instance(NODE, artifact)
    assert t.log == []


def test_copy_failure_never_switches(settings, artifact):
    t = FakeTransport(copy_fails=True)
    with pytest.raises(CopyFailure):
        Deployer(settings, t).push_instance(NODE, artifact)
    assert "infect:switch" not in t.kinds()


def test_reboot_required_reboots_once(settings, artifact):
    t = FakeTransport(switch_rc=100)
    assert Deployer(settings, t).push_instance(NODE, artifact) is PushResult.REBOOTED
    assert t.kinds().count("reboot") == 1


def test_reboot_failure_is_not_fatal(settings, artifact):
    t = FakeTransport(switch_rc=100, reboot_raises=True)
    assert Deployer(settings, t).push_instance(NODE, artifact) is PushResult.REBOOTED


def test_service_failures_are_a_warning(settings, artifact):
    t = FakeTransport(switch_rc=4)
    assert Deployer(settings, t).push_instance(NODE, artifact) is PushResult.DEGRADED
    assert "reboot" not in t.kinds()


def test_other_switch_status_fails(settings, artifact):
    t = FakeTransport(switch_rc=1)
    with pytest.raises(RemoteProcedureFailure) as exc:
        Deployer(settings, t).push_instance(NODE, artifact)
    assert exc.value.returncode == 1
    assert t.kinds().count("infect:switch") == 1
