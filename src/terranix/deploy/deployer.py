# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/terranix/deploy/deployer.py
from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from terranix.config.models import Settings
from terranix.deploy.infect import InfectScript, SwitchStatus
from terranix.errors import InvalidArtifact, RemoteProcedureFailure, TransportError
from terranix.state.models import Node
from terranix.utils.ssh_runner import Transport

log = logging.getLogger("terranix")

# useradd/groupadd exit status for "already exists"
EXISTS = 9

NIX_INSTALL_URL = "https://releases.nixos.org/nix/nix-{version}/install"


class PushResult(str, Enum):
    SWITCHED = "switched"
    REBOOTED = "rebooted"
    DEGRADED = "degraded"


class Deployer:
    """
    Pushes a built system to a node and activates it.

    Order matters: nothing is activated until the closure copy succeeded,
    and `switch` is never retried. On a machine that is not NixOS yet,
    `switch` wipes /boot and converts the machine; there is no way back if
    it fails halfway.
    """

    def __init__(self, settings: Settings, transport: Transport, infect: InfectScript | None = None):
        self.settings = settings
        self.transport = transport
        self.infect = infect or InfectScript(settings.infect_script, transport)

    # ------------------ bootstrap ------------------

    def _run_checked(self, node: Node, cmd: str, ok: tuple[int, ...] = (0,)) -> int:
        rc, _, err = self.transport.run(node, cmd)
        if rc not in ok:
            raise RemoteProcedureFailure(
                f"[{node.name}] `{cmd}` failed (rc={rc})\n{err.strip()}", returncode=rc
            )
        return rc

    def create_build_users(self, node: Node) -> None:
        rc = self._run_checked(node, "groupadd -r nixbld", ok=(0, EXISTS))
        if rc == EXISTS:
            log.debug("[%s] group nixbld already exists", node.name)
        for i in range(1, self.settings.nix_build_users + 1):
            cmd = (
                f"useradd -c 'Nix build user {i}' -d /var/empty -g nixbld -G nixbld "
                f"-M -N -r -s \"$(command -v nologin)\" nixbld{i}"
            )
            rc = self._run_checked(node, cmd, ok=(0, EXISTS))
            if rc == EXISTS:
                log.debug("[%s] user nixbld%d already exists", node.name, i)

    def install_nix(self, node: Node) -> None:
        url = NIX_INSTALL_URL.format(version=self.settings.nix_version)
        log.info("[%s] Installing Nix %s", node.name, self.settings.nix_version)
        script = "\n".join([
            "set -e",
            "install -d -m 0755 /nix",
            f"curl -sSfL {url} | sh -s -- --no-daemon",
            # non-interactive ssh sessions (nix-copy-closure) need nix-store on PATH
            'for tool in "$HOME"/.nix-profile/bin/*; do ln -sfn "$tool" /usr/local/bin/; done',
            "",
        ])
        rc, _, err = self.transport.run(node, "bash -s", stdin=script)
        if rc != 0:
            raise RemoteProcedureFailure(
                f"[{node.name}] Nix installation failed (rc={rc})\n{err.strip()}", returncode=rc
            )

    def bootstrap(self, node: Node) -> None:
        log.info("[%s] No Nix found, bootstrapping", node.name)
        self.create_build_users(node)
        self.install_nix(node)

    # ------------------ activation ------------------

    def reboot(self, node: Node) -> None:
        """Best effort; the connection usually drops while this runs."""
        log.info("[%s] Rebooting", node.name)
        try:
            rc, _, err = self.transport.run(node, "systemctl reboot || reboot")
        except TransportError as e:
            log.debug("[%s] reboot: %s", node.name, e)
            return
        if rc != 0:
            log.warning("[%s] reboot command failed (rc=%d): %s", node.name, rc, err.strip())

    # ------------------ public API ------------------

    def push_instance(self, node: Node, artifact: str) -> PushResult:
        node.require("ip")
        if not artifact or not Path(artifact).exists():
            raise InvalidArtifact(f"[{node.name}] build result {artifact!r} does not exist")

        self.infect.load()

        if not self.infect.has_nix(node):
            self.bootstrap(node)

        # CopyFailure propagates; nothing has been activated yet
        self.transport.copy_closure(node, artifact)

        log.info("[%s] Switching to %s", node.name, artifact)
        rc = self.infect.switch(node, artifact)

        if rc == SwitchStatus.OK:
            log.info("[%s] Switched", node.name)
            return PushResult.SWITCHED
        if rc == SwitchStatus.REBOOT_REQUIRED:
            self.reboot(node)
            return PushResult.REBOOTED
        if rc == SwitchStatus.SERVICES_FAILED:
            log.warning("[%s] Switched, but some services failed to (re)start", node.name)
            return PushResult.DEGRADED
        raise RemoteProcedureFailure(
            f"[{node.name}] switch to {artifact} failed (rc={rc})", returncode=rc
        )
