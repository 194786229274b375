# src/terranix/deploy/infect.py
from __future__ import annotations

import logging
import shlex
from enum import IntEnum
from pathlib import Path
from typing import Optional

from terranix.errors import NoDeployFile, RemoteProcedureFailure
from terranix.state.models import Node
from terranix.utils.ssh_runner import Transport

log = logging.getLogger("terranix")


class SwitchStatus(IntEnum):
    """Exit statuses of `infect.sh switch`."""
    OK = 0
    SERVICES_FAILED = 4      # switch-to-configuration could not (re)start some units
    REBOOT_REQUIRED = 100    # machine was infected, new system active after reboot


class InfectScript:
    """
    The remote half of a deployment. The script is streamed over SSH on
    stdin (`bash -s -- <verb> ...`), nothing is installed on the node.

      hasNix         exit 0 when Nix is present, 1 when it is not
      switch <path>  make <path> the system generation and activate it;
                     infects a non-NixOS machine (destroys its /boot)
    """

    def __init__(self, path: Path, transport: Transport):
        self.path = path
        self.transport = transport
        self._text: Optional[str] = None

    def load(self) -> str:
        if self._text is None:
            if not self.path.is_file():
                raise NoDeployFile(f"deploy script {self.path} does not exist")
            self._text = self.path.read_text(encoding="utf-8")
        return self._text

    def call(self, node: Node, verb: str, *args: str) -> tuple[int, str, str]:
        cmd = "bash -s -- " + shlex.join([verb, *args])
        return self.transport.run(node, cmd, stdin=self.load())

    def has_nix(self, node: Node) -> bool:
        rc, _, err = self.call(node, "hasNix")
        if rc in (0, 1):
            return rc == 0
        raise RemoteProcedureFailure(
            f"[{node.name}] hasNix failed (rc={rc})\n{err.strip()}", returncode=rc
        )

    def switch(self, node: Node, path: str) -> int:
        rc, out, err = self.call(node, "switch", path)
        for line in (out + err).splitlines():
            log.debug("[%s] %s", node.name, line)
        return rc
