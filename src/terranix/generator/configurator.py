# src/terranix/generator/configurator.py
from __future__ import annotations

import logging
import os
import re
import subprocess
from pathlib import Path
from typing import List, Optional, Protocol

from terranix.config.models import Settings
from terranix.errors import ConfiguratorFailure, NoConfigurator
from terranix.state.models import Node

log = logging.getLogger("terranix")

_PROVIDER_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]*$")


class ConfiguratorRunner(Protocol):
    """Runs a configurator for a node and returns the hardware profile it prints."""

    def run(self, executable: Path, node: Node) -> str: ...


def find_configurator(search_path: List[Path], provider: str) -> Path:
    """
    First executable named after the provider along the search path.
    Raises NoConfigurator when there is none.
    """
    if not provider:
        raise NoConfigurator("node has no provider")
    if not _PROVIDER_RE.match(provider):
        raise NoConfigurator(f"invalid provider name '{provider}'")

    for directory in search_path:
        candidate = Path(directory) / provider
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return candidate

    searched = os.pathsep.join(str(p) for p in search_path)
    raise NoConfigurator(f"no configurator for provider '{provider}' in {searched}")


class SubprocessConfiguratorRunner:
    """
    Configurators are executables called as `<configurator> <ip>`; they
    reach the machine on their own and print a NixOS module on stdout.
    """

    def __init__(self, settings: Settings, timeout: Optional[float] = 600):
        self.settings = settings
        self.timeout = timeout

    def run(self, executable: Path, node: Node) -> str:
        env = {
            **os.environ,
            "TN_NODE_NAME": node.name,
            "TN_SSH_USER": self.settings.ssh_user,
            "TN_SSH_PORT": str(self.settings.ssh_port),
        }
        if self.settings.ssh_key_path:
            env["TN_SSH_KEY"] = str(self.settings.ssh_key_path)

        log.info("[%s] Running configurator %s", node.name, executable.name)
        try:
            cp = subprocess.run(
                [str(executable), node.ip],
                capture_output=True,
                text=True,
                check=False,
                env=env,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ConfiguratorFailure(
                f"[{node.name}] configurator {executable.name} timed out after {self.timeout}s"
            ) from e
        if cp.returncode != 0:
            raise ConfiguratorFailure(
                f"[{node.name}] configurator {executable.name} failed (rc={cp.returncode})\n"
                f"{cp.stderr.strip()}",
                returncode=cp.returncode,
            )
        return cp.stdout
