# src/terranix/utils/ssh_runner.py

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from typing import Optional, Protocol

import paramiko

from terranix.config.models import Settings
from terranix.errors import CopyFailure, TransportError
from terranix.state.models import Node

log = logging.getLogger("terranix")


class Transport(Protocol):
    """Remote access to a node: run shell commands, copy Nix closures."""

    def run(
        self,
        node: Node,
        cmd: str,
        *,
        stdin: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> tuple[int, str, str]: ...

    def copy_closure(self, node: Node, path: str) -> None: ...


class SSHTransport:
    """
    Paramiko for commands, nix-copy-closure for store paths.
    One connection per call; the callers are short-lived and sequential.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def _load_pkey(self) -> Optional[paramiko.PKey]:
        key_path = self.settings.ssh_key_path
        if not key_path:
            return None
        for key_cls in (
            paramiko.Ed25519Key,
            paramiko.RSAKey,
            paramiko.ECDSAKey,
        ):
            try:
                return key_cls.from_private_key_file(str(key_path))
            except paramiko.PasswordRequiredException as e:
                raise TransportError(
                    f"private key {key_path} is passphrase-protected, load it into ssh-agent instead"
                ) from e
            except paramiko.SSHException:
                continue
            except OSError as e:
                raise TransportError(f"cannot read private key {key_path}: {e}") from e
        raise TransportError(f"unsupported private key format: {key_path}")

    def _connect(self, node: Node) -> paramiko.SSHClient:
        pkey = self._load_pkey()
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=node.ip,
                port=self.settings.ssh_port,
                username=self.settings.ssh_user,
                pkey=pkey,
                timeout=self.settings.connect_timeout,
                allow_agent=pkey is None,
                look_for_keys=pkey is None,
            )
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise TransportError(
                f"cannot connect to {self.settings.ssh_user}@{node.ip}: {e}"
            ) from e
        return client

    def run(
        self,
        node: Node,
        cmd: str,
        *,
        stdin: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> tuple[int, str, str]:
        client = self._connect(node)
        try:
            chan_in, stdout, stderr = client.exec_command(
                cmd, timeout=timeout or self.settings.command_timeout
            )
            if stdin is not None:
                chan_in.write(stdin)
                chan_in.flush()
            chan_in.channel.shutdown_write()
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            rc = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            raise TransportError(f"[{node.name}] command failed to run: {e}") from e
        finally:
            client.close()
        log.debug("[%s] $ %s -> rc=%d", node.name, cmd, rc)
        return rc, out, err

    def ssh_opts(self) -> list[str]:
        opts = ["-p", str(self.settings.ssh_port), "-o", "StrictHostKeyChecking=accept-new"]
        if self.settings.ssh_key_path:
            opts += ["-i", str(self.settings.ssh_key_path)]
        return opts

    def copy_closure(self, node: Node, path: str) -> None:
        target = f"{self.settings.ssh_user}@{node.ip}"
        argv = ["nix-copy-closure", "--to", target, path]
        env = {**os.environ, "NIX_SSHOPTS": shlex.join(self.ssh_opts())}
        log.info("[%s] Copying closure %s", node.name, path)
        try:
            cp = subprocess.run(argv, capture_output=True, text=True, check=False, env=env)
        except FileNotFoundError as e:
            raise CopyFailure("nix-copy-closure is not installed") from e
        if cp.returncode != 0:
            raise CopyFailure(
                f"[{node.name}] nix-copy-closure failed (rc={cp.returncode})\n{cp.stderr.strip()}"
            )
