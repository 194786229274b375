from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Protocol

from terranix.errors import BuildFailure
from terranix.utils.nix import nix_string

log = logging.getLogger("terranix")


class Compiler(Protocol):
    """Turns a NixOS configuration into a system closure."""

    def node_names(self, config_file: Path, input_path: Path) -> List[str]: ...

    def build(self, config_path: Path) -> str: ...


class NixCompiler:
    """
    A pragmatic wrapper around `nix-instantiate` and `nix-build`.
    - Extra flags (TN_NIX_BUILD_OPTS) are appended to every call.
    - Testable by mocking subprocess.run.
    """

    def __init__(self, build_opts: Optional[List[str]] = None, nixpkgs: str = "<nixpkgs/nixos>"):
        self.build_opts = list(build_opts or [])
        self.nixpkgs = nixpkgs

    # ------------------------- internal helpers -------------------------

    def _run(self, argv: List[str]) -> subprocess.CompletedProcess:
        log.debug("$ %s", " ".join(argv))
        try:
            cp = subprocess.run(argv, check=False, text=True, capture_output=True)
        except FileNotFoundError as e:
            raise BuildFailure(f"{argv[0]} is not installed") from e
        if cp.returncode != 0:
            # diagnostics go to the log, they are not interpreted
            log.debug(cp.stderr)
            raise BuildFailure(
                f"{argv[0]} failed (rc={cp.returncode})\n{cp.stderr.strip()}",
                returncode=cp.returncode,
            )
        return cp

    # ------------------------- Compiler methods -------------------------

    def node_names(self, config_file: Path, input_path: Path) -> List[str]:
        """Evaluate the logical configuration and list the nodes it declares."""
        expr = (
            "let input = builtins.fromJSON (builtins.readFile "
            f"{nix_string(str(input_path.resolve()))}); "
            f"in builtins.attrNames (import {nix_string(str(config_file.resolve()))} "
            "{ inherit input; })"
        )
        argv = ["nix-instantiate", "--eval", "--strict", "--json", "-E", expr] + self.build_opts
        cp = self._run(argv)
        try:
            names = json.loads(cp.stdout)
        except json.JSONDecodeError as e:
            raise BuildFailure(f"unexpected nix-instantiate output: {cp.stdout!r}") from e
        return [str(n) for n in names]

    def build(self, config_path: Path) -> str:
        argv = [
            "nix-build",
            self.nixpkgs,
            "-A", "system",
            "-I", f"nixos-config={config_path.resolve()}",
            "--no-out-link",
        ] + self.build_opts
        cp = self._run(argv)
        lines = [ln.strip() for ln in cp.stdout.splitlines() if ln.strip()]
        if not lines:
            raise BuildFailure(f"nix-build printed no store path for {config_path}")
        return lines[-1]
