# src/terranix/config/models.py

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

BUNDLED_CONFIGURATORS = Path(__file__).resolve().parent.parent / "configurators"
BUNDLED_INFECT_SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "infect.sh"


class Settings(BaseModel):
    """Runtime settings for one terranix invocation."""

    workdir: Path = Field(default_factory=Path.cwd)
    state_dir: Optional[Path] = None            # defaults to <workdir>/.terranix
    config_file: Optional[Path] = None          # logical configuration, defaults to <workdir>/config.nix

    # Configurator search path, first match wins
    configurator_path: List[Path] = Field(default_factory=list)
    # Extra flags forwarded to nix-build / nix-instantiate
    nix_build_opts: List[str] = Field(default_factory=list)

    # SSH
    ssh_user: str = "root"
    ssh_port: int = 22
    ssh_key_path: Optional[Path] = None
    connect_timeout: float = 10.0
    command_timeout: Optional[float] = None

    # Prober
    probe_attempts: int = 3
    probe_delay: float = 5.0

    # Nix bootstrap
    nix_version: str = "2.18.1"
    nix_build_users: int = 10
    infect_script: Optional[Path] = None

    @model_validator(mode="after")
    def _fill_defaults(self) -> "Settings":
        if self.state_dir is None:
            self.state_dir = self.workdir / ".terranix"
        if self.config_file is None:
            self.config_file = self.workdir / "config.nix"
        if not self.configurator_path:
            self.configurator_path = [self.workdir / "configurators", BUNDLED_CONFIGURATORS]
        if self.infect_script is None:
            self.infect_script = BUNDLED_INFECT_SCRIPT
        return self

    # ------------------------- derived paths -------------------------

    @property
    def input_hook(self) -> Path:
        return self.state_dir / "input-hook"

    @property
    def input_store(self) -> Path:
        return self.state_dir / "input.json"

    @property
    def input_cache(self) -> Path:
        return self.state_dir / "input.cache.json"

    @property
    def nodes_dir(self) -> Path:
        return self.state_dir / "nodes"

    @property
    def log_dir(self) -> Path:
        return self.state_dir / "logs"
