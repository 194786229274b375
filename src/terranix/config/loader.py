# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/terranix/config/loader.py

import logging
import os
import shlex
from pathlib import Path
from typing import Mapping, Optional

import yaml

from .models import Settings

log = logging.getLogger("terranix")

CONFIG_FILENAME = "terranix.yaml"

# Environment variable -> settings key
ENV_OVERRIDES = {
    "TN_CONFIG_FILE": "config_file",
    "TN_SSH_USER": "ssh_user",
    "TN_SSH_KEY": "ssh_key_path",
    "TN_INFECT_SCRIPT": "infect_script",
}


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def _env_overrides(environ: Mapping[str, str]) -> dict:
    data: dict = {}

    search_path = environ.get("TN_CONFIGURATOR_PATH")
    if search_path:
        data["configurator_path"] = [p for p in search_path.split(os.pathsep) if p]

    build_opts = environ.get("TN_NIX_BUILD_OPTS")
    if build_opts:
        data["nix_build_opts"] = shlex.split(build_opts)

    for var, key in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            data[key] = value
    return data


def load_settings(
    workdir: str | Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build the settings for a run.

    Sources, later ones win:
      1. built-in defaults
      2. ``terranix.yaml`` in the working directory (``${ENV}`` expanded)
      3. ``TN_*`` environment variables

    Relative paths in ``terranix.yaml`` resolve against the working directory.
    """
    workdir = Path(workdir) if workdir else Path.cwd()
    environ = os.environ if environ is None else environ

    data: dict = {}
    config_path = workdir / CONFIG_FILENAME
    if config_path.is_file():
        log.debug("Loading settings from %s", config_path)
        data.update(_load_yaml(config_path))
    else:
        log.debug("No %s found, using defaults", CONFIG_FILENAME)

    data.update(_env_overrides(environ))
    data["workdir"] = workdir

    for key in ("state_dir", "config_file", "ssh_key_path", "infect_script"):
        if data.get(key):
            data[key] = workdir / Path(data[key]).expanduser()
    if data.get("configurator_path"):
        data["configurator_path"] = [workdir / Path(p).expanduser() for p in data["configurator_path"]]

    return Settings.model_validate(data)
