# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/terranix/generator/generator.py
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from terranix.config.models import Settings
from terranix.errors import NoConfigFile, NoConfigurator
from terranix.generator.configurator import ConfiguratorRunner, find_configurator
from terranix.generator.template_renderer import TemplateRenderer
from terranix.state.models import Node

log = logging.getLogger("terranix")

TEMPLATE = "configuration.nix.j2"
CONFIG_NAME = "configuration.nix"
HARDWARE_NAME = "hardware-configuration.nix"


@dataclass(frozen=True)
class ConfigArtifact:
    name: str
    provider: str
    path: Path             # configuration.nix handed to the compiler
    hardware_path: Path


def artifact_dir(settings: Settings, node: Node) -> Path:
    return settings.nodes_dir / node.provider / node.name


def artifact_path(settings: Settings, node: Node) -> Path:
    return artifact_dir(settings, node) / CONFIG_NAME


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class ConfigGenerator:
    """
    Writes the per-node NixOS configuration:
      - hardware profile from the provider's configurator (or the input document)
      - the node's entry of the logical configuration
      - hostname, sshd and the node's root key
    Output only depends on those inputs, so re-running init is a no-op on disk.
    """

    def __init__(
        self,
        settings: Settings,
        runner: ConfiguratorRunner,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self.settings = settings
        self.runner = runner
        self.renderer = renderer or TemplateRenderer()

    def find_configurator(self, node: Node) -> Path:
        return find_configurator(self.settings.configurator_path, node.provider)

    def init_instance(self, node: Node) -> ConfigArtifact:
        node.require()
        configurator = self.find_configurator(node)
        hardware = self.runner.run(configurator, node)
        return self._write(node, hardware)

    def init_instance_from_document(self, node: Node) -> ConfigArtifact:
        """Same artifact, hardware profile taken from the input document instead of the machine."""
        node.require()
        if not node.hardware:
            raise NoConfigurator(
                f"node '{node.name}' has no hardware profile in the input document"
            )
        return self._write(node, node.hardware)

    def require_config(self) -> Path:
        config_file = self.settings.config_file
        if not config_file.is_file():
            raise NoConfigFile(f"configuration {config_file} does not exist")
        return config_file

    def _write(self, node: Node, hardware: str) -> ConfigArtifact:
        config_file = self.require_config()

        if not hardware.endswith("\n"):
            hardware += "\n"

        rendered = self.renderer.render(
            TEMPLATE,
            {
                "name": node.name,
                "provider": node.provider,
                "ssh_key": node.ssh_key.strip(),
                "config_path": str(config_file.resolve()),
                "input_path": str(self.settings.input_cache.resolve()),
                "config_digest": _sha256(config_file.read_bytes()),
                "hardware_digest": _sha256(hardware.encode("utf-8")),
            },
        )

        target = artifact_dir(self.settings, node)
        target.mkdir(parents=True, exist_ok=True)
        hardware_path = target / HARDWARE_NAME
        config_path = target / CONFIG_NAME
        hardware_path.write_text(hardware, encoding="utf-8")
        config_path.write_text(rendered, encoding="utf-8")

        log.info("[%s] Wrote %s", node.name, config_path)
        return ConfigArtifact(
            name=node.name,
            provider=node.provider,
            path=config_path,
            hardware_path=hardware_path,
        )
