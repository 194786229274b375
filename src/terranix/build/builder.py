# src/terranix/build/builder.py
from __future__ import annotations

import logging

from terranix.build.compiler import Compiler
from terranix.config.models import Settings
from terranix.errors import NoConfigFile
from terranix.generator.generator import artifact_path
from terranix.state.models import Node

log = logging.getLogger("terranix")


class Builder:
    """Compiles the configuration `init` generated. Never regenerates it."""

    def __init__(self, settings: Settings, compiler: Compiler):
        self.settings = settings
        self.compiler = compiler

    def build_instance(self, node: Node) -> str:
        node.require("provider")
        config_path = artifact_path(self.settings, node)
        if not config_path.is_file() or config_path.stat().st_size == 0:
            raise NoConfigFile(
                f"[{node.name}] no configuration at {config_path}, run `terranix init {node.name}`"
            )

        log.info("[%s] Building %s", node.name, config_path)
        path = self.compiler.build(config_path)
        log.info("[%s] Built %s", node.name, path)
        return path
