# src/terranix/nodes/registry.py
from __future__ import annotations

import logging
from typing import List, Sequence

from terranix.build.compiler import Compiler
from terranix.config.models import Settings
from terranix.errors import NoConfigFile, UnknownInstance
from terranix.state.models import InputDocument, Node

log = logging.getLogger("terranix")


class NodeRegistry:
    """Resolves node names against the logical configuration and the input document."""

    def __init__(self, settings: Settings, compiler: Compiler):
        self.settings = settings
        self.compiler = compiler

    def declared_names(self) -> List[str]:
        """Every node the logical configuration declares, evaluated against the cached input."""
        config_file = self.settings.config_file
        if not config_file.is_file():
            raise NoConfigFile(f"configuration {config_file} does not exist")
        return self.compiler.node_names(config_file, self.settings.input_cache)

    def check_instances(self, document: InputDocument, names: Sequence[str]) -> List[str]:
        """
        Validate a batch of names. An empty batch means every declared node.
        The first unknown name aborts the whole batch.
        """
        if not names:
            names = self.declared_names()
            log.debug("No nodes given, using all declared: %s", ", ".join(names))

        resolved: List[str] = []
        for name in names:
            if name not in document.nodes:
                raise UnknownInstance(f"unknown instance '{name}'")
            if name not in resolved:
                resolved.append(name)
        return resolved

    @staticmethod
    def node(document: InputDocument, name: str) -> Node:
        node = document.get(name)
        if node is None:
            raise UnknownInstance(f"unknown instance '{name}'")
        return node
