# src/terranix/utils/nix.py

from __future__ import annotations


def nix_string(value: str) -> str:
    """Quote a Python string as a Nix double-quoted string literal."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("${", "\\${")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def nix_attr(name: str) -> str:
    """Attribute path component, quoted so names like `web-1` or `1a` stay valid."""
    return nix_string(name)
