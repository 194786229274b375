# src/terranix/state/models.py

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from terranix.errors import IncompleteInstance

ACTIONABLE_FIELDS = ("ip", "provider", "ssh_key")


class Node(BaseModel):
    """
    A remote target machine as described by the input document.
    Read-only: nothing in terranix mutates a node.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    ip: str = ""
    provider: str = ""
    ssh_key: str = Field(default="", alias="sshKey")
    # Optional pre-computed hardware profile, used by `initFromJSON`
    hardware: Optional[str] = None

    @field_validator("ip", "provider", "ssh_key", mode="before")
    @classmethod
    def _null_is_empty(cls, v: Any) -> Any:
        # terraform writes unset attributes as null
        return "" if v is None else v

    @property
    def actionable(self) -> bool:
        return all(getattr(self, f) for f in ACTIONABLE_FIELDS)

    def missing(self, *fields: str) -> list[str]:
        fields = fields or ACTIONABLE_FIELDS
        return [f for f in fields if not getattr(self, f)]

    def require(self, *fields: str) -> "Node":
        """Raise IncompleteInstance unless every named field is non-empty."""
        missing = self.missing(*fields)
        if missing:
            raise IncompleteInstance(
                f"node '{self.name}' is missing {', '.join(missing)}"
            )
        return self


class InputDocument(BaseModel):
    """Per-run snapshot of the fleet: opaque metadata plus nodes by name."""
    model_config = ConfigDict(frozen=True)

    meta: Dict[str, Any] = Field(default_factory=dict)
    nodes: Dict[str, Node] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _name_nodes(cls, data: Any) -> Any:
        # node entries are keyed by name; the name is not repeated inside
        if isinstance(data, dict) and isinstance(data.get("nodes"), dict):
            nodes = {}
            for name, entry in data["nodes"].items():
                if isinstance(entry, dict):
                    entry = {**entry, "name": name}
                nodes[name] = entry
            data = {**data, "nodes": nodes}
        return data

    def get(self, name: str) -> Optional[Node]:
        return self.nodes.get(name)

    def names(self) -> list[str]:
        return list(self.nodes)
