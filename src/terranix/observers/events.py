# src/terranix/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single terranix invocation
    command: str      # init/check/build/push/...

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(command: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "run_id": run_id or str(uuid.uuid4()),
        "command": command,
    }


# ---------------------------------------------------------------------
# Command lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class CommandStarted(BaseEvent):
    nodes: List[str]

@dataclass(frozen=True)
class CommandFinished(BaseEvent):
    exit_code: int
    failed: List[str]


# ---------------------------------------------------------------------
# Node lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NodeProbed(BaseEvent):
    name: str
    reachable: bool
    attempts: int

@dataclass(frozen=True)
class NodeInitialized(BaseEvent):
    name: str
    path: str

@dataclass(frozen=True)
class NodeBuilt(BaseEvent):
    name: str
    path: str

@dataclass(frozen=True)
class NodePushed(BaseEvent):
    name: str
    path: str
    result: str

@dataclass(frozen=True)
class NodeFailed(BaseEvent):
    name: str
    error: str
    exit_code: int
