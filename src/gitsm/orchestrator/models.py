"""Data models for the orchestrator module."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..ssh.keys import SSHKeyRecord
from ..ssh.probe import ProbeResult


class BindState(Enum):
    """Lifecycle of a repository binding"""
    UNBOUND = "unbound"
    TESTING = "testing"
    BOUND = "bound"
    STALE = "stale"             # recorded key missing or never recorded
    REVALIDATING = "revalidating"


@dataclass
class BindResult:
    """Outcome of clone / bind / repair; the caller decides what to print."""

    repo_path: str
    state: BindState = BindState.UNBOUND
    key: Optional[SSHKeyRecord] = None
    key_path: str = ""
    remote_url: str = ""
    warnings: List[str] = field(default_factory=list)
    probe: Optional[ProbeResult] = None
    history: List[BindState] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(self.state)

    def advance(self, state: BindState) -> None:
        self.state = state
        self.history.append(state)

    @property
    def uses_ssh(self) -> bool:
        return bool(self.key_path)
