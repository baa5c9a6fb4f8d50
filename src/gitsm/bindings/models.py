"""Data models for persisted repository bindings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict


def utcnow_iso() -> str:
    """Timestamp in the ``2024-01-01T12:00:00.000Z`` form used by the store."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


@dataclass
class RepositoryBinding:
    """Which SSH key a repository uses; an empty key means default transport."""

    repo_path: str
    ssh_key_path: str
    remote_url: str
    # verbatim from the store when loaded; None when the entry had no createdAt
    created_at: Any = field(default_factory=utcnow_iso)
    # keys written by other tools or versions, kept verbatim
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def uses_ssh(self) -> bool:
        return bool(self.ssh_key_path)

    def to_payload(self) -> Dict[str, Any]:
        payload = dict(self.extra)
        payload["repoPath"] = self.repo_path
        payload["sshKeyPath"] = self.ssh_key_path
        payload["remoteUrl"] = self.remote_url
        if self.created_at is not None or "createdAt" in self.extra:
            payload["createdAt"] = self.created_at
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], repo_path: str = "") -> "RepositoryBinding":
        return cls(
            repo_path=payload.get("repoPath") or repo_path,
            ssh_key_path=payload.get("sshKeyPath") or "",
            remote_url=payload.get("remoteUrl") or "",
            created_at=payload.get("createdAt"),
            extra=dict(payload),
        )


@dataclass
class StoreData:
    """The whole persisted document."""

    repositories: Dict[str, RepositoryBinding] = field(default_factory=dict)
    default_ssh_path: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload = dict(self.extra)
        payload["repositories"] = {
            path: binding.to_payload() for path, binding in self.repositories.items()
        }
        payload["defaultSSHPath"] = self.default_ssh_path
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "StoreData":
        repositories = payload.get("repositories") or {}
        if not isinstance(repositories, dict):
            raise ValueError("'repositories' must be an object")
        return cls(
            repositories={
                path: RepositoryBinding.from_payload(_entry_payload(path, entry), repo_path=path)
                for path, entry in repositories.items()
            },
            default_ssh_path=payload.get("defaultSSHPath") or "",
            extra=dict(payload),
        )


def _entry_payload(path: str, entry: Any) -> Dict[str, Any]:
    if entry is None:
        return {}
    if not isinstance(entry, dict):
        raise ValueError(f"binding for {path!r} must be an object, got {type(entry).__name__}")
    return entry
