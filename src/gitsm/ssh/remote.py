"""Remote URL helpers: parse, classify and convert git remotes."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

DEFAULT_HOST = "github.com"
DEFAULT_USER = "git"

_SCP_PATTERN = re.compile(r"^(?:(?P<user>[^@/\s]+)@)?(?P<host>[^:/\s]+):(?P<path>(?!//).+)$")


@dataclass
class RemoteEndpoint:
    """Normalized view of a git remote for SSH probing."""

    host: str
    user: str = DEFAULT_USER
    port: Optional[int] = None
    path: str = ""
    scheme: str = "ssh"

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}"

    @property
    def owner_and_repo(self) -> tuple[str, str]:
        parts = [p for p in self.path.strip("/").split("/") if p]
        repo = parts[-1] if parts else ""
        if repo.endswith(".git"):
            repo = repo[:-4]
        owner = "/".join(parts[:-1])
        return owner, repo


def parse_remote_url(
    remote_url: str,
    *,
    default_host: str = DEFAULT_HOST,
    default_user: str = DEFAULT_USER,
) -> RemoteEndpoint:
    """Parse ``user@host:path`` or a standard URL.

    Never raises: input that cannot be parsed yields the default host.
    """
    url = (remote_url or "").strip()
    if "://" in url:
        parsed = urlparse(url)
        if parsed.hostname:
            try:
                port = parsed.port
            except ValueError:
                port = None
            user = parsed.username if parsed.scheme in ("ssh", "git+ssh", "ssh+git") else None
            return RemoteEndpoint(
                host=parsed.hostname,
                user=user or default_user,
                port=port,
                path=parsed.path,
                scheme=parsed.scheme,
            )
    else:
        match = _SCP_PATTERN.match(url)
        # a Windows drive letter ("C:\repo") looks like host:path
        if match and len(match.group("host")) > 1:
            return RemoteEndpoint(
                host=match.group("host"),
                user=match.group("user") or default_user,
                path=match.group("path"),
            )
    return RemoteEndpoint(host=default_host, user=default_user)


def is_ssh_url(remote_url: str) -> bool:
    url = (remote_url or "").strip()
    if url.startswith(("ssh://", "git+ssh://", "ssh+git://")):
        return True
    if "://" in url:
        return False
    match = _SCP_PATTERN.match(url)
    return bool(match and len(match.group("host")) > 1)


def convert_to_https(remote_url: str) -> str:
    """``git@host:owner/repo.git`` -> ``https://host/owner/repo.git``; other input unchanged."""
    if not is_ssh_url(remote_url):
        return remote_url
    endpoint = parse_remote_url(remote_url)
    return f"https://{endpoint.host}/{endpoint.path.lstrip('/')}"


def convert_to_ssh(remote_url: str, *, user: str = DEFAULT_USER) -> str:
    """``https://host/owner/repo`` -> ``git@host:owner/repo.git``; SSH input unchanged."""
    if is_ssh_url(remote_url):
        return remote_url
    parsed = urlparse(remote_url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return remote_url
    path = parsed.path.strip("/")
    if not path:
        return remote_url
    if not path.endswith(".git"):
        path += ".git"
    return f"{user}@{parsed.hostname}:{path}"


def extract_repo_name(remote_url: str) -> str:
    match = re.search(r"[/:]([^/:]+?)(?:\.git)?/?$", (remote_url or "").strip())
    return match.group(1) if match else "repository"
