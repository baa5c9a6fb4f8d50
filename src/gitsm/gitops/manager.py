"""Subprocess wrapper around the `git` CLI."""

from __future__ import annotations

import logging
import os
import re
import subprocess
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from ..errors import GitCommandError

logger = logging.getLogger(__name__)

# Porcelain v1 status codes for unmerged paths.
UNMERGED_CODES = frozenset({"UU", "AA", "DD", "AU", "UA", "DU", "UD"})

_NO_CHANGES_MARKER = "No local changes to save"
_STASH_ENTRY = re.compile(r"^(stash@\{\d+\})\s+([0-9a-f]{7,40})(?:\s+(.*))?$")


@dataclass(frozen=True)
class StashRef:
    """A stash entry identified by its commit id, independent of its slot."""

    sha: str
    message: str

    @property
    def short(self) -> str:
        return self.sha[:10]


@dataclass
class StatusEntry:
    code: str
    path: str

    @property
    def unmerged(self) -> bool:
        return self.code in UNMERGED_CODES


class GitClient:
    """Runs git commands inside one working directory."""

    def __init__(self, cwd: Union[str, Path, None] = None, git_binary: str = "git") -> None:
        self.cwd = Path(cwd) if cwd else None
        self.git_binary = git_binary

    def at(self, cwd: Union[str, Path]) -> "GitClient":
        return GitClient(cwd, git_binary=self.git_binary)

    # -- repository ---------------------------------------------------------

    def is_repository(self) -> bool:
        try:
            self._run(["rev-parse", "--git-dir"], timeout=5)
        except (GitCommandError, OSError, subprocess.TimeoutExpired):
            return False
        return True

    def toplevel(self) -> str:
        return self._run(["rev-parse", "--show-toplevel"]).strip()

    def clone(
        self,
        repo_url: str,
        target_dir: Union[str, Path],
        *,
        ssh_command: Optional[str] = None,
    ) -> None:
        env = {"GIT_SSH_COMMAND": ssh_command} if ssh_command else None
        self._run(["clone", repo_url, str(target_dir)], env=env)

    def remote_url(self, remote: str = "origin") -> Optional[str]:
        try:
            url = self._run(["remote", "get-url", remote]).strip()
        except GitCommandError:
            return None
        return url or None

    def set_remote_url(self, url: str, remote: str = "origin") -> None:
        self._run(["remote", "set-url", remote, url])

    # -- branches -----------------------------------------------------------

    def current_branch(self) -> str:
        return self._run(["rev-parse", "--abbrev-ref", "HEAD"]).strip()

    def branch_exists(self, branch: str) -> bool:
        for ref in (branch, f"origin/{branch}"):
            try:
                self._run(["rev-parse", "--verify", "--quiet", ref])
                return True
            except GitCommandError:
                continue
        return False

    def checkout(self, branch: str, *, create: bool = False) -> None:
        args = ["checkout", "-b", branch] if create else ["checkout", branch]
        self._run(args)

    def pull(self) -> str:
        return self._run(["pull"])

    # -- working tree -------------------------------------------------------

    def status(self) -> list[StatusEntry]:
        output = self._run(["status", "--porcelain"])
        entries = []
        for line in output.splitlines():
            if len(line) < 4:
                continue
            entries.append(StatusEntry(code=line[:2], path=line[3:]))
        return entries

    def has_uncommitted_changes(self) -> bool:
        return bool(self.status())

    def has_conflicts(self) -> bool:
        return any(entry.unmerged for entry in self.status())

    # -- stash --------------------------------------------------------------

    def stash_push(self, message: str) -> Optional[StashRef]:
        """Stash local changes; returns None when git had nothing to save.

        The entry is found again by a one-off tag appended to its message, so
        a stash created concurrently by another process is never mistaken
        for ours.
        """
        tagged = f"{message} [{uuid.uuid4().hex[:12]}]"
        process = self._run_process(["stash", "push", "-m", tagged])
        if _NO_CHANGES_MARKER in process.stdout + process.stderr:
            return None
        for _, sha, subject in self._stash_entries():
            if subject.endswith(tagged):
                return StashRef(sha=sha, message=tagged)
        raise GitCommandError(
            [self.git_binary, "stash", "list"],
            1,
            f"stash created as {tagged!r} is missing from the stash list",
        )

    def stash_apply(self, stash: StashRef) -> str:
        return self._run(["stash", "apply", stash.sha])

    def stash_list(self) -> list[tuple[str, str]]:
        """``(slot, sha)`` pairs, newest first."""
        return [(slot, sha) for slot, sha, _ in self._stash_entries()]

    def _stash_entries(self) -> list[tuple[str, str, str]]:
        output = self._run(["stash", "list", "--format=%gd %H %gs"])
        entries = []
        for line in output.splitlines():
            match = _STASH_ENTRY.match(line.strip())
            if match:
                entries.append((match.group(1), match.group(2), match.group(3) or ""))
        return entries

    def stash_slot(self, stash: StashRef) -> Optional[str]:
        for slot, sha in self.stash_list():
            if sha == stash.sha:
                return slot
        return None

    def stash_drop(self, stash: StashRef) -> None:
        # `git stash drop` only accepts stash@{n}, so resolve the current slot first
        slot = self.stash_slot(stash)
        if slot is None:
            logger.warning("Stash %s is no longer in the stash list", stash.short)
            return
        self._run(["stash", "drop", slot])

    def _run(
        self,
        args: list[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[int] = None,
    ) -> str:
        return self._run_process(args, env=env, timeout=timeout).stdout

    def _run_process(
        self,
        args: list[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[int] = None,
    ) -> subprocess.CompletedProcess:
        command = [self.git_binary] + args
        logger.debug("Running %s (cwd=%s)", " ".join(command), self.cwd)
        process = subprocess.run(
            command,
            cwd=str(self.cwd) if self.cwd else None,
            capture_output=True,
            text=True,
            env={**os.environ, **env} if env else None,
            timeout=timeout,
            check=False,
        )
        if process.returncode != 0:
            raise GitCommandError(command, process.returncode, process.stderr.strip(), process.stdout.strip())
        return process
