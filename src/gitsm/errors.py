"""Error taxonomy shared by the gitsm components."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Stable identifiers for every failure gitsm reports."""

    NO_KEYS_FOUND = "NoKeysFound"
    KEY_VALIDATION = "KeyValidationError"
    AUTH_PROBE_FAILURE = "AuthProbeFailure"
    CONFIG_PARSE = "ConfigParseError"
    NOT_A_REPOSITORY = "NotARepository"
    NO_REMOTE = "NoRemoteConfigured"
    UNKNOWN_BRANCH = "UnknownBranch"
    STASH_CONFLICT = "StashConflict"
    LOCAL_CHANGES = "LocalChangesBlockCheckout"
    STORE = "StoreError"
    STORE_WRITE = "StoreWriteError"
    GIT_COMMAND = "GitCommandError"
    CANCELLED = "Cancelled"
    DESTINATION_EXISTS = "DestinationExists"


class GitsmError(RuntimeError):
    """Base class for errors that abort the current command."""

    kind: ErrorKind = ErrorKind.GIT_COMMAND

    def __init__(self, message: str, *, hint: Optional[str] = None) -> None:
        self.hint = hint
        super().__init__(message)


class NoKeysFoundError(GitsmError):
    kind = ErrorKind.NO_KEYS_FOUND


class KeyValidationError(GitsmError):
    kind = ErrorKind.KEY_VALIDATION


class ConfigParseError(GitsmError):
    """Raised when a repository's git config cannot be read or understood."""

    kind = ErrorKind.CONFIG_PARSE

    def __init__(self, path: str, reason: str, *, line_number: Optional[int] = None) -> None:
        self.path = path
        self.line_number = line_number
        location = f"{path}:{line_number}" if line_number else path
        super().__init__(
            f"Cannot reconcile git config {location}: {reason}",
            hint="Fix the file by hand (or run `git config --list` to locate the problem) and retry.",
        )


class NotARepositoryError(GitsmError):
    kind = ErrorKind.NOT_A_REPOSITORY

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Not a git repository: {path}")


class NoRemoteConfiguredError(GitsmError):
    kind = ErrorKind.NO_REMOTE

    def __init__(self, path: str, remote: str = "origin") -> None:
        self.path = path
        self.remote = remote
        super().__init__(
            f"No remote URL configured for '{remote}' in {path}",
            hint=f"Add one with: git remote add {remote} <url>",
        )


class UnknownBranchError(GitsmError):
    kind = ErrorKind.UNKNOWN_BRANCH

    def __init__(self, branch: str) -> None:
        self.branch = branch
        super().__init__(
            f"Branch '{branch}' doesn't exist.",
            hint="Use --create (-b) to create a new branch.",
        )


class LocalChangesError(GitsmError):
    """Git refused to switch because of local changes it cannot carry over."""

    kind = ErrorKind.LOCAL_CHANGES

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(
            "You have conflicting changes that cannot be stashed automatically.",
            hint="Please commit or stash your changes manually before switching branches.",
        )


class StoreError(GitsmError):
    """The binding store could not be read."""

    kind = ErrorKind.STORE


class StoreWriteError(StoreError):
    kind = ErrorKind.STORE_WRITE


class CancelledError(GitsmError):
    kind = ErrorKind.CANCELLED


class DestinationExistsError(GitsmError):
    kind = ErrorKind.DESTINATION_EXISTS

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"Destination path {path!r} already exists and is not an empty directory",
            hint="Pass a different directory with -d, or remove the existing one.",
        )


class GitCommandError(GitsmError):
    """Raised when a git command fails."""

    kind = ErrorKind.GIT_COMMAND

    def __init__(self, command: list[str], exit_code: int, stderr: str, stdout: str = "") -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout
        super().__init__(f"Git command {' '.join(command)} failed with code {exit_code}: {stderr}")

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)
