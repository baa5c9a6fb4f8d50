"""Stash-guarded branch switching."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..errors import GitCommandError, LocalChangesError, UnknownBranchError
from .manager import GitClient, StashRef

logger = logging.getLogger(__name__)

# Git's own refusal to switch; never answered with an automatic stash.
_LOCAL_CHANGES_MARKERS = (
    "Please commit your changes or stash them",
    "would be overwritten by checkout",
)


class SwitchState(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    STASHED = "stashed"
    SWITCHED = "switched"
    REAPPLYING = "reapplying"
    CONFLICTED = "conflicted"
    DONE = "done"


@dataclass
class SwitchResult:
    """Outcome of a branch switch; CONFLICTED results carry recovery steps."""

    state: SwitchState
    previous_branch: str
    target_branch: str
    stash: Optional[StashRef] = None
    created: bool = False
    pulled: bool = False
    warnings: List[str] = field(default_factory=list)
    recovery: List[str] = field(default_factory=list)

    @property
    def conflicted(self) -> bool:
        return self.state is SwitchState.CONFLICTED


def stash_message(current: str, target: str) -> str:
    return f"gitsm: auto-stash on {current} before switching to {target}"


class BranchSwitcher:
    """Moves between branches without losing uncommitted work.

    Local changes are stashed, the target branch is checked out (and pulled),
    and the stash is re-applied with ``git stash apply`` so a failed reapply
    never destroys the only copy of the changes. The stash is dropped only
    once it applied without unmerged entries.
    """

    def __init__(self, git: GitClient) -> None:
        self.git = git

    def switch(
        self,
        target: str,
        *,
        create: bool = False,
        force: bool = False,
        pull: bool = True,
    ) -> SwitchResult:
        try:
            return self._switch(target, create=create, force=force, pull=pull)
        except GitCommandError as exc:
            if any(marker in exc.output for marker in _LOCAL_CHANGES_MARKERS):
                raise LocalChangesError(exc.output) from exc
            raise

    def _switch(self, target: str, *, create: bool, force: bool, pull: bool) -> SwitchResult:
        current = self.git.current_branch()
        dirty = self.git.has_uncommitted_changes()
        result = SwitchResult(
            state=SwitchState.DIRTY if dirty else SwitchState.CLEAN,
            previous_branch=current,
            target_branch=target,
        )

        if current == target:
            logger.info("Already on branch '%s'", target)
            if pull:
                self._pull(result)
            result.state = SwitchState.DONE
            return result

        exists = self.git.branch_exists(target)
        if not exists and not create:
            raise UnknownBranchError(target)

        if dirty and not force:
            result.stash = self.git.stash_push(stash_message(current, target))
            if result.stash is not None:
                logger.info("Stash created: %s", result.stash.sha)
                result.state = SwitchState.STASHED

        try:
            self.git.checkout(target, create=not exists)
        except GitCommandError:
            if result.stash is not None:
                self._restore_in_place(result.stash)
            raise
        result.created = not exists
        result.state = SwitchState.SWITCHED

        if pull and exists:
            self._pull(result)

        stash = result.stash
        if stash is None:
            result.state = SwitchState.DONE
            return result

        result.state = SwitchState.REAPPLYING
        try:
            self.git.stash_apply(stash)
        except GitCommandError as exc:
            logger.warning("Applying stash %s failed: %s", stash.short, exc.output)
            return self._conflicted(result, stash, exc.output)

        if self.git.has_conflicts():
            return self._conflicted(result, stash, "")

        self.git.stash_drop(stash)
        result.state = SwitchState.DONE
        return result

    def _pull(self, result: SwitchResult) -> None:
        try:
            self.git.pull()
            result.pulled = True
        except GitCommandError as exc:
            message = "Pull failed. You might need to set up tracking or handle merge conflicts."
            logger.warning("%s (%s)", message, exc.output)
            result.warnings.append(message)

    def _restore_in_place(self, stash: StashRef) -> None:
        """Put stashed changes back on the unchanged branch after a refused checkout."""
        try:
            self.git.stash_apply(stash)
        except GitCommandError as exc:
            logger.warning("Could not restore stash %s; it is kept: %s", stash.sha, exc.output)
            return
        self.git.stash_drop(stash)

    def _conflicted(self, result: SwitchResult, stash: StashRef, detail: str) -> SwitchResult:
        sha = stash.sha
        result.state = SwitchState.CONFLICTED
        if detail:
            result.warnings.append(detail)
        result.recovery = [
            f"Your changes are preserved in stash {sha} ({stash.message}).",
            "1. Resolve the conflicts (or reset the conflicting files).",
            f"2. Re-apply if needed: git stash apply {sha}",
            "3. Once your changes are back, remove the stash: "
            f"git stash drop $(git stash list --format='%gd %H' | grep {sha} | cut -d' ' -f1)",
        ]
        return result
