"""
Bind / repair orchestrator.

Composes key discovery, the interactive selection, the auth probe, the binding
store and the git config reconciler into the three user-level flows:

- ``bind``   adopt an existing repository ("convert")
- ``repair`` re-sync a repository's config with its recorded binding ("fix")
- ``clone``  clone with a selected key, falling back to HTTPS
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Tuple, Union

from ..bindings import BindingStore
from ..config import AppConfig
from ..errors import (
    CancelledError,
    DestinationExistsError,
    GitCommandError,
    KeyValidationError,
    NoKeysFoundError,
    NoRemoteConfiguredError,
    NotARepositoryError,
)
from ..gitops.config_file import ConfigReconciler, format_ssh_command
from ..gitops.manager import GitClient
from ..interaction import UserInteractionHandler
from ..paths import canonical_repo_path
from ..ssh.keys import KeyScanner, SSHKeyRecord, key_generation_hint, validate_key_pair
from ..ssh.probe import KeyTester
from ..ssh.remote import convert_to_https, convert_to_ssh, extract_repo_name, is_ssh_url
from .models import BindResult, BindState

logger = logging.getLogger(__name__)


class BindingOrchestrator:
    """Runs the clone / convert / fix flows against injected collaborators."""

    def __init__(
        self,
        git: GitClient,
        scanner: KeyScanner,
        tester: KeyTester,
        store: BindingStore,
        interaction: UserInteractionHandler,
        *,
        verify_repository: bool = False,
    ) -> None:
        self.git = git
        self.scanner = scanner
        self.tester = tester
        self.store = store
        self.interaction = interaction
        self.verify_repository = verify_repository

    # ------------------------------------------------------------------
    # convert
    # ------------------------------------------------------------------

    def bind(self, repo_path: Union[str, Path] = ".", *, test: bool = True) -> BindResult:
        repo, git, remote = self._open_repository(repo_path)
        result = BindResult(repo_path=repo, remote_url=remote)

        target_remote = remote
        if not is_ssh_url(remote):
            ssh_url = convert_to_ssh(remote, user=self.tester.default_user)
            switch = self.interaction.confirm(
                "Repository is using HTTPS. Switch the remote to SSH?",
                context=f"{remote} -> {ssh_url}",
                default="y",
            )
            if not switch:
                result.warnings.append("Kept the HTTPS remote; the default transport stays in use")
                self.store.upsert(repo, "", remote)
                result.advance(BindState.BOUND)
                return result
            target_remote = ssh_url

        key = self._select_key("for this repository")
        validate_key_pair(key.path, key.public_key_path)

        if test:
            result.advance(BindState.TESTING)
            if not self._probe(key, target_remote, result):
                raise CancelledError(
                    f"SSH test failed for {key.name}; repository left unchanged",
                    hint="Add the public key to your Git service, or re-run with --no-test.",
                )

        if target_remote != remote:
            git.set_remote_url(target_remote)
            logger.info("Switched origin of %s to %s", repo, target_remote)

        self.store.upsert(repo, key.path, target_remote)
        result.key = key
        result.key_path = key.path
        result.remote_url = target_remote
        result.advance(BindState.BOUND)
        return result

    # ------------------------------------------------------------------
    # fix
    # ------------------------------------------------------------------

    def repair(self, repo_path: Union[str, Path] = ".") -> BindResult:
        repo, _git, remote = self._open_repository(repo_path)
        binding = self.store.get(repo)
        result = BindResult(
            repo_path=repo,
            state=BindState.BOUND if binding is not None else BindState.STALE,
            remote_url=remote,
        )

        key_path = ""
        if is_ssh_url(remote):
            recorded = binding.ssh_key_path if binding is not None else ""
            if recorded and Path(recorded).expanduser().is_file():
                key_path = recorded
            else:
                if result.state is not BindState.STALE:
                    result.advance(BindState.STALE)
                result.warnings.append(
                    f"Configured SSH key does not exist: {recorded}" if recorded
                    else "No SSH key recorded for this repository"
                )
                key = self._select_key("for this repository")
                validate_key_pair(key.path, key.public_key_path)
                result.key = key
                key_path = key.path

        result.advance(BindState.REVALIDATING)
        self.store.upsert(repo, key_path, remote)
        result.key_path = key_path
        result.advance(BindState.BOUND)
        return result

    # ------------------------------------------------------------------
    # clone
    # ------------------------------------------------------------------

    def clone(
        self,
        url: str,
        target_dir: Union[str, Path, None] = None,
        *,
        force_https: bool = False,
        test: bool = True,
    ) -> BindResult:
        target = Path(target_dir or extract_repo_name(url)).expanduser().absolute()
        if _is_occupied(target):
            raise DestinationExistsError(str(target))

        result = BindResult(repo_path=str(target), remote_url=url)
        if force_https or not is_ssh_url(url):
            return self._clone_https(url, target, result)

        if self._clone_ssh(url, target, result, test=test):
            return result

        if _is_occupied(target):
            raise DestinationExistsError(str(target))
        logger.info("Falling back to HTTPS clone of %s", url)
        self.interaction.notify("Falling back to HTTPS clone", "warning")
        return self._clone_https(convert_to_https(url), target, result)

    def _clone_ssh(self, url: str, target: Path, result: BindResult, *, test: bool) -> bool:
        """Clone with a selected key. False means "fall back to HTTPS"."""
        try:
            key = self._select_key("to clone with")
            validate_key_pair(key.path, key.public_key_path)
        except (NoKeysFoundError, KeyValidationError) as exc:
            result.warnings.append(str(exc))
            return False

        if test:
            result.advance(BindState.TESTING)
            if not self._probe(key, url, result):
                return False

        self.interaction.notify(f"Cloning {url} into {target}")
        try:
            self.git.clone(url, target, ssh_command=format_ssh_command(key.path))
        except GitCommandError as exc:
            result.warnings.append(f"SSH clone failed: {exc.stderr.strip() or exc}")
            return False

        repo = canonical_repo_path(target)
        self.store.upsert(repo, key.path, url)
        result.repo_path = repo
        result.key = key
        result.key_path = key.path
        result.advance(BindState.BOUND)
        return True

    def _clone_https(self, url: str, target: Path, result: BindResult) -> BindResult:
        https_url = convert_to_https(url) if is_ssh_url(url) else url
        self.interaction.notify(f"Cloning {https_url} into {target}")
        self.git.clone(https_url, target)
        repo = canonical_repo_path(target)
        self.store.upsert(repo, "", https_url)
        result.repo_path = repo
        result.remote_url = https_url
        result.key = None
        result.key_path = ""
        result.advance(BindState.BOUND)
        return result

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _open_repository(self, repo_path: Union[str, Path]) -> Tuple[str, GitClient, str]:
        path = canonical_repo_path(repo_path)
        git = self.git.at(path)
        if not Path(path).is_dir() or not git.is_repository():
            raise NotARepositoryError(path)
        try:
            repo = canonical_repo_path(git.toplevel() or path)
        except GitCommandError:
            # bare repositories have no work tree
            repo = path
        git = self.git.at(repo)
        remote = git.remote_url()
        if not remote:
            raise NoRemoteConfiguredError(repo)
        return repo, git, remote

    def _select_key(self, purpose: str) -> SSHKeyRecord:
        keys = self.scanner.discover()
        if not keys:
            raise NoKeysFoundError(
                f"No SSH keys found in {self.scanner.ssh_dir}",
                hint=key_generation_hint(),
            )
        options = [f"{key.relative_path or key.path} ({key.key_type}, {key.fingerprint})" for key in keys]
        index = self.interaction.choose(f"Select SSH key {purpose}:", options)
        if index is None:
            raise CancelledError("No SSH key selected")
        key = keys[index]
        logger.info("Selected key %s", key.path)
        return key

    def _probe(self, key: SSHKeyRecord, remote_url: str, result: BindResult) -> bool:
        """Run the auth probe; on failure ask whether to continue."""
        self.interaction.notify(f"Testing SSH connection with {key.relative_path or key.path}")
        probe = self.tester.test(key.path, remote_url)
        if probe.success and self.verify_repository:
            probe = self.tester.check_repository(key.path, remote_url)
        result.probe = probe
        if probe.success:
            logger.info("SSH authentication succeeded with %s", key.name)
            self.interaction.notify("SSH connection successful", "success")
            return True

        error = probe.error or "unknown error"
        result.warnings.append(f"SSH test failed: {error}")
        logger.warning("SSH test failed for %s: %s", key.name, error)
        return self.interaction.confirm("SSH test failed. Continue anyway?", context=error)


def _is_occupied(target: Path) -> bool:
    if not target.exists():
        return False
    if not target.is_dir():
        return True
    return any(target.iterdir())


def build_orchestrator(config: AppConfig, interaction: UserInteractionHandler) -> BindingOrchestrator:
    """Wire the default collaborators from an ``AppConfig``."""
    return BindingOrchestrator(
        git=GitClient(git_binary=config.git.binary),
        scanner=KeyScanner(config.paths.ssh_dir, keygen_binary=config.ssh.keygen_binary),
        tester=KeyTester(
            ssh_binary=config.ssh.binary,
            git_binary=config.git.binary,
            connect_timeout=config.probe.connect_timeout,
            timeout=config.probe.timeout,
            default_host=config.ssh.default_host,
            default_user=config.ssh.default_user,
        ),
        store=BindingStore(
            config.paths.store_path,
            default_ssh_path=config.paths.ssh_dir,
            reconciler=ConfigReconciler(),
        ),
        interaction=interaction,
        verify_repository=config.probe.verify_repository,
    )
