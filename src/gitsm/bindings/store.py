"""JSON-backed store of repository bindings."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from ..errors import StoreError, StoreWriteError
from ..gitops.config_file import ConfigReconciler
from ..paths import canonical_repo_path, default_ssh_dir
from .models import RepositoryBinding, StoreData

logger = logging.getLogger(__name__)


class BindingStore:
    """Persists which key each repository uses.

    ``upsert`` is the only mutation entry point: it rewrites the whole file and
    then asks the reconciler to update the repository's git config. The store
    write is not rolled back when the reconciler fails; its error propagates.
    """

    def __init__(
        self,
        path: Union[str, Path],
        *,
        default_ssh_path: Union[str, Path, None] = None,
        reconciler: Optional[ConfigReconciler] = None,
    ) -> None:
        self.path = Path(path).expanduser()
        self.default_ssh_path = str(default_ssh_path or default_ssh_dir())
        self.reconciler = reconciler or ConfigReconciler()

    def load(self) -> StoreData:
        if not self.path.exists():
            data = StoreData(default_ssh_path=self.default_ssh_path)
            self.save(data)
            return data
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StoreError(f"Cannot read binding store {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise StoreError(
                f"Binding store {self.path} is not valid JSON: {exc}",
                hint="Fix or move the file aside; it is recreated empty on the next run.",
            ) from exc
        if not isinstance(payload, dict):
            raise StoreError(f"Binding store {self.path} must contain a JSON object")
        try:
            return StoreData.from_payload(payload)
        except ValueError as exc:
            raise StoreError(f"Binding store {self.path} is malformed: {exc}") from exc

    def save(self, data: StoreData) -> None:
        """Atomically replace the store file."""
        text = json.dumps(data.to_payload(), indent=2) + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tmp_", suffix=".json")
        except OSError as exc:
            raise StoreWriteError(f"Cannot write binding store {self.path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise StoreWriteError(f"Cannot write binding store {self.path}: {exc}") from exc

    def get(self, repo_path: Union[str, Path]) -> Optional[RepositoryBinding]:
        return self.load().repositories.get(canonical_repo_path(repo_path))

    def list_bindings(self) -> list[RepositoryBinding]:
        return list(self.load().repositories.values())

    def upsert(self, repo_path: Union[str, Path], key_path: str, remote_url: str) -> RepositoryBinding:
        canonical = canonical_repo_path(repo_path)
        data = self.load()
        previous = data.repositories.get(canonical)
        binding = RepositoryBinding(
            repo_path=canonical,
            ssh_key_path=key_path or "",
            remote_url=remote_url,
        )
        if previous is not None:
            binding.extra = previous.extra
            if previous.created_at:
                binding.created_at = previous.created_at
        data.repositories[canonical] = binding
        self.save(data)
        logger.info("Recorded binding %s -> %s", canonical, binding.ssh_key_path or "<default transport>")

        self.reconciler.set_ssh_command(canonical, binding.ssh_key_path or None)
        return binding
