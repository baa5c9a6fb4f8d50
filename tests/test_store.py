import json
import tempfile
import unittest
from pathlib import Path

from gitsm.bindings import BindingStore, RepositoryBinding
from gitsm.errors import ConfigParseError, StoreError
from gitsm.paths import canonical_repo_path


class RecordingReconciler:
    def __init__(self, error: Exception = None) -> None:
        self.calls = []
        self.error = error

    def set_ssh_command(self, repo_path, key_path) -> None:
        self.calls.append((repo_path, key_path))
        if self.error is not None:
            raise self.error


class BindingStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.path = self.root / "gitsm" / "config.json"
        self.reconciler = RecordingReconciler()
        self.store = BindingStore(self.path, default_ssh_path="/home/me/.ssh", reconciler=self.reconciler)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_first_load_creates_empty_store(self) -> None:
        data = self.store.load()
        self.assertEqual(data.repositories, {})
        self.assertEqual(
            json.loads(self.path.read_text(encoding="utf-8")),
            {"repositories": {}, "defaultSSHPath": "/home/me/.ssh"},
        )

    def test_save_of_load_is_a_noop(self) -> None:
        payload = {
            "repositories": {
                "/work/app": {
                    "repoPath": "/work/app",
                    "sshKeyPath": "/home/me/.ssh/id_work",
                    "remoteUrl": "git@github.com:octo/app.git",
                    "createdAt": "2024-01-01T12:00:00.000Z",
                    "pinned": True,
                }
            },
            "defaultSSHPath": "/home/me/.ssh",
            "version": 2,
        }
        self.path.parent.mkdir(parents=True)
        original = json.dumps(payload, indent=2) + "\n"
        self.path.write_text(original, encoding="utf-8")

        self.store.save(self.store.load())

        self.assertEqual(self.path.read_text(encoding="utf-8"), original)

    def test_upsert_adds_exactly_one_entry(self) -> None:
        repo = self.root / "repo"
        repo.mkdir()
        before = len(self.store.list_bindings())

        binding = self.store.upsert(repo, "/home/me/.ssh/id_work", "git@github.com:octo/repo.git")

        bindings = self.store.list_bindings()
        self.assertEqual(len(bindings), before + 1)
        self.assertEqual(binding.repo_path, canonical_repo_path(repo))
        self.assertEqual(self.store.get(repo).ssh_key_path, "/home/me/.ssh/id_work")
        self.assertTrue(binding.created_at.endswith("Z"))
        self.assertEqual(self.reconciler.calls, [(canonical_repo_path(repo), "/home/me/.ssh/id_work")])

    def test_repeat_upsert_overwrites_and_keeps_created_at(self) -> None:
        repo = self.root / "repo"
        repo.mkdir()
        first = self.store.upsert(repo, "/keys/a", "git@github.com:octo/repo.git")
        second = self.store.upsert(str(repo) + "/", "", "https://github.com/octo/repo.git")

        self.assertEqual(len(self.store.list_bindings()), 1)
        self.assertEqual(second.created_at, first.created_at)
        self.assertFalse(second.uses_ssh)
        self.assertEqual(self.reconciler.calls[-1], (canonical_repo_path(repo), None))

    def test_reconciler_failure_propagates_after_store_write(self) -> None:
        repo = self.root / "repo"
        repo.mkdir()
        store = BindingStore(
            self.path,
            reconciler=RecordingReconciler(ConfigParseError(str(repo), "boom")),
        )
        with self.assertRaises(ConfigParseError):
            store.upsert(repo, "/keys/a", "git@github.com:octo/repo.git")
        self.assertIsNotNone(store.get(repo))

    def test_corrupt_store_raises(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{broken", encoding="utf-8")
        with self.assertRaises(StoreError) as ctx:
            self.store.load()
        self.assertIsNotNone(ctx.exception.hint)

    def test_non_object_binding_entry_raises_store_error(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text(
            json.dumps({"repositories": {"/r": "oops"}, "defaultSSHPath": "/x"}),
            encoding="utf-8",
        )
        with self.assertRaises(StoreError) as ctx:
            self.store.load()
        self.assertIn("/r", str(ctx.exception))

    def test_foreign_created_at_values_survive_save_of_load(self) -> None:
        payload = {
            "repositories": {
                "/a": {"repoPath": "/a", "sshKeyPath": "/k", "remoteUrl": "u", "createdAt": None},
                "/b": {"repoPath": "/b", "sshKeyPath": "/k", "remoteUrl": "u", "createdAt": 1700000000},
                "/c": {"repoPath": "/c", "sshKeyPath": "/k", "remoteUrl": "u"},
            },
            "defaultSSHPath": "/home/me/.ssh",
        }
        self.path.parent.mkdir(parents=True)
        original = json.dumps(payload, indent=2) + "\n"
        self.path.write_text(original, encoding="utf-8")

        self.store.save(self.store.load())

        self.assertEqual(self.path.read_text(encoding="utf-8"), original)

    def test_upsert_stamps_binding_that_had_no_created_at(self) -> None:
        repo = self.root / "repo"
        repo.mkdir()
        canonical = canonical_repo_path(repo)
        self.path.parent.mkdir(parents=True)
        self.path.write_text(
            json.dumps(
                {
                    "repositories": {canonical: {"repoPath": canonical, "sshKeyPath": "", "remoteUrl": "u"}},
                    "defaultSSHPath": "/home/me/.ssh",
                }
            ),
            encoding="utf-8",
        )
        binding = self.store.upsert(repo, "/keys/a", "git@github.com:octo/repo.git")
        self.assertTrue(binding.created_at.endswith("Z"))

    def test_binding_payload_round_trip(self) -> None:
        binding = RepositoryBinding.from_payload(
            {"sshKeyPath": "/k", "remoteUrl": "u", "createdAt": "t", "extra": 1},
            repo_path="/r",
        )
        self.assertEqual(binding.repo_path, "/r")
        self.assertEqual(
            binding.to_payload(),
            {"sshKeyPath": "/k", "remoteUrl": "u", "createdAt": "t", "extra": 1, "repoPath": "/r"},
        )


if __name__ == "__main__":
    unittest.main()
