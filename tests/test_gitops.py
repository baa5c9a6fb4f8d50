import shutil
import subprocess
import tempfile
import unittest
from pathlib import Path

from gitsm.errors import GitCommandError
from gitsm.gitops import GitClient
from gitsm.gitops.manager import StatusEntry


def _git_available() -> bool:
    return shutil.which("git") is not None


def _run_git(args: list[str], cwd: Path) -> str:
    return subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=True,
        capture_output=True,
        text=True,
    ).stdout


def _init_repo(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    _run_git(["init", "--initial-branch=main"], path)
    _run_git(["config", "user.email", "bot@example.com"], path)
    _run_git(["config", "user.name", "gitsm tests"], path)
    _run_git(["config", "commit.gpgsign", "false"], path)
    (path / "README.md").write_text("v1\n", encoding="utf-8")
    _run_git(["add", "README.md"], path)
    _run_git(["commit", "-m", "initial"], path)


class GitClientTests(unittest.TestCase):
    def setUp(self) -> None:
        if not _git_available():
            self.skipTest("git binary not found")
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.repo = self.root / "repo"
        _init_repo(self.repo)
        self.git = GitClient(self.repo)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_repository_detection(self) -> None:
        self.assertTrue(self.git.is_repository())
        plain = self.root / "plain"
        plain.mkdir()
        self.assertFalse(GitClient(plain).is_repository())
        self.assertEqual(Path(self.git.toplevel()).resolve(), self.repo.resolve())

    def test_clone_and_remote_url(self) -> None:
        target = self.root / "checkout"
        GitClient().clone(str(self.repo), target)
        clone = GitClient(target)
        self.assertTrue((target / "README.md").exists())
        self.assertEqual(clone.remote_url(), str(self.repo))

        clone.set_remote_url("git@github.com:octo/repo.git")
        self.assertEqual(clone.remote_url(), "git@github.com:octo/repo.git")
        self.assertIsNone(clone.remote_url("upstream"))

    def test_branches(self) -> None:
        self.assertEqual(self.git.current_branch(), "main")
        self.assertFalse(self.git.branch_exists("feature"))
        self.git.checkout("feature", create=True)
        self.assertEqual(self.git.current_branch(), "feature")
        self.assertTrue(self.git.branch_exists("main"))

    def test_checkout_unknown_branch_raises(self) -> None:
        with self.assertRaises(GitCommandError) as ctx:
            self.git.checkout("nope")
        self.assertNotEqual(ctx.exception.exit_code, 0)

    def test_status_reports_porcelain_codes(self) -> None:
        (self.repo / "README.md").write_text("v2\n", encoding="utf-8")
        (self.repo / "new.txt").write_text("x\n", encoding="utf-8")
        status = self.git.status()
        self.assertIn(StatusEntry(code=" M", path="README.md"), status)
        self.assertIn(StatusEntry(code="??", path="new.txt"), status)
        self.assertTrue(self.git.has_uncommitted_changes())
        self.assertFalse(self.git.has_conflicts())

    def test_stash_identity_survives_newer_stashes(self) -> None:
        self.assertIsNone(self.git.stash_push("nothing"))

        (self.repo / "README.md").write_text("first\n", encoding="utf-8")
        first = self.git.stash_push("first")
        self.assertIsNotNone(first)
        self.assertEqual(len(first.sha), 40)

        (self.repo / "README.md").write_text("second\n", encoding="utf-8")
        second = self.git.stash_push("second")

        self.assertEqual(self.git.stash_slot(second), "stash@{0}")
        self.assertEqual(self.git.stash_slot(first), "stash@{1}")

        self.git.stash_drop(first)
        self.assertEqual([sha for _, sha in self.git.stash_list()], [second.sha])

        self.git.stash_apply(second)
        self.assertEqual((self.repo / "README.md").read_text(encoding="utf-8"), "second\n")

    def test_stash_identity_ignores_stashes_with_the_same_message(self) -> None:
        (self.repo / "README.md").write_text("mine\n", encoding="utf-8")
        mine = self.git.stash_push("gitsm: main -> feature")
        self.assertTrue(mine.message.startswith("gitsm: main -> feature ["))

        # another stash with an identical message lands on top of ours
        (self.repo / "README.md").write_text("theirs\n", encoding="utf-8")
        subprocess.run(
            ["git", "stash", "push", "-m", "gitsm: main -> feature"],
            cwd=str(self.repo),
            check=True,
            capture_output=True,
        )

        self.assertEqual(self.git.stash_slot(mine), "stash@{1}")
        self.git.stash_apply(mine)
        self.assertEqual((self.repo / "README.md").read_text(encoding="utf-8"), "mine\n")


if __name__ == "__main__":
    unittest.main()
