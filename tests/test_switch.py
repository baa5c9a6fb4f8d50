import shutil
import subprocess
import tempfile
import unittest
from pathlib import Path

from gitsm.errors import LocalChangesError, UnknownBranchError
from gitsm.gitops import BranchSwitcher, GitClient, SwitchState


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


class BranchSwitcherTests(unittest.TestCase):
    """main and feature both carry notes.txt; feature changes it."""

    def setUp(self) -> None:
        if not _git_available():
            self.skipTest("git binary not found")
        self._tmp = tempfile.TemporaryDirectory()
        self.repo = Path(self._tmp.name) / "repo"
        self.repo.mkdir()
        _run_git(["init", "--initial-branch=main"], self.repo)
        _run_git(["config", "user.email", "bot@example.com"], self.repo)
        _run_git(["config", "user.name", "gitsm tests"], self.repo)
        _run_git(["config", "commit.gpgsign", "false"], self.repo)
        self._commit({"notes.txt": "base\n", "app.py": "print('v1')\n"}, "initial")
        _run_git(["checkout", "-b", "feature"], self.repo)
        self._commit({"notes.txt": "feature\n"}, "feature work")
        _run_git(["checkout", "main"], self.repo)

        self.git = GitClient(self.repo)
        self.switcher = BranchSwitcher(self.git)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _commit(self, files: dict, message: str) -> None:
        for name, content in files.items():
            (self.repo / name).write_text(content, encoding="utf-8")
        _run_git(["add", *files], self.repo)
        _run_git(["commit", "-m", message], self.repo)

    def _stash_count(self) -> int:
        return len(self.git.stash_list())

    def test_round_trip_restores_edits_without_leftover_stash(self) -> None:
        (self.repo / "app.py").write_text("print('local edit')\n", encoding="utf-8")

        result = self.switcher.switch("feature", pull=False)

        self.assertEqual(result.state, SwitchState.DONE)
        self.assertEqual(result.previous_branch, "main")
        self.assertIsNotNone(result.stash)
        self.assertEqual(self.git.current_branch(), "feature")
        self.assertEqual((self.repo / "app.py").read_text(encoding="utf-8"), "print('local edit')\n")
        self.assertEqual(self._stash_count(), 0)

        back = self.switcher.switch("main", pull=False)
        self.assertEqual(back.state, SwitchState.DONE)
        self.assertEqual((self.repo / "app.py").read_text(encoding="utf-8"), "print('local edit')\n")
        self.assertEqual(self._stash_count(), 0)

    def test_clean_switch_creates_no_stash(self) -> None:
        result = self.switcher.switch("feature", pull=False)
        self.assertEqual(result.state, SwitchState.DONE)
        self.assertIsNone(result.stash)
        self.assertEqual((self.repo / "notes.txt").read_text(encoding="utf-8"), "feature\n")

    def test_conflict_keeps_stash_and_reported_id_reapplies(self) -> None:
        (self.repo / "notes.txt").write_text("local\n", encoding="utf-8")

        result = self.switcher.switch("feature", pull=False)

        self.assertEqual(result.state, SwitchState.CONFLICTED)
        self.assertTrue(result.conflicted)
        self.assertEqual(self.git.current_branch(), "feature")
        sha = result.stash.sha
        self.assertEqual([stash_sha for _, stash_sha in self.git.stash_list()], [sha])
        self.assertTrue(any(sha in line for line in result.recovery))
        self.assertIn(result.stash.message, result.recovery[0])

        # back out and re-apply the reported stash on the original branch
        _run_git(["reset", "--hard"], self.repo)
        _run_git(["checkout", "main"], self.repo)
        _run_git(["stash", "apply", sha], self.repo)
        self.assertEqual((self.repo / "notes.txt").read_text(encoding="utf-8"), "local\n")

    def test_unknown_branch_without_create_raises(self) -> None:
        (self.repo / "app.py").write_text("edit\n", encoding="utf-8")
        with self.assertRaises(UnknownBranchError):
            self.switcher.switch("nope", pull=False)
        # nothing was stashed
        self.assertEqual(self._stash_count(), 0)
        self.assertEqual(self.git.current_branch(), "main")

    def test_create_new_branch_carries_changes(self) -> None:
        (self.repo / "app.py").write_text("edit\n", encoding="utf-8")
        result = self.switcher.switch("topic", create=True)
        self.assertTrue(result.created)
        self.assertFalse(result.pulled)
        self.assertEqual(result.state, SwitchState.DONE)
        self.assertEqual(self.git.current_branch(), "topic")
        self.assertEqual((self.repo / "app.py").read_text(encoding="utf-8"), "edit\n")
        self.assertEqual(self._stash_count(), 0)

    def test_already_on_branch_is_done(self) -> None:
        result = self.switcher.switch("main", pull=False)
        self.assertEqual(result.state, SwitchState.DONE)
        self.assertIsNone(result.stash)

    def test_pull_failure_is_a_warning(self) -> None:
        # no upstream configured, so the pull fails
        result = self.switcher.switch("feature", pull=True)
        self.assertEqual(result.state, SwitchState.DONE)
        self.assertFalse(result.pulled)
        self.assertTrue(result.warnings)

    def test_forced_switch_refused_by_git(self) -> None:
        (self.repo / "notes.txt").write_text("local\n", encoding="utf-8")
        with self.assertRaises(LocalChangesError):
            self.switcher.switch("feature", force=True, pull=False)
        self.assertEqual(self.git.current_branch(), "main")
        self.assertEqual((self.repo / "notes.txt").read_text(encoding="utf-8"), "local\n")


if __name__ == "__main__":
    unittest.main()
