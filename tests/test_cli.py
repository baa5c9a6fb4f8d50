import contextlib
import io
import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from gitsm.cli import build_parser, run_cli
from gitsm.gitops.manager import StashRef
from gitsm.gitops.switch import SwitchResult, SwitchState


class ParserTests(unittest.TestCase):
    def test_clone_arguments(self) -> None:
        args = build_parser().parse_args(["clone", "git@github.com:octo/x.git", "-d", "dest", "--no-test", "--yes"])
        self.assertEqual(args.command, "clone")
        self.assertEqual(args.url, "git@github.com:octo/x.git")
        self.assertEqual(args.directory, "dest")
        self.assertTrue(args.no_test)
        self.assertTrue(args.yes)
        self.assertFalse(args.https)

    def test_clone_transports_are_exclusive(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            build_parser().parse_args(["clone", "url", "--https", "--ssh"])

    def test_defaults(self) -> None:
        parser = build_parser()
        self.assertEqual(parser.parse_args(["fix"]).repo_path, ".")
        self.assertEqual(parser.parse_args(["convert"]).repo_path, ".")
        switch = parser.parse_args(["switch", "feature", "-b", "--no-pull"])
        self.assertTrue(switch.create)
        self.assertFalse(switch.force)
        self.assertTrue(switch.no_pull)

    def test_list_requires_a_known_target(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            build_parser().parse_args(["list", "branches"])


class RunCliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.ssh_dir = self.root / ".ssh"
        self.ssh_dir.mkdir()
        self.store_path = self.root / "gitsm" / "config.json"
        self.config_path = self.root / "settings.json"
        self.config_path.write_text(
            json.dumps(
                {
                    "paths": {"ssh_dir": str(self.ssh_dir), "store_path": str(self.store_path)},
                    "ssh": {"keygen_binary": str(self.root / "no-such-keygen")},
                }
            )
        )
        self._env = mock.patch.dict(os.environ, {"GITSM_HOME": str(self.root / "gitsm")})
        self._env.start()
        for key in ("GITSM_SSH_DIR", "GITSM_STORE_PATH"):
            os.environ.pop(key, None)

    def tearDown(self) -> None:
        self._env.stop()
        self._tmp.cleanup()

    def _run(self, *argv: str):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = run_cli(["--config", str(self.config_path), *argv])
        return code, out.getvalue()

    def test_list_keys_without_keys_prints_guidance(self) -> None:
        code, output = self._run("list", "keys")
        self.assertEqual(code, 0)
        self.assertIn("No SSH keys found", output)
        self.assertIn("ssh-keygen -t ed25519", output)

    def test_list_repos(self) -> None:
        code, output = self._run("list", "repos")
        self.assertEqual(code, 0)
        self.assertIn("No repositories bound yet", output)

        self.store_path.write_text(
            json.dumps(
                {
                    "repositories": {
                        "/work/app": {
                            "repoPath": "/work/app",
                            "sshKeyPath": "/keys/id_work",
                            "remoteUrl": "git@github.com:octo/app.git",
                            "createdAt": "2024-01-01T00:00:00.000Z",
                        }
                    },
                    "defaultSSHPath": str(self.ssh_dir),
                }
            )
        )
        code, output = self._run("list", "repos")
        self.assertEqual(code, 0)
        self.assertIn("/work/app", output)
        self.assertIn("/keys/id_work", output)

    def test_fix_outside_a_repository_exits_1(self) -> None:
        plain = self.root / "plain"
        plain.mkdir()
        code, output = self._run("fix", str(plain))
        self.assertEqual(code, 1)
        self.assertIn("Not a git repository", output)

    def test_missing_config_file_exits_1(self) -> None:
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = run_cli(["--config", str(self.root / "missing.json"), "list", "keys"])
        self.assertEqual(code, 1)

    def test_switch_wiring(self) -> None:
        result = SwitchResult(
            state=SwitchState.DONE,
            previous_branch="main",
            target_branch="feature",
            stash=StashRef(sha="a" * 40, message="m"),
        )
        with mock.patch("gitsm.cli.GitClient.is_repository", return_value=True), \
                mock.patch("gitsm.cli.BranchSwitcher.switch", return_value=result) as switch:
            code, output = self._run("switch", "feature", "--no-pull")
        self.assertEqual(code, 0)
        switch.assert_called_once_with("feature", create=False, force=False, pull=False)
        self.assertIn("Switched to feature", output)
        self.assertIn("carried over", output)

    def test_conflicted_switch_prints_recovery(self) -> None:
        result = SwitchResult(
            state=SwitchState.CONFLICTED,
            previous_branch="main",
            target_branch="feature",
            stash=StashRef(sha="b" * 40, message="m"),
            recovery=["Your changes are preserved in stash " + "b" * 40],
        )
        with mock.patch("gitsm.cli.GitClient.is_repository", return_value=True), \
                mock.patch("gitsm.cli.BranchSwitcher.switch", return_value=result):
            code, output = self._run("switch", "feature")
        self.assertEqual(code, 1)
        self.assertIn("b" * 40, output)


if __name__ == "__main__":
    unittest.main()
