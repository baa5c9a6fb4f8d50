"""Command-line interface for gitsm."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .bindings import BindingStore
from .config import AppConfig, load_config
from .errors import GitsmError, NotARepositoryError
from .gitops import BranchSwitcher, GitClient, SwitchResult
from .interaction import AutoResponseHandler, CLIInteractionHandler, UserInteractionHandler
from .orchestrator import BindResult, build_orchestrator
from .ssh import KeyScanner, convert_to_ssh, is_ssh_url, key_generation_hint
from .utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    interaction: UserInteractionHandler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gitsm",
        description="Bind Git repositories to specific SSH keys and switch branches safely.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable debug logging",
    )

    # shared by the commands that may prompt
    interactive = argparse.ArgumentParser(add_help=False)
    interactive.add_argument(
        "--yes", "-y", action="store_true",
        help="Answer confirmations automatically and pick the first key",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    clone_parser = subparsers.add_parser(
        "clone", parents=[interactive], help="Clone a repository with a selected SSH key"
    )
    clone_parser.add_argument("url", help="Repository URL (SSH or HTTPS)")
    clone_parser.add_argument(
        "-d", "--dir", dest="directory", default=None,
        help="Target directory (default: repository name)",
    )
    transport = clone_parser.add_mutually_exclusive_group()
    transport.add_argument("--https", action="store_true", help="Clone over HTTPS, skip SSH")
    transport.add_argument("--ssh", action="store_true", help="Convert an HTTPS URL and clone over SSH")
    clone_parser.add_argument("--no-test", action="store_true", help="Skip the SSH authentication test")

    list_parser = subparsers.add_parser("list", help="List SSH keys or bound repositories")
    list_parser.add_argument("what", choices=["keys", "repos"], help="What to list")

    fix_parser = subparsers.add_parser(
        "fix", parents=[interactive], help="Re-apply a repository's recorded SSH binding"
    )
    fix_parser.add_argument("repo_path", nargs="?", default=".", help="Repository path (default: .)")

    convert_parser = subparsers.add_parser(
        "convert", parents=[interactive], help="Bind an existing repository to an SSH key"
    )
    convert_parser.add_argument("repo_path", nargs="?", default=".", help="Repository path (default: .)")
    convert_parser.add_argument("--no-test", action="store_true", help="Skip the SSH authentication test")

    switch_parser = subparsers.add_parser(
        "switch", help="Switch branches, carrying uncommitted changes along"
    )
    switch_parser.add_argument("branch", help="Target branch")
    switch_parser.add_argument(
        "-b", "--create", action="store_true",
        help="Create the branch if it does not exist",
    )
    switch_parser.add_argument(
        "-f", "--force", action="store_true",
        help="Check out without stashing local changes",
    )
    switch_parser.add_argument("--no-pull", action="store_true", help="Do not pull after switching")

    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    config = load_config(args.config)
    configure_logging("DEBUG" if args.verbose else config.log_level)
    if getattr(args, "yes", False):
        interaction: UserInteractionHandler = AutoResponseHandler(always_confirm=True)
    else:
        interaction = CLIInteractionHandler()
    return CLIContext(config=config, interaction=interaction)


def _print_bind_result(result: BindResult, action: str) -> None:
    for warning in result.warnings:
        print(f"⚠️  {warning}")
    if result.uses_ssh:
        shown = result.key.relative_path if result.key and result.key.relative_path else result.key_path
        print(f"✅ {action} {result.repo_path} with SSH key: {shown}")
    else:
        print(f"✅ {action} {result.repo_path} using the default transport (HTTPS)")
        if action == "Cloned":
            print("💡 Tip: Set up SSH keys for easier authentication in future")
    print(f"   Remote: {result.remote_url}")


def handle_clone_command(args: argparse.Namespace, context: CLIContext) -> int:
    url = args.url
    if args.ssh and not is_ssh_url(url):
        url = convert_to_ssh(url, user=context.config.ssh.default_user)
    orchestrator = build_orchestrator(context.config, context.interaction)
    result = orchestrator.clone(
        url,
        args.directory,
        force_https=args.https,
        test=not args.no_test,
    )
    _print_bind_result(result, "Cloned")
    return 0


def handle_list_command(args: argparse.Namespace, context: CLIContext) -> int:
    if args.what == "keys":
        scanner = KeyScanner(context.config.paths.ssh_dir, keygen_binary=context.config.ssh.keygen_binary)
        keys = scanner.discover()
        if not keys:
            print(f"⚠️  No SSH keys found in {scanner.ssh_dir}")
            print(key_generation_hint())
            return 0
        print(f"🔑 SSH keys in {scanner.ssh_dir}:\n")
        print(f"{'Name':<24} {'Type':<9} Fingerprint")
        print("-" * 80)
        for key in keys:
            print(f"{key.name:<24} {key.key_type:<9} {key.fingerprint}")
        return 0

    store = BindingStore(context.config.paths.store_path, default_ssh_path=context.config.paths.ssh_dir)
    bindings = store.list_bindings()
    if not bindings:
        print("📁 No repositories bound yet. Use `gitsm clone` or `gitsm convert`.")
        return 0
    print(f"📁 Bound repositories ({store.path}):\n")
    for binding in sorted(bindings, key=lambda b: b.repo_path):
        transport = binding.ssh_key_path or "(default transport)"
        print(f"  {binding.repo_path}")
        print(f"     key:    {transport}")
        print(f"     remote: {binding.remote_url}")
    return 0


def handle_fix_command(args: argparse.Namespace, context: CLIContext) -> int:
    orchestrator = build_orchestrator(context.config, context.interaction)
    result = orchestrator.repair(args.repo_path)
    _print_bind_result(result, "Repaired")
    return 0


def handle_convert_command(args: argparse.Namespace, context: CLIContext) -> int:
    orchestrator = build_orchestrator(context.config, context.interaction)
    result = orchestrator.bind(args.repo_path, test=not args.no_test)
    _print_bind_result(result, "Converted")
    return 0


def handle_switch_command(args: argparse.Namespace, context: CLIContext) -> int:
    cwd = Path(os.getcwd())
    git = GitClient(cwd, git_binary=context.config.git.binary)
    if not git.is_repository():
        raise NotARepositoryError(str(cwd))
    result = BranchSwitcher(git).switch(
        args.branch,
        create=args.create,
        force=args.force,
        pull=context.config.switch.pull and not args.no_pull,
    )
    return _print_switch_result(result)


def _print_switch_result(result: SwitchResult) -> int:
    for warning in result.warnings:
        print(f"⚠️  {warning}")
    if result.conflicted:
        print(f"❌ Switched to {result.target_branch}, but your changes conflict with it.")
        for line in result.recovery:
            print(f"   {line}")
        return 1
    if result.previous_branch == result.target_branch and not result.created:
        print(f"✅ Already on {result.target_branch}")
        return 0
    verb = "Created and switched" if result.created else "Switched"
    print(f"✅ {verb} to {result.target_branch} (from {result.previous_branch})")
    if result.stash is not None:
        print("   Local changes were carried over.")
    return 0


def dispatch_command(args: argparse.Namespace) -> int:
    context = _build_context(args)

    if args.command == "clone":
        return handle_clone_command(args, context)
    if args.command == "list":
        return handle_list_command(args, context)
    if args.command == "fix":
        return handle_fix_command(args, context)
    if args.command == "convert":
        return handle_convert_command(args, context)
    if args.command == "switch":
        return handle_switch_command(args, context)

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return dispatch_command(args)
    except GitsmError as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"❌ {exc}")
        if exc.hint:
            print(f"💡 {exc.hint}")
        return 1
    except (FileNotFoundError, ValueError) as exc:
        # configuration file missing or invalid
        print(f"❌ {exc}")
        return 1
