"""Authentication probing for candidate SSH keys."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..paths import normalize_for_ssh
from .remote import DEFAULT_HOST, DEFAULT_USER, RemoteEndpoint, convert_to_ssh, parse_remote_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderGreeting:
    """A provider banner that proves the key was accepted."""

    provider: str
    pattern: re.Pattern

    @classmethod
    def compile(cls, provider: str, pattern: str) -> "ProviderGreeting":
        return cls(provider=provider, pattern=re.compile(pattern, re.IGNORECASE))


# Hosting providers authenticate the key and then refuse a shell, so ssh exits
# non-zero on success. Matching is done on the output, in this order.
DEFAULT_GREETINGS: tuple[ProviderGreeting, ...] = (
    ProviderGreeting.compile("github", r"You've successfully authenticated"),
    ProviderGreeting.compile("generic", r"successfully authenticated"),
    ProviderGreeting.compile("gitlab", r"Welcome to GitLab"),
    ProviderGreeting.compile("bitbucket", r"logged in as"),
    ProviderGreeting.compile("github", r"Hi [\w.-]+!"),
    ProviderGreeting.compile("bitbucket", r"You can use git or hg to connect"),
    ProviderGreeting.compile("azure-devops", r"Shell access is not supported"),
)


@dataclass
class ProbeResult:
    success: bool
    error: Optional[str] = None
    output: str = ""
    provider: Optional[str] = None
    exit_status: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.success


@dataclass
class KeyTester:
    """Runs the ssh client non-interactively and classifies its output."""

    ssh_binary: str = "ssh"
    git_binary: str = "git"
    connect_timeout: int = 10
    timeout: int = 15
    default_host: str = DEFAULT_HOST
    default_user: str = DEFAULT_USER
    greetings: Sequence[ProviderGreeting] = field(default_factory=lambda: DEFAULT_GREETINGS)

    def endpoint_for(self, remote_url: str) -> RemoteEndpoint:
        return parse_remote_url(remote_url, default_host=self.default_host, default_user=self.default_user)

    def build_command(self, key_path: str, endpoint: RemoteEndpoint) -> list[str]:
        command = [
            self.ssh_binary,
            "-i", key_path,
            "-T",
            "-F", "/dev/null",
            "-o", "IdentitiesOnly=yes",
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self.connect_timeout}",
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
        ]
        if endpoint.port:
            command += ["-p", str(endpoint.port)]
        command.append(endpoint.destination)
        return command

    def classify(self, output: str) -> Optional[ProviderGreeting]:
        for greeting in self.greetings:
            if greeting.pattern.search(output):
                return greeting
        return None

    def test(self, key_path: str, remote_url: str) -> ProbeResult:
        """Probe authentication for `key_path` against the host of `remote_url`.

        Never raises. Success is decided by provider greeting text, not by the
        exit status; a timeout or a missing ssh binary is a failure.
        """
        endpoint = self.endpoint_for(remote_url)
        command = self.build_command(key_path, endpoint)
        logger.debug("Probing %s with %s", endpoint.destination, key_path)
        try:
            process = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                stdin=subprocess.DEVNULL,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return ProbeResult(
                success=False,
                error=f"Timed out after {self.timeout}s connecting to {endpoint.host}",
            )
        except OSError as exc:
            return ProbeResult(success=False, error=f"SSH test failed: {exc}")

        output = "\n".join(part for part in (process.stdout, process.stderr) if part).strip()
        greeting = self.classify(output)
        if greeting is not None:
            return ProbeResult(
                success=True,
                output=output,
                provider=greeting.provider,
                exit_status=process.returncode,
            )
        return ProbeResult(
            success=False,
            error=output or f"Failed to authenticate with {endpoint.host} (exit {process.returncode})",
            output=output,
            exit_status=process.returncode,
        )

    def check_repository(self, key_path: str, remote_url: str) -> ProbeResult:
        """Confirm the key can read the repository itself via ``git ls-remote``."""
        endpoint = self.endpoint_for(remote_url)
        owner, repo = endpoint.owner_and_repo
        ssh_url = convert_to_ssh(remote_url, user=endpoint.user)
        env = {**os.environ, "GIT_SSH_COMMAND": format_probe_ssh_command(key_path), "GIT_TERMINAL_PROMPT": "0"}
        try:
            process = subprocess.run(
                [self.git_binary, "ls-remote", ssh_url, "HEAD"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                stdin=subprocess.DEVNULL,
                env=env,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return ProbeResult(success=False, error=f"Timed out after {self.timeout}s listing {ssh_url}")
        except OSError as exc:
            return ProbeResult(success=False, error=f"Failed to verify repository access: {exc}")

        output = "\n".join(part for part in (process.stdout, process.stderr) if part).strip()
        if process.returncode == 0:
            return ProbeResult(success=True, output=output, exit_status=0)
        lowered = output.lower()
        if "permission denied" in lowered or "access denied" in lowered:
            error = f"You don't have access to {owner}/{repo}. Please check your repository permissions."
        elif "repository not found" in lowered:
            error = f"Repository {owner}/{repo} not found. Please check the URL."
        else:
            error = f"Failed to verify repository access: {output}"
        return ProbeResult(success=False, error=error, output=output, exit_status=process.returncode)


def format_probe_ssh_command(key_path: str) -> str:
    return (
        f'ssh -i "{normalize_for_ssh(key_path)}" -F /dev/null -o IdentitiesOnly=yes '
        "-o BatchMode=yes -o StrictHostKeyChecking=no -o UserKnownHostsFile=/dev/null"
    )
