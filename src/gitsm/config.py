"""Configuration loading utilities for gitsm."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .paths import default_settings_path, default_ssh_dir, default_store_path

# Load .env file if it exists
load_dotenv()

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class PathsConfig:
    """Where keys are discovered and bindings are persisted."""

    ssh_dir: str = field(default_factory=lambda: str(default_ssh_dir()))
    store_path: str = field(default_factory=lambda: str(default_store_path()))


@dataclass
class ProbeConfig:
    """Timeouts for network-bound checks."""

    connect_timeout: int = 10    # ssh -o ConnectTimeout
    timeout: int = 15            # hard limit for the whole probe process
    verify_repository: bool = False


@dataclass
class SSHConfig:
    binary: str = "ssh"
    keygen_binary: str = "ssh-keygen"
    default_user: str = "git"
    default_host: str = "github.com"


@dataclass
class GitConfig:
    binary: str = "git"


@dataclass
class SwitchConfig:
    pull: bool = True


@dataclass
class AppConfig:
    """Top-level configuration."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    ssh: SSHConfig = field(default_factory=SSHConfig)
    git: GitConfig = field(default_factory=GitConfig)
    switch: SwitchConfig = field(default_factory=SwitchConfig)
    log_level: str = "WARNING"

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        paths_payload = payload.get("paths", {}) or {}
        probe_payload = payload.get("probe", {}) or {}
        ssh_payload = payload.get("ssh", {}) or {}
        git_payload = payload.get("git", {}) or {}
        switch_payload = payload.get("switch", {}) or {}

        # keys starting with "_" are comments
        def _clean(section: Dict[str, Any]) -> Dict[str, Any]:
            return {k: v for k, v in section.items() if not k.startswith("_")}

        return cls(
            paths=PathsConfig(**{**PathsConfig().__dict__, **_clean(paths_payload)}),
            probe=ProbeConfig(**{**ProbeConfig().__dict__, **_clean(probe_payload)}),
            ssh=SSHConfig(**{**SSHConfig().__dict__, **_clean(ssh_payload)}),
            git=GitConfig(**{**GitConfig().__dict__, **_clean(git_payload)}),
            switch=SwitchConfig(**{**SwitchConfig().__dict__, **_clean(switch_payload)}),
            log_level=payload.get("log_level", "WARNING"),
        )


def _apply_env(config: AppConfig) -> AppConfig:
    env_ssh_dir = os.getenv("GITSM_SSH_DIR")
    if env_ssh_dir:
        config.paths.ssh_dir = env_ssh_dir

    env_store = os.getenv("GITSM_STORE_PATH")
    if env_store:
        config.paths.store_path = env_store

    env_timeout = os.getenv("GITSM_PROBE_TIMEOUT")
    if env_timeout:
        config.probe.timeout = int(env_timeout)

    env_connect = os.getenv("GITSM_CONNECT_TIMEOUT")
    if env_connect:
        config.probe.connect_timeout = int(env_connect)

    env_verify = os.getenv("GITSM_VERIFY_REPOSITORY")
    if env_verify:
        config.probe.verify_repository = env_verify.strip().lower() in _TRUE_VALUES

    env_git = os.getenv("GITSM_GIT_BINARY")
    if env_git:
        config.git.binary = env_git

    env_ssh = os.getenv("GITSM_SSH_BINARY")
    if env_ssh:
        config.ssh.binary = env_ssh

    env_level = os.getenv("GITSM_LOG_LEVEL")
    if env_level:
        config.log_level = env_level

    return config


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default settings file.

    A missing settings file is not an error; defaults apply. Environment
    variables take priority over the file:
    - GITSM_SSH_DIR: directory scanned for key pairs
    - GITSM_STORE_PATH: binding store JSON file
    - GITSM_PROBE_TIMEOUT / GITSM_CONNECT_TIMEOUT: probe timeouts (seconds)
    - GITSM_VERIFY_REPOSITORY: also run `git ls-remote` after the auth probe
    - GITSM_GIT_BINARY / GITSM_SSH_BINARY: executables to invoke
    - GITSM_LOG_LEVEL: logging level name
    """

    candidate_paths = []
    if path:
        candidate_paths.append(Path(path))
    candidate_paths.append(default_settings_path())

    if path and not Path(path).is_file():
        raise FileNotFoundError(f"Could not find configuration file: {path}")

    for candidate in candidate_paths:
        if candidate.is_file():
            try:
                with candidate.open("r", encoding="utf-8") as handle:
                    data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid JSON in configuration file {candidate}: {exc}") from exc
            return _apply_env(AppConfig.from_dict(data))

    return _apply_env(AppConfig())
