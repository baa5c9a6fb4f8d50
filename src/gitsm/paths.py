"""Per-user path constants and path helpers for gitsm.

All persistent state lives under the gitsm home directory:
- ~/.gitsm/config.json     # repository bindings
- ~/.gitsm/settings.json   # optional runtime settings
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union

STORE_FILENAME = "config.json"
SETTINGS_FILENAME = "settings.json"


def home_dir() -> Path:
    return Path.home()


def default_ssh_dir() -> Path:
    return home_dir() / ".ssh"


def gitsm_home() -> Path:
    """Base directory for gitsm state (``GITSM_HOME`` overrides ``~/.gitsm``)."""
    override = os.getenv("GITSM_HOME")
    if override:
        return Path(override).expanduser()
    return home_dir() / ".gitsm"


def default_store_path() -> Path:
    return gitsm_home() / STORE_FILENAME


def default_settings_path() -> Path:
    return gitsm_home() / SETTINGS_FILENAME


def canonical_repo_path(path: Union[str, "os.PathLike[str]"]) -> str:
    """Absolute, symlink-resolved form used as the binding identity."""
    return str(Path(path).expanduser().resolve())


def normalize_for_ssh(path: str) -> str:
    """Absolute path with forward slashes only.

    Git's config parser treats backslashes as escapes, so Windows paths must
    be rewritten before they are embedded in ``core.sshCommand``.
    """
    if re.match(r"^[A-Za-z]:[\\/]", path) or path.startswith("/") or "\\" in path:
        absolute = path
    else:
        absolute = str(Path(path).expanduser().absolute())
    normalized = absolute.replace("\\", "/")
    # keep a leading "//" (UNC share) intact
    return normalized[:1] + re.sub(r"/{2,}", "/", normalized[1:])


def to_relative_ssh_path(path: str) -> str:
    """Display form of a key path: ``~/.ssh/id_x`` or ``~/rest`` when under home."""
    absolute = Path(path).expanduser()
    for base, prefix in ((default_ssh_dir(), "~/.ssh"), (home_dir(), "~")):
        try:
            relative = absolute.relative_to(base)
        except ValueError:
            continue
        return f"{prefix}/{relative.as_posix()}"
    return normalize_for_ssh(path)


def from_relative_ssh_path(path: str) -> str:
    if path.startswith("~/"):
        return str(home_dir() / path[2:])
    return path
