"""Git operations helpers."""

from .config_file import ConfigReconciler, GitConfigDocument, format_ssh_command, locate_config
from .manager import GitClient, StashRef, StatusEntry
from .switch import BranchSwitcher, SwitchResult, SwitchState

__all__ = [
    "BranchSwitcher",
    "ConfigReconciler",
    "GitClient",
    "GitConfigDocument",
    "StashRef",
    "StatusEntry",
    "SwitchResult",
    "SwitchState",
    "format_ssh_command",
    "locate_config",
]
