"""Clone / convert / fix orchestration."""

from .models import BindResult, BindState
from .orchestrator import BindingOrchestrator, build_orchestrator

__all__ = [
    "BindingOrchestrator",
    "BindResult",
    "BindState",
    "build_orchestrator",
]
