"""Per-repository SSH key binding and stash-guarded branch switching."""

__version__ = "0.1.0"

__all__ = ["__version__"]
