"""Persistent repository-to-key bindings."""

from .models import RepositoryBinding, StoreData
from .store import BindingStore

__all__ = ["BindingStore", "RepositoryBinding", "StoreData"]
