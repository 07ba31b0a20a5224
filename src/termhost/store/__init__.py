"""Durable session metadata storage for termhost."""

from termhost.store.sessions import DurableStoreError, SessionStore, StoreInitError

__all__ = ["DurableStoreError", "SessionStore", "StoreInitError"]
