"""Core module for chatkeep."""

from chatkeep.core.config import StoreConfig, StoreConfigError, load_store_config
from chatkeep.core.session_store import SessionStore, SessionStoreError, SessionWriteError
from chatkeep.core.titles import generate_title

__all__ = [
    "SessionStore",
    "SessionStoreError",
    "SessionWriteError",
    "StoreConfig",
    "StoreConfigError",
    "generate_title",
    "load_store_config",
]
