"""Encrypted env file storage."""

from .files import atomic_write, scratch_file
from .store import EncryptedStore, Editor, Transaction, discover_stores

__all__ = [
    "EncryptedStore",
    "Editor",
    "Transaction",
    "atomic_write",
    "discover_stores",
    "scratch_file",
]
