"""Audit event type definitions."""

from enum import Enum


class EventType(str, Enum):
    """Audit event types."""

    # Store events
    STORE_INIT = "store.init"
    STORE_VIEW = "store.view"
    STORE_EDIT = "store.edit"
    STORE_IMPORT = "store.import"
    STORE_LIST = "store.list"
    STORE_ROTATE = "store.rotate"
    STORE_STATUS = "store.status"

    # Passphrase disclosure events
    PASSPHRASE_EXPORT = "passphrase.export"
    DIRENV_ENABLE = "direnv.enable"
