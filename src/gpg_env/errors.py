"""Exception hierarchy for gpg-env operations."""


class GpgEnvError(Exception):
    """Base exception for gpg-env operations."""


class StoreNotFoundError(GpgEnvError):
    """Raised when the encrypted store (or the init seed file) is absent."""


class AlreadyExistsError(GpgEnvError):
    """Raised when init would overwrite an existing encrypted store."""


class CipherError(GpgEnvError):
    """Raised when the cipher backend cannot run or meets unsupported input."""


class DecryptFailedError(GpgEnvError):
    """Raised on a wrong passphrase or corrupted ciphertext.

    The two cases cannot be told apart and are reported the same way.
    """


class EmptyPlaintextError(DecryptFailedError):
    """Raised when decrypted or edited content is empty.

    Empty content is refused rather than stored, so it is handled like a
    failed decryption.
    """


class KeyNotFoundError(GpgEnvError, KeyError):
    """Raised when a selected variable is not present in the store."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Variable '{self.key}' not found"


class PassphraseMismatchError(GpgEnvError):
    """Raised when the new passphrase and its confirmation differ."""


class EditorError(GpgEnvError):
    """Raised when the external editor cannot be run."""


class DirenvNotInstalledError(GpgEnvError):
    """Raised when direnv integration is requested without direnv on PATH."""
