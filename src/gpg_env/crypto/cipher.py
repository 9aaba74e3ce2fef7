"""Cipher protocol and backend selection."""

import shutil
from typing import Protocol, runtime_checkable

import structlog

from ..errors import CipherError
from .gnupg import GnuPGCipher
from .openpgp import NativeCipher

logger = structlog.get_logger(__name__)

CIPHER_BACKENDS = ("auto", "gnupg", "native")


@runtime_checkable
class Cipher(Protocol):
    """Opaque passphrase-keyed symmetric encryption."""

    name: str

    def encrypt(self, plaintext: bytes, passphrase: str) -> bytes:
        """Encrypt ``plaintext`` into an OpenPGP message."""
        ...

    def decrypt(self, ciphertext: bytes, passphrase: str) -> bytes:
        """Decrypt an OpenPGP message.

        Raises:
            DecryptFailedError: On a wrong passphrase or corrupted input.
        """
        ...


def get_cipher(name: str = "auto", gpg_binary: str = "gpg") -> Cipher:
    """Get a cipher backend by name.

    Args:
        name: ``gnupg``, ``native``, or ``auto`` to prefer gpg when installed.
        gpg_binary: gpg executable used by the gnupg backend.

    Returns:
        Cipher: The selected backend.

    Raises:
        CipherError: If the name is unknown.
    """
    if name == "auto":
        name = "gnupg" if shutil.which(gpg_binary) else "native"
        logger.debug("selected_cipher_backend", backend=name)

    if name == "gnupg":
        return GnuPGCipher(gpg_binary)
    elif name == "native":
        return NativeCipher()
    else:
        raise CipherError(f"Unknown cipher backend: {name}")
