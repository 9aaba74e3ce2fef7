"""OpenPGP symmetric encryption backends."""

from ..errors import CipherError, DecryptFailedError
from .cipher import CIPHER_BACKENDS, Cipher, get_cipher
from .gnupg import GnuPGCipher
from .memory import compare_bytes
from .openpgp import NativeCipher, decrypt_message, encrypt_message

__all__ = [
    # Backends
    "Cipher",
    "CIPHER_BACKENDS",
    "GnuPGCipher",
    "NativeCipher",
    "get_cipher",
    # Message codec
    "encrypt_message",
    "decrypt_message",
    # Errors
    "CipherError",
    "DecryptFailedError",
    # Memory security
    "compare_bytes",
]
