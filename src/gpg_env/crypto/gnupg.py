"""Cipher backend driving the ``gpg`` command-line tool."""

import os
import subprocess
from pathlib import Path
from typing import List, Optional

import structlog

from ..errors import CipherError, DecryptFailedError

logger = structlog.get_logger(__name__)


class GnuPGCipher:
    """Symmetric AES-256 encryption through the ``gpg`` binary.

    The passphrase travels over a dedicated pipe (``--passphrase-fd``) and the
    payload over stdin/stdout, so neither touches the filesystem.
    """

    name = "gnupg"

    def __init__(self, binary: str = "gpg", homedir: Optional[Path] = None):
        """Initialize the backend.

        Args:
            binary: Name or path of the gpg executable.
            homedir: Optional GnuPG home directory (``--homedir``).
        """
        self.binary = binary
        self.homedir = homedir

    def _base_command(self, passphrase_fd: int) -> List[str]:
        command = [
            self.binary,
            "--batch",
            "--quiet",
            "--yes",
            "--no-tty",
            "--pinentry-mode",
            "loopback",
            "--no-symkey-cache",
            "--passphrase-fd",
            str(passphrase_fd),
        ]
        if self.homedir is not None:
            command.extend(["--homedir", str(self.homedir)])
        return command

    def _run(
        self, args: List[str], passphrase: str, payload: bytes
    ) -> subprocess.CompletedProcess:
        read_fd, write_fd = os.pipe()
        try:
            with os.fdopen(write_fd, "wb") as pipe:
                pipe.write(passphrase.encode("utf-8") + b"\n")
            return subprocess.run(
                self._base_command(read_fd) + args,
                input=payload,
                capture_output=True,
                pass_fds=(read_fd,),
                check=False,
            )
        except FileNotFoundError:
            raise CipherError(
                f"{self.binary} not found. Please install GnuPG or set GPG_ENV_CIPHER=native."
            )
        finally:
            os.close(read_fd)

    def encrypt(self, plaintext: bytes, passphrase: str) -> bytes:
        result = self._run(
            # RFC 4880 packets keep the output readable by other OpenPGP tools
            ["--rfc4880", "--symmetric", "--cipher-algo", "AES256", "--output", "-"],
            passphrase,
            plaintext,
        )
        if result.returncode != 0:
            raise CipherError(
                f"gpg encryption failed: {result.stderr.decode(errors='replace').strip()}"
            )
        logger.debug("encrypted_data", backend=self.name, data_size=len(plaintext))
        return result.stdout

    def decrypt(self, ciphertext: bytes, passphrase: str) -> bytes:
        result = self._run(["--decrypt", "--output", "-"], passphrase, ciphertext)
        if result.returncode != 0:
            logger.debug(
                "gpg_decrypt_failed",
                returncode=result.returncode,
                stderr=result.stderr.decode(errors="replace").strip(),
            )
            raise DecryptFailedError("Decryption failed. Check passphrase.")
        logger.debug("decrypted_data", backend=self.name, data_size=len(result.stdout))
        return result.stdout
