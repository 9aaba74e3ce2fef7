"""Encrypted env store and its read-modify-write transaction."""

import re
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

import structlog

from ..crypto import Cipher
from ..envfile import Entry, parse, serialize
from ..errors import (
    AlreadyExistsError,
    EmptyPlaintextError,
    StoreNotFoundError,
)
from .files import atomic_write, scratch_file

logger = structlog.get_logger(__name__)

Editor = Callable[[Path], None]

STORE_NAME_PATTERN = re.compile(r"^\.env(?:\.(?P<prefix>.+))?\.gpg$")


class Transaction:
    """Plaintext held between decryption and re-encryption.

    Callers replace :attr:`plaintext` (or call :meth:`replace_entries`) and
    may :meth:`rekey` it; the store commits when the block exits cleanly.
    """

    def __init__(self, plaintext: bytes, new_passphrase: Optional[str] = None):
        self.original = plaintext
        self.plaintext = plaintext
        self.new_passphrase = new_passphrase

    @property
    def entries(self) -> List[Entry]:
        return parse(self.plaintext)

    def replace_entries(self, entries: Sequence[Entry]) -> None:
        self.plaintext = serialize(entries)

    def rekey(self, new_passphrase: str) -> None:
        """Re-encrypt under ``new_passphrase`` on commit."""
        self.new_passphrase = new_passphrase

    @property
    def modified(self) -> bool:
        return self.plaintext != self.original


class EncryptedStore:
    """An OpenPGP-encrypted env file on disk.

    The store keeps no state between operations: each one reads the
    ciphertext, decrypts it with the passphrase it is given and, for
    mutating operations, atomically replaces the file. There is no locking;
    concurrent writers to the same path race and the last rename wins.
    """

    def __init__(self, path: Path, cipher: Cipher):
        """Initialize the store.

        Args:
            path: Location of the ciphertext file.
            cipher: Backend used to encrypt and decrypt.
        """
        self.path = Path(path)
        self.cipher = cipher

    def __repr__(self) -> str:
        return f"EncryptedStore(path={str(self.path)!r}, cipher={self.cipher.name!r})"

    def exists(self) -> bool:
        return self.path.is_file()

    def require_exists(self) -> None:
        if not self.exists():
            raise StoreNotFoundError(f"{self.path} not found. Run 'init' first.")

    def read_plaintext(self, passphrase: str) -> bytes:
        """Decrypt the store and return its raw plaintext.

        Raises:
            StoreNotFoundError: If the ciphertext file does not exist.
            DecryptFailedError: On a wrong passphrase or corrupted file.
            EmptyPlaintextError: If decryption yields no content.
        """
        self.require_exists()
        plaintext = self.cipher.decrypt(self.path.read_bytes(), passphrase)
        if not plaintext:
            raise EmptyPlaintextError(
                f"Decryption of {self.path} yielded empty content. "
                "Passphrase might be incorrect or file corrupted."
            )
        return plaintext

    def write_plaintext(self, plaintext: bytes, passphrase: str) -> None:
        """Encrypt ``plaintext`` and atomically replace the store file.

        Raises:
            EmptyPlaintextError: If ``plaintext`` is empty or whitespace only.
        """
        if not plaintext.strip():
            raise EmptyPlaintextError(
                f"Refusing to write empty content to {self.path}."
            )
        atomic_write(self.path, self.cipher.encrypt(plaintext, passphrase))
        logger.info("store_written", path=str(self.path), backend=self.cipher.name)

    def decrypt(self, passphrase: str) -> List[Entry]:
        """Decrypt and parse the store into entries."""
        return parse(self.read_plaintext(passphrase))

    def encrypt(self, passphrase: str, entries: Sequence[Entry]) -> None:
        """Serialize ``entries`` and write them encrypted with ``passphrase``."""
        self.write_plaintext(serialize(entries), passphrase)

    def check_init(self, seed_path: Path) -> None:
        """Verify that the store can be created from ``seed_path``.

        Raises:
            AlreadyExistsError: If the store already exists.
            StoreNotFoundError: If the seed file does not exist.
        """
        seed_path = Path(seed_path)
        if self.path.exists():
            raise AlreadyExistsError(f"{self.path} already exists.")
        if not seed_path.is_file():
            raise StoreNotFoundError(
                f"{seed_path} not found. Create a plaintext file named "
                f"'{seed_path}' first."
            )

    def init_from_plaintext(self, seed_path: Path, passphrase: str) -> None:
        """Create the store from an existing plaintext file.

        The seed bytes are encrypted as they are, without normalisation.

        Raises:
            AlreadyExistsError: If the store already exists; it is left untouched.
            StoreNotFoundError: If the seed file does not exist.
            EmptyPlaintextError: If the seed file is empty.
        """
        seed_path = Path(seed_path)
        self.check_init(seed_path)
        self.write_plaintext(seed_path.read_bytes(), passphrase)
        logger.info("store_initialized", path=str(self.path), seed=str(seed_path))

    @contextmanager
    def transaction(
        self, passphrase: str, new_passphrase: Optional[str] = None
    ) -> Iterator[Transaction]:
        """Decrypt, hand the plaintext to the caller, then re-encrypt.

        The file is rewritten only when the block exits without an exception
        and either the plaintext changed or a new passphrase was set.

        Args:
            passphrase: Passphrase the store is currently encrypted with.
            new_passphrase: Optional passphrase to re-encrypt with.

        Yields:
            Transaction: Mutable holder of the decrypted plaintext.
        """
        tx = Transaction(self.read_plaintext(passphrase), new_passphrase)
        yield tx

        rotate = tx.new_passphrase is not None
        if not tx.modified and not rotate:
            logger.info("store_unchanged", path=str(self.path))
            return
        self.write_plaintext(tx.plaintext, tx.new_passphrase if rotate else passphrase)
        logger.info(
            "store_committed",
            path=str(self.path),
            modified=tx.modified,
            rotated=rotate,
        )

    def edit(self, passphrase: str, editor: Editor) -> bool:
        """Let an external editor change the decrypted content.

        The plaintext exists on disk only inside a scratch file that is
        removed when editing ends, on success or failure.

        Args:
            passphrase: Store passphrase.
            editor: Callable that blocks until the user has edited the path.

        Returns:
            True if the content changed and was re-encrypted.
        """
        with self.transaction(passphrase) as tx:
            with scratch_file(tx.plaintext) as path:
                editor(path)
                tx.plaintext = path.read_bytes()
            return tx.modified

    def update(
        self, passphrase: str, mutate: Callable[[List[Entry]], Sequence[Entry]]
    ) -> List[Entry]:
        """Apply a structural change to the entries and re-encrypt.

        Returns:
            The entries as written.
        """
        with self.transaction(passphrase) as tx:
            tx.replace_entries(mutate(tx.entries))
            return tx.entries

    def rotate(self, passphrase: str, new_passphrase: str) -> None:
        """Re-encrypt the store under ``new_passphrase``.

        Raises:
            DecryptFailedError: If ``passphrase`` does not open the store.
        """
        with self.transaction(passphrase, new_passphrase=new_passphrase):
            pass


def discover_stores(directory: Path) -> List[Tuple[str, Path]]:
    """Find encrypted env files in ``directory``.

    Returns:
        Sorted ``(label, path)`` pairs; ``.env.gpg`` is labelled ``default``
        and ``.env.<prefix>.gpg`` is labelled with its prefix.
    """
    found = []
    for path in Path(directory).iterdir():
        match = STORE_NAME_PATTERN.match(path.name)
        if match and path.is_file():
            found.append((match.group("prefix") or "default", path))
    return sorted(found, key=lambda item: (item[0] != "default", item[0]))
