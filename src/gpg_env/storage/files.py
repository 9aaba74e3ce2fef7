"""
Filesystem helpers for encrypted stores.

- atomic_write: replace a file's bytes so readers see either the old or
  the new content, never a truncated mix
- scratch_file: materialise plaintext in a private temporary file that is
  overwritten and removed on every exit path

Files are created with mode 0600 (owner read/write only).
"""

import os
import signal
import tempfile
import threading
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Iterator, Optional

import structlog

logger = structlog.get_logger(__name__)

PRIVATE_FILE_MODE = 0o600
_TERMINATING_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


def _fsync_dir(directory: Path) -> None:
    # Not every platform or filesystem allows syncing a directory handle.
    with suppress(OSError, AttributeError):
        fd = os.open(str(directory), os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)


def atomic_write(path: Path, data: bytes, mode: Optional[int] = None) -> None:
    """Atomically replace ``path`` with ``data``.

    The bytes go to a temporary file in the same directory, are flushed to
    disk and then renamed over the target.

    Args:
        path: Target file.
        data: New content.
        mode: File mode; defaults to the existing file's mode, or 0600.

    Raises:
        OSError: If writing or renaming fails. The target is left untouched.
    """
    path = Path(path)
    if mode is None:
        try:
            mode = path.stat().st_mode & 0o777
        except FileNotFoundError:
            mode = PRIVATE_FILE_MODE

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    _fsync_dir(path.parent)
    logger.debug("atomic_write", path=str(path), size=len(data))


def _raise_exit(signum: int, _frame) -> None:
    raise SystemExit(128 + signum)


@contextmanager
def _exit_on_termination() -> Iterator[None]:
    """Turn SIGTERM/SIGHUP into SystemExit so ``finally`` blocks still run."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = {signum: signal.signal(signum, _raise_exit) for signum in _TERMINATING_SIGNALS}
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def _shred(path: Path) -> None:
    try:
        size = path.stat().st_size
        with open(path, "r+b") as f:
            f.write(b"\x00" * size)
            f.flush()
            os.fsync(f.fileno())
    except FileNotFoundError:
        return
    path.unlink(missing_ok=True)


@contextmanager
def scratch_file(data: bytes = b"", suffix: str = ".env") -> Iterator[Path]:
    """Write ``data`` to a private temporary file for the duration of the block.

    The file is zero-filled and deleted when the block exits, whether it
    finishes, raises, or the process receives SIGTERM/SIGHUP.

    Yields:
        Path of the temporary file.
    """
    with _exit_on_termination():
        fd, tmp_name = tempfile.mkstemp(prefix="gpg-env-", suffix=suffix)
        path = Path(tmp_name)
        try:
            # mkstemp creates the file with mode 0600
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            yield path
        finally:
            _shred(path)
            logger.debug("scratch_file_removed", path=str(path))
