"""Runtime configuration read from ``GPG_ENV_*`` environment variables."""

import os
from pathlib import Path
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, SecretStr

DEFAULT_EDITOR = "vim"

CipherName = Literal["auto", "gnupg", "native"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


def default_store_file(prefix: str = "") -> Path:
    """``.env.gpg``, or ``.env.<prefix>.gpg`` when a prefix is set."""
    return Path(f".env.{prefix}.gpg" if prefix else ".env.gpg")


def default_init_file(prefix: str = "") -> Path:
    """``.env``, or ``.env.<prefix>`` when a prefix is set."""
    return Path(f".env.{prefix}" if prefix else ".env")


class Settings(BaseModel):
    """Resolved gpg-env configuration."""

    prefix: str = ""
    store_file: Path = default_store_file()
    init_file: Path = default_init_file()
    editor: str = DEFAULT_EDITOR
    passphrase: Optional[SecretStr] = None
    cipher: CipherName = "auto"
    log_dir: Optional[Path] = None
    log_level: LogLevel = "WARNING"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from; defaults to ``os.environ``.

        Raises:
            pydantic.ValidationError: If a value is invalid.
        """
        env = os.environ if environ is None else environ
        prefix = env.get("GPG_ENV_PREFIX", "")

        # Empty values count as unset, as in the shell.
        return cls(
            prefix=prefix,
            store_file=env.get("GPG_ENV_FILE") or default_store_file(prefix),
            init_file=env.get("GPG_ENV_INIT_FILE") or default_init_file(prefix),
            editor=env.get("GPG_ENV_EDITOR") or env.get("EDITOR") or DEFAULT_EDITOR,
            passphrase=env.get("GPG_ENV_PASSPHRASE") or None,
            cipher=env.get("GPG_ENV_CIPHER") or "auto",
            log_dir=env.get("GPG_ENV_LOG_DIR") or None,
            log_level=(env.get("GPG_ENV_LOG_LEVEL") or "WARNING").upper(),
        )
