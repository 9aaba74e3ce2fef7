"""direnv integration: write an ``.envrc`` that loads the store on ``cd``."""

import re
import shutil
from pathlib import Path
from typing import List

import structlog

from .config import Settings
from .envfile import export_line
from .errors import DirenvNotInstalledError
from .storage import atomic_write

logger = structlog.get_logger(__name__)

PASSPHRASE_VARIABLE = "GPG_ENV_PASSPHRASE"
_EXPORT_NAME = re.compile(r"^export (?P<name>[A-Za-z_][A-Za-z0-9_]*)=")


def import_hook(program: str) -> str:
    """The ``.envrc`` line that exports the store's variables."""
    return f'eval "$({program} import)"'


def config_lines(settings: Settings) -> List[str]:
    """Configuration exports pinning the current settings in ``.envrc``.

    The passphrase is included only when one is pre-set.
    """
    lines = [
        export_line("GPG_ENV_FILE", str(settings.store_file)),
        export_line("GPG_ENV_INIT_FILE", str(settings.init_file)),
        export_line("GPG_ENV_EDITOR", settings.editor),
    ]
    if settings.prefix:
        lines.append(export_line("GPG_ENV_PREFIX", settings.prefix))
    else:
        # Keep a parent directory's prefix from leaking in
        lines.append("unset GPG_ENV_PREFIX")
    if settings.passphrase is not None:
        lines.append(
            export_line(PASSPHRASE_VARIABLE, settings.passphrase.get_secret_value())
        )
    return lines


def _already_present(line: str, existing: List[str]) -> bool:
    if line in existing:
        return True
    match = _EXPORT_NAME.match(line)
    if match is None:
        return False
    return any(other.startswith(f"export {match.group('name')}=") for other in existing)


def enable_direnv(
    envrc_path: Path, settings: Settings, program: str = "gpg-env"
) -> List[str]:
    """Prepend configuration and the import hook to ``envrc_path``.

    Lines already present (or exports of the same variable) are skipped;
    existing content is kept below the new lines.

    Returns:
        The lines that were added.

    Raises:
        DirenvNotInstalledError: If ``direnv`` is not on PATH.
    """
    if shutil.which("direnv") is None:
        raise DirenvNotInstalledError(
            "direnv is not installed. Please install direnv first."
        )

    envrc_path = Path(envrc_path)
    existing = envrc_path.read_text() if envrc_path.exists() else ""
    existing_lines = [line.strip() for line in existing.splitlines()]

    added = [
        line
        for line in config_lines(settings) + [import_hook(program)]
        if not _already_present(line, existing_lines)
    ]
    if not added:
        logger.info("envrc_unchanged", path=str(envrc_path))
        return added

    if any(line.startswith(f"export {PASSPHRASE_VARIABLE}=") for line in added):
        logger.warning("passphrase_persisted", path=str(envrc_path))

    atomic_write(envrc_path, ("\n".join(added) + "\n" + existing).encode("utf-8"))
    logger.info("envrc_updated", path=str(envrc_path), added=len(added))
    return added
