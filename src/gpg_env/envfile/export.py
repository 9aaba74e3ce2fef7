"""Project parsed entries into shell ``export`` statements."""

import re
import shlex
from typing import List, Optional, Sequence

import structlog

from .models import Entry, find_variable, variables

logger = structlog.get_logger(__name__)

SHELL_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def is_exportable(key: str) -> bool:
    """Check whether ``key`` can be assigned by a POSIX shell."""
    return SHELL_IDENTIFIER.fullmatch(key) is not None


def export_line(key: str, value: str) -> str:
    """Build ``export KEY=VALUE`` with the value quoted for shell evaluation.

    Values made only of shell-safe characters are left bare; anything else
    is single-quoted, so quotes, backslashes, ``$``, backticks and newlines
    all reach the shell literally.

    Raises:
        ValueError: If ``key`` is not a valid shell identifier.
    """
    if not is_exportable(key):
        raise ValueError(f"Not a valid shell variable name: {key!r}")
    return f"export {key}={shlex.quote(value)}"


def project(entries: Sequence[Entry], selector: Optional[str] = None) -> List[str]:
    """Convert entries to export lines.

    Without a selector every variable is exported in file order; duplicate
    keys produce one line each, so the last one wins when evaluated. With a
    selector only the first variable of that name is exported.

    Args:
        entries: Parsed entry sequence.
        selector: Optional variable name to restrict the output to.

    Returns:
        Export statements, one per variable.

    Raises:
        KeyNotFoundError: If ``selector`` names no variable.
        ValueError: If the selected variable name is not exportable.
    """
    if selector is not None:
        variable = find_variable(entries, selector)
        return [export_line(variable.key, variable.value)]

    lines = []
    for variable in variables(entries):
        if not is_exportable(variable.key):
            logger.warning("skipped_unexportable_variable", variable=variable.key)
            continue
        lines.append(export_line(variable.key, variable.value))
    return lines
