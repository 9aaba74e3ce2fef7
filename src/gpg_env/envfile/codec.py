"""Parse and serialize the plaintext env file format.

The format is line based::

    # comment lines attach to the next assignment
    KEY=value
    QUOTED="value with spaces"

Lines end at a line feed only; a trailing carriage return is trimmed like
any other surrounding whitespace. Blank lines separate blocks and are not
kept. A comment block followed by a blank line (or by the end of the file)
attaches to nothing and is dropped. Lines that are neither comments nor
``key=value`` assignments are skipped without error.
"""

from enum import Enum
from typing import List, NamedTuple, Optional, Sequence

import structlog

from .models import QUOTE_CHARS, Comment, Entry, Variable

logger = structlog.get_logger(__name__)

COMMENT_MARKER = "#"
ENCODING = "utf-8"
# Undecodable bytes survive a parse and serialize cycle unchanged.
ENCODING_ERRORS = "surrogateescape"


class LineKind(str, Enum):
    """Classification of a single trimmed line."""

    BLANK = "blank"
    COMMENT = "comment"
    ASSIGNMENT = "assignment"
    MALFORMED = "malformed"


class Line(NamedTuple):
    """A classified line with the fields relevant to its kind."""

    kind: LineKind
    text: str = ""
    key: str = ""
    value: str = ""
    quote: Optional[str] = None


def unquote(value: str) -> tuple[str, Optional[str]]:
    """Strip one layer of matching surrounding quotes.

    Returns:
        Tuple of (value, quote character or None).
    """
    if len(value) >= 2 and value[0] == value[-1] and value[0] in QUOTE_CHARS:
        return value[1:-1], value[0]
    return value, None


def classify_line(raw: str) -> Line:
    """Classify one raw line of plaintext."""
    line = raw.strip()
    if not line:
        return Line(LineKind.BLANK)
    if line.startswith(COMMENT_MARKER):
        return Line(LineKind.COMMENT, text=line[len(COMMENT_MARKER):].strip())

    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
        return Line(LineKind.MALFORMED, text=line)
    value, quote = unquote(value.strip())
    return Line(LineKind.ASSIGNMENT, key=key, value=value, quote=quote)


def parse(plaintext: bytes) -> List[Entry]:
    """Parse decrypted plaintext into an ordered entry sequence.

    Args:
        plaintext: Raw file content. UTF-8 is expected; other bytes are
            carried through as lone surrogates.

    Returns:
        The variables found, each carrying its leading comment block.
    """
    text = plaintext.decode(ENCODING, errors=ENCODING_ERRORS)
    entries: List[Entry] = []
    pending: List[Comment] = []
    skipped = 0

    for raw in text.split("\n"):
        line = classify_line(raw)
        if line.kind is LineKind.BLANK:
            pending = []
        elif line.kind is LineKind.COMMENT:
            pending.append(Comment(text=line.text))
        elif line.kind is LineKind.ASSIGNMENT:
            entries.append(
                Variable(
                    key=line.key,
                    value=line.value,
                    leading_comments=pending,
                    quote=line.quote,
                )
            )
            pending = []
        else:
            skipped += 1

    if skipped:
        logger.debug("skipped_malformed_lines", count=skipped)
    return entries


def format_comment(comment: Comment) -> str:
    if not comment.text:
        return COMMENT_MARKER
    return f"{COMMENT_MARKER} {comment.text}"


def format_variable(variable: Variable) -> str:
    quote = variable.quote or ""
    return f"{variable.key}={quote}{variable.value}{quote}"


def serialize(entries: Sequence[Entry]) -> bytes:
    """Serialize an entry sequence to the canonical on-disk text.

    Each line, including the last, ends with a newline.
    """
    lines: List[str] = []
    for entry in entries:
        if isinstance(entry, Variable):
            lines.extend(format_comment(c) for c in entry.leading_comments)
            lines.append(format_variable(entry))
        else:
            lines.append(format_comment(entry))
    return "".join(f"{line}\n" for line in lines).encode(
        ENCODING, errors=ENCODING_ERRORS
    )
