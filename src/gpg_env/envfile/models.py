"""In-memory model of an env file: an ordered sequence of entries."""

from typing import Iterator, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import KeyNotFoundError

QUOTE_CHARS = ("'", '"')


def _reject_line_breaks(text: str) -> str:
    if "\n" in text:
        raise ValueError("line breaks cannot be stored in an env file entry")
    return text


class Comment(BaseModel):
    """A single ``#`` line, stored without the marker."""

    model_config = ConfigDict(frozen=True)

    text: str = ""

    @field_validator("text")
    @classmethod
    def _single_line(cls, text: str) -> str:
        return _reject_line_breaks(text)


class Variable(BaseModel):
    """A ``KEY=value`` assignment with the comment block directly above it."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str = ""
    leading_comments: List[Comment] = Field(default_factory=list)
    # Quote character stripped from the value on parse, if any.
    quote: Optional[str] = None

    @field_validator("key")
    @classmethod
    def _valid_key(cls, key: str) -> str:
        if not key.strip() or "=" in key:
            raise ValueError("key must be non-empty and must not contain '='")
        return _reject_line_breaks(key)

    @field_validator("value")
    @classmethod
    def _single_line(cls, value: str) -> str:
        return _reject_line_breaks(value)

    @field_validator("quote")
    @classmethod
    def _known_quote(cls, quote: Optional[str]) -> Optional[str]:
        if quote is not None and quote not in QUOTE_CHARS:
            raise ValueError(f"unsupported quote character: {quote!r}")
        return quote


Entry = Union[Comment, Variable]


def variables(entries: Sequence[Entry]) -> Iterator[Variable]:
    """Yield the variables of an entry sequence in order."""
    for entry in entries:
        if isinstance(entry, Variable):
            yield entry


def find_variable(entries: Sequence[Entry], key: str) -> Variable:
    """Return the first variable named ``key``.

    Raises:
        KeyNotFoundError: If no variable has that key.
    """
    for variable in variables(entries):
        if variable.key == key:
            return variable
    raise KeyNotFoundError(key)
