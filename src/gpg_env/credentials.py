"""Passphrase acquisition.

Operations receive the passphrase as an argument. Where it comes from is
decided by a :class:`CredentialProvider`: a pre-set value (for example
``GPG_ENV_PASSPHRASE``) takes priority over an interactive prompt.
"""

from typing import Callable, Protocol, runtime_checkable

import click
import structlog

from .config import Settings
from .crypto import compare_bytes
from .errors import PassphraseMismatchError

logger = structlog.get_logger(__name__)

PromptSecret = Callable[[str], str]


def prompt_secret(message: str) -> str:
    """Prompt on the terminal with echo disabled.

    The prompt goes to stderr so stdout stays clean for ``eval``.
    """
    return click.prompt(message, hide_input=True, err=True)


@runtime_checkable
class CredentialProvider(Protocol):
    """Source of a passphrase."""

    def obtain(self, prompt: str) -> str:
        """Return a passphrase; ``prompt`` is shown if the user is asked."""
        ...


class StaticCredentialProvider:
    """Provider returning a value supplied up front."""

    def __init__(self, passphrase: str):
        self._passphrase = passphrase

    def obtain(self, prompt: str) -> str:
        return self._passphrase


class PromptCredentialProvider:
    """Provider asking the user every time."""

    def __init__(self, prompt: PromptSecret = prompt_secret):
        self._prompt = prompt

    def obtain(self, prompt: str) -> str:
        return self._prompt(prompt)


def resolve_provider(
    settings: Settings, prompt: PromptSecret = prompt_secret
) -> CredentialProvider:
    """Pick the provider for ``settings``: pre-set passphrase first, else prompt."""
    if settings.passphrase is not None:
        logger.debug("using_preset_passphrase")
        return StaticCredentialProvider(settings.passphrase.get_secret_value())
    return PromptCredentialProvider(prompt)


def prompt_new_passphrase(label: str, prompt: PromptSecret = prompt_secret) -> str:
    """Ask for a new passphrase twice and require an exact match.

    Args:
        label: What the passphrase protects, shown in the prompt.
        prompt: Secret prompt callable.

    Returns:
        The confirmed passphrase.

    Raises:
        PassphraseMismatchError: If the two entries differ.
    """
    new = prompt(f"Enter NEW passphrase for {label}")
    confirm = prompt("Confirm NEW passphrase")
    if not compare_bytes(new.encode("utf-8"), confirm.encode("utf-8")):
        raise PassphraseMismatchError("New passphrases do not match.")
    return new
