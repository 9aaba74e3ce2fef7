"""Main CLI implementation."""

import getpass
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..audit import EventType, audit_event, setup_logging
from ..config import Settings
from ..credentials import prompt_new_passphrase, prompt_secret, resolve_provider
from ..crypto import get_cipher
from ..direnv import PASSPHRASE_VARIABLE, enable_direnv
from ..envfile import export_line, find_variable, format_comment, project, variables
from ..envfile.codec import ENCODING, ENCODING_ERRORS
from ..errors import EditorError, GpgEnvError
from ..storage import Editor, EncryptedStore, discover_stores

PROGRAM_NAME = "gpg-env"

# Initialize logger
logger = structlog.get_logger(__name__)
console = Console()


def current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


@contextmanager
def audited(event_type: EventType, **details: Any) -> Iterator[dict]:
    """Record an audit event for the enclosed operation.

    Failures are reported to the user as :class:`click.ClickException`.
    The yielded dict can be extended with details known only afterwards.
    """
    try:
        yield details
    except (GpgEnvError, OSError, ValueError) as e:
        audit_event(event_type, current_user(), False, details, error=e)
        raise click.ClickException(str(e))
    audit_event(event_type, current_user(), True, details)


def open_store(settings: Settings) -> EncryptedStore:
    return EncryptedStore(settings.store_file, get_cipher(settings.cipher))


def obtain_passphrase(settings: Settings, prompt: str) -> str:
    return resolve_provider(settings, prompt_secret).obtain(prompt)


def click_editor(command: str) -> Editor:
    """Editor callable running ``command`` on a file through ``click.edit``."""

    def edit(path: Path) -> None:
        try:
            click.edit(filename=str(path), editor=command)
        except click.ClickException as e:
            raise EditorError(e.format_message())

    return edit


def echo_raw(text: str) -> None:
    """Write decrypted text to stdout with its original bytes."""
    click.echo(text.encode(ENCODING, errors=ENCODING_ERRORS))


def displayable(text: str) -> str:
    """Replace undecodable bytes with U+FFFD for terminal output."""
    return text.encode(ENCODING, errors=ENCODING_ERRORS).decode(ENCODING, "replace")


def print_line(text: str, style: Optional[str] = None) -> None:
    """Print user data: no markup, highlighting or wrapping."""
    console.print(
        displayable(text), style=style, markup=False, highlight=False, soft_wrap=True
    )


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default=None,
    help="Set logging level (default: $GPG_ENV_LOG_LEVEL or WARNING)",
)
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """Manage environment variables in a passphrase-encrypted file.

    Configuration is read from GPG_ENV_* environment variables.
    """
    try:
        settings = Settings.from_env()
    except ValidationError as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    setup_logging(log_level=log_level or settings.log_level, base_dir=settings.log_dir)
    logger.debug(
        "command_started",
        command=ctx.invoked_subcommand,
        file=str(settings.store_file),
        backend=settings.cipher,
    )
    ctx.obj = settings


@cli.command()
@click.pass_obj
def init(settings: Settings) -> None:
    """Encrypt the plaintext init file into a new store."""
    with audited(
        EventType.STORE_INIT,
        file=str(settings.store_file),
        seed=str(settings.init_file),
    ):
        store = open_store(settings)
        store.check_init(settings.init_file)
        passphrase = obtain_passphrase(
            settings, f"Enter passphrase to encrypt {settings.init_file}"
        )
        store.init_from_plaintext(settings.init_file, passphrase)
        click.echo(f"{store.path} created.")


@cli.command()
@click.pass_obj
def edit(settings: Settings) -> None:
    """Decrypt the store, open it in the editor and re-encrypt on save."""
    with audited(EventType.STORE_EDIT, file=str(settings.store_file)) as details:
        store = open_store(settings)
        store.require_exists()
        passphrase = obtain_passphrase(
            settings, f"Enter passphrase to decrypt {store.path}"
        )
        details["modified"] = store.edit(passphrase, click_editor(settings.editor))
        if details["modified"]:
            click.echo(f"{store.path} updated.")
        else:
            click.echo(f"No changes to {store.path}.", err=True)


@cli.command()
@click.argument("variable", required=False)
@click.pass_obj
def view(settings: Settings, variable: Optional[str]) -> None:
    """Print the decrypted variables, or the value of VARIABLE."""
    with audited(
        EventType.STORE_VIEW, file=str(settings.store_file), variable=variable
    ):
        store = open_store(settings)
        store.require_exists()
        entries = store.decrypt(
            obtain_passphrase(settings, f"Enter passphrase to decrypt {store.path}")
        )

        if variable:
            echo_raw(find_variable(entries, variable).value)
            return

        for var in variables(entries):
            for comment in var.leading_comments:
                print_line(format_comment(comment), style="dim")
            print_line(f"{var.key}={var.value}")


@cli.command("import")
@click.argument("variable", required=False)
@click.pass_obj
def import_(settings: Settings, variable: Optional[str]) -> None:
    """Print export commands for the store's variables.

    Variables whose names are not shell identifiers, such as MY-KEY, are
    skipped with a warning. Read them with 'view' instead.

    Use as: eval "$(gpg-env import)"
    """
    with audited(
        EventType.STORE_IMPORT, file=str(settings.store_file), variable=variable
    ) as details:
        store = open_store(settings)
        store.require_exists()
        entries = store.decrypt(
            obtain_passphrase(settings, f"Enter passphrase to decrypt {store.path}")
        )
        lines = project(entries, variable)
        for line in lines:
            echo_raw(line)
        details["exported"] = len(lines)


@cli.command("list")
@click.pass_obj
def list_(settings: Settings) -> None:
    """List variable names with their comments."""
    with audited(EventType.STORE_LIST, file=str(settings.store_file)) as details:
        store = open_store(settings)
        store.require_exists()
        entries = store.decrypt(
            obtain_passphrase(settings, f"Enter passphrase to decrypt {store.path}")
        )

        table = Table(title=escape(f"Variables in {store.path}"))
        table.add_column("Variable", style="cyan")
        table.add_column("Comment", style="dim")
        count = 0
        for var in variables(entries):
            comment = " ".join(c.text for c in var.leading_comments if c.text)
            table.add_row(
                escape(displayable(var.key)), escape(displayable(comment))
            )
            count += 1

        if count:
            console.print(table)
        else:
            click.echo(f"No variables in {store.path}.")
        details["count"] = count


@cli.command()
@click.pass_obj
def status(settings: Settings) -> None:
    """Show the selected store and every store in the current directory."""
    with audited(EventType.STORE_STATUS, file=str(settings.store_file)):
        store = open_store(settings)

        if settings.prefix:
            console.print(f"GPG_ENV_PREFIX: [bold]{escape(settings.prefix)}[/bold]")
        else:
            console.print("GPG_ENV_PREFIX: not set, using default")
        if store.exists():
            console.print(f"Encrypted file: [green]{escape(str(store.path))}[/green]")
        else:
            console.print(
                f"Encrypted file ({escape(str(store.path))}): "
                "[red]NOT FOUND[/red]. Run 'init' to create it."
            )
        console.print(f"Cipher backend: {store.cipher.name}")

        found = discover_stores(Path.cwd())
        if not found:
            console.print("No .env*.gpg files found.")
        else:
            table = Table(title="Available encrypted environment files")
            table.add_column("Environment", style="cyan")
            table.add_column("File", style="green")
            for label, path in found:
                table.add_row(escape(label), escape(path.name))
            console.print(table)

        console.print(
            "Remember to add '.env*' to your .gitignore if it contains "
            "sensitive information."
        )


@cli.command("update-pass")
@click.pass_obj
def update_pass(settings: Settings) -> None:
    """Change the passphrase of the store.

    Always prompts, even when GPG_ENV_PASSPHRASE is set.
    """
    with audited(EventType.STORE_ROTATE, file=str(settings.store_file)):
        store = open_store(settings)
        store.require_exists()
        old = prompt_secret(f"Enter CURRENT passphrase to decrypt {store.path}")
        with store.transaction(old) as tx:
            tx.rekey(prompt_new_passphrase(str(store.path)))
        click.echo(f"{store.path} passphrase updated successfully.")


@cli.command("set-pass")
def set_pass() -> None:
    """Print an export of GPG_ENV_PASSPHRASE for the current shell.

    Use as: eval "$(gpg-env set-pass)"
    """
    with audited(EventType.PASSPHRASE_EXPORT, variable=PASSPHRASE_VARIABLE):
        passphrase = prompt_secret("Enter passphrase")
        click.echo(
            f"WARNING: {PASSPHRASE_VARIABLE} will be visible to every process "
            "started from this shell.",
            err=True,
        )
        click.echo(export_line(PASSPHRASE_VARIABLE, passphrase))


@cli.command("enable-direnv")
@click.option(
    "--envrc",
    type=click.Path(dir_okay=False, path_type=Path),
    default=".envrc",
    show_default=True,
    help="direnv file to create or update",
)
@click.pass_obj
def enable_direnv_command(settings: Settings, envrc: Path) -> None:
    """Load the store automatically with direnv."""
    with audited(
        EventType.DIRENV_ENABLE,
        path=str(envrc),
        passphrase_persisted=settings.passphrase is not None,
    ):
        if settings.passphrase is not None:
            click.echo(
                f"WARNING: {PASSPHRASE_VARIABLE} will be written to {envrc}. "
                "Ensure this file is secure and not committed to version control!",
                err=True,
            )
        added = enable_direnv(envrc, settings, program=PROGRAM_NAME)
        if added:
            click.echo(f"Updated {envrc}:")
            for line in added:
                if line.startswith(f"export {PASSPHRASE_VARIABLE}="):
                    line = f"export {PASSPHRASE_VARIABLE}=***"
                click.echo(f"  Added: {line}")
        else:
            click.echo(f"{envrc} already configured.")
        click.echo("Now run 'direnv allow' in this directory to load your secrets.")
