"""Tests for the CLI interface."""

import json
from pathlib import Path
from unittest.mock import patch

import click
import click.testing
import pytest

from gpg_env.audit.logger import LOG_FILE_NAME
from gpg_env.cli import cli

SEED = "# Database\nDB_URL=postgres://localhost/app\n\nAPI_KEY='abc 123'\n"


@pytest.fixture
def cli_runner(tmp_path, monkeypatch):
    """Create a CLI test runner working in an empty directory."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "GPG_ENV_PREFIX",
        "GPG_ENV_FILE",
        "GPG_ENV_INIT_FILE",
        "GPG_ENV_EDITOR",
        "GPG_ENV_PASSPHRASE",
        "GPG_ENV_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GPG_ENV_CIPHER", "native")
    return click.testing.CliRunner()


def invoke(runner, args, passphrase="secret", **kwargs):
    env = kwargs.pop("env", {})
    if passphrase is not None:
        env["GPG_ENV_PASSPHRASE"] = passphrase
    return runner.invoke(cli, args, env=env, **kwargs)


@pytest.fixture
def initialized(cli_runner, tmp_path):
    """A .env.gpg created from SEED with passphrase ``secret``."""
    (tmp_path / ".env").write_text(SEED)
    result = invoke(cli_runner, ["init"])
    assert result.exit_code == 0, result.output
    return tmp_path / ".env.gpg"


def audit_records(tmp_path: Path) -> list:
    lines = (tmp_path / "logs" / LOG_FILE_NAME).read_text().splitlines()
    return [r for r in map(json.loads, lines) if r.get("event") == "audit_event"]


def test_init(initialized):
    """Test that init creates the encrypted store."""
    assert initialized.exists()
    assert b"DB_URL" not in initialized.read_bytes()


def test_init_prompts_for_passphrase(cli_runner, tmp_path):
    (tmp_path / ".env").write_text(SEED)
    result = invoke(cli_runner, ["init"], passphrase=None, input="typed\n")
    assert result.exit_code == 0
    assert ".env.gpg created." in result.output

    result = invoke(cli_runner, ["view", "API_KEY"], passphrase="typed")
    assert "abc 123" in result.output


def test_init_existing_store(initialized, cli_runner):
    before = initialized.read_bytes()
    result = invoke(cli_runner, ["init"])
    assert result.exit_code == 1
    assert "already exists" in result.output
    assert initialized.read_bytes() == before


def test_init_missing_seed(cli_runner, tmp_path):
    result = invoke(cli_runner, ["init"], passphrase=None)
    assert result.exit_code == 1
    assert ".env not found" in result.output
    assert not (tmp_path / ".env.gpg").exists()


def test_init_with_prefix(cli_runner, tmp_path):
    (tmp_path / ".env.dev").write_text("MODE=dev\n")
    result = invoke(cli_runner, ["init"], env={"GPG_ENV_PREFIX": "dev"})
    assert result.exit_code == 0
    assert (tmp_path / ".env.dev.gpg").exists()
    assert not (tmp_path / ".env.gpg").exists()


def test_view_all(initialized, cli_runner):
    result = invoke(cli_runner, ["view"])
    assert result.exit_code == 0
    assert "# Database" in result.output
    assert "DB_URL=postgres://localhost/app" in result.output
    assert "API_KEY=abc 123" in result.output


def test_view_variable(initialized, cli_runner):
    result = invoke(cli_runner, ["view", "DB_URL"])
    assert result.exit_code == 0
    assert "postgres://localhost/app\n" in result.output
    assert "API_KEY" not in result.output


def test_view_missing_variable(initialized, cli_runner):
    result = invoke(cli_runner, ["view", "NOPE"])
    assert result.exit_code == 1
    assert "Variable 'NOPE' not found" in result.output


def test_view_missing_store(cli_runner):
    """Test that a missing store is reported before asking for a passphrase."""
    result = invoke(cli_runner, ["view"], passphrase=None)
    assert result.exit_code == 1
    assert "Run 'init' first" in result.output
    assert "passphrase" not in result.output.lower()


def test_wrong_passphrase(initialized, cli_runner):
    result = invoke(cli_runner, ["view"], passphrase="wrong")
    assert result.exit_code == 1
    assert "Decryption failed. Check passphrase." in result.output


def test_import(initialized, cli_runner):
    result = invoke(cli_runner, ["import"])
    assert result.exit_code == 0
    assert "export DB_URL=postgres://localhost/app" in result.output
    assert "export API_KEY='abc 123'" in result.output


def test_import_variable(initialized, cli_runner):
    result = invoke(cli_runner, ["import", "API_KEY"])
    assert result.exit_code == 0
    assert "export API_KEY='abc 123'" in result.output
    assert "DB_URL" not in result.output


def test_import_skips_unexportable_names(cli_runner, tmp_path):
    (tmp_path / ".env").write_text("MY-KEY=dash\nGOOD=1\n")
    assert invoke(cli_runner, ["init"]).exit_code == 0

    result = invoke(cli_runner, ["import"])
    assert result.exit_code == 0
    assert "export GOOD=1" in result.output
    assert "export MY-KEY" not in result.output


def test_import_help_explains_skipped_names(cli_runner):
    result = invoke(cli_runner, ["import", "--help"], passphrase=None)
    assert result.exit_code == 0
    assert "shell identifiers" in result.output
    assert "skipped" in result.output


def test_import_keeps_undecodable_bytes(cli_runner, tmp_path):
    (tmp_path / ".env").write_bytes(b"KEY=caf\xe9\n")
    assert invoke(cli_runner, ["init"]).exit_code == 0

    result = invoke(cli_runner, ["import"])
    assert result.exit_code == 0
    assert b"export KEY='caf\xe9'\n" in result.stdout_bytes

    result = invoke(cli_runner, ["view"])
    assert result.exit_code == 0
    assert "KEY=caf\ufffd" in result.output


def test_list(initialized, cli_runner):
    result = invoke(cli_runner, ["list"])
    assert result.exit_code == 0
    assert "DB_URL" in result.output
    assert "Database" in result.output
    assert "API_KEY" in result.output
    assert "postgres" not in result.output


def test_status(initialized, cli_runner, tmp_path):
    (tmp_path / ".env.prod.gpg").write_bytes(b"x")
    result = invoke(cli_runner, ["status"], passphrase=None)
    assert result.exit_code == 0
    assert "not set, using default" in result.output
    assert "default" in result.output
    assert ".env.prod.gpg" in result.output
    assert "Cipher backend: native" in result.output


def test_status_without_store(cli_runner):
    result = invoke(cli_runner, ["status"], passphrase=None, env={"GPG_ENV_PREFIX": "qa"})
    assert result.exit_code == 0
    assert "qa" in result.output
    assert "NOT FOUND" in result.output
    assert "No .env*.gpg files found." in result.output


def test_edit(initialized, cli_runner):
    """Test that edits made in the editor are re-encrypted."""

    def fake_edit(filename, editor):
        assert editor == "nano"
        path = Path(filename)
        path.write_text(path.read_text() + "ADDED=yes\n")

    with patch("click.edit", side_effect=fake_edit):
        result = invoke(cli_runner, ["edit"], env={"GPG_ENV_EDITOR": "nano"})
    assert result.exit_code == 0, result.output
    assert ".env.gpg updated." in result.output

    result = invoke(cli_runner, ["view", "ADDED"])
    assert "yes" in result.output


def test_edit_without_changes(initialized, cli_runner):
    before = initialized.read_bytes()
    with patch("click.edit", return_value=None):
        result = invoke(cli_runner, ["edit"])
    assert result.exit_code == 0
    assert "No changes" in result.output
    assert initialized.read_bytes() == before


def test_edit_editor_failure(initialized, cli_runner):
    before = initialized.read_bytes()
    with patch(
        "click.edit",
        side_effect=click.ClickException("vim: Editing failed"),
    ):
        result = invoke(cli_runner, ["edit"])
    assert result.exit_code == 1
    assert "vim: Editing failed" in result.output
    assert initialized.read_bytes() == before


def test_edit_to_empty_is_refused(initialized, cli_runner):
    before = initialized.read_bytes()
    with patch(
        "click.edit",
        side_effect=lambda filename, editor: Path(filename).write_text(""),
    ):
        result = invoke(cli_runner, ["edit"])
    assert result.exit_code == 1
    assert "empty" in result.output
    assert initialized.read_bytes() == before


def test_update_pass(initialized, cli_runner):
    """Test that update-pass prompts even when a passphrase is pre-set."""
    result = invoke(cli_runner, ["update-pass"], input="secret\nnew-secret\nnew-secret\n")
    assert result.exit_code == 0, result.output
    assert "passphrase updated successfully" in result.output

    assert invoke(cli_runner, ["view"], passphrase="new-secret").exit_code == 0
    assert invoke(cli_runner, ["view"], passphrase="secret").exit_code == 1


def test_update_pass_mismatch(initialized, cli_runner):
    before = initialized.read_bytes()
    result = invoke(cli_runner, ["update-pass"], input="secret\nnew-secret\ntypo\n")
    assert result.exit_code == 1
    assert "do not match" in result.output
    assert initialized.read_bytes() == before


def test_update_pass_wrong_current(initialized, cli_runner):
    before = initialized.read_bytes()
    result = invoke(cli_runner, ["update-pass"], input="wrong\nnew\nnew\n")
    assert result.exit_code == 1
    assert "Decryption failed" in result.output
    assert initialized.read_bytes() == before


def test_set_pass(cli_runner):
    result = invoke(cli_runner, ["set-pass"], passphrase=None, input="my pass\n")
    assert result.exit_code == 0
    assert "export GPG_ENV_PASSPHRASE='my pass'" in result.output
    assert "WARNING" in result.output


def test_enable_direnv(cli_runner, tmp_path):
    with patch("gpg_env.direnv.shutil.which", return_value="/usr/bin/direnv"):
        result = invoke(cli_runner, ["enable-direnv"], passphrase=None)
    assert result.exit_code == 0
    assert "direnv allow" in result.output
    envrc = (tmp_path / ".envrc").read_text()
    assert 'eval "$(gpg-env import)"' in envrc
    assert "GPG_ENV_PASSPHRASE" not in envrc


def test_enable_direnv_with_passphrase(cli_runner, tmp_path):
    """Test that persisting a pre-set passphrase warns and is audited."""
    with patch("gpg_env.direnv.shutil.which", return_value="/usr/bin/direnv"):
        result = invoke(cli_runner, ["enable-direnv"], passphrase="hunter2")
    assert result.exit_code == 0
    assert "WARNING" in result.output
    assert "hunter2" not in result.output
    assert "export GPG_ENV_PASSPHRASE=hunter2" in (tmp_path / ".envrc").read_text()

    (record,) = audit_records(tmp_path)
    assert record["event_type"] == "direnv.enable"
    assert record["details"]["passphrase_persisted"] is True


def test_enable_direnv_not_installed(cli_runner, tmp_path):
    with patch("gpg_env.direnv.shutil.which", return_value=None):
        result = invoke(cli_runner, ["enable-direnv"], passphrase=None)
    assert result.exit_code == 1
    assert "direnv is not installed" in result.output
    assert not (tmp_path / ".envrc").exists()


def test_invalid_configuration(cli_runner):
    result = invoke(cli_runner, ["status"], env={"GPG_ENV_CIPHER": "rot13"})
    assert result.exit_code == 2
    assert "Invalid configuration" in result.output


def test_audit_trail(initialized, cli_runner, tmp_path):
    """Test that operations are audited without leaking values."""
    invoke(cli_runner, ["view", "API_KEY"])
    invoke(cli_runner, ["view"], passphrase="wrong")

    records = audit_records(tmp_path)
    assert [(r["event_type"], r["success"]) for r in records] == [
        ("store.init", True),
        ("store.view", True),
        ("store.view", False),
    ]
    assert records[1]["details"]["variable"] == "API_KEY"
    assert records[2]["error"]["type"] == "DecryptFailedError"

    log_text = (tmp_path / "logs" / LOG_FILE_NAME).read_text()
    assert "abc 123" not in log_text
    assert "secret" not in log_text
