"""Shared fixtures for gpg-env tests."""

import pytest

from gpg_env.audit import reset_logger
from gpg_env.crypto import NativeCipher
from gpg_env.storage import EncryptedStore


@pytest.fixture(autouse=True)
def reset_logging(tmp_path, monkeypatch):
    """Reset logging state and keep logs out of the home directory."""
    monkeypatch.setenv("GPG_ENV_LOG_DIR", str(tmp_path / "logs"))
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def cipher():
    """Native cipher with a cheap S2K count."""
    return NativeCipher(coded_count=0)


@pytest.fixture
def store(tmp_path, cipher):
    """Store handle for a not yet created ``.env.gpg``."""
    return EncryptedStore(tmp_path / ".env.gpg", cipher)


@pytest.fixture
def seeded_store(tmp_path, store):
    """Store created from a small plaintext file with passphrase ``secret``."""
    seed = tmp_path / ".env"
    seed.write_bytes(b"# Database\nDB_URL=postgres://localhost/app\nAPI_KEY='abc 123'\n")
    store.init_from_plaintext(seed, "secret")
    return store
