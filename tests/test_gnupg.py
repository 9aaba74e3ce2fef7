"""Tests for the gpg-backed cipher and backend selection."""

import os
import shutil
import subprocess
from unittest.mock import patch

import pytest

from gpg_env.crypto import GnuPGCipher, NativeCipher, get_cipher
from gpg_env.errors import CipherError, DecryptFailedError

requires_gpg = pytest.mark.skipif(
    shutil.which("gpg") is None, reason="gpg binary not installed"
)


@pytest.fixture
def gnupg_home(tmp_path):
    """Private GnuPG home so tests never touch ~/.gnupg."""
    home = tmp_path / "gnupg"
    home.mkdir(mode=0o700)
    return home


@pytest.fixture
def gpg(gnupg_home):
    return GnuPGCipher(homedir=gnupg_home)


def completed(returncode=0, stdout=b"", stderr=b""):
    return subprocess.CompletedProcess([], returncode, stdout=stdout, stderr=stderr)


def test_passphrase_goes_over_pipe():
    """Test that the passphrase is written to a pipe, never to argv."""
    seen = {}

    def fake_run(command, **kwargs):
        (fd,) = kwargs["pass_fds"]
        seen["command"] = command
        seen["passphrase"] = os.read(fd, 100)
        seen["input"] = kwargs["input"]
        return completed(stdout=b"ciphertext")

    with patch("gpg_env.crypto.gnupg.subprocess.run", side_effect=fake_run):
        assert GnuPGCipher().encrypt(b"KEY=value\n", "s3cret") == b"ciphertext"

    assert seen["passphrase"] == b"s3cret\n"
    assert seen["input"] == b"KEY=value\n"
    assert "s3cret" not in " ".join(seen["command"])
    assert seen["command"][0] == "gpg"
    for flag in ("--batch", "--symmetric", "--pinentry-mode", "--passphrase-fd"):
        assert flag in seen["command"]
    assert seen["command"][seen["command"].index("--cipher-algo") + 1] == "AES256"


def test_homedir_option(tmp_path):
    with patch("gpg_env.crypto.gnupg.subprocess.run", return_value=completed()) as run:
        GnuPGCipher(binary="gpg2", homedir=tmp_path).decrypt(b"x", "pw")
    command = run.call_args[0][0]
    assert command[0] == "gpg2"
    assert command[command.index("--homedir") + 1] == str(tmp_path)
    assert "--decrypt" in command


def test_decrypt_failure_is_reported_uniformly():
    with patch(
        "gpg_env.crypto.gnupg.subprocess.run",
        return_value=completed(2, stderr=b"gpg: decryption failed: Bad session key"),
    ):
        with pytest.raises(DecryptFailedError, match="Check passphrase"):
            GnuPGCipher().decrypt(b"x", "pw")


def test_encrypt_failure():
    with patch(
        "gpg_env.crypto.gnupg.subprocess.run",
        return_value=completed(2, stderr=b"gpg: boom"),
    ):
        with pytest.raises(CipherError, match="boom"):
            GnuPGCipher().encrypt(b"x", "pw")


def test_missing_binary():
    cipher = GnuPGCipher(binary="gpg-env-test-no-such-binary")
    with pytest.raises(CipherError, match="not found"):
        cipher.encrypt(b"x", "pw")


def test_get_cipher_explicit():
    assert isinstance(get_cipher("native"), NativeCipher)
    assert isinstance(get_cipher("gnupg"), GnuPGCipher)
    with pytest.raises(CipherError):
        get_cipher("rot13")


def test_get_cipher_auto():
    with patch("gpg_env.crypto.cipher.shutil.which", return_value="/usr/bin/gpg"):
        assert get_cipher().name == "gnupg"
    with patch("gpg_env.crypto.cipher.shutil.which", return_value=None):
        assert get_cipher().name == "native"


@requires_gpg
def test_gpg_round_trip(gpg):
    ciphertext = gpg.encrypt(b"# note\nKEY=value\n", "pw")
    assert gpg.decrypt(ciphertext, "pw") == b"# note\nKEY=value\n"


@requires_gpg
def test_gpg_wrong_passphrase(gpg):
    ciphertext = gpg.encrypt(b"KEY=value\n", "pw")
    with pytest.raises(DecryptFailedError):
        gpg.decrypt(ciphertext, "other")


@requires_gpg
def test_gpg_reads_native_messages(gpg):
    """Test that gpg decrypts what the native backend writes."""
    ciphertext = NativeCipher(coded_count=0x60).encrypt(b"KEY=native\n", "pw")
    assert gpg.decrypt(ciphertext, "pw") == b"KEY=native\n"


@requires_gpg
def test_native_reads_gpg_messages(gpg):
    """Test that the native backend decrypts what gpg writes."""
    plaintext = b"KEY=gpg\n" * 500
    ciphertext = gpg.encrypt(plaintext, "pw")
    assert NativeCipher().decrypt(ciphertext, "pw") == plaintext
