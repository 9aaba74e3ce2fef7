"""Manage environment variables in a passphrase-encrypted OpenPGP file."""

__version__ = "0.1.0"
