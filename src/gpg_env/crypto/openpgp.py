"""Passphrase-encrypted OpenPGP messages (RFC 4880) on top of ``cryptography``.

Messages written here are a symmetric-key encrypted session key packet
(S2K iterated and salted, SHA-256, AES-256) followed by a symmetrically
encrypted integrity protected data packet holding a binary literal data
packet and its modification detection code. ``gpg --decrypt`` reads them
as is.

Reading accepts what ``gpg --symmetric`` produces with RFC 4880 packets:
old and new packet headers, partial body lengths, AES-128/192/256, all
three S2K modes, an encrypted session key, and ZIP/ZLIB/BZip2 compression.
"""

import bz2
import os
import struct
import time
import zlib
from typing import Iterator, List, NamedTuple, Tuple

import structlog
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..errors import CipherError, DecryptFailedError
from .memory import compare_bytes

logger = structlog.get_logger(__name__)

# Packet tags
TAG_PKESK = 1
TAG_SIGNATURE = 2
TAG_SKESK = 3
TAG_ONE_PASS_SIGNATURE = 4
TAG_COMPRESSED = 8
TAG_SED = 9
TAG_MARKER = 10
TAG_LITERAL = 11
TAG_SEIPD = 18
TAG_MDC = 19
TAG_AEAD = 20

# Symmetric algorithm id -> key size in bytes (AES only)
KEY_SIZES = {7: 16, 8: 24, 9: 32}
AES256 = 9
BLOCK_SIZE = 16

HASHES = {
    2: hashes.SHA1,
    8: hashes.SHA256,
    9: hashes.SHA384,
    10: hashes.SHA512,
    11: hashes.SHA224,
}
SHA256 = 8

S2K_SIMPLE = 0
S2K_SALTED = 1
S2K_ITERATED = 3

# 16 MiB of hashing per key derivation
DEFAULT_S2K_COUNT = 0xE0

MDC_HEADER = bytes([0xC0 | TAG_MDC, 20])
MDC_LENGTH = len(MDC_HEADER) + 20


class Packet(NamedTuple):
    tag: int
    body: bytes


def _take(data: bytes, pos: int, size: int) -> bytes:
    if size < 0 or pos + size > len(data):
        raise DecryptFailedError("Truncated OpenPGP packet")
    return data[pos:pos + size]


def encode_length(length: int) -> bytes:
    """Encode a new-format packet body length."""
    if length < 192:
        return bytes([length])
    if length < 8384:
        length -= 192
        return bytes([(length >> 8) + 192, length & 0xFF])
    return b"\xff" + struct.pack(">I", length)


def encode_packet(tag: int, body: bytes) -> bytes:
    """Encode a packet with a new-format header and a definite length."""
    return bytes([0xC0 | tag]) + encode_length(len(body)) + body


def _read_new_format_body(data: bytes, pos: int) -> Tuple[bytes, int]:
    chunks: List[bytes] = []
    while True:
        first = _take(data, pos, 1)[0]
        pos += 1
        partial = False
        if first < 192:
            length = first
        elif first < 224:
            second = _take(data, pos, 1)[0]
            pos += 1
            length = ((first - 192) << 8) + second + 192
        elif first == 255:
            length = struct.unpack(">I", _take(data, pos, 4))[0]
            pos += 4
        else:
            length = 1 << (first & 0x1F)
            partial = True
        chunks.append(_take(data, pos, length))
        pos += length
        if not partial:
            return b"".join(chunks), pos


def iter_packets(data: bytes) -> Iterator[Packet]:
    """Split a binary OpenPGP stream into packets.

    Raises:
        DecryptFailedError: If the stream is not well-formed.
    """
    pos = 0
    while pos < len(data):
        ctb = data[pos]
        pos += 1
        if not ctb & 0x80:
            raise DecryptFailedError("Not an OpenPGP packet stream")

        if ctb & 0x40:
            tag = ctb & 0x3F
            body, pos = _read_new_format_body(data, pos)
        else:
            tag = (ctb >> 2) & 0x0F
            length_type = ctb & 0x03
            if length_type == 3:
                body, pos = data[pos:], len(data)
            else:
                size = (1, 2, 4)[length_type]
                length = int.from_bytes(_take(data, pos, size), "big")
                pos += size
                body = _take(data, pos, length)
                pos += length
        yield Packet(tag, body)


class S2K(NamedTuple):
    """String-to-key specifier turning a passphrase into a symmetric key."""

    mode: int
    hash_algo: int
    salt: bytes = b""
    coded_count: int = 0

    @property
    def count(self) -> int:
        return (16 + (self.coded_count & 15)) << ((self.coded_count >> 4) + 6)

    def encode(self) -> bytes:
        spec = bytes([self.mode, self.hash_algo])
        if self.mode in (S2K_SALTED, S2K_ITERATED):
            spec += self.salt
        if self.mode == S2K_ITERATED:
            spec += bytes([self.coded_count])
        return spec

    @classmethod
    def decode(cls, data: bytes, pos: int) -> Tuple["S2K", int]:
        mode, hash_algo = _take(data, pos, 2)
        pos += 2
        if mode == S2K_SIMPLE:
            return cls(mode, hash_algo), pos
        if mode == S2K_SALTED:
            return cls(mode, hash_algo, _take(data, pos, 8)), pos + 8
        if mode == S2K_ITERATED:
            salt = _take(data, pos, 8)
            coded_count = _take(data, pos + 8, 1)[0]
            return cls(mode, hash_algo, salt, coded_count), pos + 9
        raise CipherError(f"Unsupported S2K mode: {mode}")

    def derive(self, passphrase: bytes, key_size: int) -> bytes:
        """Derive ``key_size`` bytes of key material from ``passphrase``."""
        try:
            hash_cls = HASHES[self.hash_algo]
        except KeyError:
            raise CipherError(f"Unsupported S2K hash algorithm: {self.hash_algo}")

        seed = self.salt + passphrase
        key = b""
        preload = 0
        while len(key) < key_size:
            digest = hashes.Hash(hash_cls())
            digest.update(b"\x00" * preload)
            if self.mode == S2K_ITERATED and seed:
                remaining = max(self.count, len(seed))
                chunk = seed * max(1, 65536 // len(seed))
                while remaining >= len(chunk):
                    digest.update(chunk)
                    remaining -= len(chunk)
                digest.update(chunk[:remaining])
            else:
                digest.update(seed)
            key += digest.finalize()
            preload += 1
        return key[:key_size]


def _cfb(
    key: bytes, data: bytes, encrypt: bool, iv: bytes = b"\x00" * BLOCK_SIZE
) -> bytes:
    """Full-block CFB over the raw AES block function."""
    block = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
    feedback = iv
    out = bytearray()
    for offset in range(0, len(data), BLOCK_SIZE):
        chunk = data[offset:offset + BLOCK_SIZE]
        pad = block.update(feedback)[:len(chunk)]
        result = (int.from_bytes(chunk, "big") ^ int.from_bytes(pad, "big")).to_bytes(
            len(chunk), "big"
        )
        out += result
        feedback = result if encrypt else chunk
    return bytes(out)


def _key_size(algo: int) -> int:
    try:
        return KEY_SIZES[algo]
    except KeyError:
        raise CipherError(f"Unsupported symmetric algorithm: {algo}")


def _sha1(data: bytes) -> bytes:
    digest = hashes.Hash(hashes.SHA1())
    digest.update(data)
    return digest.finalize()


def _session_key(skesk: bytes, passphrase: bytes) -> Tuple[int, bytes]:
    version = _take(skesk, 0, 1)[0]
    if version != 4:
        raise CipherError(f"Unsupported symmetric-key packet version: {version}")
    algo = _take(skesk, 1, 1)[0]
    s2k, pos = S2K.decode(skesk, 2)
    key = s2k.derive(passphrase, _key_size(algo))

    encrypted_key = skesk[pos:]
    if not encrypted_key:
        return algo, key

    decrypted = _cfb(key, encrypted_key, encrypt=False)
    session_algo, session_key = decrypted[0], decrypted[1:]
    if KEY_SIZES.get(session_algo) != len(session_key):
        raise DecryptFailedError("Bad passphrase or corrupted session key")
    return session_algo, session_key


def _decompress(body: bytes) -> bytes:
    algo, payload = _take(body, 0, 1)[0], body[1:]
    try:
        if algo == 0:
            return payload
        if algo == 1:
            return zlib.decompressobj(-15).decompress(payload)
        if algo == 2:
            return zlib.decompress(payload)
        if algo == 3:
            return bz2.decompress(payload)
    except (zlib.error, OSError, ValueError) as e:
        raise DecryptFailedError(f"Corrupted compressed data: {e}")
    raise CipherError(f"Unsupported compression algorithm: {algo}")


def _literal_data(data: bytes) -> bytes:
    for packet in iter_packets(data):
        if packet.tag == TAG_COMPRESSED:
            return _literal_data(_decompress(packet.body))
        if packet.tag == TAG_LITERAL:
            name_length = _take(packet.body, 1, 1)[0]
            return packet.body[2 + name_length + 4:]
        if packet.tag in (TAG_ONE_PASS_SIGNATURE, TAG_SIGNATURE, TAG_MARKER):
            continue
        raise DecryptFailedError(f"Unexpected packet in message: tag {packet.tag}")
    raise DecryptFailedError("Message contains no literal data")


def _open_seipd(body: bytes, algo: int, key: bytes) -> bytes:
    version = _take(body, 0, 1)[0]
    if version != 1:
        raise CipherError(f"Unsupported encrypted data packet version: {version}")
    _key_size(algo)

    plain = _cfb(key, body[1:], encrypt=False)
    if len(plain) < BLOCK_SIZE + 2 + MDC_LENGTH:
        raise DecryptFailedError("Encrypted data packet too short")
    if plain[BLOCK_SIZE - 2:BLOCK_SIZE] != plain[BLOCK_SIZE:BLOCK_SIZE + 2]:
        raise DecryptFailedError("Bad passphrase or corrupted data")

    mdc_start = len(plain) - MDC_LENGTH
    if plain[mdc_start:mdc_start + 2] != MDC_HEADER:
        raise DecryptFailedError("Missing modification detection code")
    expected = _sha1(plain[:mdc_start + 2])
    if not compare_bytes(expected, plain[mdc_start + 2:]):
        raise DecryptFailedError("Modification detection code mismatch")
    return _literal_data(plain[BLOCK_SIZE + 2:mdc_start])


def encrypt_message(
    plaintext: bytes, passphrase: bytes, coded_count: int = DEFAULT_S2K_COUNT
) -> bytes:
    """Encrypt ``plaintext`` into a binary OpenPGP message.

    Args:
        plaintext: The data to encrypt.
        passphrase: Passphrase used directly as the S2K input.
        coded_count: One-octet coded S2K iteration count.

    Returns:
        The encrypted message bytes.
    """
    s2k = S2K(S2K_ITERATED, SHA256, os.urandom(8), coded_count)
    key = s2k.derive(passphrase, KEY_SIZES[AES256])

    literal = b"b\x00" + struct.pack(">I", int(time.time()) & 0xFFFFFFFF) + plaintext
    prefix = os.urandom(BLOCK_SIZE)
    inner = prefix + prefix[-2:] + encode_packet(TAG_LITERAL, literal) + MDC_HEADER
    inner += _sha1(inner)

    return encode_packet(TAG_SKESK, bytes([4, AES256]) + s2k.encode()) + encode_packet(
        TAG_SEIPD, b"\x01" + _cfb(key, inner, encrypt=True)
    )


def decrypt_message(message: bytes, passphrase: bytes) -> bytes:
    """Decrypt a passphrase-encrypted binary OpenPGP message.

    Raises:
        DecryptFailedError: On a wrong passphrase or a corrupted message.
        CipherError: If the message uses features not handled here.
    """
    skesks: List[bytes] = []
    encrypted = None
    for packet in iter_packets(message):
        if packet.tag == TAG_SKESK:
            skesks.append(packet.body)
        elif packet.tag == TAG_SEIPD:
            encrypted = packet.body
            break
        elif packet.tag in (TAG_PKESK, TAG_MARKER):
            continue
        elif packet.tag in (TAG_SED, TAG_AEAD):
            raise CipherError(
                f"Encrypted data packet tag {packet.tag} is not supported; "
                "use the gnupg cipher backend"
            )
        else:
            raise DecryptFailedError(f"Unexpected packet in message: tag {packet.tag}")

    if not skesks or encrypted is None:
        raise DecryptFailedError("Not a passphrase-encrypted OpenPGP message")

    error = DecryptFailedError("Bad passphrase or corrupted data")
    for skesk in skesks:
        try:
            algo, key = _session_key(skesk, passphrase)
            return _open_seipd(encrypted, algo, key)
        except DecryptFailedError as e:
            error = e
    raise error


class NativeCipher:
    """OpenPGP symmetric cipher implemented in-process."""

    name = "native"

    def __init__(self, coded_count: int = DEFAULT_S2K_COUNT):
        self.coded_count = coded_count

    def encrypt(self, plaintext: bytes, passphrase: str) -> bytes:
        ciphertext = encrypt_message(
            plaintext, passphrase.encode("utf-8"), self.coded_count
        )
        logger.debug("encrypted_data", backend=self.name, data_size=len(plaintext))
        return ciphertext

    def decrypt(self, ciphertext: bytes, passphrase: str) -> bytes:
        try:
            plaintext = decrypt_message(ciphertext, passphrase.encode("utf-8"))
        except DecryptFailedError as e:
            logger.debug("native_decrypt_failed", reason=str(e))
            raise DecryptFailedError("Decryption failed. Check passphrase.") from e
        logger.debug("decrypted_data", backend=self.name, data_size=len(plaintext))
        return plaintext
