"""Payload transformations applied around uploads and downloads.

Encryption uses AES-GCM from ``cryptography``. The stored form is
``base64(nonce || ciphertext_with_tag)`` with a fresh random nonce per call,
so identical plaintexts under the same key never produce the same blob and a
wrong key fails authentication instead of yielding garbage.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import hashlib
import hmac
import os
import zlib
from typing import Callable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .base import ServiceError

NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZES: tuple[int, ...] = (16, 24, 32)


class DecryptionError(ServiceError):
    """Raised when a stored blob cannot be decrypted with the given key."""


class UnsupportedCompressionError(ServiceError):
    """Raised for compression algorithms without a registered codec."""

    def __init__(self, algorithm: str):
        super().__init__(f"Compression type [{algorithm}] not supported")
        self.algorithm = algorithm


class CorruptPayloadError(ServiceError):
    """Raised when stored data is not valid for the requested codec."""


class UnsupportedChecksumError(ServiceError):
    """Raised for digest algorithms hashlib does not provide."""

    def __init__(self, algorithm: str):
        super().__init__(f"Checksum algorithm [{algorithm}] not supported")
        self.algorithm = algorithm


def _cipher(key_material: bytes) -> AESGCM:
    if not isinstance(key_material, (bytes, bytearray)):
        raise TypeError("key_material must be bytes")
    if len(key_material) not in KEY_SIZES:
        raise ValueError(
            f"key_material must be {', '.join(map(str, KEY_SIZES))} bytes long"
        )
    return AESGCM(bytes(key_material))


def encrypt_payload(plaintext: bytes, key_material: bytes) -> bytes:
    cipher = _cipher(key_material)
    nonce = os.urandom(NONCE_SIZE)
    return base64.b64encode(nonce + cipher.encrypt(nonce, plaintext, None))


def decrypt_payload(blob: bytes, key_material: bytes) -> bytes:
    cipher = _cipher(key_material)
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionError("Stored payload is not valid base64") from exc

    if len(raw) < NONCE_SIZE + TAG_SIZE:
        raise DecryptionError("Stored payload is shorter than nonce and tag")

    nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
    try:
        return cipher.decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise DecryptionError("Authentication failed: wrong key or tampered payload") from exc


Codec = tuple[Callable[[bytes], bytes], Callable[[bytes], bytes]]

# "zlib" is the bare deflate stream other tools label gzcompress
COMPRESSION_CODECS: dict[str, Codec] = {
    "gzip": (gzip.compress, gzip.decompress),
    "zlib": (zlib.compress, zlib.decompress),
}


def get_codec(algorithm: str) -> Codec:
    try:
        return COMPRESSION_CODECS[(algorithm or "").strip().lower()]
    except KeyError:
        raise UnsupportedCompressionError(algorithm) from None


def compress_payload(data: bytes, algorithm: str = "gzip") -> bytes:
    compress, _ = get_codec(algorithm)
    return compress(data)


def decompress_payload(data: bytes, algorithm: str = "gzip") -> bytes:
    _, decompress = get_codec(algorithm)
    try:
        return decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        raise CorruptPayloadError(f"Stored payload is not valid {algorithm} data") from exc


def new_digest(algorithm: str = "sha256") -> "hashlib._Hash":
    try:
        return hashlib.new((algorithm or "").strip().lower())
    except ValueError:
        raise UnsupportedChecksumError(algorithm) from None


def hexdigest(digest: "hashlib._Hash") -> str:
    # shake_* digests need an explicit length
    if digest.name.startswith("shake_"):
        return digest.hexdigest(32)  # type: ignore[call-arg]
    return digest.hexdigest()


def compute_checksum(data: bytes, algorithm: str = "sha256") -> str:
    digest = new_digest(algorithm)
    digest.update(data)
    return hexdigest(digest)


def checksums_match(computed: str, expected: str) -> bool:
    return hmac.compare_digest(
        computed.lower().encode("utf-8"), (expected or "").strip().lower().encode("utf-8")
    )
