"""
Key derivation and the fixed AES-256-CBC/PKCS7 stream cipher.

The IV and key are both deterministic functions of (password, salt), so an
encrypted file can be reopened from the password and the installation salt
alone; nothing random is stored next to the ciphertext.
"""
from __future__ import annotations

import hashlib
import os
from typing import BinaryIO, NamedTuple

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import ConfigurationError, TransformError


# =========================
# Constants
# =========================

SALT_SIZE = 1024
BLOCK_SIZE = 16
BLOCK_SIZE_BITS = BLOCK_SIZE * 8
IV_SIZE = BLOCK_SIZE
KEY_SIZE = 32
KEY_SIZE_BITS = KEY_SIZE * 8
ITERATIONS = 1000

IV_FILL_BYTE = 0x55
MIN_BUFFER_CAPACITY = 256
STREAM_BUFFER_SIZE = 65536


class KeyMaterial(NamedTuple):
    iv: bytes
    key: bytes


def ciphertext_length(plaintext_length: int) -> int:
    # PKCS7 always appends padding, so an aligned input still gains a full block.
    if plaintext_length < 0:
        raise ValueError("plaintext_length must be >= 0")
    return BLOCK_SIZE * ((plaintext_length // BLOCK_SIZE) + 1)


# =========================
# KDF
# =========================

def _ensure_bytes(name: str, value: object) -> None:
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError(f"{name} must be bytes")


def create_salt() -> bytes:
    return os.urandom(SALT_SIZE)


def _salted_password(password: bytes, salt: bytes) -> bytes:
    """
    password + salt padded with zeros to the capacity of the growable buffer
    that CyoEncrypt files have always hashed here. Each write grows the buffer
    to at least 256 bytes and at least double its size. With a 1024-byte salt,
    only passwords longer than 1024 bytes pick up trailing zeros.
    """
    capacity = 0
    length = 0
    for part in (password, salt):
        length += len(part)
        if length > capacity:
            capacity = max(length, MIN_BUFFER_CAPACITY, capacity * 2)
    data = bytes(password) + bytes(salt)
    return data + bytes(capacity - length)


def create_iv(password: bytes, salt: bytes) -> bytes:
    _ensure_bytes("password", password)
    _ensure_bytes("salt", salt)
    digest = hashlib.sha512(_salted_password(password, salt)).digest()

    iv = bytearray([IV_FILL_BYTE] * IV_SIZE)
    for index, b in enumerate(digest):
        iv[index % IV_SIZE] ^= b
    return bytes(iv)


def create_key(password: bytes, salt: bytes) -> bytes:
    _ensure_bytes("password", password)
    _ensure_bytes("salt", salt)
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=KEY_SIZE,
        salt=bytes(salt),
        iterations=ITERATIONS,
    )
    return kdf.derive(bytes(password))


def derive_key_material(password: bytes, salt: bytes) -> KeyMaterial:
    return KeyMaterial(iv=create_iv(password, salt), key=create_key(password, salt))


# =========================
# Cipher
# =========================

class CipherEngine:
    """AES-256 / 128-bit block / CBC / PKCS7, verified on construction."""

    def __init__(self, key_material: KeyMaterial) -> None:
        iv, key = key_material
        if len(iv) != IV_SIZE:
            raise ConfigurationError("Unexpected IV size")

        try:
            self._algorithm = algorithms.AES(bytes(key))
            self._mode = modes.CBC(bytes(iv))
        except ValueError as ex:
            raise ConfigurationError(f"Invalid cipher parameters: {ex}") from ex
        self._padding = padding.PKCS7(BLOCK_SIZE_BITS)
        self._validate()

    def _validate(self) -> None:
        if self._algorithm.key_size != KEY_SIZE_BITS:
            raise ConfigurationError("Unexpected key size")
        # AES.key_sizes also lists the double-length XTS key; ignore it.
        max_key_size = max(s for s in algorithms.AES.key_sizes if s <= KEY_SIZE_BITS)
        if self._algorithm.key_size != max_key_size:
            raise ConfigurationError("Not using maximum key size")

        if self._algorithm.block_size != BLOCK_SIZE_BITS:
            raise ConfigurationError("Unexpected block size")

        if not isinstance(self._mode, modes.CBC):
            raise ConfigurationError("Not using CBC mode")

        if not isinstance(self._padding, padding.PKCS7) or self._padding.block_size != BLOCK_SIZE_BITS:
            raise ConfigurationError("Not using PKCS #7 padding")

    def transform(self, input: BinaryIO, output: BinaryIO, decrypting: bool) -> int:
        """
        Stream every remaining byte of `input` through the cipher into `output`.

        Returns the number of bytes written. Length validation against the
        file header is left to the caller.
        """
        direction = "decrypt" if decrypting else "encrypt"
        cipher = Cipher(self._algorithm, self._mode)
        written = 0
        try:
            if decrypting:
                context = cipher.decryptor()
                unpadder = self._padding.unpadder()
                while True:
                    chunk = input.read(STREAM_BUFFER_SIZE)
                    if not chunk:
                        break
                    data = unpadder.update(context.update(chunk))
                    output.write(data)
                    written += len(data)
                data = unpadder.update(context.finalize()) + unpadder.finalize()
            else:
                context = cipher.encryptor()
                padder = self._padding.padder()
                while True:
                    chunk = input.read(STREAM_BUFFER_SIZE)
                    if not chunk:
                        break
                    data = context.update(padder.update(chunk))
                    output.write(data)
                    written += len(data)
                data = context.update(padder.finalize()) + context.finalize()

            output.write(data)
            written += len(data)
            output.flush()
        except (OSError, ValueError) as ex:
            raise TransformError(f"Unable to {direction} file: {ex}") from ex
        return written

    def encrypt_stream(self, input: BinaryIO, output: BinaryIO) -> int:
        return self.transform(input, output, decrypting=False)

    def decrypt_stream(self, input: BinaryIO, output: BinaryIO) -> int:
        return self.transform(input, output, decrypting=True)
