"""
Side-car cache for derived key material.

When "remember key" is requested, the (IV, key) pair used to encrypt
``name`` is stored beside it in the hidden file ``.name.cyoencrypt`` so the
next encryption of the same path does not need the password again.

The side-car is encrypted with a key derived from its own file name and the
installation salt. The file name is public, so this only keeps the key from
sitting on disk in plain view; anyone holding the salt can read it back.
"""
from __future__ import annotations

import io
import logging
import os
import struct
from pathlib import Path
from typing import Optional, Union

from .crypto import (
    IV_SIZE,
    KEY_SIZE,
    CipherEngine,
    KeyMaterial,
    ciphertext_length,
    derive_key_material,
)
from .errors import EncryptorError
from .fsutil import mark_hidden, unlink_best_effort, write_bytes_exclusive

log = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".cyoencrypt"
PREAMBLE = b"CYO\x01"

_PREFIX_STRUCT = struct.Struct("<4si")
_LENGTH_STRUCT = struct.Struct("<i")

PAYLOAD_SIZE = _PREFIX_STRUCT.size + IV_SIZE + _LENGTH_STRUCT.size + KEY_SIZE
EXPECTED_SIZE = ciphertext_length(PAYLOAD_SIZE)


def is_sidecar(path: Path) -> bool:
    return path.name.startswith(".") and path.name.endswith(SIDECAR_SUFFIX)


class KeyCache:
    def __init__(self, salt: bytes) -> None:
        self._salt = bytes(salt)

    @staticmethod
    def sidecar_path(pathname: Union[str, Path]) -> Path:
        p = Path(pathname)
        return p.parent / f".{p.name}{SIDECAR_SUFFIX}"

    def _engine_for(self, sidecar: Path) -> CipherEngine:
        # Raw on-disk name; undecodable bytes survive as surrogate escapes.
        material = derive_key_material(os.fsencode(sidecar.name), self._salt)
        return CipherEngine(material)

    def save_key(self, pathname: Union[str, Path], key_material: KeyMaterial) -> bool:
        sidecar = self.sidecar_path(pathname)
        if sidecar.exists():
            log.warning("Saved key already exists: %s", sidecar.name)
            return False

        iv, key = key_material
        payload = b"".join(
            [
                _PREFIX_STRUCT.pack(PREAMBLE, len(iv)),
                bytes(iv),
                _LENGTH_STRUCT.pack(len(key)),
                bytes(key),
            ]
        )

        try:
            out = io.BytesIO()
            self._engine_for(sidecar).encrypt_stream(io.BytesIO(payload), out)
            write_bytes_exclusive(sidecar, out.getvalue())
        except FileExistsError:
            log.warning("Saved key already exists: %s", sidecar.name)
            return False
        except (EncryptorError, OSError, ValueError) as ex:
            log.warning("Unable to save key %s: %s", sidecar.name, ex)
            return False
        mark_hidden(sidecar)
        log.info("Password saved")
        return True

    def get_saved_key(self, pathname: Union[str, Path]) -> Optional[KeyMaterial]:
        sidecar = self.sidecar_path(pathname)
        try:
            if not sidecar.is_file():
                return None
            if sidecar.stat().st_size != EXPECTED_SIZE:
                log.debug("Ignoring saved key with unexpected size: %s", sidecar)
                return None
            content = sidecar.read_bytes()
        except OSError as ex:
            log.debug("Unable to read saved key %s: %s", sidecar, ex)
            return None

        out = io.BytesIO()
        try:
            self._engine_for(sidecar).decrypt_stream(io.BytesIO(content), out)
        except (EncryptorError, ValueError) as ex:
            log.debug("Unable to decrypt saved key %s: %s", sidecar, ex)
            return None
        return self._parse_payload(out.getvalue())

    @staticmethod
    def _parse_payload(payload: bytes) -> Optional[KeyMaterial]:
        if len(payload) != PAYLOAD_SIZE:
            return None

        preamble, iv_size = _PREFIX_STRUCT.unpack_from(payload, 0)
        if preamble != PREAMBLE or iv_size != IV_SIZE:
            return None
        offset = _PREFIX_STRUCT.size
        iv = payload[offset:offset + iv_size]
        offset += iv_size

        (key_size,) = _LENGTH_STRUCT.unpack_from(payload, offset)
        if key_size != KEY_SIZE:
            return None
        offset += _LENGTH_STRUCT.size
        key = payload[offset:offset + key_size]

        return KeyMaterial(iv=iv, key=key)

    def delete_saved_key(self, pathname: Union[str, Path]) -> bool:
        sidecar = self.sidecar_path(pathname)
        if not sidecar.exists():
            return False
        if unlink_best_effort(sidecar):
            log.info("Password deleted")
            return True
        log.warning("Unable to delete saved key: %s", sidecar.name)
        return False
