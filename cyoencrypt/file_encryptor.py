"""
Single-file encryption and decryption.

A file named ``*.encrypted`` is decrypted next to itself with the suffix
removed; any other file is encrypted to ``<name>.encrypted``. The
destination is never overwritten and the source is only removed once the
output has been fully written and its length checked.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Tuple, Union

from .crypto import CipherEngine, KeyMaterial, ciphertext_length, derive_key_material
from .errors import CorruptionError, PathConflictError
from .fsutil import fsync_fileobj_best_effort, open_exclusive, unlink_best_effort
from .header import HEADER_LENGTH, FileHeader
from .keycache import KeyCache

log = logging.getLogger(__name__)

ENCRYPTED_EXTENSION = ".encrypted"


class PasswordSource(Protocol):
    def get_password(self) -> bytes: ...


@dataclass(frozen=True)
class FileResult:
    source: Path
    output: Path
    decrypted: bool


def is_encrypted_path(pathname: Union[str, Path]) -> bool:
    return str(pathname).endswith(ENCRYPTED_EXTENSION)


def resolve_paths(pathname: Union[str, Path]) -> Tuple[Path, Path, bool]:
    """Return (base pathname, output pathname, decrypting) for `pathname`."""
    text = str(pathname)
    if is_encrypted_path(text):
        base = Path(text[: -len(ENCRYPTED_EXTENSION)])
        return base, base, True
    return Path(text), Path(text + ENCRYPTED_EXTENSION), False


class FileEncryptor:
    def __init__(
        self,
        salt: bytes,
        password: PasswordSource,
        remember_key: bool = False,
        key_cache: Optional[KeyCache] = None,
    ) -> None:
        self._salt = bytes(salt)
        self._password = password
        self._remember_key = remember_key
        self._key_cache = key_cache if key_cache is not None else KeyCache(self._salt)

    def encrypt_or_decrypt(self, pathname: Union[str, Path]) -> FileResult:
        source = Path(pathname)
        base, output, decrypting = resolve_paths(source)

        if output.exists() or output.is_symlink():
            raise PathConflictError(f"Output file already exists: {output.name}")

        key_material, from_cache = self._resolve_key_material(base, decrypting)

        self._transform_file(source, output, key_material, decrypting)

        self._delete_source(source)

        if decrypting:
            self._key_cache.delete_saved_key(base)
        elif self._remember_key:
            if from_cache:
                # Consumed only once the new output exists.
                self._key_cache.delete_saved_key(base)
            self._key_cache.save_key(base, key_material)

        log.info("Successfully %s %s", "decrypted" if decrypting else "encrypted", source.name)
        return FileResult(source=source, output=output, decrypted=decrypting)

    def _resolve_key_material(self, base: Path, decrypting: bool) -> Tuple[KeyMaterial, bool]:
        if not decrypting and self._remember_key:
            saved = self._key_cache.get_saved_key(base)
            if saved is not None:
                log.debug("Using saved key for %s", base.name)
                return saved, True

        return derive_key_material(self._password.get_password(), self._salt), False

    def _transform_file(
        self,
        source: Path,
        output: Path,
        key_material: KeyMaterial,
        decrypting: bool,
    ) -> None:
        engine = CipherEngine(key_material)

        with open(source, "rb") as input_f:
            file_length = os.fstat(input_f.fileno()).st_size

            try:
                output_f = open_exclusive(output, mode=0o666)
            except FileExistsError as ex:
                raise PathConflictError(f"Output file already exists: {output.name}") from ex

            try:
                with output_f:
                    if decrypting:
                        header = FileHeader.parse(input_f)
                    else:
                        header = FileHeader(file_length=file_length)
                        header.write(output_f)

                    engine.transform(input_f, output_f, decrypting)
                    fsync_fileobj_best_effort(output_f)
                    output_length = output_f.tell()

                _validate_output_length(output_length, header, decrypting)
            except Exception:
                unlink_best_effort(output)
                raise

    @staticmethod
    def _delete_source(source: Path) -> None:
        try:
            source.unlink()
        except OSError as ex:
            log.warning("Unable to delete original file %s: %s", source.name, ex)


def _validate_output_length(output_length: int, header: FileHeader, decrypting: bool) -> None:
    if decrypting:
        expected = header.file_length
    else:
        expected = HEADER_LENGTH + ciphertext_length(header.file_length)

    if output_length != expected:
        raise CorruptionError(
            f"{'Decrypted' if decrypting else 'Encrypted'} file has unexpected length "
            f"{output_length}, expected {expected}"
        )
