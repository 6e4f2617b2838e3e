from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest

from cyoencrypt.crypto import derive_key_material
from cyoencrypt.errors import (
    CorruptionError,
    HeaderError,
    PathConflictError,
    TransformError,
    UnsupportedVersionError,
)
from cyoencrypt.file_encryptor import FileEncryptor, is_encrypted_path, resolve_paths
from cyoencrypt.header import HEADER_LENGTH, FileHeader
from cyoencrypt.keycache import KeyCache
from cyoencrypt.password import Password


class CountingPassword:
    def __init__(self, value: bytes) -> None:
        self.value = value
        self.calls = 0

    def get_password(self) -> bytes:
        self.calls += 1
        return self.value


def test_resolve_paths(tmp_path):
    plain = tmp_path / "a.txt"
    assert resolve_paths(plain) == (plain, tmp_path / "a.txt.encrypted", False)
    assert resolve_paths(tmp_path / "a.txt.encrypted") == (plain, plain, True)
    assert is_encrypted_path("x.encrypted")
    assert not is_encrypted_path("x.encrypted.bak")


@pytest.mark.parametrize("length", [0, 1, 15, 16, 17, 64, 1000, 200_000])
def test_round_trip(tmp_path, salt, password, length):
    source = tmp_path / "data.bin"
    plaintext = os.urandom(length)
    source.write_bytes(plaintext)
    encryptor = FileEncryptor(salt, password)

    result = encryptor.encrypt_or_decrypt(source)
    encrypted = tmp_path / "data.bin.encrypted"
    assert result.output == encrypted
    assert result.decrypted is False
    assert not source.exists()
    assert encrypted.stat().st_size == HEADER_LENGTH + 16 * (length // 16 + 1)

    result = encryptor.encrypt_or_decrypt(encrypted)
    assert result.output == source
    assert result.decrypted is True
    assert not encrypted.exists()
    assert source.read_bytes() == plaintext


def test_empty_file_scenario(tmp_path, salt, password):
    source = tmp_path / "empty"
    source.write_bytes(b"")
    encryptor = FileEncryptor(salt, password, remember_key=True)

    encryptor.encrypt_or_decrypt(source)
    encrypted = tmp_path / "empty.encrypted"
    assert encrypted.stat().st_size == 28 + 16
    assert KeyCache.sidecar_path(source).exists()

    encryptor.encrypt_or_decrypt(encrypted)
    assert source.read_bytes() == b""
    assert not encrypted.exists()
    assert not KeyCache.sidecar_path(source).exists()


def test_four_block_file_scenario(tmp_path, salt, password):
    source = tmp_path / "blocks"
    source.write_bytes(os.urandom(64))
    FileEncryptor(salt, password).encrypt_or_decrypt(source)
    assert (tmp_path / "blocks.encrypted").stat().st_size == 108


def test_header_records_plaintext_length(tmp_path, salt, password):
    source = tmp_path / "doc"
    source.write_bytes(b"hello world")
    FileEncryptor(salt, password).encrypt_or_decrypt(source)
    with open(tmp_path / "doc.encrypted", "rb") as f:
        assert FileHeader.parse(f).file_length == 11


def test_encrypt_refuses_existing_destination(tmp_path, salt, password):
    source = tmp_path / "a.txt"
    source.write_bytes(b"plain")
    existing = tmp_path / "a.txt.encrypted"
    existing.write_bytes(b"already here")

    with pytest.raises(PathConflictError):
        FileEncryptor(salt, password).encrypt_or_decrypt(source)

    assert source.read_bytes() == b"plain"
    assert existing.read_bytes() == b"already here"


def test_decrypt_refuses_existing_destination(tmp_path, salt, password):
    source = tmp_path / "a.txt"
    source.write_bytes(b"plain")
    encryptor = FileEncryptor(salt, password)
    encryptor.encrypt_or_decrypt(source)
    encrypted = tmp_path / "a.txt.encrypted"
    ciphertext = encrypted.read_bytes()
    source.write_bytes(b"newer plain")

    with pytest.raises(PathConflictError):
        encryptor.encrypt_or_decrypt(encrypted)

    assert source.read_bytes() == b"newer plain"
    assert encrypted.read_bytes() == ciphertext


def test_wrong_password_keeps_encrypted_file(tmp_path, salt, password):
    source = tmp_path / "secret.txt"
    source.write_bytes(b"attack at dawn" * 100)
    FileEncryptor(salt, password).encrypt_or_decrypt(source)
    encrypted = tmp_path / "secret.txt.encrypted"
    ciphertext = encrypted.read_bytes()

    wrong = FileEncryptor(salt, Password("not it", confirm=False))
    # A wrong key unpads cleanly by chance, then trips the length check.
    with pytest.raises((TransformError, CorruptionError)):
        wrong.encrypt_or_decrypt(encrypted)

    assert encrypted.read_bytes() == ciphertext
    assert not source.exists()


def test_foreign_file_is_rejected(tmp_path, salt, password):
    foreign = tmp_path / "foreign.encrypted"
    foreign.write_bytes(os.urandom(200))

    with pytest.raises(HeaderError):
        FileEncryptor(salt, password).encrypt_or_decrypt(foreign)

    assert foreign.exists()
    assert not (tmp_path / "foreign").exists()


def test_unsupported_version_is_rejected(tmp_path, salt, password):
    encrypted = tmp_path / "old.encrypted"
    encrypted.write_bytes(FileHeader(file_length=0, version_major=2).to_bytes() + b"\x00" * 16)

    with pytest.raises(UnsupportedVersionError):
        FileEncryptor(salt, password).encrypt_or_decrypt(encrypted)
    assert not (tmp_path / "old").exists()


def test_truncated_ciphertext_is_detected(tmp_path, salt, password):
    source = tmp_path / "big.bin"
    source.write_bytes(os.urandom(100))
    encryptor = FileEncryptor(salt, password)
    encryptor.encrypt_or_decrypt(source)
    encrypted = tmp_path / "big.bin.encrypted"
    encrypted.write_bytes(encrypted.read_bytes()[:-16])

    with pytest.raises((TransformError, CorruptionError)):
        encryptor.encrypt_or_decrypt(encrypted)
    assert not source.exists()


def test_header_length_mismatch_is_corruption(tmp_path, salt, password):
    source = tmp_path / "doc"
    source.write_bytes(b"0123456789")
    encryptor = FileEncryptor(salt, password)
    encryptor.encrypt_or_decrypt(source)
    encrypted = tmp_path / "doc.encrypted"
    raw = encrypted.read_bytes()
    encrypted.write_bytes(FileHeader(file_length=11).to_bytes() + raw[HEADER_LENGTH:])

    with pytest.raises(CorruptionError):
        encryptor.encrypt_or_decrypt(encrypted)
    assert encrypted.exists()
    assert not source.exists()


def test_remembered_key_skips_password(tmp_path, salt):
    source = tmp_path / "again.txt"
    source.write_bytes(b"version one")
    first = CountingPassword(b"pw")
    FileEncryptor(salt, first, remember_key=True).encrypt_or_decrypt(source)
    assert first.calls == 1

    # Plaintext reappears next to a side-car, e.g. restored from a backup.
    cache = KeyCache(salt)
    saved = cache.get_saved_key(source)
    assert saved == derive_key_material(b"pw", salt)
    (tmp_path / "again.txt.encrypted").unlink()
    source.write_bytes(b"version two")

    second = CountingPassword(b"unused")
    FileEncryptor(salt, second, remember_key=True).encrypt_or_decrypt(source)
    assert second.calls == 0
    assert cache.get_saved_key(source) == saved

    FileEncryptor(salt, Password("pw", confirm=False)).encrypt_or_decrypt(tmp_path / "again.txt.encrypted")
    assert source.read_bytes() == b"version two"
    assert not KeyCache.sidecar_path(source).exists()


def test_saved_key_is_ignored_without_remember(tmp_path, salt):
    source = tmp_path / "x.txt"
    source.write_bytes(b"x")
    KeyCache(salt).save_key(source, derive_key_material(b"other", salt))

    counting = CountingPassword(b"pw")
    FileEncryptor(salt, counting).encrypt_or_decrypt(source)
    assert counting.calls == 1


def test_decrypt_never_uses_saved_key(tmp_path, salt):
    source = tmp_path / "x.txt"
    source.write_bytes(b"x")
    FileEncryptor(salt, CountingPassword(b"pw"), remember_key=True).encrypt_or_decrypt(source)

    counting = CountingPassword(b"pw")
    FileEncryptor(salt, counting, remember_key=True).encrypt_or_decrypt(tmp_path / "x.txt.encrypted")
    assert counting.calls == 1
    assert source.read_bytes() == b"x"


def test_source_delete_failure_is_only_a_warning(tmp_path, salt, password, monkeypatch, caplog):
    source = tmp_path / "stuck.txt"
    source.write_bytes(b"data")
    original_unlink = Path.unlink

    def unlink(self, *args, **kwargs):
        if self == source:
            raise PermissionError("locked")
        return original_unlink(self, *args, **kwargs)

    monkeypatch.setattr(Path, "unlink", unlink)
    with caplog.at_level(logging.WARNING, logger="cyoencrypt"):
        result = FileEncryptor(salt, password).encrypt_or_decrypt(source)

    assert result.output.exists()
    assert source.exists()
    assert "Unable to delete original file" in caplog.text


def test_saved_key_survives_a_failed_encryption(tmp_path, salt, monkeypatch):
    source = tmp_path / "keep.txt"
    source.write_bytes(b"contents")
    cache = KeyCache(salt)
    material = derive_key_material(b"pw", salt)
    cache.save_key(source, material)

    def fail(self, source, output, key_material, decrypting):
        assert key_material == material
        raise TransformError("Unable to encrypt file: disk full")

    monkeypatch.setattr(FileEncryptor, "_transform_file", fail)
    counting = CountingPassword(b"unused")
    with pytest.raises(TransformError):
        FileEncryptor(salt, counting, remember_key=True).encrypt_or_decrypt(source)

    assert counting.calls == 0
    assert source.read_bytes() == b"contents"
    assert not (tmp_path / "keep.txt.encrypted").exists()
    assert cache.get_saved_key(source) == material
