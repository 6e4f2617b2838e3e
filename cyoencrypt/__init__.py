"""
Password-based file and folder encryption.

Each file is encrypted with AES-256-CBC/PKCS7 under an IV and key derived
from the password and a 1024-byte installation salt, and carries a 28-byte
versioned header recording the plaintext length.
"""
from __future__ import annotations

__version__ = "3.0.0"

from .crypto import CipherEngine, KeyMaterial, create_iv, create_key, derive_key_material
from .errors import (
    BatchModeConflictError,
    ConfigurationError,
    CorruptionError,
    EncryptorError,
    HeaderError,
    PasswordError,
    PasswordMismatchError,
    PathConflictError,
    TransformError,
    UnsupportedVersionError,
)
from .file_encryptor import ENCRYPTED_EXTENSION, FileEncryptor, FileResult
from .folder_encryptor import BatchResult, FolderEncryptor
from .header import FileHeader
from .keycache import KeyCache
from .password import Password

__all__ = [
    "__version__",
    "BatchModeConflictError",
    "BatchResult",
    "CipherEngine",
    "ConfigurationError",
    "CorruptionError",
    "ENCRYPTED_EXTENSION",
    "EncryptorError",
    "FileEncryptor",
    "FileHeader",
    "FileResult",
    "FolderEncryptor",
    "HeaderError",
    "KeyCache",
    "KeyMaterial",
    "Password",
    "PasswordError",
    "PasswordMismatchError",
    "PathConflictError",
    "TransformError",
    "UnsupportedVersionError",
    "create_iv",
    "create_key",
    "derive_key_material",
]
