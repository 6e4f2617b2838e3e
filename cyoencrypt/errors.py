from __future__ import annotations


class EncryptorError(Exception):
    pass


class ConfigurationError(EncryptorError):
    """The cipher provider or the installation salt does not meet the fixed requirements."""


class HeaderError(EncryptorError):
    pass


class UnsupportedVersionError(HeaderError):
    def __init__(self, version_major: int, version_minor: int) -> None:
        super().__init__(f"Unsupported version: {version_major}.{version_minor}")
        self.version_major = version_major
        self.version_minor = version_minor


class TransformError(EncryptorError):
    pass


class PathConflictError(EncryptorError):
    pass


class CorruptionError(EncryptorError):
    pass


class BatchModeConflictError(EncryptorError):
    pass


class PasswordError(EncryptorError):
    pass


class PasswordMismatchError(PasswordError):
    pass
