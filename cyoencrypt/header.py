from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO

from .errors import HeaderError, UnsupportedVersionError


# =========================
# Constants
# =========================

HEADER_LENGTH = 28
PREAMBLE = b"CYO\x00"
VERSION_MAJOR = 3
VERSION_MINOR = 0
RESERVED = 0
SENTINEL = b"ZZZZ"

UNINITIALIZED_LENGTH = -1

# preamble, major, minor, plaintext length, reserved, sentinel
_HEADER_STRUCT = struct.Struct("<4sHHqQ4s")

_CORRUPT_MESSAGE = "File header is invalid or corrupt"


@dataclass
class FileHeader:
    """
    Fixed 28-byte header written in front of every encrypted file.

    Everything is little-endian. A header whose major version differs from
    VERSION_MAJOR is refused outright; any other structural problem is
    reported with a single generic message.
    """

    file_length: int = UNINITIALIZED_LENGTH
    preamble: bytes = PREAMBLE
    version_major: int = VERSION_MAJOR
    version_minor: int = VERSION_MINOR
    reserved: int = RESERVED
    sentinel: bytes = SENTINEL

    def to_bytes(self) -> bytes:
        if self.file_length < 0:
            raise HeaderError("File header has uninitialized length")
        try:
            raw = _HEADER_STRUCT.pack(
                self.preamble,
                self.version_major,
                self.version_minor,
                self.file_length,
                self.reserved,
                self.sentinel,
            )
        except struct.error as ex:
            raise HeaderError(f"File header cannot be encoded: {ex}") from ex
        if len(raw) != HEADER_LENGTH:
            raise HeaderError("File header has unexpected length")
        return raw

    def write(self, stream: BinaryIO) -> None:
        raw = self.to_bytes()
        written = stream.write(raw)
        if written is not None and written != HEADER_LENGTH:
            raise HeaderError("File header has unexpected length")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "FileHeader":
        if len(raw) != HEADER_LENGTH:
            raise HeaderError(_CORRUPT_MESSAGE)

        preamble, major, minor, file_length, reserved, sentinel = _HEADER_STRUCT.unpack(raw)

        if preamble != PREAMBLE:
            raise HeaderError(_CORRUPT_MESSAGE)
        if major != VERSION_MAJOR:
            raise UnsupportedVersionError(major, minor)
        if file_length < 0 or reserved != RESERVED or sentinel != SENTINEL:
            raise HeaderError(_CORRUPT_MESSAGE)

        return cls(
            file_length=file_length,
            preamble=preamble,
            version_major=major,
            version_minor=minor,
            reserved=reserved,
            sentinel=sentinel,
        )

    @classmethod
    def parse(cls, stream: BinaryIO) -> "FileHeader":
        raw = bytearray()
        while len(raw) < HEADER_LENGTH:
            chunk = stream.read(HEADER_LENGTH - len(raw))
            if not chunk:
                break
            raw += chunk
        return cls.from_bytes(bytes(raw))
