from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import BinaryIO

log = logging.getLogger(__name__)

_FILE_ATTRIBUTE_HIDDEN = 0x2


def _posix_open_flags_no_follow() -> int:
    return getattr(os, "O_NOFOLLOW", 0)


def open_exclusive(path: Path, *, mode: int = 0o600) -> BinaryIO:
    """
    Create `path` for binary writing, failing with FileExistsError if anything
    is already there. Symlinks are not followed on POSIX.
    """
    flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0)
    if os.name == "posix":
        flags |= _posix_open_flags_no_follow()
    fd = os.open(str(path), flags, mode)
    try:
        return os.fdopen(fd, "wb", closefd=True)
    except Exception:
        os.close(fd)
        raise


def fsync_fileobj_best_effort(f: BinaryIO) -> None:
    try:
        f.flush()
    except OSError:
        return
    try:
        os.fsync(f.fileno())
    except OSError:
        pass


def unlink_best_effort(p: Path) -> bool:
    try:
        p.unlink()
    except FileNotFoundError:
        return False
    except OSError as ex:
        log.debug("Unable to remove %s: %s", p, ex)
        return False
    return True


def chmod_600_if_possible(path: Path) -> None:
    if os.name != "posix":
        return
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass


def mark_hidden(path: Path) -> None:
    # Dot-prefixed names are already hidden on POSIX.
    if sys.platform != "win32":
        return
    import ctypes

    try:
        kernel32 = ctypes.WinDLL("Kernel32.dll")
        attrs = kernel32.GetFileAttributesW(str(path))
        if attrs == -1 or attrs == 0xFFFFFFFF:
            return
        kernel32.SetFileAttributesW(str(path), attrs | _FILE_ATTRIBUTE_HIDDEN)
    except OSError as ex:
        log.debug("Unable to hide %s: %s", path, ex)


def write_bytes_exclusive(path: Path, data: bytes) -> None:
    with open_exclusive(path, mode=0o600 if os.name == "posix" else 0o666) as f:
        try:
            f.write(data)
            fsync_fileobj_best_effort(f)
        except OSError:
            f.close()
            unlink_best_effort(path)
            raise
    chmod_600_if_possible(path)
