"""Location and bootstrap of the installation-wide salt blob."""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional, Tuple

from .crypto import SALT_SIZE, create_salt
from .errors import ConfigurationError
from .fsutil import write_bytes_exclusive

SALT_ENV_VAR = "CYOENCRYPT_SALT"
SALT_SUBFOLDER = "CyoEncrypt"
SALT_FILENAME = "CyoEncrypt.data"


def default_salt_path() -> Path:
    override = os.environ.get(SALT_ENV_VAR)
    if override:
        return Path(override).expanduser()

    if sys.platform == "win32" and os.environ.get("APPDATA"):
        base = Path(os.environ["APPDATA"])
    elif os.environ.get("XDG_CONFIG_HOME"):
        base = Path(os.environ["XDG_CONFIG_HOME"])
    else:
        base = Path.home() / ".config"
    return base / SALT_SUBFOLDER / SALT_FILENAME


def load_salt(path: Path) -> bytes:
    try:
        salt = path.read_bytes()
    except OSError as ex:
        raise ConfigurationError(f"Failed to read salt file: {path} ({ex})") from ex
    if len(salt) != SALT_SIZE:
        raise ConfigurationError(
            f"Salt file has unexpected size {len(salt)} (expected {SALT_SIZE}): {path}"
        )
    return salt


def load_or_create_salt(path: Optional[Path] = None) -> Tuple[bytes, bool]:
    """
    Return (salt, created). An existing salt file is never replaced: losing it
    makes every file encrypted with it unrecoverable.
    """
    path = path if path is not None else default_salt_path()
    if path.exists():
        return load_salt(path), False

    salt = create_salt()
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        write_bytes_exclusive(path, salt)
    except FileExistsError:
        return load_salt(path), False
    except OSError as ex:
        raise ConfigurationError(f"Failed to create salt file: {path} ({ex})") from ex
    return salt, True
