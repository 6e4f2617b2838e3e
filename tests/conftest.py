from __future__ import annotations

import os

import pytest

from cyoencrypt.crypto import SALT_SIZE
from cyoencrypt.password import Password


@pytest.fixture
def salt() -> bytes:
    return os.urandom(SALT_SIZE)


@pytest.fixture
def password() -> Password:
    return Password("correct horse battery staple", confirm=False)
