from __future__ import annotations

from getpass import getpass
from typing import Callable, Optional

from .errors import PasswordError, PasswordMismatchError


class Password:
    """
    Supplies the password for a run.

    The password is prompted for at most once; with confirmation enabled it
    must be typed twice, and the confirmation is only asked the first time.
    """

    def __init__(
        self,
        password: Optional[str] = None,
        confirm: bool = True,
        prompt: Callable[[str], str] = getpass,
    ) -> None:
        self._password = password
        self._confirm = confirm
        self._confirmed = False
        self._prompt = prompt

    def get_password(self) -> bytes:
        if not self._password:
            self._password = self._prompt("Password: ")

        if self._confirm and not self._confirmed:
            confirm = self._prompt("Confirm: ")
            if self._password != confirm:
                raise PasswordMismatchError("Passwords do not match!")
            self._confirmed = True

        if not self._password:
            raise PasswordError("Empty password is not allowed.")
        return self._password.encode("utf-8")
