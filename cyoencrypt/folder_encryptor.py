from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Union

from .errors import BatchModeConflictError
from .file_encryptor import FileEncryptor, PasswordSource, is_encrypted_path
from .keycache import KeyCache, is_sidecar

log = logging.getLogger(__name__)

PROGRESS_INTERVAL = 1.0
REPORT_PREFIX = "errors_"


@dataclass
class BatchResult:
    encrypting: bool = True
    completed: int = 0
    failed: List[Path] = field(default_factory=list)
    report_path: Optional[Path] = None

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed


def _plural(word: str, count: int) -> str:
    return word if count == 1 else f"{word}s"


def parse_exclude(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [name.strip() for name in value.split(",") if name.strip()]


class FolderEncryptor:
    """
    Encrypts or decrypts every file under a directory.

    The whole batch must go one way: a directory holding both ``*.encrypted``
    and plain files is refused before anything is changed. Individual file
    failures are collected and written to an ``errors_<uuid>.txt`` report
    rather than stopping the batch.
    """

    def __init__(
        self,
        salt: bytes,
        password: PasswordSource,
        recurse: bool = False,
        exclude: Optional[Sequence[str]] = None,
        remember_key: bool = False,
        report_dir: Optional[Path] = None,
        progress: Optional[Callable[[int], None]] = None,
        progress_interval: float = PROGRESS_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._recurse = recurse
        self._exclude = frozenset(exclude or ())
        self._report_dir = report_dir
        self._progress = progress
        self._progress_interval = progress_interval
        self._clock = clock
        self._file_encryptor = FileEncryptor(
            salt,
            password,
            remember_key=remember_key,
            key_cache=KeyCache(salt),
        )

    def get_files(self, root: Union[str, Path]) -> List[Path]:
        """
        Absolute, sorted paths of the files to process under `root`.

        Excluded names are matched against the directories between `root` and
        the file, not against `root` itself or its ancestors. Key-cache
        side-car files are never returned.
        """
        root_path = Path(os.path.abspath(root))
        files: List[Path] = []
        for path in self._iter_files(root_path):
            if is_sidecar(path):
                continue
            rel_dirs = path.parent.relative_to(root_path).parts
            if any(part in self._exclude for part in rel_dirs):
                continue
            files.append(path)
        files.sort()
        return files

    def _iter_files(self, root: Path) -> Iterable[Path]:
        if not self._recurse:
            with os.scandir(root) as it:
                for entry in it:
                    if entry.is_file():
                        yield root / entry.name
            return

        for dirpath, _, filenames in os.walk(root, followlinks=False):
            for name in filenames:
                path = Path(dirpath) / name
                if path.is_file():
                    yield path

    @staticmethod
    def ensure_uniform_mode(files: Sequence[Path]) -> bool:
        """Return True if every file is plaintext (encrypting), False if all are encrypted."""
        plaintext = False
        encrypted = False
        for path in files:
            if is_encrypted_path(path):
                encrypted = True
            else:
                plaintext = True
            if encrypted and plaintext:
                raise BatchModeConflictError("Folder cannot contain both plaintext and encrypted files")
        return plaintext

    def encrypt_or_decrypt(self, root: Union[str, Path]) -> BatchResult:
        files = self.get_files(root)
        if not files:
            log.info("No files found!")
            return BatchResult()

        encrypting = self.ensure_uniform_mode(files)
        result = BatchResult(encrypting=encrypting)

        remaining = len(files)
        last_report = self._clock()
        for path in files:
            try:
                self._file_encryptor.encrypt_or_decrypt(path)
                result.completed += 1
            except Exception as ex:
                log.debug("Failed to process %s: %s", path, ex)
                result.failed.append(path)

            remaining -= 1
            now = self._clock()
            if self._progress is not None and now - last_report >= self._progress_interval:
                self._progress(remaining)
                last_report = now

        action = "encrypted" if encrypting else "decrypted"
        log.info("%d %s successfully %s", result.completed, _plural("file", result.completed), action)

        if result.failed:
            result.report_path = self._write_report(result.failed)
            log.warning(
                "%d %s - see %s",
                result.failed_count,
                _plural("error", result.failed_count),
                result.report_path,
            )
        return result

    def _write_report(self, failed: Sequence[Path]) -> Path:
        report_dir = self._report_dir if self._report_dir is not None else Path.cwd()
        report_path = report_dir / f"{REPORT_PREFIX}{uuid.uuid4()}.txt"
        # Raw bytes, so names that are not valid UTF-8 are written as found on disk.
        report_path.write_bytes(b"".join(os.fsencode(path) + b"\n" for path in failed))
        return report_path
