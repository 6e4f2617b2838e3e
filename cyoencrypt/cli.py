from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .errors import EncryptorError, PasswordError, PasswordMismatchError
from .file_encryptor import FileEncryptor
from .folder_encryptor import FolderEncryptor, parse_exclude
from .password import Password
from .salt import SALT_ENV_VAR, default_salt_path, load_or_create_salt

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_PASSWORD_MISMATCH = 3
EXIT_INTERRUPTED = 130


def eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


def _print_progress(remaining: int) -> None:
    sys.stderr.write(f"\r{remaining} \r")
    sys.stderr.flush()


def _print_salt_notice(path: Path) -> None:
    eprint(f"{path.name} not found, created a new one.")
    eprint()
    eprint("IMPORTANT: Ensure this file is securely backed up:")
    eprint(str(path))
    eprint()
    eprint("If it's lost, decryption will not be possible and")
    eprint("encrypted files will not be recoverable!")
    eprint()


def _configure_logging(quiet: bool) -> None:
    logging.basicConfig(
        level=logging.WARNING if quiet else logging.INFO,
        format="%(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cyoencrypt",
        description=(
            "Encrypt a file or every file in a folder with a password.\n"
            "Files ending in .encrypted are decrypted, anything else is encrypted."
        ),
        formatter_class=argparse.RawTextHelpFormatter,
    )
    p.add_argument("pathname", help="File or folder to encrypt or decrypt.")
    p.add_argument("password", nargs="?", default=None, help="Password (prompted for if omitted).")
    p.add_argument("--no-confirm", action="store_true", help="Do not ask for the password a second time.")
    p.add_argument("-r", "--recurse", action="store_true", help="Folder only: include subfolders.")
    p.add_argument(
        "--exclude",
        default=None,
        metavar="FOLDER,...",
        help="Folder only: comma-separated folder names to skip.",
    )
    p.add_argument(
        "--remember-key",
        action="store_true",
        help=(
            "Encrypt only: keep the derived key in a hidden .<name>.cyoencrypt file so the next\n"
            "encryption of the same file does not need the password. The side-car is obfuscated,\n"
            "not protected: anyone with access to the salt file can recover the key."
        ),
    )
    p.add_argument(
        "--salt-file",
        default=None,
        help=f"Path to the installation salt (default: ${SALT_ENV_VAR} or the per-user config folder).",
    )
    p.add_argument("-q", "--quiet", action="store_true", help="Only report warnings and errors.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    _configure_logging(bool(args.quiet))

    target = Path(args.pathname)
    if not target.exists():
        eprint(f"Missing file or folder path: {args.pathname}")
        return EXIT_USAGE
    is_dir = target.is_dir()
    if not is_dir and (args.recurse or args.exclude):
        eprint("--recurse and --exclude only apply to folders.")
        return EXIT_USAGE

    try:
        salt_path = Path(args.salt_file).expanduser() if args.salt_file else default_salt_path()
        salt, created = load_or_create_salt(salt_path)
    except EncryptorError as ex:
        eprint(f"ERROR: {ex}")
        return EXIT_USAGE
    if created:
        _print_salt_notice(salt_path)

    password = Password(args.password, confirm=not args.no_confirm)

    try:
        if is_dir:
            # Ask up front so a typo fails once instead of once per file.
            password.get_password()
            folder_encryptor = FolderEncryptor(
                salt,
                password,
                recurse=bool(args.recurse),
                exclude=parse_exclude(args.exclude),
                remember_key=bool(args.remember_key),
                progress=None if args.quiet else _print_progress,
            )
            result = folder_encryptor.encrypt_or_decrypt(target)
            return EXIT_OK if result.ok else EXIT_FAILURE

        FileEncryptor(salt, password, remember_key=bool(args.remember_key)).encrypt_or_decrypt(target)
        return EXIT_OK

    except PasswordMismatchError as ex:
        eprint(str(ex))
        return EXIT_PASSWORD_MISMATCH
    except PasswordError as ex:
        eprint(str(ex))
        return EXIT_USAGE
    except (EncryptorError, OSError) as ex:
        eprint(f"ERROR: {ex}")
        return EXIT_FAILURE


def run() -> None:
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        eprint("Interrupted.")
        raise SystemExit(EXIT_INTERRUPTED)
