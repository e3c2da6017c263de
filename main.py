"""xftp — command-line entry point.

Configures logging, loads settings and dispatches one file operation on the
local disk or on a remote SFTP store.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys

from xftp.backend import Entry
from xftp.config import ConfigManager
from xftp.connection import ConnectionConfig, SFTPBackend
from xftp.errors import XftpError
from xftp.filesystem import FileSystem
from xftp.transfer import TransferKind, TransferManager, TransferProgress
from xftp.utils.path_helpers import human_readable_size

_LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s — %(message)s"
_DATE_FORMAT = "%H:%M:%S"

_PASSWORD_ENV = "XFTP_PASSWORD"

log = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    """Set up root logging to stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_LOG_FORMAT,
        datefmt=_DATE_FORMAT,
        stream=sys.stderr,
    )
    # Quieten noisy third-party loggers
    logging.getLogger("paramiko").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xftp", description="Copy and move files between local and SFTP stores."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--host", help="remote SFTP host")
    parser.add_argument("--port", type=int, help="remote SSH port")
    parser.add_argument("--user", help="remote username (default: local user)")

    sub = parser.add_subparsers(dest="command", required=True)
    ls = sub.add_parser("ls", help="list a directory")
    ls.add_argument("path", nargs="?")
    for name, help_text in (("mkdir", "create a directory"), ("rm", "delete recursively")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("path")
    rename = sub.add_parser("rename", help="rename within the same directory")
    rename.add_argument("path")
    rename.add_argument("new_name")
    for name, help_text in (
        ("cp", "copy a local file or directory"),
        ("mv", "move a local file or directory"),
        ("put", "upload to --host"),
        ("get", "download from --host"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("source")
        cmd.add_argument("dest_dir")
    return parser


def _open_remote(args: argparse.Namespace, config: ConfigManager) -> SFTPBackend:
    """Build and connect an SFTP backend from the command-line options."""
    username = args.user or getpass.getuser()
    password = os.environ.get(_PASSWORD_ENV)
    if password is None:
        password = getpass.getpass(f"Password for {username}@{args.host}: ")
    backend = SFTPBackend(
        ConnectionConfig(
            host=args.host,
            port=args.port or config.get("default_port", 22),
            username=username,
            password=password,
        ),
        timeout=config.get("ssh_timeout", 15),
        chunk_size=config.get("transfer_chunk_size", 32768),
    )
    backend.connect()
    return backend


def _print_progress(progress: TransferProgress) -> None:
    end = "\n" if progress.completed else "\r"
    print(
        f"{progress.transfer_kind.name.lower()} {progress.current_file}: "
        f"{progress.percentage:5.1f}% "
        f"({human_readable_size(progress.transferred_size)})",
        end=end,
        file=sys.stderr,
    )


def _format_entry(entry: Entry) -> str:
    return (
        f"{entry.permissions or '?' * 10}  "
        f"{human_readable_size(entry.size):>9}  "
        f"{entry.mtime:%Y-%m-%d %H:%M}  "
        f"{entry.name}{'/' if entry.is_dir else ''}"
    )


def _close_after_failure(fs: FileSystem) -> None:
    """Release *fs* while another error is propagating; log a close failure instead."""
    try:
        fs.close()
    except XftpError as exc:
        log.warning("Close failed after an earlier error: %s", exc)


def _run(args: argparse.Namespace, config: ConfigManager) -> None:
    manager = TransferManager(
        on_progress=_print_progress,
        chunk_size=config.get("transfer_chunk_size", 32768),
    )

    if args.command in ("cp", "mv"):
        kind = TransferKind.MOVE if args.command == "mv" else TransferKind.COPY
        manager.transfer(args.source, args.dest_dir, kind)
        return

    if args.command in ("put", "get"):
        if not args.host:
            raise ValueError(f"'{args.command}' requires --host")
        local_fs = FileSystem(config.get("local_start_path", ""))
        remote_fs = FileSystem(config.get("remote_start_path", "/"))
        try:
            remote_fs.set_remote(_open_remote(args, config))
            if args.command == "put":
                remote_fs.set_current_path(args.dest_dir)
                manager.transfer_between(local_fs, remote_fs, args.source)
            else:
                local_fs.set_current_path(args.dest_dir)
                manager.transfer_between(remote_fs, local_fs, args.source)
        except BaseException:
            _close_after_failure(remote_fs)
            raise
        remote_fs.close()
        return

    start = "remote_start_path" if args.host else "local_start_path"
    fs = FileSystem(config.get(start, ""))
    try:
        if args.host:
            fs.set_remote(_open_remote(args, config))
        if args.command == "ls":
            for entry in fs.list_files(args.path):
                print(_format_entry(entry))
        elif args.command == "mkdir":
            fs.create_directory(args.path)
        elif args.command == "rm":
            fs.delete_file(args.path)
        elif args.command == "rename":
            print(fs.rename_file(args.path, args.new_name))
    except BaseException:
        _close_after_failure(fs)
        raise
    fs.close()


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the process exit status."""
    args = _build_parser().parse_args(argv)
    config = ConfigManager()
    _configure_logging("DEBUG" if args.verbose else config.get("log_level", "INFO"))

    try:
        _run(args, config)
    except (XftpError, ValueError) as exc:
        log.debug("Command %s failed", args.command, exc_info=True)
        print(f"xftp: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
