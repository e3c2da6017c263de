"""Shared fixtures: a fake SFTP server rooted in a temporary directory.

``FakeSFTPClient`` answers the subset of ``paramiko.SFTPClient`` that
:class:`xftp.connection.SFTPBackend` uses, returning real
``paramiko.SFTPAttributes`` built from the files under ``root``.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import paramiko
import pytest

from xftp.connection import ConnectionConfig, SFTPBackend


class _FakeSFTPFile:
    """Local file handle with the SFTPFile tuning hooks stubbed."""

    def __init__(self, fh) -> None:
        self._fh = fh
        self.pipelined = False
        self.prefetched: int | None = None

    def set_pipelined(self, pipelined: bool = True) -> None:
        self.pipelined = pipelined

    def prefetch(self, file_size: int | None = None) -> None:
        self.prefetched = file_size

    def read(self, size: int = -1) -> bytes:
        return self._fh.read(size)

    def write(self, data: bytes) -> None:
        self._fh.write(data)

    def close(self) -> None:
        self._fh.close()

    def __enter__(self) -> _FakeSFTPFile:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class FakeSFTPClient:
    """Maps absolute remote POSIX paths onto ``root`` on the local disk."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.closed = False
        self.events: list[tuple[str, str]] = []

    def _local(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def listdir_attr(self, path: str = ".") -> list[paramiko.SFTPAttributes]:
        base = self._local(path)
        return [
            paramiko.SFTPAttributes.from_stat(os.lstat(base / name), name)
            for name in os.listdir(base)
        ]

    def stat(self, path: str) -> paramiko.SFTPAttributes:
        return paramiko.SFTPAttributes.from_stat(os.stat(self._local(path)))

    def lstat(self, path: str) -> paramiko.SFTPAttributes:
        return paramiko.SFTPAttributes.from_stat(os.lstat(self._local(path)))

    def mkdir(self, path: str, mode: int = 0o777) -> None:
        self.events.append(("mkdir", path))
        os.mkdir(self._local(path))

    def rmdir(self, path: str) -> None:
        self.events.append(("rmdir", path))
        os.rmdir(self._local(path))

    def remove(self, path: str) -> None:
        self.events.append(("remove", path))
        os.remove(self._local(path))

    def rename(self, oldpath: str, newpath: str) -> None:
        self.events.append(("rename", oldpath))
        if self._local(newpath).exists():
            raise OSError(f"{newpath} already exists")
        os.rename(self._local(oldpath), self._local(newpath))

    def symlink(self, source: str, dest: str) -> None:
        self.events.append(("symlink", dest))
        os.symlink(source, self._local(dest))

    def readlink(self, path: str) -> str:
        return os.readlink(self._local(path))

    def open(self, path: str, mode: str = "r", bufsize: int = -1) -> _FakeSFTPFile:
        self.events.append(("open", path))
        return _FakeSFTPFile(open(self._local(path), mode))

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def remote_root(tmp_path: Path) -> Path:
    """Directory standing in for the remote server's ``/``."""
    root = tmp_path / "remote"
    root.mkdir()
    return root


@pytest.fixture()
def fake_sftp(remote_root: Path) -> FakeSFTPClient:
    return FakeSFTPClient(remote_root)


@pytest.fixture()
def ssh_client_cls():
    """Patch ``paramiko.SSHClient`` as seen by xftp.connection."""
    with patch("xftp.connection.paramiko.SSHClient") as cls:
        yield cls


@pytest.fixture()
def connection_config() -> ConnectionConfig:
    return ConnectionConfig(host="sftp.example.test", port=2222, username="alice", password="s3cret")


@pytest.fixture()
def sftp_backend(
    fake_sftp: FakeSFTPClient,
    ssh_client_cls,
    connection_config: ConnectionConfig,
) -> SFTPBackend:
    """A connected SFTPBackend talking to the fake server (8-byte chunks)."""
    ssh_client_cls.return_value.open_sftp.return_value = fake_sftp
    backend = SFTPBackend(connection_config, chunk_size=8)
    backend.connect()
    yield backend
    backend.close()


def read_tree(root: Path) -> dict[str, bytes | None]:
    """Return ``{relative posix path: bytes}`` for files, ``None`` for directories."""
    tree: dict[str, bytes | None] = {}
    for path in root.rglob("*"):
        rel = path.relative_to(root).as_posix()
        tree[rel] = None if path.is_dir() else path.read_bytes()
    return tree


@pytest.fixture()
def sample_tree(tmp_path: Path) -> Path:
    """A small local tree: files at two depths plus an empty directory."""
    root = tmp_path / "src"
    (root / "sub" / "deeper").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "a.txt").write_bytes(b"alpha contents\n")
    (root / "sub" / "b.bin").write_bytes(bytes(range(256)) * 3)
    (root / "sub" / "deeper" / "c.txt").write_bytes(b"")
    return root
