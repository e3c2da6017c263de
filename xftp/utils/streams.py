"""Byte-stream helpers: a progress-counting reader and a chunked copy loop."""

from __future__ import annotations

from typing import BinaryIO, Callable

import paramiko

from xftp.errors import ReadError, WriteError

CHUNK_SIZE = 32 * 1024  # 32 KiB per read/write call

# Errors raised by local file objects (OSError) and by paramiko SFTP handles
# whose channel dropped mid-transfer (SSHException).
_STREAM_ERRORS = (OSError, paramiko.SSHException)


class ProgressReader:
    """Wrap a readable binary stream and report cumulative bytes on every read.

    ``on_read`` is called with the running total after each ``read()`` that
    returns data; an empty read (EOF) does not trigger it.
    """

    def __init__(self, stream: BinaryIO, on_read: Callable[[int], None] | None = None) -> None:
        self._stream = stream
        self._on_read = on_read
        self.transferred = 0

    def read(self, size: int = -1) -> bytes:
        data = self._stream.read(size)
        if data:
            self.transferred += len(data)
            if self._on_read:
                self._on_read(self.transferred)
        return data

    def close(self) -> None:
        self._stream.close()

    def __enter__(self) -> ProgressReader:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def copy_stream(
    reader,
    writer,
    chunk_size: int = CHUNK_SIZE,
    source: str = "",
    dest: str = "",
    on_chunk: Callable[[int], None] | None = None,
) -> int:
    """Copy *reader* into *writer* in *chunk_size* pieces until EOF.

    Args:
        reader: Object with ``read(n)`` (typically a :class:`ProgressReader`).
        writer: Object with ``write(data)``.
        chunk_size: Maximum bytes per read call.
        source: Path of the reader, used in error messages.
        dest: Path of the writer, used in error messages.
        on_chunk: Called with the cumulative byte count after every write.

    Returns:
        Total number of bytes copied.

    Raises:
        ReadError: If reading from *reader* fails.
        WriteError: If writing to *writer* fails.
    """
    copied = 0
    while True:
        try:
            chunk = reader.read(chunk_size)
        except _STREAM_ERRORS as exc:
            raise ReadError("read", source, exc) from exc
        if not chunk:
            break
        try:
            writer.write(chunk)
        except _STREAM_ERRORS as exc:
            raise WriteError("write", dest, exc) from exc
        copied += len(chunk)
        if on_chunk:
            on_chunk(copied)
    return copied


def stream_file(
    open_source: Callable[[], BinaryIO],
    open_dest: Callable[[], BinaryIO],
    source: str,
    dest: str,
    total: int,
    chunk_size: int = CHUNK_SIZE,
    on_progress: Callable[[int, int], None] | None = None,
) -> int:
    """Open both ends of a single-file transfer and copy with progress.

    The source is opened before the destination.  ``on_progress`` receives
    ``(bytes_transferred, total)`` after every chunk written; an empty file
    reports ``(0, total)`` once so callers always see a final callback.

    Raises:
        ReadError: The source cannot be opened or read.
        WriteError: The destination cannot be opened, written or flushed.
    """
    try:
        src_fh = open_source()
    except _STREAM_ERRORS as exc:
        raise ReadError("open", source, exc) from exc

    def _report(copied: int) -> None:
        if on_progress:
            on_progress(copied, total)

    with src_fh:
        try:
            dst_fh = open_dest()
        except _STREAM_ERRORS as exc:
            raise WriteError("open", dest, exc) from exc
        try:
            with dst_fh:
                copied = copy_stream(
                    src_fh, dst_fh, chunk_size, source, dest, on_chunk=_report
                )
        except _STREAM_ERRORS as exc:
            # close() flushes pending (possibly pipelined) writes
            raise WriteError("close", dest, exc) from exc

    if copied == 0:
        _report(0)
    return copied
