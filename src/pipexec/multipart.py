# multipart.py
from __future__ import annotations

import io
from typing import BinaryIO, Dict, Iterator, Optional

# Streams that start with this marker carry several parts.
MARKER = b"PIPELINE"
BOUNDARY = b"boundary"


class Part:
    """One part of a step's output stream; iterate it for byte lines."""

    def __init__(self, lines: Iterator[bytes], headers: Optional[Dict[str, str]] = None):
        self._lines = lines
        self.headers: Dict[str, str] = headers or {}

    def __iter__(self) -> Iterator[bytes]:
        return self._lines

    def read(self) -> bytes:
        return b"".join(self._lines)


class TextReader:
    """A plain stream, exposed as exactly one part."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self._consumed = False

    def next_part(self) -> Optional[Part]:
        if self._consumed:
            return None
        self._consumed = True
        return Part(iter(self._stream.readline, b""))

    def close(self) -> None:
        self._stream.close()


class MultipartReader:
    """
    Boundary delimited stream:

        PIPELINE
        --boundary
        Content-Type: text/plain

        ...body lines...
        --boundary
        ...
        --boundary--
    """

    def __init__(self, stream: BinaryIO, boundary: bytes = BOUNDARY):
        self._stream = stream
        self._delimiter = b"--" + boundary
        self._done = False
        self._at_boundary = False
        self._current: Optional[Iterator[bytes]] = None

    def next_part(self) -> Optional[Part]:
        # drain an unfinished previous part so we land on its boundary
        if self._current is not None:
            for _ in self._current:
                pass
            self._current = None
        if self._done:
            return None

        if not self._at_boundary:
            if not self._seek_boundary():
                self._done = True
                return None

        headers: Dict[str, str] = {}
        for line in iter(self._stream.readline, b""):
            text = line.rstrip(b"\r\n")
            if not text:
                break
            key, _, value = text.decode("utf-8", "replace").partition(":")
            headers[key.strip().lower()] = value.strip()

        self._current = self._body()
        return Part(self._current, headers)

    def close(self) -> None:
        self._stream.close()

    def _seek_boundary(self) -> bool:
        for line in iter(self._stream.readline, b""):
            kind = self._boundary_kind(line)
            if kind == "final":
                return False
            if kind == "next":
                return True
        return False

    def _boundary_kind(self, line: bytes) -> Optional[str]:
        text = line.rstrip(b"\r\n")
        if text == self._delimiter + b"--":
            return "final"
        if text == self._delimiter:
            return "next"
        return None

    def _body(self) -> Iterator[bytes]:
        self._at_boundary = False
        pending: Optional[bytes] = None
        for line in iter(self._stream.readline, b""):
            kind = self._boundary_kind(line)
            if kind is not None:
                if pending is not None:
                    yield _strip_eol(pending)
                if kind == "final":
                    self._done = True
                else:
                    self._at_boundary = True
                return
            if pending is not None:
                yield pending
            pending = line
        if pending is not None:
            yield pending
        self._done = True


def new_reader(stream: BinaryIO):
    """
    Wrap a raw step output stream. Streams starting with the PIPELINE
    marker are split into parts; anything else is a single text part.
    """
    # a pipe may hand out fewer bytes than asked; read until the marker
    # length is reached or the stream ends
    head = b""
    while len(head) < len(MARKER):
        chunk = stream.read(len(MARKER) - len(head))
        if not chunk:
            break
        head += chunk

    buffered = io.BufferedReader(_Raw(stream, head))
    if head == MARKER:
        buffered.readline()
        return MultipartReader(buffered)
    return TextReader(buffered)


def _strip_eol(line: bytes) -> bytes:
    if line.endswith(b"\r\n"):
        return line[:-2]
    if line.endswith(b"\n"):
        return line[:-1]
    return line


class _Raw(io.RawIOBase):
    """
    Adapter so any object with read() can sit under a BufferedReader.
    `prefix` is served before anything else is read from `stream`.
    """

    def __init__(self, stream, prefix: bytes = b""):
        self._stream = stream
        self._prefix = prefix
        self._read = getattr(stream, "read1", stream.read)

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self._prefix:
            data, self._prefix = self._prefix[: len(b)], self._prefix[len(b):]
        else:
            data = self._read(len(b))
        n = len(data)
        b[:n] = data
        return n

    def close(self) -> None:
        self._stream.close()
        super().close()
