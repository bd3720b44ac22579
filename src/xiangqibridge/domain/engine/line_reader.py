from __future__ import annotations

from typing import BinaryIO, Iterable, Iterator

DEFAULT_CHUNK_SIZE = 4096


def _decode(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


def iter_lines(chunks: Iterable[bytes]) -> Iterator[str]:
    """Reassemble arbitrarily chunked output into newline-delimited text lines.

    Bytes are buffered until a newline arrives so that a line (or a multi-byte
    character) split across reads is decoded only once it is complete. A
    trailing unterminated line is flushed when the chunks run out. Empty lines
    are yielded as empty strings.
    """
    buffer = bytearray()
    for chunk in chunks:
        if not chunk:
            continue
        buffer.extend(chunk)
        start = 0
        while True:
            newline = buffer.find(b"\n", start)
            if newline < 0:
                break
            yield _decode(bytes(buffer[start:newline]))
            start = newline + 1
        if start:
            del buffer[:start]
    if buffer:
        yield _decode(bytes(buffer))


class LineReader:
    """Lazy line sequence over a byte stream; the stream is consumed once."""

    def __init__(self, stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._stream = stream
        self._chunk_size = chunk_size
        self._consumed = False

    def _chunks(self) -> Iterator[bytes]:
        while True:
            chunk = self._stream.read(self._chunk_size)
            if not chunk:
                return
            yield chunk

    def __iter__(self) -> Iterator[str]:
        if self._consumed:
            raise RuntimeError("LineReader streams cannot be restarted.")
        self._consumed = True
        return iter_lines(self._chunks())


__all__ = ["DEFAULT_CHUNK_SIZE", "LineReader", "iter_lines"]
