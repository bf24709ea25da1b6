"""Demultiplexing of the engine's frame-tagged output streams.

Without a TTY the engine multiplexes stdout and stderr onto one stream of
frames, each prefixed by an 8-byte header::

    [stream id][0][0][0][payload length, uint32 big-endian]

Stream ids are 0 (stdin, written to stdout), 1 (stdout), 2 (stderr) and
3 (engine system error). TTY environments emit raw, already-merged bytes.
"""

import struct
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import IntEnum

from code_sandbox.exceptions import LogRetrievalError

HEADER_SIZE = 8
_HEADER = struct.Struct(">BxxxL")


class Stream(IntEnum):
    """Frame stream ids."""

    STDIN = 0
    STDOUT = 1
    STDERR = 2
    SYSTEM_ERROR = 3


@dataclass
class DemuxedOutput:
    """Output split per channel, plus all payloads in arrival order."""

    stdout: bytes = b""
    stderr: bytes = b""
    combined: bytes = b""

    def text(self, channel: str = "combined") -> str:
        """Decode a channel, replacing undecodable bytes."""
        return getattr(self, channel).decode("utf-8", errors="replace")


def encode_frame(stream: Stream | int, payload: bytes) -> bytes:
    """Build one frame; the inverse of what the demultiplexer consumes."""
    return _HEADER.pack(int(stream), len(payload)) + payload


@dataclass
class Demultiplexer:
    """Incremental demultiplexer fed with arbitrarily split chunks.

    Example:
        demuxer = Demultiplexer()
        for chunk in response.iter_content(4096):
            demuxer.feed(chunk)
        output = demuxer.close()
    """

    tty: bool = False
    _pending: bytearray = field(default_factory=bytearray)
    _stdout: list[bytes] = field(default_factory=list)
    _stderr: list[bytes] = field(default_factory=list)
    _combined: list[bytes] = field(default_factory=list)
    _closed: bool = False

    def feed(self, chunk: bytes) -> None:
        """Consume a chunk, emitting every frame it completes."""
        if self._closed:
            raise LogRetrievalError("Demultiplexer is closed")
        if not chunk:
            return
        if self.tty:
            self._stdout.append(bytes(chunk))
            self._combined.append(bytes(chunk))
            return
        self._pending.extend(chunk)
        offset = 0
        while len(self._pending) - offset >= HEADER_SIZE:
            stream_id, length = _HEADER.unpack_from(self._pending, offset)
            end = offset + HEADER_SIZE + length
            if len(self._pending) < end:
                break
            self._emit(stream_id, bytes(self._pending[offset + HEADER_SIZE:end]))
            offset = end
        del self._pending[:offset]

    def _emit(self, stream_id: int, payload: bytes) -> None:
        if stream_id in (Stream.STDIN, Stream.STDOUT):
            self._stdout.append(payload)
        elif stream_id == Stream.STDERR:
            self._stderr.append(payload)
        elif stream_id == Stream.SYSTEM_ERROR:
            raise LogRetrievalError(
                f"Engine reported an error: {payload.decode('utf-8', errors='replace').strip()}"
            )
        else:
            raise LogRetrievalError(f"Unknown stream id {stream_id} in frame header")
        self._combined.append(payload)

    def close(self) -> DemuxedOutput:
        """Finish the stream and return the buffers.

        Raises:
            LogRetrievalError: If the stream ended inside a frame
        """
        self._closed = True
        if self._pending:
            raise LogRetrievalError(
                f"Stream ended inside a frame ({len(self._pending)} trailing bytes)"
            )
        return DemuxedOutput(
            stdout=b"".join(self._stdout),
            stderr=b"".join(self._stderr),
            combined=b"".join(self._combined),
        )


def demux(chunks: Iterable[bytes], tty: bool = False) -> DemuxedOutput:
    """Demultiplex a whole stream.

    Args:
        chunks: Stream bytes in read order, split anywhere
        tty: The environment has a TTY, so the stream is unframed

    Returns:
        Per-channel and combined buffers; empty when nothing was written

    Raises:
        LogRetrievalError: On a system-error frame, an unknown stream id or
            a truncated trailing frame
    """
    demuxer = Demultiplexer(tty=tty)
    for chunk in chunks:
        demuxer.feed(chunk)
    return demuxer.close()
