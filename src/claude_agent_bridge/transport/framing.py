"""JSON Lines frame reader.

Turns a stream of raw stdout lines into decoded JSON objects. A single
object may arrive split over several reads (the OS pipe or the stream
reader limit can cut a long line), so undecodable input is buffered and
re-tried as more arrives. The buffer is bounded: past max_buffer_size the
reader gives up with BufferOverflowError instead of growing forever.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from ..errors import BufferOverflowError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER_SIZE = 1024 * 1024  # 1 MiB

LineSource = Callable[[], Awaitable[bytes]]


class JsonFrameReader:
    """Incremental decoder for newline-delimited JSON objects.

    One reader per connection; call reset() before reusing it.
    """

    def __init__(self, max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE):
        self.max_buffer_size = max_buffer_size
        self._buffer = bytearray()
        self._at_line_start = True

    @property
    def buffered(self) -> int:
        """Number of bytes waiting for the rest of an object."""
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()
        self._at_line_start = True

    def feed(self, line: bytes | str) -> dict[str, Any] | None:
        """Consume one line (or line fragment).

        Returns:
            The decoded object once one is complete, else None.

        Raises:
            BufferOverflowError: If buffered content exceeds max_buffer_size
        """
        data = line.encode("utf-8") if isinstance(line, str) else line
        # A read without a trailing newline was cut short; the next read continues it
        at_line_start, self._at_line_start = self._at_line_start, data.endswith(b"\n")
        # Fragments of a longer line keep their inner whitespace
        data = data.rstrip(b"\r\n")
        if not self._buffer:
            data = data.lstrip()
            if data.startswith(b"\xef\xbb\xbf"):
                data = data[3:]
        if not data.strip():
            return None

        if not self._buffer:
            # Skip non-JSON noise (e.g. log output that leaked to stdout)
            if not data.startswith(b"{"):
                logger.debug(f"Skipping non-JSON line: {data[:50]!r}")
                return None
            decoded = self._try_decode(data)
            if decoded is not None:
                return decoded
        elif at_line_start:
            decoded = self._try_decode(data)
            if decoded is not None:
                # A complete object on its own line; keep the partial buffer
                return decoded

        self._buffer.extend(data)
        if len(self._buffer) > self.max_buffer_size:
            snippet = bytes(self._buffer[:500]).decode("utf-8", errors="replace")
            self._buffer.clear()
            raise BufferOverflowError(snippet=snippet, max_size=self.max_buffer_size)

        decoded = self._try_decode(bytes(self._buffer))
        if decoded is not None:
            self._buffer.clear()
        return decoded

    async def frames(self, read_line: LineSource) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded objects until read_line() signals EOF with b""."""
        while True:
            line = await read_line()
            if not line:
                if self._buffer:
                    logger.warning(
                        f"Stream ended with {len(self._buffer)} undecoded bytes buffered"
                    )
                    self.reset()
                return
            frame = self.feed(line)
            if frame is not None:
                yield frame

    @staticmethod
    def _try_decode(data: bytes) -> dict[str, Any] | None:
        try:
            decoded = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        if not isinstance(decoded, dict):
            logger.warning(f"Ignoring non-object JSON frame: {data[:50]!r}")
            return None
        return decoded
