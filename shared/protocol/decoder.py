"""Stream-to-message decoder for line-delimited JSON.

TCP offers no message boundaries: one ``read`` may return half a frame, or
several frames glued together. ``StreamDecoder`` buffers whatever arrives and
emits one message per complete ``\\n``-terminated frame, in wire order, as soon
as its terminator is seen. Each decoder owns its buffer; create one per
connection.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import List, Optional

from .constants import FRAME_DELIMITER
from .errors import DecodeError, TruncatedStream
from .framing import decode_msg
from .messages import BaseMsg

logger = logging.getLogger(__name__)

MessageListener = Callable[[BaseMsg], None]
ErrorListener = Callable[[DecodeError], None]


class StreamDecoder:
    """Turns arbitrarily fragmented byte chunks into an ordered message sequence.

    Listeners are plain callables registered for two events:

    - message: a frame decoded into a ``BaseMsg``
    - error: a frame failed to decode; the ``DecodeError`` carries the raw
      payload. Decoding continues with the next frame.

    Listeners run synchronously inside ``ingest``. A listener that raises
    propagates out of ``ingest``; the frame it was handed has already been
    removed, and frames still buffered are picked up by the next ``ingest``.
    """

    def __init__(
        self,
        on_message: Optional[MessageListener] = None,
        on_error: Optional[ErrorListener] = None,
    ) -> None:
        self._buffer = bytearray()
        # Offset up to which the buffer is known to hold no delimiter.
        self._scanned = 0
        self._message_listeners: List[MessageListener] = []
        self._error_listeners: List[ErrorListener] = []
        if on_message:
            self.add_message_listener(on_message)
        if on_error:
            self.add_error_listener(on_error)

    def add_message_listener(self, listener: MessageListener) -> None:
        self._message_listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    @property
    def pending(self) -> bytes:
        """Bytes of the partial, not yet terminated frame."""
        return bytes(self._buffer)

    @property
    def has_partial(self) -> bool:
        return bool(self._buffer)

    def ingest(self, chunk: bytes) -> int:
        """Append `chunk` and emit every frame it completes.

        Returns the number of message events emitted by this call.
        """
        if not chunk:
            return 0
        self._buffer += chunk
        emitted = 0
        while True:
            index = self._buffer.find(FRAME_DELIMITER, self._scanned)
            if index < 0:
                self._scanned = len(self._buffer)
                return emitted
            payload = bytes(self._buffer[:index])
            del self._buffer[: index + len(FRAME_DELIMITER)]
            self._scanned = 0
            try:
                msg = decode_msg(payload)
            except DecodeError as exc:
                self._emit_error(exc)
                continue
            self._emit_message(msg)
            emitted += 1

    def finish(self) -> None:
        """Signal end of stream; the buffer is always left empty.

        Raises TruncatedStream if an unterminated frame was pending. The
        partial bytes are discarded, never decoded.
        """
        partial = self.pending
        self.reset()
        if partial:
            raise TruncatedStream(partial)

    def reset(self) -> None:
        """Discard any buffered bytes."""
        self._buffer.clear()
        self._scanned = 0

    def _emit_message(self, msg: BaseMsg) -> None:
        for listener in self._message_listeners:
            listener(msg)

    def _emit_error(self, exc: DecodeError) -> None:
        if not self._error_listeners:
            logger.warning("Dropping undecodable frame: %s", exc)
            return
        for listener in self._error_listeners:
            listener(exc)


__all__ = ["StreamDecoder", "MessageListener", "ErrorListener"]
