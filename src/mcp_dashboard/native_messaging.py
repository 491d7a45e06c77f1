"""Native messaging framing between the dashboard UI and this process.

Every message in either direction is:
- a 4-byte little-endian length prefix
- followed by that many bytes of UTF-8 JSON (always an object)

Responses and pushed progress events share stdout, so all writes go
through a single MessageOutbox task that keeps them in enqueue order.
"""

from __future__ import annotations

import asyncio
import json
import logging
import struct
import sys
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

# Maximum message size (1 MB, the browser host limit)
MAX_MESSAGE_SIZE = 1024 * 1024

LENGTH_PREFIX = struct.Struct("<I")


class NativeMessagingError(Exception):
    """Base exception for framing errors."""


class MessageTooLargeError(NativeMessagingError):
    """A message exceeds MAX_MESSAGE_SIZE."""


class InvalidMessageError(NativeMessagingError):
    """A message could not be decoded."""


def encode_message(message: Dict[str, Any]) -> bytes:
    """Frame a message.

    Raises:
        MessageTooLargeError: If the JSON payload exceeds MAX_MESSAGE_SIZE.
    """
    payload = json.dumps(message, separators=(",", ":")).encode("utf-8")
    if len(payload) > MAX_MESSAGE_SIZE:
        raise MessageTooLargeError(
            f"Message size {len(payload)} exceeds maximum {MAX_MESSAGE_SIZE}"
        )
    return LENGTH_PREFIX.pack(len(payload)) + payload


def decode_length_prefix(data: bytes) -> int:
    """Decode the 4-byte length prefix.

    Raises:
        InvalidMessageError: If data is not exactly 4 bytes.
    """
    if len(data) != LENGTH_PREFIX.size:
        raise InvalidMessageError(f"Expected 4 bytes for length prefix, got {len(data)}")
    return LENGTH_PREFIX.unpack(data)[0]


def decode_payload(data: bytes) -> Dict[str, Any]:
    """Decode a JSON object payload.

    Raises:
        InvalidMessageError: If the payload is not valid JSON or not an object.
    """
    try:
        message = json.loads(data.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidMessageError(f"Failed to decode JSON payload: {e}") from e

    if not isinstance(message, dict):
        raise InvalidMessageError(f"Expected JSON object, got {type(message).__name__}")
    return message


def _check_length(length: int) -> None:
    if length > MAX_MESSAGE_SIZE:
        raise MessageTooLargeError(f"Message size {length} exceeds maximum {MAX_MESSAGE_SIZE}")


def _read_stdin_sync() -> Optional[bytes]:
    length_bytes = sys.stdin.buffer.read(LENGTH_PREFIX.size)
    if len(length_bytes) < LENGTH_PREFIX.size:
        return None

    length = decode_length_prefix(length_bytes)
    _check_length(length)

    payload = sys.stdin.buffer.read(length)
    if len(payload) < length:
        raise InvalidMessageError(f"Expected {length} bytes, got {len(payload)}")
    return payload


async def read_message(
    reader: Optional[asyncio.StreamReader] = None,
) -> Optional[Dict[str, Any]]:
    """Read one message.

    Args:
        reader: Stream to read from. Defaults to stdin, read in a thread.

    Returns:
        The decoded message, or None at EOF.

    Raises:
        InvalidMessageError: If the frame or payload is malformed.
        MessageTooLargeError: If the announced length is over the limit.
    """
    if reader is None:
        payload = await asyncio.to_thread(_read_stdin_sync)
        return decode_payload(payload) if payload is not None else None

    try:
        length_bytes = await reader.readexactly(LENGTH_PREFIX.size)
    except asyncio.IncompleteReadError:
        return None

    length = decode_length_prefix(length_bytes)
    _check_length(length)

    try:
        payload = await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise InvalidMessageError(f"Expected {length} bytes, got {len(e.partial)}") from e
    return decode_payload(payload)


def _write_stdout_sync(data: bytes) -> None:
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


async def write_message(
    message: Dict[str, Any],
    writer: Optional[asyncio.StreamWriter] = None,
) -> None:
    """Write one message.

    Args:
        writer: Stream to write to. Defaults to stdout, written in a thread.

    Raises:
        MessageTooLargeError: If the message exceeds the size limit.
    """
    encoded = encode_message(message)
    if writer is None:
        await asyncio.to_thread(_write_stdout_sync, encoded)
    else:
        writer.write(encoded)
        await writer.drain()


class MessageOutbox:
    """Single writer for outgoing messages.

    ``send`` is synchronous so it can be called from progress bus
    handlers; messages are written in the order they were sent.
    """

    def __init__(
        self,
        write: Callable[[Dict[str, Any]], Awaitable[None]] = write_message,
    ) -> None:
        self._write = write
        self._queue: asyncio.Queue[Optional[Dict[str, Any]]] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._drain())

    def send(self, message: Dict[str, Any]) -> None:
        self._queue.put_nowait(message)

    async def close(self) -> None:
        """Flush everything queued so far, then stop the writer."""
        self._queue.put_nowait(None)
        if self._task is not None:
            await self._task
            self._task = None

    async def _drain(self) -> None:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            try:
                await self._write(message)
            except MessageTooLargeError as e:
                logger.error(f"Dropping oversized message type={message.get('type')}: {e}")
                error = {
                    "type": "error",
                    "request_id": message.get("request_id", ""),
                    "error": {"code": "message_too_large", "message": str(e)},
                }
                await self._write(error)
