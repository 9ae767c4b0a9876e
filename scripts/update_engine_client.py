#!/usr/bin/env python3
"""
Update Engine IPC Client

Async client for the update engine service over a Unix socket.

Wire Protocol:
  [4 bytes: message length (big-endian u32)]
  [N bytes: JSON payload]

Requests carry an "id" that the service echoes in its response:
  {"id": 1, "type": "apply_payload", "url": "...", "headers": ["k:v"]}
  {"id": 1, "type": "result", "exception_code": 0, "message": ""}

Once a callback is bound the service also pushes notifications without an id:
  {"type": "status_update", "status_code": 3, "progress": 0.25}
  {"type": "payload_application_complete", "error_code": 0}

A single reader task owns the socket's read side. It resolves pending
requests and delivers notifications to the bound callback on the event loop,
so callbacks never run concurrently with the caller's coroutines.
"""

import asyncio
import itertools
import json
import logging
import struct
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from client_config import DEFAULT_CONNECT_TIMEOUT, DEFAULT_REQUEST_TIMEOUT
from update_engine_status import EX_SERVICE_SPECIFIC, Status

# Protocol constants
LENGTH_PREFIX_SIZE = 4
MAX_MESSAGE_SIZE = 1024 * 1024  # 1 MB

NOTIFY_STATUS_UPDATE = "status_update"
NOTIFY_PAYLOAD_APPLICATION_COMPLETE = "payload_application_complete"

logger = logging.getLogger(__name__)


class IpcError(Exception):
    """IPC communication error"""
    pass


class IpcConnectionError(IpcError):
    """Connection-related error"""
    pass


class ProtocolError(IpcError):
    """Protocol-related error (malformed messages)"""
    pass


class IpcTimeoutError(IpcError):
    """Request timeout error"""
    pass


class UpdateEngineCallback(ABC):
    """Receiver for notifications pushed by the update engine service."""

    @abstractmethod
    def on_status_update(self, status_code: int, progress: float) -> None:
        ...

    @abstractmethod
    def on_payload_application_complete(self, error_code: int) -> None:
        ...


def encode_frame(message: Dict[str, Any]) -> bytes:
    """Encode a message as a length-prefixed JSON frame."""
    json_data = json.dumps(message).encode('utf-8')
    if len(json_data) > MAX_MESSAGE_SIZE:
        raise ProtocolError(f"Message too large: {len(json_data)} bytes")
    return struct.pack('>I', len(json_data)) + json_data


async def read_frame(reader: asyncio.StreamReader) -> Dict[str, Any]:
    """Read one length-prefixed JSON frame.

    Raises:
        asyncio.IncompleteReadError: If the peer closed the connection
        ProtocolError: If the frame is oversized or not a JSON object
    """
    len_data = await reader.readexactly(LENGTH_PREFIX_SIZE)
    length = struct.unpack('>I', len_data)[0]
    if length > MAX_MESSAGE_SIZE:
        raise ProtocolError(f"Frame too large: {length} bytes")

    body = await reader.readexactly(length)
    try:
        message = json.loads(body.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ProtocolError(f"Invalid JSON frame: {e}") from e
    if not isinstance(message, dict):
        raise ProtocolError("Frame is not a JSON object")
    return message


def parse_status(response: Dict[str, Any]) -> Status:
    """Convert a response frame into a Status"""
    response_type = response.get("type", "unknown")

    if response_type == "error":
        error_info = response.get("Error", response)
        if not isinstance(error_info, dict):
            raise ProtocolError(f"Malformed error response: {error_info!r}")
        return Status(EX_SERVICE_SPECIFIC, str(error_info.get("message", "Unknown error")))

    if response_type != "result":
        raise ProtocolError(f"Unexpected response type: {response_type}")

    try:
        exception_code = int(response.get("exception_code", 0))
    except (TypeError, ValueError):
        raise ProtocolError(f"Invalid exception_code: {response.get('exception_code')!r}")
    return Status(exception_code, str(response.get("message", "")))


class UpdateEngineClient:
    """
    Async handle to the update engine service.

    Every call returns a Status; transport failures are reported as
    EX_TRANSACTION_FAILED rather than raised. Nothing is retried.

    Usage:
        client = UpdateEngineClient("/var/run/update_engine.sock")
        status = await client.connect()
        if status.is_ok():
            status = await client.suspend()
        await client.close()

    Not thread-safe; use from a single event loop.
    """

    def __init__(
        self,
        socket_path: str,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        request_timeout: Optional[float] = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.socket_path = socket_path
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)
        self._callback: Optional[UpdateEngineCallback] = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> Status:
        """Connect to the service socket and start the reader task."""
        if self._connected:
            return Status.ok()

        if not Path(self.socket_path).exists():
            return Status.transaction_failed(f"Socket not found: {self.socket_path}")

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_unix_connection(self.socket_path),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError:
            return Status.transaction_failed(f"Connection timeout after {self.connect_timeout}s")
        except OSError as e:
            return Status.transaction_failed(f"Connection failed: {e}")

        self._connected = True
        self._reader_task = asyncio.get_running_loop().create_task(self._read_loop())
        logger.debug(f"Connected to update engine at {self.socket_path}")
        return Status.ok()

    async def close(self) -> None:
        """Stop the reader task and close the connection"""
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        if self._writer is not None:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except OSError as e:
                logger.debug(f"Error while closing connection: {e}")
            self._writer = None
            self._reader = None

        self._connected = False
        self._fail_pending(IpcConnectionError("Connection closed"))

    def _fail_pending(self, error: IpcError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    async def _read_loop(self) -> None:
        """Route incoming frames until the connection goes away."""
        try:
            while True:
                message = await read_frame(self._reader)
                if "id" in message:
                    if not isinstance(message["id"], int):
                        raise ProtocolError(f"Invalid response id: {message['id']!r}")
                    future = self._pending.pop(message["id"], None)
                    if future is None or future.done():
                        logger.debug(f"Dropping response for unknown request {message['id']}")
                        continue
                    future.set_result(message)
                else:
                    self._deliver_notification(message)
        except asyncio.IncompleteReadError:
            logger.warning("Connection closed by update engine")
            self._connected = False
            self._fail_pending(IpcConnectionError("Connection closed by server"))
        except (ProtocolError, OSError) as e:
            logger.warning(f"Update engine connection failed: {e}")
            self._connected = False
            self._fail_pending(IpcConnectionError(str(e)))

    def _deliver_notification(self, message: Dict[str, Any]) -> None:
        message_type = message.get("type")
        if self._callback is None:
            logger.debug(f"Ignoring {message_type} notification, no callback bound")
            return

        try:
            if message_type == NOTIFY_STATUS_UPDATE:
                self._callback.on_status_update(
                    int(message.get("status_code", 0)),
                    float(message.get("progress", 0.0)),
                )
            elif message_type == NOTIFY_PAYLOAD_APPLICATION_COMPLETE:
                self._callback.on_payload_application_complete(
                    int(message.get("error_code", 0))
                )
            else:
                logger.debug(f"Ignoring unknown notification type: {message_type}")
        except (TypeError, ValueError) as e:
            logger.warning(f"Malformed {message_type} notification: {e}")

    async def _call(self, command: Dict[str, Any]) -> Tuple[Status, Dict[str, Any]]:
        """Send a request and wait for its response."""
        if not self.is_connected:
            return Status.transaction_failed("Not connected to update engine"), {}

        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            self._writer.write(encode_frame(dict(command, id=request_id)))
            await self._writer.drain()
            response = await asyncio.wait_for(future, timeout=self.request_timeout)
            return parse_status(response), response
        except asyncio.TimeoutError:
            return Status.transaction_failed(
                f"Request timeout after {self.request_timeout}s"
            ), {}
        except (IpcError, OSError) as e:
            return Status.transaction_failed(str(e)), {}
        finally:
            self._pending.pop(request_id, None)

    # =========================================================================
    # Service Methods
    # =========================================================================

    async def suspend(self) -> Status:
        """Suspend the ongoing update"""
        status, _ = await self._call({"type": "suspend"})
        return status

    async def resume(self) -> Status:
        """Resume a suspended update"""
        status, _ = await self._call({"type": "resume"})
        return status

    async def cancel(self) -> Status:
        """Cancel the ongoing update"""
        status, _ = await self._call({"type": "cancel"})
        return status

    async def apply_payload(self, url: str, headers: List[str]) -> Status:
        """Start applying the payload at url.

        A successful Status only means the service accepted the request;
        the outcome arrives later through on_payload_application_complete.
        """
        status, _ = await self._call({
            "type": "apply_payload",
            "url": url,
            "headers": list(headers),
        })
        return status

    async def bind(self, callback: UpdateEngineCallback) -> Tuple[Status, bool]:
        """Register callback for status notifications.

        Returns:
            (status, bound). The callback only receives notifications if
            the status is ok and bound is True.
        """
        # Notifications may follow the response immediately
        previous = self._callback
        self._callback = callback
        status, response = await self._call({"type": "bind"})
        bound = status.is_ok() and bool(response.get("bound", False))
        if not bound:
            self._callback = previous
        return status, bound
