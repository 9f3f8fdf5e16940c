"""
ASGI transport objects.

``TransportRequest`` and ``TransportResponse`` are the raw request/response
handles the framework core works against. They wrap an ASGI ``scope``,
``receive`` and ``send`` and present the small surface the core needs:
method, url and headers on the way in; status, headers, a writable flag,
``write``/``end`` and a completion observer on the way out.

Writes after the response ended or the connection closed are dropped. A
failing ``send`` closes the response and notifies the completion observers
instead of raising.
"""

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

logger = logging.getLogger(__name__)

HeaderValue = Union[str, List[str]]
Receive = Callable[[], Awaitable[Dict[str, Any]]]
Send = Callable[[Dict[str, Any]], Awaitable[None]]


class ClientDisconnect(ConnectionError):
    """The client went away before the request was fully handled"""


class TransportRequest:
    """Inbound request handle built from an ASGI HTTP scope"""

    def __init__(self, scope: Dict[str, Any], receive: Optional[Receive] = None):
        self.scope = scope
        self._receive = receive
        self.method: str = scope.get("method", "GET").upper()
        self.url: str = self._build_url(scope)
        self.headers: Dict[str, str] = self._parse_headers(scope.get("headers", []))
        self.http_version: str = scope.get("http_version", "1.1")
        self.scheme: str = scope.get("scheme", "http")
        self.client: Optional[Tuple[str, int]] = tuple(scope["client"]) if scope.get("client") else None
        self.server: Optional[Tuple[str, int]] = tuple(scope["server"]) if scope.get("server") else None
        self.disconnected = False
        self._body: Optional[bytes] = None
        self._body_consumed = False
        self._disconnect_listeners: List[Callable[[BaseException], Any]] = []

    @staticmethod
    def _build_url(scope: Dict[str, Any]) -> str:
        raw_path = scope.get("raw_path")
        if raw_path:
            path = raw_path.decode("latin-1") if isinstance(raw_path, bytes) else raw_path
        else:
            path = quote(scope.get("path", "/") or "/", safe="/%:@!$&'()*+,;=-._~")
        query_string = scope.get("query_string", b"")
        if isinstance(query_string, bytes):
            query_string = query_string.decode("latin-1")
        return f"{path}?{query_string}" if query_string else path

    @staticmethod
    def _parse_headers(headers) -> Dict[str, str]:
        parsed: Dict[str, str] = {}
        for key, value in headers:
            name = key.decode("latin-1").lower() if isinstance(key, bytes) else key.lower()
            text = value.decode("latin-1") if isinstance(value, bytes) else value
            if name in parsed:
                separator = "; " if name == "cookie" else ", "
                parsed[name] = f"{parsed[name]}{separator}{text}"
            else:
                parsed[name] = text
        return parsed

    @property
    def http_version_major(self) -> int:
        try:
            return int(self.http_version.split(".", 1)[0])
        except ValueError:
            return 1

    def add_disconnect_listener(self, listener: Callable[[BaseException], Any]) -> None:
        self._disconnect_listeners.append(listener)

    async def _disconnect(self) -> ClientDisconnect:
        self.disconnected = True
        error = ClientDisconnect("client disconnected")
        for listener in list(self._disconnect_listeners):
            result = listener(error)
            if inspect.isawaitable(result):
                await result
        return error

    async def stream(self) -> AsyncIterator[bytes]:
        """Yield body chunks as they arrive"""
        if self._body is not None:
            yield self._body
            return
        if self._body_consumed:
            raise RuntimeError("request body has already been consumed")
        self._body_consumed = True
        if self._receive is None:
            return

        more_body = True
        while more_body:
            message = await self._receive()
            if message.get("type") == "http.disconnect":
                raise await self._disconnect()
            chunk = message.get("body", b"")
            if chunk:
                yield chunk
            more_body = message.get("more_body", False)

    async def body(self) -> bytes:
        if self._body is None:
            chunks = [chunk async for chunk in self.stream()]
            self._body = b"".join(chunks)
        return self._body


class TransportResponse:
    """Outbound response handle writing ASGI messages through ``send``"""

    def __init__(self, send: Send, request: Optional[TransportRequest] = None):
        self._send = send
        self.request = request
        self.status_code: int = 200
        self.status_message: Optional[str] = None
        self.headers_sent = False
        self.finished = False
        self.closed = False
        self.error: Optional[BaseException] = None
        self._headers: Dict[str, Tuple[str, HeaderValue]] = {}
        self._finish_callbacks: List[Callable[[Optional[BaseException]], Any]] = []
        self._finish_fired = False

    # Headers

    def set_header(self, name: str, value: Union[str, int, List[str]]) -> None:
        if isinstance(value, (list, tuple)):
            stored: HeaderValue = [str(item) for item in value]
        else:
            stored = str(value)
        self._headers[name.lower()] = (name, stored)

    def get_header(self, name: str) -> Optional[HeaderValue]:
        entry = self._headers.get(name.lower())
        return entry[1] if entry else None

    def has_header(self, name: str) -> bool:
        return name.lower() in self._headers

    def remove_header(self, name: str) -> None:
        self._headers.pop(name.lower(), None)

    def get_header_names(self) -> List[str]:
        return list(self._headers)

    def get_headers(self) -> Dict[str, HeaderValue]:
        return {key: value for key, (_, value) in self._headers.items()}

    def _encode_headers(self) -> List[Tuple[bytes, bytes]]:
        encoded = []
        for name, value in self._headers.values():
            values = value if isinstance(value, list) else [value]
            for item in values:
                encoded.append((name.lower().encode("latin-1"), item.encode("latin-1")))
        return encoded

    # State

    @property
    def writable(self) -> bool:
        return not self.finished and not self.closed

    def on_finished(self, callback: Callable[[Optional[BaseException]], Any]) -> None:
        """
        Call ``callback(error)`` once the response ends or the connection
        aborts; ``error`` is None for a normal end.
        """
        if self._finish_fired:
            asyncio.get_running_loop().create_task(self._invoke(callback, self.error))
            return
        self._finish_callbacks.append(callback)

    @staticmethod
    async def _invoke(callback, error) -> None:
        result = callback(error)
        if inspect.isawaitable(result):
            await result

    async def _finish(self, error: Optional[BaseException]) -> None:
        if self._finish_fired:
            return
        self._finish_fired = True
        self.error = error
        callbacks, self._finish_callbacks = self._finish_callbacks, []
        for callback in callbacks:
            await self._invoke(callback, error)

    async def abort(self, error: Optional[BaseException] = None) -> None:
        """Mark the connection closed and notify completion observers"""
        if self.closed or self.finished:
            return
        self.closed = True
        await self._finish(error or ConnectionAbortedError("connection aborted"))

    # Writing

    async def _send_message(self, message: Dict[str, Any]) -> bool:
        try:
            await self._send(message)
        except OSError as e:
            logger.debug(f"send failed, closing response: {e}")
            await self.abort(e)
            return False
        return True

    async def flush_headers(self) -> None:
        if self.headers_sent or not self.writable:
            return
        self.headers_sent = True
        await self._send_message({
            "type": "http.response.start",
            "status": self.status_code,
            "headers": self._encode_headers(),
        })

    async def write(self, chunk: Union[bytes, bytearray, memoryview, str]) -> bool:
        """Send one body chunk; returns False when the response is not writable"""
        if not self.writable:
            logger.debug("write on a finished response dropped")
            return False
        await self.flush_headers()
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        if chunk and self.writable:
            await self._send_message({"type": "http.response.body", "body": bytes(chunk), "more_body": True})
        return self.writable

    async def end(self, chunk: Union[bytes, bytearray, memoryview, str, None] = None) -> None:
        """Send the last body chunk and finish the response"""
        if not self.writable:
            logger.debug("end on a finished response dropped")
            return
        await self.flush_headers()
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        if not self.writable:
            return
        sent = await self._send_message({
            "type": "http.response.body",
            "body": bytes(chunk) if chunk else b"",
            "more_body": False,
        })
        if sent:
            self.finished = True
            await self._finish(None)


__all__ = ['ClientDisconnect', 'TransportRequest', 'TransportResponse']
