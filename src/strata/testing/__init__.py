"""
Testing utilities for Strata applications.

An in-memory ASGI harness: build a scope, feed a request body, record what
the application sends back. No server or socket is involved.

Example:
    client = TestClient(app)
    response = await client.get('/', headers={'Accept': 'application/json'})
    assert response.status == 200
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from strata.config import ConfigPresets
from strata.http.transport import TransportRequest, TransportResponse
from strata.server.application import Application

Headers = Union[Dict[str, str], Iterable[Tuple[str, str]]]


def build_scope(method: str = 'GET',
                path: str = '/',
                query_string: str = '',
                headers: Optional[Headers] = None,
                http_version: str = '1.1',
                scheme: str = 'http',
                client: Optional[Tuple[str, int]] = ('127.0.0.1', 50000),
                server: Optional[Tuple[str, int]] = ('testserver', 80)) -> Dict[str, Any]:
    """ASGI HTTP scope; a Host header is added when none is given"""
    if '?' in path and not query_string:
        path, query_string = path.split('?', 1)
    items = list(headers.items()) if isinstance(headers, dict) else list(headers or [])
    if not any(name.lower() == 'host' for name, _ in items):
        items.append(('host', server[0] if server else 'testserver'))
    return {
        'type': 'http',
        'asgi': {'version': '3.0'},
        'http_version': http_version,
        'method': method.upper(),
        'scheme': scheme,
        'path': path,
        'raw_path': path.encode('latin-1'),
        'query_string': query_string.encode('latin-1'),
        'root_path': '',
        'headers': [(name.lower().encode('latin-1'), str(value).encode('latin-1')) for name, value in items],
        'client': client,
        'server': server,
    }


def make_receive(body: Union[bytes, str] = b'', chunks: Optional[List[bytes]] = None, disconnect: bool = False):
    """
    ASGI ``receive`` delivering ``body`` (or ``chunks``), then
    ``http.disconnect``. With ``disconnect`` the client goes away before
    the body is complete.
    """
    if isinstance(body, str):
        body = body.encode('utf-8')
    parts = list(chunks) if chunks is not None else [body]
    messages: List[Dict[str, Any]] = []
    for position, chunk in enumerate(parts):
        last = position == len(parts) - 1
        if disconnect and last:
            break
        messages.append({'type': 'http.request', 'body': chunk, 'more_body': not last})

    async def receive() -> Dict[str, Any]:
        if messages:
            return messages.pop(0)
        return {'type': 'http.disconnect'}

    return receive


class ASGIRecorder:
    """
    ASGI ``send`` that records every message.

    ``fail_after`` makes the n-th and later sends raise ``ConnectionResetError``
    to imitate a client that went away.
    """

    def __init__(self, fail_after: Optional[int] = None):
        self.messages: List[Dict[str, Any]] = []
        self.fail_after = fail_after

    async def __call__(self, message: Dict[str, Any]) -> None:
        if self.fail_after is not None and len(self.messages) >= self.fail_after:
            raise ConnectionResetError("connection reset by peer")
        self.messages.append(message)

    @property
    def started(self) -> bool:
        return any(m['type'] == 'http.response.start' for m in self.messages)

    @property
    def status(self) -> Optional[int]:
        for message in self.messages:
            if message['type'] == 'http.response.start':
                return message['status']
        return None

    @property
    def raw_headers(self) -> List[Tuple[str, str]]:
        for message in self.messages:
            if message['type'] == 'http.response.start':
                return [(k.decode('latin-1'), v.decode('latin-1')) for k, v in message['headers']]
        return []

    @property
    def headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for name, value in self.raw_headers:
            headers[name] = f"{headers[name]}, {value}" if name in headers else value
        return headers

    def header_list(self, name: str) -> List[str]:
        return [value for key, value in self.raw_headers if key == name.lower()]

    @property
    def body_messages(self) -> List[Dict[str, Any]]:
        return [m for m in self.messages if m['type'] == 'http.response.body']

    @property
    def body(self) -> bytes:
        return b''.join(m.get('body', b'') for m in self.body_messages)

    @property
    def text(self) -> str:
        return self.body.decode('utf-8')

    def json(self) -> Any:
        return json.loads(self.body)

    @property
    def complete(self) -> bool:
        return any(not m.get('more_body', False) for m in self.body_messages)

    def __repr__(self):
        return f"<ASGIRecorder status={self.status} messages={len(self.messages)}>"


class TestClient:
    """Drive an application through its ASGI interface"""

    __test__ = False

    def __init__(self, app):
        self.app = app

    async def request(self, method: str, path: str = '/', *, headers: Optional[Headers] = None,
                      body: Union[bytes, str] = b'', **scope_options) -> ASGIRecorder:
        scope = build_scope(method, path, headers=headers, **scope_options)
        recorder = ASGIRecorder()
        await self.app(scope, make_receive(body), recorder)
        return recorder

    async def get(self, path: str = '/', **kwargs) -> ASGIRecorder:
        return await self.request('GET', path, **kwargs)

    async def head(self, path: str = '/', **kwargs) -> ASGIRecorder:
        return await self.request('HEAD', path, **kwargs)

    async def post(self, path: str = '/', **kwargs) -> ASGIRecorder:
        return await self.request('POST', path, **kwargs)

    async def put(self, path: str = '/', **kwargs) -> ASGIRecorder:
        return await self.request('PUT', path, **kwargs)

    async def delete(self, path: str = '/', **kwargs) -> ASGIRecorder:
        return await self.request('DELETE', path, **kwargs)


def create_test_context(app=None, method: str = 'GET', path: str = '/', *,
                        headers: Optional[Headers] = None, body: Union[bytes, str] = b'',
                        send=None, **scope_options):
    """
    Context for unit-testing middleware without running a request.

    Pass an ``ASGIRecorder`` as ``send`` to inspect what gets written.
    """
    if app is None:
        app = Application(ConfigPresets.testing())
    scope = build_scope(method, path, headers=headers, **scope_options)
    req = TransportRequest(scope, make_receive(body))
    res = TransportResponse(send or ASGIRecorder(), req)
    return app.create_context(req, res)


__all__ = [
    'build_scope', 'make_receive', 'ASGIRecorder', 'TestClient', 'create_test_context',
]
