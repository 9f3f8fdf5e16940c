"""
Per-request context.

A ``Context`` bundles the application, the transport handles and the
request/response facades for one request. A fixed set of facade members is
forwarded onto the context so middleware can write ``ctx.body = ...`` or
``ctx.get('Host')`` directly.
"""

import errno
import logging
from enum import Enum
from typing import Any, Dict, Optional

from strata.exceptions import create_error, http_assert
from strata.http.cookies import Cookies
from strata.http.status import is_known_status, status_message
from strata.http.utils import byte_length

logger = logging.getLogger(__name__)


class RequestPhase(Enum):
    """Lifecycle of a request through the coordinator"""
    PENDING = "pending"
    RUNNING_PIPELINE = "running_pipeline"
    FINALIZING = "finalizing"
    ERRORING = "erroring"
    DONE = "done"


def _delegate(target: str, name: str, setter: bool = False) -> property:
    """Property reading (and optionally writing) ``self.<target>.<name>``"""

    def fget(self):
        return getattr(getattr(self, target), name)

    def fset(self, value):
        setattr(getattr(self, target), name, value)

    return property(fget, fset if setter else None, doc=f"Forwarded to {target}.{name}")


def _delegate_method(target: str, name: str):
    def method(self, *args, **kwargs):
        return getattr(getattr(self, target), name)(*args, **kwargs)

    method.__name__ = name
    method.__doc__ = f"Forwarded to {target}.{name}()"
    return method


class Context:
    """
    State shared by every middleware handling one request.

    ``state`` is the place for middleware to pass data downstream. Setting
    ``respond`` to False hands the raw transport response to the caller and
    skips the response finalizer.
    """

    def __init__(self, app=None, req=None, res=None, request=None, response=None):
        self.app = app
        self.req = req
        self.res = res
        self.request = request
        self.response = response
        self.original_url: str = req.url if req is not None else ''
        self.state: Dict[str, Any] = {}
        self.respond = True
        self.phase = RequestPhase.PENDING
        self._cookies: Optional[Cookies] = None

    # Response forwarding
    attachment = _delegate_method('response', 'attachment')
    redirect = _delegate_method('response', 'redirect')
    remove = _delegate_method('response', 'remove')
    vary = _delegate_method('response', 'vary')
    has = _delegate_method('response', 'has')
    set = _delegate_method('response', 'set')
    append = _delegate_method('response', 'append')
    flush_headers = _delegate_method('response', 'flush_headers')
    status = _delegate('response', 'status', setter=True)
    message = _delegate('response', 'message', setter=True)
    body = _delegate('response', 'body', setter=True)
    length = _delegate('response', 'length', setter=True)
    type = _delegate('response', 'type', setter=True)
    last_modified = _delegate('response', 'last_modified', setter=True)
    etag = _delegate('response', 'etag', setter=True)
    header_sent = _delegate('response', 'header_sent')
    writable = _delegate('response', 'writable')

    # Request forwarding
    accepts_languages = _delegate_method('request', 'accepts_languages')
    accepts_encodings = _delegate_method('request', 'accepts_encodings')
    accepts_charsets = _delegate_method('request', 'accepts_charsets')
    accepts = _delegate_method('request', 'accepts')
    get = _delegate_method('request', 'get')
    is_ = _delegate_method('request', 'is_')
    querystring = _delegate('request', 'querystring', setter=True)
    idempotent = _delegate('request', 'idempotent')
    socket = _delegate('request', 'socket', setter=True)
    search = _delegate('request', 'search', setter=True)
    method = _delegate('request', 'method', setter=True)
    query = _delegate('request', 'query', setter=True)
    path = _delegate('request', 'path', setter=True)
    url = _delegate('request', 'url', setter=True)
    accept = _delegate('request', 'accept', setter=True)
    origin = _delegate('request', 'origin')
    href = _delegate('request', 'href')
    subdomains = _delegate('request', 'subdomains')
    protocol = _delegate('request', 'protocol')
    host = _delegate('request', 'host')
    hostname = _delegate('request', 'hostname')
    parsed_url = _delegate('request', 'parsed_url')
    header = _delegate('request', 'header')
    headers = _delegate('request', 'headers')
    secure = _delegate('request', 'secure')
    stale = _delegate('request', 'stale')
    fresh = _delegate('request', 'fresh')
    ips = _delegate('request', 'ips')
    ip = _delegate('request', 'ip')

    @property
    def cookies(self) -> Cookies:
        if self._cookies is None:
            self._cookies = Cookies(self.req, self.res, keys=self.app.keys, secure=self.request.secure)
        return self._cookies

    @cookies.setter
    def cookies(self, value: Cookies) -> None:
        self._cookies = value

    def throw(self, *args, **props):
        """
        Raise an HTTP error, e.g. ``ctx.throw(403, 'login required', user=name)``.

        Arguments are interpreted by ``create_error``.
        """
        raise create_error(*args, **props)

    def assert_(self, value, status: int = 500, message: Optional[str] = None, **props) -> None:
        http_assert(value, status, message, **props)

    async def onerror(self, err: Optional[BaseException]) -> None:
        """
        Default error handler.

        Reports ``err`` to the application error sink and, when the response
        can still be written, replaces it with a plain text error response.
        Passing None is a no-op so the handler can be used as a completion
        callback.
        """
        if err is None:
            return

        if not isinstance(err, Exception):
            err = Exception(f"non-error thrown: {err!r}")

        header_sent = False
        if self.header_sent or not self.writable:
            header_sent = err.header_sent = True

        try:
            self.app.emit('error', err, self)
        except Exception:
            logger.exception(f"error listener failed while reporting {err!r}")

        if header_sent:
            logger.debug(f"error after headers were sent, response left as is: {err!r}")
            return

        res = self.res
        for name in res.get_header_names():
            res.remove_header(name)

        headers = getattr(err, 'headers', None)
        if headers:
            self.set(headers)

        self.type = 'text'

        status = getattr(err, 'status', None)
        if getattr(err, 'code', None) == 'ENOENT' or getattr(err, 'errno', None) == errno.ENOENT:
            status = 404
        if not is_known_status(status):
            status = 500
        err.status = status

        if getattr(err, 'expose', False):
            message = getattr(err, 'message', None) or str(err)
        else:
            message = status_message(status)
        self.status = status
        self.length = byte_length(message)
        await res.end(message)

    def to_json(self) -> Dict[str, Any]:
        return {
            'request': self.request.to_json(),
            'response': self.response.to_json(),
            'app': self.app.to_json(),
            'original_url': self.original_url,
            'req': '<transport request>',
            'res': '<transport response>',
            'socket': '<transport socket>',
        }

    inspect = to_json

    def __repr__(self):
        return f"<Context {self.method} {self.url} {self.phase.value}>"


__all__ = ['Context', 'RequestPhase']
