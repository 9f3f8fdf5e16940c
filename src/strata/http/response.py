"""
Response facade.

Staging area for the outbound response: status, headers and body are set
here by middleware and written to the transport by the response finalizer.
Setting the body also infers the status, the content type and the length.
"""

import os
import re
from datetime import datetime
from html import escape
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote

from strata.http.negotiation import type_is
from strata.http.status import EMPTY_STATUSES, REDIRECT_STATUSES, status_message
from strata.http.utils import (
    append_vary, byte_length, content_type_for, dump_json, http_date,
    is_binary, is_stream, parse_http_date, strip_params,
)

_HTML_START = re.compile(r'^\s*<')
_QUOTED_ETAG = re.compile(r'^(W/)?"')


def _content_disposition(filename: str) -> str:
    name = os.path.basename(filename)
    try:
        name.encode('ascii')
        ascii_safe = True
    except UnicodeEncodeError:
        ascii_safe = False
    if ascii_safe:
        quoted = name.replace('\\', '\\\\').replace('"', '\\"')
        return f'attachment; filename="{quoted}"'
    fallback = name.encode('ascii', 'replace').decode('ascii').replace('"', '\\"')
    return f'attachment; filename="{fallback}"; filename*=UTF-8\'\'{quote(name)}'


class Response:
    """Outbound half of a context"""

    def __init__(self, app=None, req=None, res=None):
        self.app = app
        self.req = req
        self.res = res
        self.ctx = None
        self.request = None
        self._body: Any = None
        self._explicit_status = False

    @property
    def socket(self) -> Optional[Tuple[str, int]]:
        return self.req.client

    # Headers

    @property
    def header(self) -> Dict[str, Union[str, List[str]]]:
        return self.res.get_headers()

    headers = header

    def get(self, field: str) -> Union[str, List[str]]:
        """Staged header value, '' when absent"""
        value = self.res.get_header(field)
        return '' if value is None else value

    def has(self, field: str) -> bool:
        return self.res.has_header(field)

    def set(self, field: Union[str, Mapping[str, Any]], value: Any = None) -> None:
        """Set one header, or every header of a mapping"""
        if self.header_sent:
            return
        if isinstance(field, Mapping):
            for name, item in field.items():
                self.set(name, item)
            return
        if isinstance(value, (list, tuple)):
            self.res.set_header(field, [str(item) for item in value])
        else:
            self.res.set_header(field, str(value))

    def append(self, field: str, value: Union[str, List[str]]) -> None:
        """Add to a header, turning it into a list when it already has a value"""
        previous = self.get(field)
        if previous:
            current = previous if isinstance(previous, list) else [previous]
            value = current + (list(value) if isinstance(value, (list, tuple)) else [value])
        self.set(field, value)

    def remove(self, field: str) -> None:
        if self.header_sent:
            return
        self.res.remove_header(field)

    @property
    def header_sent(self) -> bool:
        return self.res.headers_sent

    @property
    def writable(self) -> bool:
        return self.res.writable

    async def flush_headers(self) -> None:
        await self.res.flush_headers()

    # Status

    @property
    def status(self) -> int:
        return self.res.status_code

    @status.setter
    def status(self, code: int) -> None:
        if self.header_sent:
            return
        if isinstance(code, bool) or not isinstance(code, int):
            raise TypeError("status code must be a number")
        if not 100 <= code <= 999:
            raise ValueError(f"invalid status code: {code}")
        self._explicit_status = True
        self.res.status_code = code
        if self.req.http_version_major < 2:
            self.res.status_message = status_message(code)
        if self._body is not None and code in EMPTY_STATUSES:
            self.body = None

    @property
    def message(self) -> str:
        return self.res.status_message or status_message(self.status) or ''

    @message.setter
    def message(self, value: str) -> None:
        self.res.status_message = value

    # Body

    @property
    def body(self) -> Any:
        return self._body

    @body.setter
    def body(self, value: Any) -> None:
        original = self._body
        self._body = value

        if value is None:
            if self.status not in EMPTY_STATUSES:
                self.status = 204
            self.remove('Content-Type')
            self.remove('Content-Length')
            self.remove('Transfer-Encoding')
            return

        if not self._explicit_status:
            self.status = 200

        set_type = not self.has('Content-Type')

        if isinstance(value, str):
            if set_type:
                self.type = 'html' if _HTML_START.match(value) else 'text'
            self.length = byte_length(value)
            return

        if is_binary(value):
            if set_type:
                self.type = 'bin'
            self.length = memoryview(value).nbytes
            return

        if is_stream(value):
            if original is not None and original is not value:
                self.remove('Content-Length')
            if set_type:
                self.type = 'bin'
            return

        self.remove('Content-Length')
        self.type = 'json'

    @property
    def length(self) -> Optional[int]:
        """
        Content-Length when staged, otherwise the byte length of the body.

        Streams have no known length.
        """
        if self.has('Content-Length'):
            try:
                return int(self.get('Content-Length'))
            except (TypeError, ValueError):
                return None
        body = self._body
        if body is None:
            return None
        if isinstance(body, str):
            return byte_length(body)
        if is_binary(body):
            return memoryview(body).nbytes
        if is_stream(body):
            return None
        return byte_length(dump_json(body))

    @length.setter
    def length(self, value: int) -> None:
        if not self.has('Transfer-Encoding'):
            self.set('Content-Length', int(value))

    # Content type

    @property
    def type(self) -> str:
        return strip_params(self.get('Content-Type'))

    @type.setter
    def type(self, value: Optional[str]) -> None:
        content_type = content_type_for(value) if value else None
        if content_type:
            self.set('Content-Type', content_type)
        else:
            self.remove('Content-Type')

    def is_(self, *types) -> Union[str, bool]:
        return type_is(self.type, *types)

    # Caching

    @property
    def last_modified(self) -> Optional[datetime]:
        return parse_http_date(self.get('Last-Modified') or None)

    @last_modified.setter
    def last_modified(self, value: Union[datetime, str]) -> None:
        if isinstance(value, str):
            value = parse_http_date(value)
        self.set('Last-Modified', http_date(value))

    @property
    def etag(self) -> str:
        return self.get('ETag')

    @etag.setter
    def etag(self, value: str) -> None:
        if not _QUOTED_ETAG.match(value):
            value = f'"{value}"'
        self.set('ETag', value)

    def vary(self, field: str) -> None:
        if self.header_sent:
            return
        self.set('Vary', append_vary(self.get('Vary') or None, field))

    # Helpers

    def redirect(self, url: str, alt: Optional[str] = None) -> None:
        """
        Redirect to ``url``; ``"back"`` goes to the Referer, then ``alt``,
        then ``/``. The status becomes 302 unless a redirect status is set.
        """
        if url == 'back':
            url = self.ctx.get('Referrer') or alt or '/'
        self.set('Location', quote(url, safe="/%:@!$&'()*+,;=-._~?#[]"))

        if self.status not in REDIRECT_STATUSES:
            self.status = 302

        if self.ctx.accepts('html'):
            safe_url = escape(url)
            self.type = 'text/html; charset=utf-8'
            self.body = f'Redirecting to <a href="{safe_url}">{safe_url}</a>.'
            return
        self.type = 'text/plain; charset=utf-8'
        self.body = f'Redirecting to {url}.'

    def attachment(self, filename: Optional[str] = None) -> None:
        if filename:
            self.type = os.path.splitext(filename)[1]
            self.set('Content-Disposition', _content_disposition(filename))
        else:
            self.set('Content-Disposition', 'attachment')

    def to_json(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'message': self.message,
            'header': self.header,
        }

    def inspect(self) -> Dict[str, Any]:
        data = self.to_json()
        data['body'] = self.body
        return data

    def __repr__(self):
        return f"<Response {self.status} {self.message}>"


__all__ = ['Response']
