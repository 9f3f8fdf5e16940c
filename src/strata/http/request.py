"""
Request facade.

A per-request view over the transport request. Parsing is lazy: the query,
the negotiator and the client address are computed on first access and
cached.
"""

import ipaddress
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import SplitResult, parse_qs, urlencode, urlsplit, urlunsplit

from strata.http.negotiation import Accepts, type_is
from strata.http.utils import is_fresh, strip_params

IDEMPOTENT_METHODS = frozenset({'GET', 'HEAD', 'PUT', 'DELETE', 'OPTIONS', 'TRACE'})


def _first_value(header: Optional[str]) -> str:
    if not header:
        return ''
    return header.split(',', 1)[0].strip()


class Request:
    """Inbound half of a context"""

    def __init__(self, app=None, req=None, res=None):
        self.app = app
        self.req = req
        self.res = res
        self.ctx = None
        self.response = None
        self.original_url: str = req.url if req is not None else ''
        self._query_cache: Dict[str, Dict[str, Union[str, List[str]]]] = {}
        self._parsed_url: Optional[Tuple[str, SplitResult]] = None
        self._accept: Optional[Accepts] = None
        self._ip: Optional[str] = None

    # Headers

    @property
    def header(self) -> Dict[str, str]:
        return self.req.headers

    @header.setter
    def header(self, value: Dict[str, str]) -> None:
        self.req.headers = {key.lower(): val for key, val in value.items()}

    headers = header

    def get(self, field: str) -> str:
        """Header value by case-insensitive name, '' when absent"""
        name = field.lower()
        if name in ('referer', 'referrer'):
            return self.req.headers.get('referrer') or self.req.headers.get('referer') or ''
        return self.req.headers.get(name, '')

    # URL

    @property
    def url(self) -> str:
        return self.req.url

    @url.setter
    def url(self, value: str) -> None:
        self.req.url = value

    @property
    def method(self) -> str:
        return self.req.method

    @method.setter
    def method(self, value: str) -> None:
        self.req.method = value.upper()

    def _split_url(self) -> SplitResult:
        return urlsplit(self.url)

    @property
    def path(self) -> str:
        return self._split_url().path

    @path.setter
    def path(self, value: str) -> None:
        parts = self._split_url()
        if parts.path == value:
            return
        self.url = urlunsplit(parts._replace(path=value))

    @property
    def querystring(self) -> str:
        return self._split_url().query

    @querystring.setter
    def querystring(self, value: str) -> None:
        parts = self._split_url()
        if parts.query == value:
            return
        self.url = urlunsplit(parts._replace(query=value))

    @property
    def search(self) -> str:
        querystring = self.querystring
        return f'?{querystring}' if querystring else ''

    @search.setter
    def search(self, value: str) -> None:
        self.querystring = value[1:] if value.startswith('?') else value

    @property
    def query(self) -> Dict[str, Union[str, List[str]]]:
        """Parsed query string; repeated keys become lists"""
        querystring = self.querystring
        if querystring not in self._query_cache:
            parsed = parse_qs(querystring, keep_blank_values=True)
            self._query_cache[querystring] = {
                key: values[0] if len(values) == 1 else values
                for key, values in parsed.items()
            }
        return self._query_cache[querystring]

    @query.setter
    def query(self, value: Dict[str, Any]) -> None:
        self.querystring = urlencode(value, doseq=True)

    @property
    def origin(self) -> str:
        return f'{self.protocol}://{self.host}'

    @property
    def href(self) -> str:
        if self.original_url.startswith(('http://', 'https://')):
            return self.original_url
        return self.origin + self.original_url

    @property
    def parsed_url(self) -> SplitResult:
        """The absolute request URL split into its components"""
        href = self.href
        if self._parsed_url is None or self._parsed_url[0] != href:
            try:
                self._parsed_url = (href, urlsplit(href))
            except ValueError:
                self._parsed_url = (href, SplitResult('', '', '', '', ''))
        return self._parsed_url[1]

    # Host and protocol

    @property
    def host(self) -> str:
        host = ''
        if self.app.proxy:
            host = _first_value(self.get('X-Forwarded-Host'))
        if not host:
            host = self.get('Host')
        return host

    @property
    def hostname(self) -> str:
        host = self.host
        if not host:
            return ''
        if host.startswith('['):
            return host[:host.find(']') + 1] if ']' in host else host
        return host.split(':', 1)[0]

    @property
    def protocol(self) -> str:
        if self.req.scheme in ('https', 'wss'):
            return 'https'
        if not self.app.proxy:
            return 'http'
        return _first_value(self.get('X-Forwarded-Proto')) or 'http'

    @property
    def secure(self) -> bool:
        return self.protocol == 'https'

    @property
    def socket(self) -> Optional[Tuple[str, int]]:
        return self.req.client

    @socket.setter
    def socket(self, value: Optional[Tuple[str, int]]) -> None:
        self.req.client = value

    @property
    def ips(self) -> List[str]:
        """Forwarded client addresses, only when the app trusts its proxy"""
        if not self.app.proxy:
            return []
        value = self.get(self.app.proxy_ip_header)
        ips = [ip.strip() for ip in value.split(',') if ip.strip()] if value else []
        if self.app.max_ips_count > 0:
            ips = ips[-self.app.max_ips_count:]
        return ips

    @property
    def ip(self) -> str:
        if self._ip is None:
            ips = self.ips
            if ips:
                self._ip = ips[0]
            elif self.socket:
                self._ip = self.socket[0]
            else:
                self._ip = ''
        return self._ip

    @ip.setter
    def ip(self, value: str) -> None:
        self._ip = value

    @property
    def subdomains(self) -> List[str]:
        hostname = self.hostname
        if not hostname:
            return []
        try:
            ipaddress.ip_address(hostname.strip('[]'))
            return []
        except ValueError:
            pass
        labels = hostname.split('.')
        labels.reverse()
        return labels[self.app.subdomain_offset:]

    # Caching

    @property
    def fresh(self) -> bool:
        """Conditional GET/HEAD check against the current response headers"""
        if self.method not in ('GET', 'HEAD'):
            return False
        status = self.ctx.status
        if (200 <= status < 300) or status == 304:
            return is_fresh(self.header, self.response.header)
        return False

    @property
    def stale(self) -> bool:
        return not self.fresh

    @property
    def idempotent(self) -> bool:
        return self.method in IDEMPOTENT_METHODS

    # Body metadata

    @property
    def charset(self) -> str:
        content_type = self.get('Content-Type')
        for param in content_type.split(';')[1:]:
            key, _, value = param.partition('=')
            if key.strip().lower() == 'charset':
                return value.strip().strip('"')
        return ''

    @property
    def length(self) -> Optional[int]:
        value = self.get('Content-Length')
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @property
    def type(self) -> str:
        return strip_params(self.get('Content-Type'))

    def _has_body(self) -> bool:
        return 'transfer-encoding' in self.header or self.length is not None

    def is_(self, *types) -> Union[str, bool, None]:
        """Match the request Content-Type; None when the request has no body"""
        if not self._has_body():
            return None
        return type_is(self.get('Content-Type'), *types)

    # Negotiation

    @property
    def accept(self) -> Accepts:
        if self._accept is None:
            self._accept = Accepts(self.header)
        return self._accept

    @accept.setter
    def accept(self, value: Accepts) -> None:
        self._accept = value

    def accepts(self, *types):
        return self.accept.types(*types)

    def accepts_encodings(self, *encodings):
        return self.accept.encodings(*encodings)

    def accepts_charsets(self, *charsets):
        return self.accept.charsets(*charsets)

    def accepts_languages(self, *languages):
        return self.accept.languages(*languages)

    def to_json(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'url': self.url,
            'header': dict(self.header),
        }

    inspect = to_json

    def __repr__(self):
        return f"<Request {self.method} {self.url}>"


__all__ = ['Request', 'IDEMPOTENT_METHODS']
