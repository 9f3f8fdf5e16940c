"""
Cookie jar with optional HMAC signing.

A signed cookie ``name=value`` travels with a companion ``name.sig`` cookie
holding an HMAC of ``name=value``. ``Keygrip`` signs with the first key and
verifies against all of them, so keys can be rotated: a cookie signed with an
older key is accepted and re-signed with the current one.
"""

import base64
import hashlib
import hmac
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from strata.http.utils import http_date

_FIELD_CONTENT = re.compile(r'^[\u0009\u0020-\u007e\u0080-\u00ff]+$')
_SAME_SITE = ('strict', 'lax', 'none')
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Keygrip:
    """Sign and verify data with a rotating list of keys"""

    def __init__(self, keys: Sequence[str], algorithm: str = 'sha1'):
        if not keys:
            raise ValueError("Keys must be provided.")
        self.keys = list(keys)
        self.algorithm = algorithm

    def sign(self, data: str, key: Optional[str] = None) -> str:
        key = self.keys[0] if key is None else key
        digest = hmac.new(key.encode(), data.encode(), getattr(hashlib, self.algorithm)).digest()
        return base64.urlsafe_b64encode(digest).decode().rstrip('=')

    def index(self, data: str, digest: str) -> int:
        """Position of the key that produced ``digest``, -1 when none did"""
        for position, key in enumerate(self.keys):
            if hmac.compare_digest(self.sign(data, key), digest):
                return position
        return -1

    def verify(self, data: str, digest: str) -> bool:
        return self.index(data, digest) > -1


@dataclass
class Cookie:
    """A cookie to be sent in a Set-Cookie header"""
    name: str
    value: str = ''
    max_age: Optional[int] = None
    expires: Optional[datetime] = None
    path: Optional[str] = '/'
    domain: Optional[str] = None
    secure: bool = False
    http_only: bool = True
    same_site: Optional[str] = None
    overwrite: bool = False

    def __post_init__(self):
        if not _FIELD_CONTENT.match(self.name) or ';' in self.name or '=' in self.name:
            raise TypeError("argument name is invalid")
        if self.value and (not _FIELD_CONTENT.match(self.value) or ';' in self.value):
            raise TypeError("argument value is invalid")
        if self.path and not _FIELD_CONTENT.match(self.path):
            raise TypeError("option path is invalid")
        if self.domain and not _FIELD_CONTENT.match(self.domain):
            raise TypeError("option domain is invalid")
        if self.same_site is not None and self.same_site.lower() not in _SAME_SITE:
            raise TypeError("option same_site is invalid")
        if self.max_age is not None and self.expires is None:
            self.expires = datetime.now(timezone.utc) + timedelta(seconds=self.max_age)

    def to_header(self) -> str:
        parts = [f"{self.name}={self.value}"]
        if self.path:
            parts.append(f"path={self.path}")
        if self.max_age is not None:
            parts.append(f"max-age={self.max_age}")
        if self.expires is not None:
            parts.append(f"expires={http_date(self.expires)}")
        if self.domain:
            parts.append(f"domain={self.domain}")
        if self.same_site:
            parts.append(f"samesite={self.same_site.lower()}")
        if self.secure:
            parts.append("secure")
        if self.http_only:
            parts.append("httponly")
        return "; ".join(parts)


def parse_cookie_header(header: Optional[str]) -> Dict[str, str]:
    """Parse a request Cookie header, first occurrence of a name wins"""
    cookies: Dict[str, str] = {}
    if not header:
        return cookies
    for pair in header.split(';'):
        name, sep, value = pair.partition('=')
        name = name.strip()
        if not sep or not name or name in cookies:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        cookies[name] = value
    return cookies


class Cookies:
    """
    Read request cookies and queue response cookies.

    ``signed`` defaults to True whenever keys are configured.
    """

    def __init__(self, request, response, keys: Optional[Sequence[str]] = None, secure: bool = False):
        self.request = request
        self.response = response
        self.keys = Keygrip(keys) if keys else None
        self.secure = secure

    def get(self, name: str, signed: Optional[bool] = None) -> Optional[str]:
        signed = bool(self.keys) if signed is None else signed
        value = parse_cookie_header(self.request.headers.get('cookie')).get(name)
        if value is None or not signed:
            return value

        sig_name = f"{name}.sig"
        remote = self.get(sig_name, signed=False)
        if not remote:
            return None
        if self.keys is None:
            raise ValueError(".keys required for signed cookies")

        data = f"{name}={value}"
        position = self.keys.index(data, remote)
        if position < 0:
            self.set(sig_name, None, path='/', signed=False)
            return None
        if position > 0:
            self.set(sig_name, self.keys.sign(data), signed=False)
        return value

    def set(self, name: str, value: Optional[str] = None, *, signed: Optional[bool] = None,
            secure: Optional[bool] = None, **options) -> 'Cookies':
        signed = bool(self.keys) if signed is None else signed
        if secure and not self.secure:
            raise ValueError("Cannot send secure cookie over unencrypted connection")

        if value is None:
            cookie = Cookie(name, '', expires=_EPOCH, secure=self.secure if secure is None else secure,
                            **{k: v for k, v in options.items() if k not in ('max_age', 'expires')})
        else:
            cookie = Cookie(name, value, secure=self.secure if secure is None else secure, **options)

        headers = self._push(self._current_headers(), cookie)
        if signed:
            if self.keys is None:
                raise ValueError(".keys required for signed cookies")
            signature = Cookie(
                f"{name}.sig",
                self.keys.sign(f"{cookie.name}={cookie.value}"),
                max_age=cookie.max_age,
                expires=cookie.expires,
                path=cookie.path,
                domain=cookie.domain,
                secure=cookie.secure,
                http_only=cookie.http_only,
                same_site=cookie.same_site,
                overwrite=cookie.overwrite,
            )
            headers = self._push(headers, signature)

        self.response.set_header('Set-Cookie', headers)
        return self

    def _current_headers(self) -> List[str]:
        current = self.response.get_header('Set-Cookie')
        if current is None:
            return []
        if isinstance(current, str):
            return [current]
        return list(current)

    @staticmethod
    def _push(headers: List[str], cookie: Cookie) -> List[str]:
        if cookie.overwrite:
            prefix = f"{cookie.name}="
            headers = [header for header in headers if not header.startswith(prefix)]
        headers.append(cookie.to_header())
        return headers


__all__ = ['Keygrip', 'Cookie', 'Cookies', 'parse_cookie_header']
