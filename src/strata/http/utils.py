"""
Helpers shared by the request/response facades and the response finalizer.
"""

import inspect
import json
import mimetypes
import re
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any, Dict, List, Optional

_NO_CACHE = re.compile(r'(?:^|,)\s*?no-cache\s*?(?:,|$)')

# Short names accepted wherever a content type is expected
TYPE_ALIASES: Dict[str, str] = {
    'text': 'text/plain',
    'txt': 'text/plain',
    'html': 'text/html',
    'htm': 'text/html',
    'json': 'application/json',
    'bin': 'application/octet-stream',
    'urlencoded': 'application/x-www-form-urlencoded',
    'form': 'application/x-www-form-urlencoded',
    'multipart': 'multipart/*',
    'xml': 'application/xml',
    'js': 'application/javascript',
    'css': 'text/css',
}


def dump_json(value: Any) -> str:
    """Compact JSON encoding used for structured bodies"""
    return json.dumps(value, separators=(',', ':'), ensure_ascii=False)


def byte_length(value: str) -> int:
    return len(value.encode('utf-8'))


def is_binary(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray, memoryview))


def is_stream(value: Any) -> bool:
    """True for async iterables, iterators/generators and file-like objects"""
    if value is None or isinstance(value, (str, bytes, bytearray, memoryview, dict, list, tuple)):
        return False
    if hasattr(value, '__aiter__'):
        return True
    if inspect.isgenerator(value) or hasattr(value, 'read'):
        return True
    return hasattr(value, '__next__') and hasattr(value, '__iter__')


def lookup_mime(type_name: str) -> Optional[str]:
    """Resolve ``json``, ``.png`` or ``image/png`` style names to a mime type"""
    if not type_name:
        return None
    if '/' in type_name:
        return type_name
    key = type_name.lower().lstrip('.')
    if key in TYPE_ALIASES:
        return TYPE_ALIASES[key]
    mime, _ = mimetypes.guess_type(f'file.{key}', strict=False)
    return mime


def content_type_for(type_name: str) -> Optional[str]:
    """Full Content-Type value for ``type_name``, adding utf-8 where it applies"""
    if ';' in type_name:
        return type_name
    mime = lookup_mime(type_name)
    if not mime:
        return None
    if mime.startswith('text/') or mime in ('application/json', 'application/javascript', 'application/xml'):
        return f'{mime}; charset=utf-8'
    return mime


def strip_params(content_type: Optional[str]) -> str:
    if not content_type:
        return ''
    return content_type.split(';', 1)[0].strip().lower()


def http_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def split_header_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def append_vary(header: Optional[str], field: str) -> str:
    """Add ``field`` to a Vary header value, keeping existing entries unique"""
    if header and header.strip() == '*':
        return '*'
    current = split_header_list(header)
    lowered = [value.lower() for value in current]
    for name in split_header_list(field):
        if name == '*':
            return '*'
        if name.lower() not in lowered:
            current.append(name)
            lowered.append(name.lower())
    return ', '.join(current)


def is_fresh(request_headers: Dict[str, str], response_headers: Dict[str, str]) -> bool:
    """
    Conditional GET check.

    Compares If-None-Match against the response ETag and If-Modified-Since
    against Last-Modified. Header names in both mappings are lowercase.
    """
    modified_since = request_headers.get('if-modified-since')
    none_match = request_headers.get('if-none-match')
    if not modified_since and not none_match:
        return False

    cache_control = request_headers.get('cache-control')
    if cache_control and _NO_CACHE.search(cache_control):
        return False

    if none_match and none_match.strip() != '*':
        etag = response_headers.get('etag')
        if not etag:
            return False
        etag_stale = True
        for match in split_header_list(none_match):
            if match == etag or match == f'W/{etag}' or f'W/{match}' == etag:
                etag_stale = False
                break
        if etag_stale:
            return False

    if modified_since:
        last_modified = parse_http_date(response_headers.get('last-modified'))
        since = parse_http_date(modified_since)
        if last_modified is None or since is None or last_modified > since:
            return False

    return True


__all__ = [
    'TYPE_ALIASES', 'dump_json', 'byte_length', 'is_binary', 'is_stream',
    'lookup_mime', 'content_type_for', 'strip_params', 'http_date',
    'parse_http_date', 'split_header_list', 'append_vary', 'is_fresh',
]
