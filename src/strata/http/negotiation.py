"""
Content negotiation for the request facade.

Parses Accept, Accept-Charset, Accept-Encoding and Accept-Language headers
and picks the best of a set of offered values. ``Accepts`` is the
per-request object exposed as ``request.accept``; ``type_is`` backs
``request.is_()`` and ``response.is_()``.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from strata.http.utils import lookup_mime, strip_params


@dataclass
class AcceptedValue:
    """One entry of an Accept-style header"""
    value: str
    q: float = 1.0
    index: int = 0
    params: Dict[str, str] = field(default_factory=dict)

    @property
    def main(self) -> str:
        return self.value.split('/', 1)[0]

    @property
    def sub(self) -> str:
        parts = self.value.split('/', 1)
        return parts[1] if len(parts) == 2 else ''

    @property
    def prefix(self) -> str:
        return self.value.split('-', 1)[0]


def parse_accept_header(header: str) -> List[AcceptedValue]:
    """Split an Accept-style header into entries, keeping their order"""
    accepted = []
    for index, part in enumerate(header.split(',')):
        pieces = [piece.strip() for piece in part.split(';')]
        value = pieces[0].lower()
        if not value:
            continue
        q = 1.0
        params = {}
        for param in pieces[1:]:
            if '=' not in param:
                continue
            key, _, raw = param.partition('=')
            key = key.strip().lower()
            raw = raw.strip().strip('"')
            if key == 'q':
                try:
                    q = float(raw)
                except ValueError:
                    q = 0.0
            else:
                params[key] = raw
        accepted.append(AcceptedValue(value, q, index, params))
    return accepted


def _media_specificity(entry: AcceptedValue, offered: str) -> int:
    main, _, sub = offered.lower().partition('/')
    score = 0
    if entry.main == main:
        score |= 4
    elif entry.main != '*':
        return -1
    if entry.sub == sub:
        score |= 2
    elif entry.sub != '*':
        return -1
    if entry.params:
        score |= 1
    return score


def _token_specificity(entry: AcceptedValue, offered: str) -> int:
    if entry.value == offered.lower():
        return 1
    if entry.value == '*':
        return 0
    return -1


def _language_specificity(entry: AcceptedValue, offered: str) -> int:
    full = offered.lower()
    prefix = full.split('-', 1)[0]
    if entry.value == full:
        return 4
    if entry.prefix == full:
        return 2
    if entry.value == prefix:
        return 1
    if entry.value == '*':
        return 0
    return -1


class Negotiator:
    """Pick preferred values from the request's Accept-* headers"""

    def __init__(self, headers: Dict[str, str]):
        self.headers = headers

    def _negotiate(self, accepted: List[AcceptedValue], offered: Optional[Sequence[str]], specificity) -> List[str]:
        if offered is None:
            ranked = sorted((a for a in accepted if a.q > 0), key=lambda a: (-a.q, a.index))
            return [a.value for a in ranked]

        candidates = []
        for position, value in enumerate(offered):
            best = None
            for entry in accepted:
                score = specificity(entry, value)
                if score < 0:
                    continue
                key = (score, entry.q, -entry.index)
                if best is None or key > best:
                    best = key
            if best is not None and best[1] > 0:
                score, q, order = best
                candidates.append((-q, -score, -order, position, value))
        candidates.sort()
        return [candidate[-1] for candidate in candidates]

    def media_types(self, offered: Optional[Sequence[str]] = None) -> List[str]:
        accepted = parse_accept_header(self.headers.get('accept', '*/*'))
        return self._negotiate(accepted, offered, _media_specificity)

    def charsets(self, offered: Optional[Sequence[str]] = None) -> List[str]:
        accepted = parse_accept_header(self.headers.get('accept-charset', '*'))
        return self._negotiate(accepted, offered, _token_specificity)

    def encodings(self, offered: Optional[Sequence[str]] = None) -> List[str]:
        accepted = parse_accept_header(self.headers.get('accept-encoding', ''))
        if not any(a.value == 'identity' for a in accepted):
            lowest = min((a.q for a in accepted), default=1.0)
            accepted.append(AcceptedValue('identity', lowest, len(accepted)))
        return self._negotiate(accepted, offered, _token_specificity)

    def languages(self, offered: Optional[Sequence[str]] = None) -> List[str]:
        accepted = parse_accept_header(self.headers.get('accept-language', '*'))
        return self._negotiate(accepted, offered, _language_specificity)


def _flatten(values: Sequence) -> List[str]:
    if len(values) == 1 and isinstance(values[0], (list, tuple)):
        return list(values[0])
    return list(values)


class Accepts:
    """
    Request-level negotiation.

    Each method returns every acceptable value when called without
    arguments, otherwise the best offered value or False.
    """

    def __init__(self, headers: Dict[str, str]):
        self.headers = headers
        self.negotiator = Negotiator(headers)

    def types(self, *types) -> Union[List[str], str, bool]:
        offered = _flatten(types)
        if not offered:
            return self.negotiator.media_types()
        if 'accept' not in self.headers:
            return offered[0]

        mimes = [lookup_mime(value) for value in offered]
        valid = [mime for mime in mimes if mime]
        preferred = self.negotiator.media_types(valid)
        if not preferred:
            return False
        return offered[mimes.index(preferred[0])]

    def encodings(self, *encodings) -> Union[List[str], str, bool]:
        offered = _flatten(encodings)
        if not offered:
            return self.negotiator.encodings()
        preferred = self.negotiator.encodings(offered)
        return preferred[0] if preferred else False

    def charsets(self, *charsets) -> Union[List[str], str, bool]:
        offered = _flatten(charsets)
        if not offered:
            return self.negotiator.charsets()
        preferred = self.negotiator.charsets(offered)
        return preferred[0] if preferred else False

    def languages(self, *languages) -> Union[List[str], str, bool]:
        offered = _flatten(languages)
        if not offered:
            return self.negotiator.languages()
        preferred = self.negotiator.languages(offered)
        return preferred[0] if preferred else False


def _normalize_type(value: str) -> Optional[str]:
    if value.startswith('+'):
        return f'*/*{value}'
    if '*' in value:
        return value
    return lookup_mime(value)


def _mime_match(expected: str, actual: str) -> bool:
    expected_parts = expected.split('/')
    actual_parts = actual.split('/')
    if len(expected_parts) != 2 or len(actual_parts) != 2:
        return False
    if expected_parts[0] != '*' and expected_parts[0] != actual_parts[0]:
        return False
    if expected_parts[1].startswith('*+'):
        suffix = expected_parts[1][1:]
        return len(suffix) <= len(actual_parts[1]) and actual_parts[1].endswith(suffix)
    if expected_parts[1] != '*' and expected_parts[1] != actual_parts[1]:
        return False
    return True


def type_is(content_type: Optional[str], *types) -> Union[str, bool]:
    """
    Match a Content-Type value against ``types``.

    Returns the first matching entry of ``types`` (the actual type when the
    entry contains a wildcard), the bare content type when no types are
    given, or False.
    """
    actual = strip_params(content_type)
    if not actual or '/' not in actual:
        return False
    wanted = _flatten(types)
    if not wanted:
        return actual
    for candidate in wanted:
        normalized = _normalize_type(candidate)
        if normalized and _mime_match(normalized, actual):
            if candidate.startswith('+') or '*' in candidate:
                return actual
            return candidate
    return False


__all__ = ['AcceptedValue', 'parse_accept_header', 'Negotiator', 'Accepts', 'type_is']
