"""
HTTP building blocks: status table, transport adapter, request/response
facades, content negotiation and cookies.
"""

from .status import STATUS_CODES, EMPTY_STATUSES, status_message
from .transport import ClientDisconnect, TransportRequest, TransportResponse
from .request import Request
from .response import Response
from .negotiation import Accepts, Negotiator, type_is
from .cookies import Cookies, Keygrip

__all__ = [
    'STATUS_CODES', 'EMPTY_STATUSES', 'status_message',
    'ClientDisconnect', 'TransportRequest', 'TransportResponse',
    'Request', 'Response',
    'Accepts', 'Negotiator', 'type_is',
    'Cookies', 'Keygrip',
]
