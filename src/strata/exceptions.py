"""
Exceptions for the Strata framework.

Three families live here:
- Configuration errors raised synchronously while an application is wired
  (invalid middleware, invalid configuration values).
- Pipeline invariant violations, such as a middleware awaiting ``next()``
  twice.
- HTTP errors raised by middleware. They carry a status, an ``expose`` flag
  deciding whether the message may reach the client, and optional headers
  applied to the error response.
"""

from typing import Any, Dict, Optional, Type

from strata.http.status import STATUS_CODES


class StrataError(Exception):
    """Base class for framework errors"""


class ConfigurationError(StrataError, ValueError):
    """Invalid configuration value"""


class InvalidMiddlewareError(StrataError, TypeError):
    """Middleware registration with something that cannot be called"""


class NextCalledMultipleTimesError(StrataError, RuntimeError):
    """A middleware invoked its continuation more than once"""

    def __init__(self, message: str = "next() called multiple times"):
        super().__init__(message)


class HTTPError(StrataError):
    """
    Error carrying an HTTP status.

    ``expose`` defaults to True for client errors (4xx) and False for server
    errors, so internal failure details stay out of responses unless a
    middleware opts in. Any extra keyword arguments become attributes of the
    error, which lets callers attach context for logging.
    """

    status_code_default = 500
    error_code_default = "internal_error"

    def __init__(self,
                 status: Optional[int] = None,
                 message: Optional[str] = None,
                 *,
                 expose: Optional[bool] = None,
                 headers: Optional[Dict[str, str]] = None,
                 error_code: Optional[str] = None,
                 **props: Any):
        if status is None:
            status = self.status_code_default
        if message is None:
            message = STATUS_CODES.get(status, "Unknown Error")
        super().__init__(message)
        self.message = message
        self.status = status
        self.expose = status < 500 if expose is None else expose
        self.headers = dict(headers or {})
        self.error_code = error_code or self.error_code_default
        for key, value in props.items():
            setattr(self, key, value)

    @property
    def status_code(self) -> int:
        return self.status

    @status_code.setter
    def status_code(self, value: int) -> None:
        self.status = value

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary suitable for an API body"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message if self.expose else STATUS_CODES.get(self.status, "Unknown Error"),
                "status_code": self.status,
            }
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.status} {self.message!r}>"


class BadRequest(HTTPError):
    """400 Bad Request"""
    status_code_default = 400
    error_code_default = "bad_request"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(400, message, **kwargs)


class Unauthorized(HTTPError):
    """401 Unauthorized"""
    status_code_default = 401
    error_code_default = "unauthorized"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(401, message, **kwargs)


class Forbidden(HTTPError):
    """403 Forbidden"""
    status_code_default = 403
    error_code_default = "forbidden"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(403, message, **kwargs)


class NotFound(HTTPError):
    """404 Not Found"""
    status_code_default = 404
    error_code_default = "not_found"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(404, message, **kwargs)


class MethodNotAllowed(HTTPError):
    """405 Method Not Allowed"""
    status_code_default = 405
    error_code_default = "method_not_allowed"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(405, message, **kwargs)


class NotAcceptable(HTTPError):
    """406 Not Acceptable"""
    status_code_default = 406
    error_code_default = "not_acceptable"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(406, message, **kwargs)


class Conflict(HTTPError):
    """409 Conflict"""
    status_code_default = 409
    error_code_default = "conflict"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(409, message, **kwargs)


class Gone(HTTPError):
    """410 Gone"""
    status_code_default = 410
    error_code_default = "gone"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(410, message, **kwargs)


class UnsupportedMediaType(HTTPError):
    """415 Unsupported Media Type"""
    status_code_default = 415
    error_code_default = "unsupported_media_type"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(415, message, **kwargs)


class UnprocessableEntity(HTTPError):
    """422 Unprocessable Entity"""
    status_code_default = 422
    error_code_default = "unprocessable_entity"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(422, message, **kwargs)


class TooManyRequests(HTTPError):
    """429 Too Many Requests"""
    status_code_default = 429
    error_code_default = "too_many_requests"

    def __init__(self, message: Optional[str] = None, retry_after: Optional[int] = None, **kwargs):
        super().__init__(429, message, **kwargs)
        if retry_after is not None:
            self.headers["Retry-After"] = str(retry_after)


class InternalServerError(HTTPError):
    """500 Internal Server Error"""

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(500, message, **kwargs)


class NotImplementedHTTPError(HTTPError):
    """501 Not Implemented"""
    status_code_default = 501
    error_code_default = "not_implemented"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(501, message, **kwargs)


class BadGateway(HTTPError):
    """502 Bad Gateway"""
    status_code_default = 502
    error_code_default = "bad_gateway"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(502, message, **kwargs)


class ServiceUnavailable(HTTPError):
    """503 Service Unavailable"""
    status_code_default = 503
    error_code_default = "service_unavailable"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(503, message, **kwargs)


class GatewayTimeout(HTTPError):
    """504 Gateway Timeout"""
    status_code_default = 504
    error_code_default = "gateway_timeout"

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(504, message, **kwargs)


_STATUS_EXCEPTIONS: Dict[int, Type[HTTPError]] = {
    cls.status_code_default: cls for cls in (
        BadRequest, Unauthorized, Forbidden, NotFound, MethodNotAllowed,
        NotAcceptable, Conflict, Gone, UnsupportedMediaType, UnprocessableEntity,
        TooManyRequests, InternalServerError, NotImplementedHTTPError,
        BadGateway, ServiceUnavailable, GatewayTimeout,
    )
}


def get_exception_by_status_code(status_code: int) -> Type[HTTPError]:
    """Get the exception class registered for a status code"""
    return _STATUS_EXCEPTIONS.get(status_code, HTTPError)


def create_error(*args: Any, **props: Any) -> Exception:
    """
    Build an HTTP error from any mix of status, message, exception and
    property mapping.

        create_error(404)
        create_error(400, "name required")
        create_error("something exploded")
        create_error(ValueError("invalid"))
        create_error(400, ValueError("invalid"), {"field": "name"})

    Statuses outside 4xx/5xx fall back to 500. An existing exception is
    returned as-is after being given ``status`` and ``expose`` attributes.
    """
    err: Optional[BaseException] = None
    status: Any = 500
    message: Optional[str] = None
    extra: Dict[str, Any] = {}

    for position, arg in enumerate(args):
        if isinstance(arg, BaseException):
            err = arg
            status = getattr(arg, "status", None) or getattr(arg, "status_code", None) or status
        elif isinstance(arg, bool):
            raise TypeError(f"argument #{position + 1} unsupported type bool")
        elif isinstance(arg, int):
            status = arg
        elif isinstance(arg, str):
            message = arg
        elif isinstance(arg, dict):
            extra.update(arg)
        else:
            raise TypeError(f"argument #{position + 1} unsupported type {type(arg).__name__}")
    extra.update(props)

    if not isinstance(status, int) or isinstance(status, bool) or status < 400 or status >= 600:
        status = 500

    if err is None:
        error_class = get_exception_by_status_code(status)
        if error_class is HTTPError:
            err = HTTPError(status, message)
        else:
            err = error_class(message)
    elif not isinstance(err, HTTPError) or err.status != status:
        err.expose = status < 500
        err.status = status

    for key, value in extra.items():
        if key not in ("status", "status_code"):
            setattr(err, key, value)
    return err


def http_assert(value: Any, status: int = 500, message: Optional[str] = None, **props: Any) -> None:
    """Raise ``create_error(status, message, **props)`` when ``value`` is falsy"""
    if not value:
        raise create_error(status, message, **props) if message is not None else create_error(status, **props)


__all__ = [
    'StrataError', 'ConfigurationError', 'InvalidMiddlewareError',
    'NextCalledMultipleTimesError', 'HTTPError',
    'BadRequest', 'Unauthorized', 'Forbidden', 'NotFound', 'MethodNotAllowed',
    'NotAcceptable', 'Conflict', 'Gone', 'UnsupportedMediaType',
    'UnprocessableEntity', 'TooManyRequests', 'InternalServerError',
    'NotImplementedHTTPError', 'BadGateway', 'ServiceUnavailable',
    'GatewayTimeout', 'get_exception_by_status_code', 'create_error',
    'http_assert',
]
