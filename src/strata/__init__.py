"""
Strata - middleware-first ASGI web framework core

Requests flow through an onion of ``(ctx, next)`` middleware. Each request
gets a context bundling request and response facades; once the pipeline
finishes, the staged response is written to the client, and any error is
turned into a plain text error response and reported to the application's
error sink.

Example:
    >>> from strata import Application
    >>>
    >>> app = Application()
    >>>
    >>> async def timing(ctx, next):
    ...     await next()
    ...     ctx.set('X-Handled-By', 'strata')
    >>>
    >>> async def hello(ctx, next):
    ...     ctx.body = {'message': 'Hello, World!'}
    >>>
    >>> app.use(timing).use(hello)
    >>>
    >>> if __name__ == '__main__':
    ...     app.listen()
"""

__version__ = "0.1.0"
__author__ = "Strata Team"
__email__ = "team@strata.dev"

# Core framework components
from strata.server.application import Application
from strata.config import AppConfig, ServerConfig, LoggingConfig, ConfigPresets, get_config_from_environment
from strata.context import Context, RequestPhase
from strata.http import Request, Response
from strata.middleware import compose, BaseMiddleware
from strata.server.respond import respond
from strata.events import EventEmitter
from strata.exceptions import (
    StrataError, ConfigurationError, InvalidMiddlewareError, NextCalledMultipleTimesError,
    HTTPError, BadRequest, Unauthorized, Forbidden, NotFound, create_error, http_assert,
)

__all__ = [
    'Application', 'AppConfig', 'ServerConfig', 'LoggingConfig', 'ConfigPresets',
    'get_config_from_environment', 'Context', 'RequestPhase', 'Request', 'Response',
    'compose', 'BaseMiddleware', 'respond', 'EventEmitter',
    'StrataError', 'ConfigurationError', 'InvalidMiddlewareError', 'NextCalledMultipleTimesError',
    'HTTPError', 'BadRequest', 'Unauthorized', 'Forbidden', 'NotFound', 'create_error', 'http_assert',
]
