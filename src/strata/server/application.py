"""
Strata Application - ASGI entry point and request coordinator.

The Application owns the middleware list, the per-application context,
request and response templates, and the error sink. For every HTTP request
it builds a context, runs the composed middleware pipeline and hands the
result to the response finalizer; any failure is routed to the context's
error handler instead.

Example:
    app = Application()

    async def hello(ctx, next):
        ctx.body = 'Hello, World!'

    app.use(hello)
    app.listen(port=8000)
"""

import dataclasses
import inspect
import logging
import textwrap
import traceback
from typing import Any, Awaitable, Callable, Dict, List, Optional

from strata.config import AppConfig
from strata.context import Context, RequestPhase
from strata.events import EventEmitter
from strata.exceptions import ConfigurationError, InvalidMiddlewareError
from strata.http.request import Request
from strata.http.response import Response
from strata.http.transport import TransportRequest, TransportResponse
from strata.middleware.compose import compose
from strata.server.respond import respond
from strata.server.server import Server

logger = logging.getLogger(__name__)

Scope = Dict[str, Any]
Receive = Callable[[], Awaitable[Dict[str, Any]]]
Send = Callable[[Dict[str, Any]], Awaitable[None]]


class Application:
    """
    Middleware application.

    Attributes:
        config (AppConfig): Application configuration
        middleware (List[Callable]): Registered middleware, in order
        context, request, response: Per-application template classes; any
            attribute set on them is shared by every request of this app
        error_sink (EventEmitter): Receives ``('error', err, ctx)``
    """

    def __init__(self, config: Optional[AppConfig] = None, *,
                 error_sink: Optional[EventEmitter] = None, **overrides):
        config = config or AppConfig()
        if overrides:
            try:
                config = dataclasses.replace(config, **overrides)
            except TypeError as e:
                raise ConfigurationError(f"Unknown application option: {e}") from e
        self.config = config

        self.env = config.env
        self.proxy = config.proxy
        self.subdomain_offset = config.subdomain_offset
        self.proxy_ip_header = config.proxy_ip_header
        self.max_ips_count = config.max_ips_count
        self.keys = config.keys
        self.silent = config.silent

        self.middleware: List[Callable] = []
        self.context = type('Context', (Context,), {})
        self.request = type('Request', (Request,), {})
        self.response = type('Response', (Response,), {})
        self.error_sink = error_sink if error_sink is not None else EventEmitter()

        self._composed: Optional[Callable[..., Awaitable[Any]]] = None
        self._startup_events: List[Callable] = []
        self._shutdown_events: List[Callable] = []
        self._server = None

    # Middleware

    def use(self, fn: Callable, **options) -> 'Application':
        """
        Append ``fn`` to the middleware pipeline and return the application.

        Classes are instantiated with ``options``.
        """
        if isinstance(fn, type):
            try:
                fn = fn(**options)
            except TypeError as e:
                raise InvalidMiddlewareError(f"Cannot instantiate middleware: {e}") from e
        elif options:
            raise InvalidMiddlewareError("Options are only accepted for middleware classes")

        if not callable(fn):
            raise InvalidMiddlewareError("middleware must be callable")

        name = getattr(fn, '__name__', None) or fn.__class__.__name__
        logger.debug(f"use {name}")
        self.middleware.append(fn)
        self._composed = None
        return self

    def callback(self) -> Callable[[TransportRequest, TransportResponse], Awaitable[None]]:
        """Request handler bound to the current middleware list"""
        if self._composed is None:
            self._composed = compose(self.middleware)
        fn = self._composed

        if not self.listener_count('error'):
            self.on('error', self.onerror)

        async def handle(req: TransportRequest, res: TransportResponse) -> None:
            ctx = self.create_context(req, res)
            await self.handle_request(ctx, fn)

        return handle

    async def handle_request(self, ctx: Context, fn: Callable[..., Awaitable[Any]]) -> None:
        """Run the pipeline for ``ctx`` and write its response"""
        res = ctx.res
        res.status_code = 404
        res.on_finished(ctx.onerror)
        ctx.req.add_disconnect_listener(res.abort)

        ctx.phase = RequestPhase.RUNNING_PIPELINE
        try:
            await fn(ctx)
            ctx.phase = RequestPhase.FINALIZING
            await respond(ctx)
        except Exception as err:
            ctx.phase = RequestPhase.ERRORING
            logger.debug(f"{ctx.method} {ctx.original_url} failed: {err!r}")
            # an abort already handed this error to ctx.onerror
            if err is not res.error:
                await ctx.onerror(err)
        finally:
            ctx.phase = RequestPhase.DONE

    def create_context(self, req: TransportRequest, res: TransportResponse) -> Context:
        """Wire a fresh context and its request/response facades"""
        request = self.request(self, req, res)
        response = self.response(self, req, res)
        context = self.context(self, req, res, request, response)
        request.ctx = response.ctx = context
        request.response = response
        response.request = request
        context.original_url = request.original_url = req.url
        context.state = {}
        return context

    # Error sink

    def on(self, event: str, listener: Optional[Callable] = None):
        result = self.error_sink.on(event, listener)
        return self if listener is not None else result

    def once(self, event: str, listener: Callable) -> 'Application':
        self.error_sink.once(event, listener)
        return self

    def off(self, event: str, listener: Optional[Callable] = None) -> 'Application':
        self.error_sink.off(event, listener)
        return self

    def emit(self, event: str, *args) -> bool:
        return self.error_sink.emit(event, *args)

    def listener_count(self, event: str) -> int:
        return self.error_sink.listener_count(event)

    def onerror(self, err: BaseException, ctx: Optional[Context] = None) -> None:
        """
        Default error listener: log the traceback of unexpected errors.

        Client errors (404 or exposed) are not logged, nor is anything when
        the application is silent.
        """
        if not isinstance(err, Exception):
            raise TypeError(f"non-error thrown: {err!r}")

        if getattr(err, 'status', None) == 404 or getattr(err, 'expose', False):
            return
        if self.silent:
            return

        message = ''.join(traceback.format_exception(type(err), err, err.__traceback__)).rstrip()
        logger.error(f"\n{textwrap.indent(message, '  ')}\n")

    # Lifecycle

    def on_startup(self, func: Callable) -> Callable:
        """Register a startup task"""
        self._startup_events.append(func)
        return func

    def on_shutdown(self, func: Callable) -> Callable:
        """Register a shutdown task"""
        self._shutdown_events.append(func)
        return func

    async def startup(self) -> None:
        for event in self._startup_events:
            result = event(self)
            if inspect.isawaitable(result):
                await result
        logger.info(f"Application started ({self.env})")

    async def shutdown(self) -> None:
        for event in self._shutdown_events:
            result = event(self)
            if inspect.isawaitable(result):
                await result
        logger.info("Application shut down")

    # ASGI

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            await self.handle_http(scope, receive, send)
        elif scope["type"] == "lifespan":
            await self.handle_lifespan(scope, receive, send)
        else:
            logger.warning(f"Ignoring unsupported ASGI scope type: {scope['type']}")

    async def handle_http(self, scope: Scope, receive: Receive, send: Send) -> None:
        req = TransportRequest(scope, receive)
        res = TransportResponse(send, req)
        await self.callback()(req, res)

    async def handle_lifespan(self, scope: Scope, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                try:
                    await self.startup()
                    await send({"type": "lifespan.startup.complete"})
                except Exception as e:
                    logger.error(f"Startup failed: {e}")
                    await send({"type": "lifespan.startup.failed", "message": str(e)})
            elif message["type"] == "lifespan.shutdown":
                try:
                    await self.shutdown()
                    await send({"type": "lifespan.shutdown.complete"})
                except Exception as e:
                    logger.error(f"Shutdown failed: {e}")
                    await send({"type": "lifespan.shutdown.failed", "message": str(e)})
                break

    # Serving

    def create_server(self, **overrides):
        """Create a hypercorn server for this application"""
        server_config = self.config.server
        if overrides:
            try:
                server_config = dataclasses.replace(server_config, **overrides)
            except TypeError as e:
                raise ConfigurationError(f"Unknown server option: {e}") from e
        self._server = Server(self, server_config, self.config.logging)
        return self._server

    def listen(self, **overrides) -> None:
        """Serve the application until interrupted (blocking)"""
        self.create_server(**overrides).run()

    async def serve(self, **overrides) -> None:
        """Serve the application on the running event loop"""
        await self.create_server(**overrides).start()

    async def stop(self) -> None:
        if self._server:
            await self._server.shutdown()

    def to_json(self) -> Dict[str, Any]:
        return {
            'subdomain_offset': self.subdomain_offset,
            'proxy': self.proxy,
            'env': self.env,
        }

    inspect = to_json

    def __repr__(self):
        return f"<Application env={self.env!r} middleware={len(self.middleware)}>"


__all__ = ['Application']
