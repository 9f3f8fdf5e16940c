"""
Response finalizer.

Turns the staged status, headers and body of a context into exactly one
terminal write on the transport.
"""

import asyncio
import inspect
import logging
from typing import Any

from strata.http.status import EMPTY_STATUSES
from strata.http.utils import byte_length, dump_json, is_binary, is_stream

logger = logging.getLogger(__name__)

# Read size for file-like bodies
CHUNK_SIZE = 64 * 1024


async def respond(ctx) -> None:
    """
    Write the response for ``ctx``.

    Skipped entirely when ``ctx.respond`` is False or the transport response
    is no longer writable.
    """
    if ctx.respond is False:
        return
    if not ctx.writable:
        return

    res = ctx.res
    body = ctx.body
    code = ctx.status

    if code in EMPTY_STATUSES:
        ctx.body = None
        await res.end()
        return

    if ctx.method == 'HEAD':
        if not res.headers_sent and not ctx.response.has('Content-Length'):
            length = ctx.response.length
            if isinstance(length, int):
                ctx.length = length
        await res.end()
        return

    if body is None:
        if ctx.req.http_version_major >= 2:
            body = str(code)
        else:
            body = ctx.message or str(code)
        if not res.headers_sent:
            ctx.type = 'text'
            ctx.length = byte_length(body)
        await res.end(body)
        return

    if is_binary(body) or isinstance(body, str):
        await res.end(body)
        return

    if is_stream(body):
        await pipe(body, res)
        return

    body = dump_json(body)
    if not res.headers_sent:
        ctx.length = byte_length(body)
    await res.end(body)


async def pipe(stream: Any, res) -> None:
    """Copy ``stream`` to the transport chunk by chunk, then end the response"""
    try:
        if hasattr(stream, '__aiter__'):
            async for chunk in stream:
                if not await res.write(chunk):
                    break
        elif hasattr(stream, 'read'):
            read = stream.read
            loop = asyncio.get_running_loop()
            while True:
                if inspect.iscoroutinefunction(read):
                    chunk = await read(CHUNK_SIZE)
                else:
                    chunk = await loop.run_in_executor(None, read, CHUNK_SIZE)
                if not chunk or not await res.write(chunk):
                    break
        else:
            for chunk in stream:
                if not await res.write(chunk):
                    break
    finally:
        await _close(stream)

    if not res.writable:
        logger.debug("client went away while streaming the response body")
        return
    await res.end()


async def _close(stream: Any) -> None:
    close = getattr(stream, 'aclose', None) or getattr(stream, 'close', None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result


__all__ = ['respond', 'pipe', 'CHUNK_SIZE']
