"""
Middleware composition.

``compose`` folds a list of ``(ctx, next)`` middleware into one coroutine
function. Each middleware may work before awaiting ``next()``, after it
resolves, or skip it to short-circuit the rest of the pipeline; control
flows down through the list and back up in reverse order.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from strata.exceptions import NextCalledMultipleTimesError

logger = logging.getLogger(__name__)

Next = Callable[[], Awaitable[Any]]
Middleware = Callable[[Any, Next], Any]


class _Dispatch:
    """
    Cursor for one invocation of a composed pipeline.

    ``index`` is the highest slot entered so far; entering a slot at or
    below it means some middleware called ``next()`` twice.
    """

    def __init__(self, middleware: List[Middleware], ctx: Any, terminal: Optional[Middleware]):
        self.middleware = middleware
        self.ctx = ctx
        self.terminal = terminal
        self.index = -1

    def __call__(self, i: int) -> Awaitable[Any]:
        if i <= self.index:
            raise NextCalledMultipleTimesError()
        self.index = i

        if i < len(self.middleware):
            fn = self.middleware[i]
        elif i == len(self.middleware):
            fn = self.terminal
        else:
            fn = None
        return self._run(fn, i)

    async def _run(self, fn: Optional[Middleware], i: int) -> Any:
        if fn is None:
            return None
        # next() ignores arguments so it can also serve as a nested
        # pipeline's terminal (ctx, next) middleware
        result = fn(self.ctx, lambda *_: self(i + 1))
        if inspect.isawaitable(result):
            result = await result
        return result


def compose(middleware: Sequence[Middleware]) -> Callable[..., Awaitable[Any]]:
    """
    Compose ``middleware`` into ``composed(ctx, next=None)``.

    ``next`` runs after the last middleware, with the same ``(ctx, next)``
    signature, so composed pipelines nest. Raises TypeError when the stack is
    not a list or contains something that is not callable.
    """
    if not isinstance(middleware, (list, tuple)):
        raise TypeError("Middleware stack must be a list")
    for fn in middleware:
        if not callable(fn):
            raise TypeError("Middleware must be composed of functions")

    stack = list(middleware)
    logger.debug(f"Composed pipeline of {len(stack)} middleware")

    async def composed(ctx: Any, next: Optional[Middleware] = None) -> Any:
        return await _Dispatch(stack, ctx, next)(0)

    composed.middleware = stack
    return composed


__all__ = ['compose', 'Middleware', 'Next']
