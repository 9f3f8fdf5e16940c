"""
Class-based middleware.
"""

import logging
from typing import Any, Dict, Optional


class BaseMiddleware:
    """
    Base class for middleware written as classes.

    ``app.use(MyMiddleware, option=value)`` instantiates the class with the
    given options. Subclasses override ``__call__``; the default simply
    continues the pipeline.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, **options):
        self.config = {**(config or {}), **options}
        self.logger = logging.getLogger(self.__class__.__name__)

    async def __call__(self, ctx, next):
        return await next()

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.config}>"


__all__ = ['BaseMiddleware']
