"""
Middleware composition and the class-based middleware base.
"""

from .compose import compose, Middleware, Next
from .base import BaseMiddleware

__all__ = ['compose', 'Middleware', 'Next', 'BaseMiddleware']
