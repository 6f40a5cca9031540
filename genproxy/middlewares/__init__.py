"""Starlette middlewares guarding the generate endpoint."""
from __future__ import annotations

from genproxy.middlewares.body_limit import BodyLimitMiddleware
from genproxy.middlewares.rate_limit import RateLimitMiddleware

__all__ = ["BodyLimitMiddleware", "RateLimitMiddleware"]
