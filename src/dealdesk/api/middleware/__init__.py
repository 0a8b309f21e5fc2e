"""API middleware package."""

from src.dealdesk.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
