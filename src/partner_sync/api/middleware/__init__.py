"""API middleware package."""

from src.partner_sync.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
