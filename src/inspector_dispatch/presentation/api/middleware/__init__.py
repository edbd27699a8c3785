"""Middleware package for the FastAPI application."""

from .logging import RequestResponseLoggingMiddleware

__all__ = [
    "RequestResponseLoggingMiddleware"
]
