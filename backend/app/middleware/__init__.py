"""Middleware package for FastAPI application"""
from app.middleware.logging_middleware import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware

__all__ = ['RequestLoggingMiddleware', 'RateLimitMiddleware']
