"""API package exports."""

from social_auth.api.middleware import CorrelationIdMiddleware
from social_auth.api.routes import router

__all__ = ["router", "CorrelationIdMiddleware"]
