"""HTTP middleware."""
from trial_matcher.api.middleware.security_headers import SecurityHeadersMiddleware

__all__ = ["SecurityHeadersMiddleware"]
