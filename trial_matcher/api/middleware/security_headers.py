"""
Security Headers Middleware
Adds hardening headers to every API response.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

# The API serves JSON only, so nothing may be framed, scripted or embedded
CONTENT_SECURITY_POLICY = "default-src 'none'; frame-ancestors 'none'"

PERMISSIONS_POLICY = "geolocation=(), microphone=(), camera=(), payment=(), usb=()"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Headers added:
    - Strict-Transport-Security: production only
    - X-Content-Type-Options, X-Frame-Options, Referrer-Policy
    - Content-Security-Policy, Permissions-Policy
    """

    def __init__(self, app: ASGIApp, enable_hsts: bool = False):
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY
        response.headers["Permissions-Policy"] = PERMISSIONS_POLICY
        response.headers["X-XSS-Protection"] = "1; mode=block"

        return response
