"""Security Headers Middleware

Adds security headers to all HTTP responses. The API only serves JSON, so
the content policy forbids everything except same-origin requests.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"

        # Only add HSTS when already on HTTPS
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        response.headers["Referrer-Policy"] = "no-referrer"

        # OTP codes and tokens must never be cached by proxies
        if request.url.path.startswith("/api/auth"):
            response.headers["Cache-Control"] = "no-store"

        # Docs pages load their assets from a CDN; leave them alone
        if not request.url.path.startswith(("/api/docs", "/api/redoc")):
            response.headers["Content-Security-Policy"] = (
                "default-src 'none'; "
                "frame-ancestors 'none';"
            )

        return response
