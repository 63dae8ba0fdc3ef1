"""
Security headers middleware.

The service only returns JSON and file downloads, so the policy is
locked down to ``default-src 'none'``.

Usage:
    from agiletrack.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""

from flask import request


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        response.headers.setdefault(
            "Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'"
        )
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        # Ignored over plain HTTP
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
        )
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        # Authenticated responses must not be cached by intermediaries
        if "Authorization" in request.headers:
            response.headers.setdefault("Cache-Control", "no-store")
        response.headers.pop("Server", None)
        return response
