"""Security and CORS response headers.

Every response gets the fixed security header set. Responses under /api/
also carry CORS headers for the configured origin, and any OPTIONS request
is answered directly as a preflight.
"""

from fastapi import Response

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self' 'unsafe-inline'; "
        "style-src 'self' 'unsafe-inline'; img-src 'self' data: blob:; "
        "font-src 'self'; connect-src 'self' https://api.openai.com; frame-ancestors 'none'"
    ),
    "X-XSS-Protection": "1; mode=block",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
}

API_PREFIX = "/api/"
PREFLIGHT_MAX_AGE = "86400"  # 24 hours


def cors_headers(origin: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


def preflight_response(origin: str) -> Response:
    """Empty 204 answer to a CORS preflight."""
    headers = cors_headers(origin)
    headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
    return Response(status_code=204, headers=headers)


def apply_security_headers(response: Response, path: str, origin: str) -> Response:
    """Add security headers, and CORS headers for API paths.

    Args:
        response: Outgoing response (modified in place)
        path: Request path
        origin: Allowed CORS origin

    Returns:
        The same response
    """
    response.headers.update(SECURITY_HEADERS)
    if path.startswith(API_PREFIX):
        response.headers.update(cors_headers(origin))
    return response
