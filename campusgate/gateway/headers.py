"""
CampusGate - Response Security Headers

Header hardening applied to every response leaving the request gate:
- Fixed security header set (CSP, frame and sniffing protection)
- X-Powered-By removed, Server replaced with a neutral value
- Duplicate Set-Cookie / Cache-Control / Content-Type collapsed to one
- Cache-Control chosen by path class (API, upload, static asset, page)
"""

import re
from typing import Dict

from starlette.datastructures import MutableHeaders


CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "script-src 'self' 'unsafe-inline' 'unsafe-eval' https://js.hcaptcha.com "
    "https://newassets.hcaptcha.com https://checkout.razorpay.com",
    "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com",
    "font-src 'self' https://fonts.gstatic.com",
    "img-src 'self' data: https:",
    "connect-src 'self' https://api.hcaptcha.com https://api.razorpay.com",
    "frame-src https://js.hcaptcha.com https://newassets.hcaptcha.com https://api.razorpay.com",
])

# Uploaded files are served as inert downloads
UPLOAD_CONTENT_SECURITY_POLICY = "default-src 'none'"

SECURITY_HEADERS: Dict[str, str] = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(), payment=()",
}

CACHE_NO_STORE = "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0"
CACHE_SHORT = "public, max-age=300, s-maxage=300"
CACHE_LONG = "public, max-age=31536000, immutable"

STATIC_PREFIX = "/_next/static/"
STATIC_ASSET = re.compile(r"\.(js|css|png|jpg|jpeg|gif|svg|ico|woff|woff2)$")
UPLOAD_API_PREFIX = "/api/upload"


def is_static_asset(path: str) -> bool:
    return path.startswith(STATIC_PREFIX) or bool(STATIC_ASSET.search(path))


def is_upload(path: str) -> bool:
    # Upload endpoints and anything that serves uploaded content
    return path.startswith(UPLOAD_API_PREFIX) or "upload" in path


def select_cache_control(path: str, protected: bool) -> str:
    """
    Pick the caching policy for a response.

    API:     protected -> no-store, public -> short shared cache
    Static:  one year, immutable
    Pages:   no-store (HTML is rendered per user)
    """
    if path.startswith("/api/"):
        return CACHE_NO_STORE if protected else CACHE_SHORT
    if is_upload(path):
        return CACHE_NO_STORE
    if is_static_asset(path):
        return CACHE_LONG
    return CACHE_NO_STORE


def collapse_duplicate_headers(headers: MutableHeaders) -> None:
    """
    Set-Cookie keeps its last value; Cache-Control and Content-Type keep
    the first of a comma-joined or repeated value.
    """
    cookies = headers.getlist("set-cookie")
    if len(cookies) > 1:
        headers["set-cookie"] = cookies[-1]

    for name in ("cache-control", "content-type"):
        values = headers.getlist(name)
        if not values:
            continue
        first = values[0].split(",")[0].strip()
        if len(values) > 1 or first != values[0]:
            headers[name] = first


def apply_security_headers(
    headers: MutableHeaders,
    path: str,
    protected: bool,
    server_name: str,
) -> None:
    headers.update(SECURITY_HEADERS)

    if "x-powered-by" in headers:
        del headers["x-powered-by"]
    headers["Server"] = server_name

    collapse_duplicate_headers(headers)

    headers["Cache-Control"] = select_cache_control(path, protected)
    if is_upload(path):
        headers["Content-Security-Policy"] = UPLOAD_CONTENT_SECURITY_POLICY
