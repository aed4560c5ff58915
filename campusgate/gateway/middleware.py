"""
CampusGate - Access Control Middleware

Request gate in front of every route. In order:

1. Identity-provider paths (/api/auth/...) pass straight through
2. The login page bounces already signed-in users to their callbackUrl
3. Fixed-window rate limit per client IP and path (429 + Retry-After)
4. Query string screening (400)
5. Public API prefixes accept only GET/POST/OPTIONS (405 + Allow)
6. Everything not public needs a valid identity token and live session
   (401 for APIs, login redirect for pages), then a route table grant
   (403 for APIs, /forbidden redirect for pages)

Every response leaving the gate, including rejections, gets the security
header set and a path-appropriate Cache-Control.
"""

from typing import Callable, Optional
from urllib.parse import urlencode

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response
from starlette.types import ASGIApp

from campusgate.config import Settings, settings as default_settings
from campusgate.gateway.headers import apply_security_headers
from campusgate.gateway.identity import (
    AuthenticatedUser,
    authenticate_request,
    get_client_ip,
)
from campusgate.gateway.ratelimit import RequestRateLimiter
from campusgate.gateway.rbac import (
    AuthorizationTable,
    load_authorization_table,
    path_has_prefix,
)
from campusgate.gateway.validation import screen_query_params
from campusgate.logging import get_logger


logger = get_logger(__name__)


def safe_callback_url(value: Optional[str], default: str) -> str:
    """Only same-origin relative paths are followed after login."""
    if not value or not value.startswith("/") or value.startswith("//") or "\\" in value:
        return default
    return value


class AccessControlMiddleware(BaseHTTPMiddleware):
    """
    Authentication, authorization and response hardening for all requests.

    The SessionManager is read from app.state.session_manager at request
    time, so it can be wired in the application lifespan.
    """

    def __init__(
        self,
        app: ASGIApp,
        table: Optional[AuthorizationTable] = None,
        rate_limiter: Optional[RequestRateLimiter] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(app)
        self.config = config or default_settings
        self.table = table or load_authorization_table(self.config.ROUTE_POLICY_FILE)
        self.rate_limiter = rate_limiter or RequestRateLimiter(
            self.config.RATE_LIMIT_MAX_REQUESTS,
            self.config.RATE_LIMIT_WINDOW_SECONDS,
            self.config.RATE_LIMIT_STORAGE_URI,
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path

        if path_has_prefix(path, self.config.AUTH_PROVIDER_PREFIX):
            return await call_next(request)

        if path == self.config.LOGIN_PATH:
            result = await authenticate_request(request)
            if result.authenticated:
                target = safe_callback_url(
                    request.query_params.get("callbackUrl"),
                    self.config.DEFAULT_LANDING_PATH,
                )
                response = RedirectResponse(target, status_code=307)
            else:
                response = await call_next(request)
            return self._finish(response, path, protected=False)

        # Early rejections are cached by the path they answer for
        protected = not self._is_public(path)

        client_ip = get_client_ip(request)
        limit = self.rate_limiter.hit(f"{client_ip}:{path}")
        if not limit.allowed:
            logger.warning("rate_limit_exceeded", ip_address=client_ip, path=path)
            response = PlainTextResponse("Too Many Requests", status_code=429)
            response.headers["Retry-After"] = str(limit.retry_after())
            return self._finish(response, path, protected=protected)

        problem = screen_query_params(request.query_params.multi_items())
        if problem:
            logger.warning("query_rejected", ip_address=client_ip, path=path, reason=problem)
            response = PlainTextResponse("Invalid Request Parameters", status_code=400)
            return self._finish(response, path, protected=protected)

        if self._is_public_api(path) and request.method not in self.config.PUBLIC_METHODS:
            response = PlainTextResponse("Method Not Allowed", status_code=405)
            response.headers["Allow"] = ", ".join(self.config.PUBLIC_METHODS)
            return self._finish(response, path, protected=protected)

        if not protected:
            response = await call_next(request)
            return self._finish(response, path, protected=False)

        is_api = path_has_prefix(path, "/api")

        result = await authenticate_request(request)
        if not result.authenticated:
            reason = result.rejection.value if result.rejection else "not logged in"
            if is_api:
                response = PlainTextResponse("Unauthorized", status_code=401)
                response.headers["X-Session-Status"] = reason
            else:
                query = urlencode({"callbackUrl": path})
                response = RedirectResponse(f"{self.config.LOGIN_PATH}?{query}", status_code=307)
            return self._finish(response, path, protected=True)

        identity: AuthenticatedUser = result.user
        decision = self.table.authorize(path, identity.role)
        if not decision.allowed:
            logger.info(
                "access_denied",
                user_id=identity.user_id,
                role=identity.role,
                path=path,
                decision=decision.decision.value,
            )
            if is_api:
                response = PlainTextResponse("Forbidden", status_code=403)
            else:
                response = RedirectResponse(self.config.FORBIDDEN_PATH, status_code=307)
            return self._finish(response, path, protected=True)

        request.state.identity = identity
        response = await call_next(request)
        response.headers["X-User-Session"] = "validated"
        return self._finish(response, path, protected=True)

    def _is_public(self, path: str) -> bool:
        # Landing page; matched exactly since "/" prefixes every path
        if path == "/":
            return True
        return any(path_has_prefix(path, p) for p in self.config.PUBLIC_PATHS) or self._is_public_api(path)

    def _is_public_api(self, path: str) -> bool:
        return any(path_has_prefix(path, p) for p in self.config.PUBLIC_API_PATHS)

    def _finish(self, response: Response, path: str, protected: bool) -> Response:
        apply_security_headers(response.headers, path, protected, self.config.SERVER_HEADER)
        return response
