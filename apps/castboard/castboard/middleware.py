"""
Routing-layer access gate.

Runs inside SessionMiddleware. Logged-out page requests are sent to the
login page and logged-out API calls get a 401. ACTOR users are kept out of
the admin pages. Handlers still check roles themselves.
"""
import logging
from typing import Callable, List
from urllib.parse import quote

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from castboard.auth import get_session_user
from castboard.models import UserRole

logger = logging.getLogger(__name__)

# Reachable without a session (machine callers bring their own bearer key)
PUBLIC_PATHS: List[str] = [
    "/login",
    "/static/",
    "/api/casting/reservations",
    "/api/reservations/sync",
    "/api/cron/",
]


def is_path_public(path: str) -> bool:
    for public in PUBLIC_PATHS:
        if path == public or path.startswith(public):
            return True
    return False


class RoleGateMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if is_path_public(path):
            return await call_next(request)

        user = get_session_user(request)
        if user is None:
            if path.startswith("/api/"):
                return JSONResponse({"error": "Unauthorized"}, status_code=401)
            return RedirectResponse(url=f"/login?next={quote(path)}", status_code=303)

        if path.startswith("/admin") and user["role"] != UserRole.ADMIN.value:
            logger.info(f"User {user['id']} ({user['role']}) sent away from {path}")
            return RedirectResponse(url="/actor", status_code=303)

        return await call_next(request)
