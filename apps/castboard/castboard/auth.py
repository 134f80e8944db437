from __future__ import annotations

import hmac
from typing import Optional
from starlette.requests import Request

from castboard.exceptions import AuthError, ServiceError


def login_user(
    request: Request,
    user_id: int,
    role: str,
    display_name: str,
    actor_id: Optional[int] = None,
) -> None:
    request.session.clear()
    request.session["user_id"] = user_id
    request.session["role"] = role
    request.session["display_name"] = display_name
    request.session["actor_id"] = actor_id


def logout_user(request: Request) -> None:
    request.session.clear()


def get_session_user(request: Request) -> Optional[dict]:
    user_id = request.session.get("user_id")
    role = request.session.get("role")
    display_name = request.session.get("display_name")
    if user_id is None or role is None:
        return None
    return {
        "id": user_id,
        "role": role,
        "display_name": display_name,
        "actor_id": request.session.get("actor_id"),
    }


def require_role(request: Request, *roles: str) -> Optional[dict]:
    user = get_session_user(request)
    if user is None:
        return None
    if roles and user["role"] not in roles:
        return None
    return user


def require_api_user(request: Request, *roles: str) -> dict:
    """Session user for JSON endpoints; 401 when logged out, 403 on wrong role."""
    user = get_session_user(request)
    if user is None:
        raise AuthError("Unauthorized", status_code=401)
    if roles and user["role"] not in roles:
        raise AuthError("Forbidden", status_code=403)
    return user


def require_bearer(request: Request, secret: Optional[str], name: str) -> None:
    """Check a static bearer key sent by a machine caller."""
    if not secret:
        raise ServiceError(f"{name} not configured")
    header = request.headers.get("authorization", "")
    provided = header[7:] if header.startswith("Bearer ") else ""
    if not hmac.compare_digest(provided.encode(), secret.encode()):
        raise AuthError("Unauthorized", status_code=401)
