from __future__ import annotations

from functools import wraps
from typing import Callable, TypeVar, Any, cast
from flask import current_app, g, jsonify, request

from utils.security import AuthError, decode_token, expires_within

F = TypeVar("F", bound=Callable[..., Any])

EXPIRING_SOON_SECONDS = 30 * 60


def _request_token() -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        if token:
            return token
    # Query string and cookie are fallbacks for file downloads from the dashboard
    return request.args.get("token") or request.cookies.get("token") or None


def admin_required(func: F) -> F:
    """Decorator that requires a valid admin JWT.

    - Token from ``Authorization: Bearer``, then ``?token=``, then the
      ``token`` cookie.
    - On success, claims go to ``g.user`` and ``g.token_expiring_soon`` is
      set when fewer than 30 minutes remain.
    - Otherwise answers 401 JSON.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        token = _request_token()
        if not token:
            return jsonify({"ok": False, "error": "Access denied. Authentication required."}), 401
        try:
            claims = decode_token(
                token,
                current_app.config["JWT_SECRET"],
                current_app.config.get("JWT_ALGORITHM", "HS256"),
            )
        except AuthError as e:
            return jsonify({"ok": False, "error": str(e), "reason": e.reason}), 401
        g.user = claims
        g.token_expiring_soon = expires_within(claims, EXPIRING_SOON_SECONDS)
        return func(*args, **kwargs)

    return cast(F, wrapper)
