# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .permissions import Role
from .services.context import Actor


ACTOR_USER_HEADER = "X-Actor-User-Id"
ACTOR_ACCOUNT_HEADER = "X-Actor-Account-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"


def _positive_int(raw: str | None) -> int | None:
    if raw is None or not raw.strip().isdigit():
        return None
    value = int(raw)
    return value if value > 0 else None


def require_actor(f):
    """
    Build the Actor for this request from trusted upstream headers.

    Authentication happens in front of this service (gateway / session layer);
    it forwards the verified identity as headers. Sets g.actor.

    SECURITY: Returns 401 if any header is missing or malformed, or the role
    is not one of owner / admin / tech. Unknown roles never default to allow.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = _positive_int(request.headers.get(ACTOR_USER_HEADER))
        account_id = _positive_int(request.headers.get(ACTOR_ACCOUNT_HEADER))
        role = (request.headers.get(ACTOR_ROLE_HEADER) or "").strip().lower()

        if user_id is None or account_id is None:
            return jsonify({"error": "Authentication required"}), 401
        if role not in {r.value for r in Role}:
            return jsonify({"error": "Invalid role"}), 401

        g.actor = Actor(user_id=user_id, account_id=account_id, role=role)
        return f(*args, **kwargs)

    return decorated_function
