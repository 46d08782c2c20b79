# Overview: Request decorators binding routes to the identity and permission collaborators.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services.user_service import find_user


ACTOR_HEADER = "X-Actor-Id"


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and g.current_user is not None


def require_actor(f):
    """
    Resolve the acting user supplied by the identity collaborator.

    Sets g.current_user to the User named by the X-Actor-Id header.

    Returns 401 if:
    - the header is missing or not an integer
    - the user does not exist or is deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        user = find_user(int(raw))
        if user is None or not user.is_active:
            return jsonify({"error": "Unknown or inactive actor"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific permission.

    The decision is delegated to the AUTHORIZER config callable
    (user, permission_code) -> bool. With no authorizer configured every
    authenticated actor is allowed.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_actor was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            authorizer = current_app.config.get("AUTHORIZER")
            if authorizer is not None and not authorizer(g.current_user, permission_code):
                current_app.logger.info(
                    "Permission %s denied to user %s on %s", permission_code, g.current_user.id, request.path
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
