# Overview: Request decorators for API routes (actor context and role gates).

from functools import wraps

from flask import request, jsonify, g


def _header_int(name: str):
    raw = request.headers.get(name, "").strip()
    if not raw.isdigit():
        return None
    value = int(raw)
    return value if value > 0 else None


def require_actor(f):
    """
    Establish the acting user and tenant context.

    The authenticating gateway in front of this service resolves the session
    and forwards:
    - X-Merchant-Id: tenant (merchant) id - REQUIRED
    - X-User-Id: acting user id - REQUIRED
    - X-User-Role: admin, Employee, Delivery, Shipment

    Sets g.merchant_id, g.actor_id, g.actor_role.

    Returns 401 if the merchant or user header is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        merchant_id = _header_int("X-Merchant-Id")
        actor_id = _header_int("X-User-Id")

        if merchant_id is None or actor_id is None:
            return jsonify({"error": "Authentication required"}), 401

        g.merchant_id = merchant_id
        g.actor_id = actor_id
        g.actor_role = request.headers.get("X-User-Role", "").strip()

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the acting user to hold one of `roles` (exact match).

    Must be applied AFTER @require_actor.

    Returns 403 otherwise.
    """
    allowed_roles = set(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "actor_role"):
                return jsonify({"error": "Authentication required"}), 401

            if g.actor_role not in allowed_roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_role": sorted(allowed_roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
