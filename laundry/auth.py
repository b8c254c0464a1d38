"""
Bearer-token authentication and role checks.

Tokens are HS256 JWTs carrying ``user_id``. Roles are always read from the
``users`` table, never from the token, so revoking a role takes effect on
the next request.
"""

import datetime
import logging
from collections import namedtuple
from functools import wraps

import jwt
from flask import current_app, g, request

from laundry.errors import AuthenticationError, AuthorizationError
from laundry.roles import Role, has_role

logger = logging.getLogger(__name__)

Identity = namedtuple("Identity", ["user_id", "email", "roles"])


def generate_token(user_id, expires_days=None):
    """Generate JWT token for user"""
    days = expires_days or current_app.config.get("JWT_EXPIRES_DAYS", 30)
    payload = {
        "user_id": user_id,
        "exp": datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=days),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm="HS256")


def verify_token(token):
    """Verify JWT token and return user_id"""
    if not token:
        return None
    try:
        payload = jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=["HS256"])
        return payload.get("user_id")
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def _bearer_token():
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[len("Bearer "):].strip() or None


def bearer_user_id():
    """User id from a valid bearer token, without touching the database."""
    return verify_token(_bearer_token())


def resolve_identity():
    """Resolve the request's bearer token to an Identity, or raise AuthenticationError."""
    from laundry.models import User, db

    cached = g.get("identity")
    if cached is not None:
        return cached

    user_id = bearer_user_id()
    if not user_id:
        raise AuthenticationError()
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise AuthenticationError()

    identity = Identity(user.id, user.email, user.role_set)
    g.identity = identity
    return identity


def require_auth(f):
    """Decorator to require authentication; passes ``identity`` to the view."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity = resolve_identity()
        return f(*args, identity=identity, **kwargs)
    return decorated_function


def require_roles(*roles):
    """Decorator to require one of ``roles`` (admin satisfies any)."""
    required = tuple(Role(r) for r in roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            identity = resolve_identity()
            if not has_role(identity.roles, required):
                logger.info("User %s lacks roles %s for %s", identity.user_id,
                            [r.value for r in required], request.path)
                raise AuthorizationError("Insufficient permissions")
            return f(*args, identity=identity, **kwargs)
        return decorated_function
    return decorator


def is_admin(identity):
    return has_role(identity.roles, Role.ADMIN)
