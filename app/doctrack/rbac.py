from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.doctrack.errors import Forbidden, Unauthorized


def user_has_role(user, *roles: str) -> bool:
    """Membership test only; roles carry no ordering."""
    if not user or not user.is_active:
        return False
    return user.role in roles


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Reject anonymous callers with 401 and pass the AuthSession as `auth=`."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        auth = getattr(g, "auth", None)
        if auth is None:
            raise Unauthorized()
        return fn(*args, auth=auth, **kwargs)

    return wrapped


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            auth = getattr(g, "auth", None)
            if auth is None:
                raise Unauthorized()
            if not user_has_role(auth.user, *roles):
                g.missing_role = ",".join(roles)
                raise Forbidden()
            return fn(*args, auth=auth, **kwargs)

        return wrapped

    return decorator
