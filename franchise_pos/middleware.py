"""Middleware for actor context and JSON request helpers."""
from functools import wraps
from flask import session, g, current_app, request
from franchise_pos.exceptions import AuthenticationRequired, ForbiddenError, ValidationError
from franchise_pos.policy import Actor


def load_actor():
    """
    Load the current actor into g (Flask's per-request global).

    The identity service signs user_id, role and franchise_id into the session
    cookie; this engine never validates credentials itself.
    Sets g.actor to an Actor or None.
    """
    g.actor = None

    user_id = session.get('user_id')
    if not user_id:
        return

    try:
        g.actor = Actor(
            user_id=user_id,
            role=session.get('role'),
            franchise_id=session.get('franchise_id')
        )
    except ForbiddenError as e:
        # Unknown role in a signed session: treat as anonymous
        current_app.logger.warning(f"Ignoring session actor {user_id}: {e.message}")


def require_actor(f):
    """
    Decorator: Require an authenticated actor.

    Raises AuthenticationRequired (401) so the JSON error handler renders it.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('actor') is None:
            raise AuthenticationRequired()
        return f(*args, **kwargs)
    return decorated_function


def json_body() -> dict:
    """Request JSON object; an absent body reads as {}."""
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError('El cuerpo debe ser un objeto JSON')
    return body
