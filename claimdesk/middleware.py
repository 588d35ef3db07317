"""Middleware for actor context."""
from functools import wraps
from flask import session, g, request, jsonify


def load_actor():
    """
    Load the acting engineer into g.actor.

    Called before each request. The actor comes from the X-Actor header set by
    the upstream authentication layer, falling back to the Flask session.
    """
    actor = request.headers.get('X-Actor') or session.get('actor')
    g.actor = actor.strip()[:120] if actor and actor.strip() else None


def require_actor(f):
    """
    Decorator: Require an identified actor for ledger mutations.

    Returns 401 JSON when no actor is known, so every audit row has an author.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('actor') is None:
            return jsonify({
                'status': 'error',
                'message': 'An actor is required (X-Actor header)'
            }), 401
        return f(*args, **kwargs)
    return decorated_function
