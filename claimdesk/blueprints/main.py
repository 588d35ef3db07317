"""Main blueprint with service status endpoints."""
from flask import Blueprint, jsonify, current_app
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import SQLAlchemyError
from claimdesk.database import get_session
from claimdesk.models import LineItem, AuditLog

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """
    Report whether the ledger and audit tables can be read.

    Returns:
        200: Both tables reachable
        503: A table could not be queried
    """
    db_session = get_session()
    checks = {}
    for name, model in (('ledger', LineItem), ('audit_log', AuditLog)):
        try:
            db_session.query(model.id).limit(1).all()
            checks[name] = 'reachable'
        except SQLAlchemyError as e:
            db_session.rollback()
            current_app.logger.error(f"Health check: {name} table unreachable: {e}")
            checks[name] = 'unreachable'

    healthy = all(state == 'reachable' for state in checks.values())
    return jsonify({
        'status': 'healthy' if healthy else 'unhealthy',
        'checks': checks,
    }), 200 if healthy else 503


@main_bp.route('/csrf-token')
def csrf_token():
    """Token for JSON clients; send it back in the X-CSRFToken header."""
    return jsonify({'csrf_token': generate_csrf()})
