"""Additionals blueprint - the line-item ledger of an assessment (JSON API)."""
from flask import Blueprint, request, jsonify, g, current_app
from claimdesk.database import get_session
from claimdesk.middleware import require_actor
from claimdesk.services import ledger_service, reversal_service
from claimdesk.services.totals_service import build_ledger_view

additionals_bp = Blueprint(
    'additionals', __name__, url_prefix='/assessments/<int:assessment_id>/additionals'
)


def _reason_min_length():
    return current_app.config.get('REVERSAL_REASON_MIN_LENGTH', reversal_service.REVERSAL_REASON_MIN_LENGTH)


def _payload():
    return request.get_json(silent=True) or {}


def _ledger_view(db_session, assessment_id):
    assessment = ledger_service.get_assessment(db_session, assessment_id)
    items = ledger_service.list_line_items(db_session, assessment_id)
    return build_ledger_view(items, assessment.vat_percentage)


def _mutation_response(db_session, assessment_id, result, status_code=200):
    """Serialize a MutationResult together with the recomputed totals."""
    view = _ledger_view(db_session, assessment_id)
    return jsonify({
        'status': 'success',
        'line_item': result.line_item.to_dict() if result.line_item is not None else None,
        'audit_recorded': result.audit_recorded,
        'warnings': result.warnings,
        'totals': view['totals'],
    }), status_code


@additionals_bp.route('', methods=['GET'])
def list_additionals(assessment_id):
    """Ledger in audit order with display flags and totals."""
    db_session = get_session()
    return jsonify(_ledger_view(db_session, assessment_id))


@additionals_bp.route('', methods=['POST'])
@require_actor
def add_additional(assessment_id):
    """Add a pending additional: {"description": ..., "amount": ...}."""
    db_session = get_session()
    result = ledger_service.add_line_item(db_session, assessment_id, _payload(), actor=g.actor)
    return _mutation_response(db_session, assessment_id, result, 201)


@additionals_bp.route('/<int:line_item_id>/approve', methods=['POST'])
@require_actor
def approve_additional(assessment_id, line_item_id):
    db_session = get_session()
    result = ledger_service.approve(db_session, assessment_id, line_item_id, actor=g.actor)
    return _mutation_response(db_session, assessment_id, result)


@additionals_bp.route('/<int:line_item_id>/decline', methods=['POST'])
@require_actor
def decline_additional(assessment_id, line_item_id):
    db_session = get_session()
    result = ledger_service.decline(
        db_session, assessment_id, line_item_id, _payload().get('reason'), actor=g.actor
    )
    return _mutation_response(db_session, assessment_id, result)


@additionals_bp.route('/<int:line_item_id>', methods=['DELETE'])
@require_actor
def delete_additional(assessment_id, line_item_id):
    """Delete a pending item. Approved/declined items answer 409."""
    db_session = get_session()
    result = ledger_service.delete_line_item(db_session, assessment_id, line_item_id, actor=g.actor)
    return _mutation_response(db_session, assessment_id, result)


@additionals_bp.route('/<int:line_item_id>/reverse', methods=['POST'])
@require_actor
def reverse_additional(assessment_id, line_item_id):
    db_session = get_session()
    result = reversal_service.reverse_approved(
        db_session, assessment_id, line_item_id, _payload().get('reason'),
        actor=g.actor, min_reason_length=_reason_min_length()
    )
    return _mutation_response(db_session, assessment_id, result, 201)


@additionals_bp.route('/<int:line_item_id>/reinstate', methods=['POST'])
@require_actor
def reinstate_additional(assessment_id, line_item_id):
    db_session = get_session()
    result = reversal_service.reinstate_declined(
        db_session, assessment_id, line_item_id, _payload().get('reason'),
        actor=g.actor, min_reason_length=_reason_min_length()
    )
    return _mutation_response(db_session, assessment_id, result, 201)


@additionals_bp.route('/originals/<int:line_item_id>/remove', methods=['POST'])
@require_actor
def remove_original_line(assessment_id, line_item_id):
    db_session = get_session()
    result = ledger_service.remove_original(
        db_session, assessment_id, line_item_id, _payload().get('reason'), actor=g.actor
    )
    return _mutation_response(db_session, assessment_id, result, 201)


@additionals_bp.route('/originals/<int:line_item_id>/reinstate', methods=['POST'])
@require_actor
def reinstate_original_line(assessment_id, line_item_id):
    db_session = get_session()
    result = reversal_service.reinstate_removed_original(
        db_session, assessment_id, line_item_id, _payload().get('reason'),
        actor=g.actor, min_reason_length=_reason_min_length()
    )
    return _mutation_response(db_session, assessment_id, result, 201)
