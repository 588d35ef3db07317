"""Assessments blueprint - clients, assessments, estimate lines, valuation and audit trail."""
from flask import Blueprint, request, jsonify, g, current_app
from claimdesk.database import get_session
from claimdesk.middleware import require_actor
from claimdesk.services import assessment_service, ledger_service, valuation_service
from claimdesk.services.audit_service import get_audit_logs

assessments_bp = Blueprint('assessments', __name__)


def _payload():
    return request.get_json(silent=True) or {}


@assessments_bp.route('/clients', methods=['POST'])
@require_actor
def create_client():
    db_session = get_session()
    client = assessment_service.create_client(db_session, _payload())
    return jsonify({'status': 'success', 'client': client.to_dict()}), 201


@assessments_bp.route('/assessments', methods=['POST'])
@require_actor
def create_assessment():
    db_session = get_session()
    assessment = assessment_service.create_assessment(
        db_session, _payload(), actor=g.actor,
        default_vat_percentage=current_app.config.get('DEFAULT_VAT_PERCENTAGE', '15')
    )
    return jsonify({'status': 'success', 'assessment': assessment.to_dict()}), 201


@assessments_bp.route('/assessments/<int:assessment_id>', methods=['GET'])
def get_assessment(assessment_id):
    db_session = get_session()
    assessment = ledger_service.get_assessment(db_session, assessment_id)
    return jsonify({'assessment': assessment.to_dict()})


@assessments_bp.route('/assessments/<int:assessment_id>/estimate-lines', methods=['POST'])
@require_actor
def import_estimate_lines(assessment_id):
    """Seed the ledger with original estimate lines: {"lines": [{description, amount}, ...]}."""
    db_session = get_session()
    result = ledger_service.import_estimate_lines(
        db_session, assessment_id, _payload().get('lines'), actor=g.actor
    )
    return jsonify({
        'status': 'success',
        'line_items': [item.to_dict() for item in result.line_items],
        'audit_recorded': result.audit_recorded,
        'warnings': result.warnings,
    }), 201


@assessments_bp.route('/assessments/<int:assessment_id>/values', methods=['GET'])
def get_vehicle_values(assessment_id):
    db_session = get_session()
    ledger_service.get_assessment(db_session, assessment_id)
    values = valuation_service.get_vehicle_values(db_session, assessment_id)
    if values is None:
        return jsonify({'vehicle_values': None, 'condition_adjustment_percentages': {}})
    return jsonify(valuation_service.vehicle_values_view(values))


@assessments_bp.route('/assessments/<int:assessment_id>/values', methods=['PUT'])
@require_actor
def save_vehicle_values(assessment_id):
    db_session = get_session()
    view = valuation_service.save_vehicle_values(db_session, assessment_id, _payload(), actor=g.actor)
    view['status'] = 'success'
    return jsonify(view)


@assessments_bp.route('/assessments/<int:assessment_id>/audit', methods=['GET'])
def audit_trail(assessment_id):
    """Audit entries for the assessment and every line item in its ledger."""
    db_session = get_session()
    ledger_service.get_assessment(db_session, assessment_id)

    limit = min(request.args.get('limit', 100, type=int), 500)
    offset = request.args.get('offset', 0, type=int)

    logs = get_audit_logs(db_session, assessment_id=assessment_id, limit=limit, offset=offset)
    return jsonify({'audit_logs': [log.to_dict() for log in logs]})
