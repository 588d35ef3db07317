"""
Audit logging service for tracking ledger mutations.

Audit writes are best effort: they run after the audited change has been
committed and a failure here never undoes that change.
"""
from sqlalchemy.orm import Session
from claimdesk.models.audit_log import AuditLog, AuditAction
from datetime import datetime, timezone
import json
import logging

logger = logging.getLogger(__name__)


def _serialize(value):
    """Render old/new values as text for the audit row."""
    if value is None or isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to serialize audit value: {e}")
        return str(value)


class AuditRecorder:
    """Writes AuditLog rows through the given session."""

    def __init__(self, session: Session):
        self.session = session

    def record(
        self,
        action: AuditAction,
        entity_id,
        actor: str = None,
        reason: str = None,
        metadata: dict = None,
        entity_type: str = 'line_item',
        old_value=None,
        new_value=None
    ) -> bool:
        """
        Persist one audit entry.

        Args:
            action: AuditAction enum value
            entity_id: ID of the affected record
            actor: Who performed the action
            reason: Free-text justification, if any
            metadata: Dict with additional details (stored as JSON)
            entity_type: Type of record affected (e.g. 'line_item', 'assessment')
            old_value: Value before the change
            new_value: Value after the change

        Returns:
            True if the entry was committed, False if it was dropped.
        """
        try:
            if entity_type == 'assessment':
                assessment_id = entity_id
            else:
                assessment_id = (metadata or {}).get('assessment_id')

            audit_entry = AuditLog(
                entity_type=entity_type,
                entity_id=str(entity_id),
                assessment_id=assessment_id,
                action=action,
                changed_by=actor,
                reason=reason,
                old_value=_serialize(old_value),
                new_value=_serialize(new_value),
                details=json.loads(json.dumps(metadata, default=str)) if metadata else None,
                created_at=datetime.now(timezone.utc)
            )
            self.session.add(audit_entry)
            self.session.commit()

            logger.info(f"Audit log created: {action.value} by {actor} on {entity_type} {entity_id}")
            return True

        except Exception as e:
            self.session.rollback()
            logger.error(f"Failed to create audit log for {action.value} on {entity_type} {entity_id}: {e}")
            return False


def get_audit_logs(
    session: Session,
    assessment_id: int = None,
    entity_type: str = None,
    entity_id=None,
    action_filter: AuditAction = None,
    limit: int = 100,
    offset: int = 0
):
    """
    Retrieve audit logs with optional filters, oldest first.

    Args:
        session: Database session
        assessment_id: Filter by owning assessment
        entity_type: Filter by entity type
        entity_id: Filter by entity id
        action_filter: Filter by specific action
        limit: Max number of results
        offset: Pagination offset

    Returns:
        List of AuditLog objects
    """
    query = session.query(AuditLog)

    if assessment_id is not None:
        query = query.filter(AuditLog.assessment_id == assessment_id)

    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == str(entity_id))

    if action_filter:
        query = query.filter(AuditLog.action == action_filter)

    query = query.order_by(AuditLog.id.asc())
    query = query.limit(limit).offset(offset)

    return query.all()
