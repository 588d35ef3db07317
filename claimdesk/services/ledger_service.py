"""
Line-Item Ledger Service.

CRUD surface over the additionals ledger of an assessment, restricted by the
line item lifecycle:

- pending -> approved | declined (terminal for edits)
- only pending entries may be deleted
- approved/declined entries are countered by reversals (see reversal_service)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from claimdesk.exceptions import (
    ValidationError, NotFoundError, InvalidStateError, ImmutableEntryError
)
from claimdesk.models import (
    Assessment, LineItem, LineItemAction, LineItemStatus, LineItemSource, AuditAction
)
from claimdesk.services.audit_service import AuditRecorder
from claimdesk.utils.number_format import parse_amount

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    """Outcome of a ledger mutation. Warnings never imply the mutation failed."""
    line_item: Optional[LineItem]
    audit_recorded: bool = True
    warnings: List[str] = field(default_factory=list)


@dataclass
class ImportResult:
    """Estimate lines seeded into the ledger by one import."""
    line_items: List[LineItem]
    audit_recorded: bool = True
    warnings: List[str] = field(default_factory=list)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_assessment(session: Session, assessment_id: int) -> Assessment:
    assessment = session.query(Assessment).filter(Assessment.id == assessment_id).first()
    if not assessment:
        raise NotFoundError(f'Assessment #{assessment_id} not found')
    return assessment


def get_line_item(session: Session, assessment_id: int, line_item_id: int, for_update: bool = False) -> LineItem:
    """Load a line item scoped to its assessment."""
    query = session.query(LineItem).filter(
        LineItem.id == line_item_id,
        LineItem.assessment_id == assessment_id
    )
    if for_update:
        query = query.with_for_update()
    line_item = query.first()
    if not line_item:
        raise NotFoundError(f'Line item #{line_item_id} not found on assessment #{assessment_id}')
    return line_item


def list_line_items(session: Session, assessment_id: int) -> List[LineItem]:
    """Ledger in audit (insertion) order."""
    return session.query(LineItem).filter(
        LineItem.assessment_id == assessment_id
    ).order_by(LineItem.id.asc()).all()


def find_reversal(session: Session, line_item_id: int) -> Optional[LineItem]:
    """Return the reversal entry targeting line_item_id, if any."""
    return session.query(LineItem).filter(
        LineItem.reverses_line_id == line_item_id,
        LineItem.action == LineItemAction.REVERSAL
    ).order_by(LineItem.id.asc()).first()


def find_active_removal(session: Session, original_line_id: int) -> Optional[LineItem]:
    """
    Latest removal of an original line that is pending or in effect.

    A removal is in effect when it is approved and not reversed, or when it was
    declined and later reinstated.
    """
    removals = session.query(LineItem).filter(
        LineItem.original_line_id == original_line_id,
        LineItem.action == LineItemAction.REMOVED
    ).order_by(LineItem.id.desc()).all()

    for removal in removals:
        if removal.status == LineItemStatus.PENDING:
            return removal
        reversed_ = find_reversal(session, removal.id) is not None
        if removal.status == LineItemStatus.APPROVED and not reversed_:
            return removal
        if removal.status == LineItemStatus.DECLINED and reversed_:
            return removal
    return None


def emit_audit(audit: AuditRecorder, result, action: AuditAction, entity_id, actor, **kwargs):
    """
    Record the audit entry for a committed mutation, downgrading failure to a
    warning on result (a MutationResult or ImportResult).
    """
    recorded = audit.record(action, entity_id, actor, **kwargs)
    if not recorded:
        warning = f'Audit record for {action.value} on #{entity_id} could not be saved'
        logger.warning(warning)
        result.audit_recorded = False
        result.warnings.append(warning)
    return result


def validate_reason(reason: Optional[str], min_length: int, field_name: str = 'reason') -> str:
    cleaned = (reason or '').strip()
    if len(cleaned) < min_length:
        raise ValidationError(
            f'{field_name} must be at least {min_length} characters',
            payload={'field': field_name, 'min_length': min_length}
        )
    return cleaned


def _validate_description(description) -> str:
    cleaned = description.strip() if isinstance(description, str) else ''
    if not cleaned:
        raise ValidationError('description is required', payload={'field': 'description'})
    if len(cleaned) > 255:
        raise ValidationError('description must be at most 255 characters', payload={'field': 'description'})
    return cleaned


def _validate_amount(value) -> Decimal:
    try:
        return parse_amount(value)
    except ValueError as e:
        raise ValidationError(str(e), payload={'field': 'amount'})


def add_line_item(session: Session, assessment_id: int, data: dict, actor: str = None, audit: AuditRecorder = None) -> MutationResult:
    """
    Append a new additional as a pending line item.

    Args:
        session: SQLAlchemy session
        assessment_id: Owning assessment
        data: dict with 'description' and 'amount'
        actor: Who adds the item
        audit: Audit recorder (defaults to one bound to session)

    Raises:
        ValidationError: If description or amount are invalid
        NotFoundError: If the assessment does not exist
    """
    audit = audit or AuditRecorder(session)
    description = _validate_description(data.get('description'))
    amount = _validate_amount(data.get('amount'))

    try:
        get_assessment(session, assessment_id)
        line_item = LineItem(
            assessment_id=assessment_id,
            source=LineItemSource.ADDITIONAL,
            action=LineItemAction.ADDED,
            status=LineItemStatus.PENDING,
            description=description,
            amount=amount,
            created_by=actor
        )
        session.add(line_item)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Line item #{line_item.id} added to assessment #{assessment_id} ({amount})")
    result = MutationResult(line_item)
    return emit_audit(
        audit, result, AuditAction.LINE_ITEM_ADDED, line_item.id, actor,
        new_value={'description': description, 'amount': amount, 'status': LineItemStatus.PENDING.value},
        metadata={'assessment_id': assessment_id}
    )


def import_estimate_lines(session: Session, assessment_id: int, lines: list, actor: str = None, audit: AuditRecorder = None) -> ImportResult:
    """
    Seed the ledger with the original estimate lines (approved, source=estimate).

    Raises:
        ValidationError: If any line is invalid (nothing is imported)
    """
    audit = audit or AuditRecorder(session)
    if not lines:
        raise ValidationError('lines must contain at least one estimate line', payload={'field': 'lines'})

    prepared = []
    for index, line_data in enumerate(lines):
        if not isinstance(line_data, dict):
            raise ValidationError(f'Estimate line {index + 1} must be an object')
        prepared.append((
            _validate_description(line_data.get('description')),
            _validate_amount(line_data.get('amount'))
        ))

    try:
        get_assessment(session, assessment_id)
        now = utcnow()
        created = []
        for description, amount in prepared:
            line_item = LineItem(
                assessment_id=assessment_id,
                source=LineItemSource.ESTIMATE,
                action=LineItemAction.ADDED,
                status=LineItemStatus.APPROVED,
                description=description,
                amount=amount,
                created_by=actor,
                approved_at=now
            )
            session.add(line_item)
            created.append(line_item)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Imported {len(created)} estimate lines into assessment #{assessment_id}")
    result = ImportResult(created)
    return emit_audit(
        audit, result, AuditAction.ESTIMATE_LINES_IMPORTED, assessment_id, actor,
        entity_type='assessment',
        metadata={'line_item_ids': [item.id for item in created]}
    )


def approve(session: Session, assessment_id: int, line_item_id: int, actor: str = None, audit: AuditRecorder = None) -> MutationResult:
    """
    Transition a pending line item to approved.

    Raises:
        InvalidStateError: If the item is not pending
    """
    audit = audit or AuditRecorder(session)
    try:
        line_item = get_line_item(session, assessment_id, line_item_id, for_update=True)
        if line_item.status != LineItemStatus.PENDING:
            raise InvalidStateError(
                f'Only pending items can be approved. Line item #{line_item_id} is {line_item.status.value}'
            )
        line_item.status = LineItemStatus.APPROVED
        line_item.approved_at = utcnow()
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Line item #{line_item_id} approved")
    result = MutationResult(line_item)
    return emit_audit(
        audit, result, AuditAction.LINE_ITEM_APPROVED, line_item_id, actor,
        old_value=LineItemStatus.PENDING.value,
        new_value=LineItemStatus.APPROVED.value,
        metadata={'assessment_id': assessment_id, 'amount': line_item.amount}
    )


def decline(session: Session, assessment_id: int, line_item_id: int, reason: str, actor: str = None, audit: AuditRecorder = None) -> MutationResult:
    """
    Transition a pending line item to declined.

    Raises:
        ValidationError: If reason is empty
        InvalidStateError: If the item is not pending
    """
    audit = audit or AuditRecorder(session)
    reason = validate_reason(reason, 1)
    try:
        line_item = get_line_item(session, assessment_id, line_item_id, for_update=True)
        if line_item.status != LineItemStatus.PENDING:
            raise InvalidStateError(
                f'Only pending items can be declined. Line item #{line_item_id} is {line_item.status.value}'
            )
        line_item.status = LineItemStatus.DECLINED
        line_item.decline_reason = reason
        line_item.declined_at = utcnow()
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Line item #{line_item_id} declined")
    result = MutationResult(line_item)
    return emit_audit(
        audit, result, AuditAction.LINE_ITEM_DECLINED, line_item_id, actor,
        reason=reason,
        old_value=LineItemStatus.PENDING.value,
        new_value=LineItemStatus.DECLINED.value,
        metadata={'assessment_id': assessment_id, 'amount': line_item.amount}
    )


def delete_line_item(session: Session, assessment_id: int, line_item_id: int, actor: str = None, audit: AuditRecorder = None) -> MutationResult:
    """
    Delete a line item outright. Only pending items may be deleted.

    Raises:
        ImmutableEntryError: If the item is approved or declined
    """
    audit = audit or AuditRecorder(session)
    try:
        line_item = get_line_item(session, assessment_id, line_item_id, for_update=True)
        if line_item.is_terminal:
            raise ImmutableEntryError(line_item_id, line_item.status)
        snapshot = {
            'description': line_item.description,
            'amount': line_item.amount,
            'action': line_item.action.value,
            'original_line_id': line_item.original_line_id,
        }
        session.delete(line_item)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Pending line item #{line_item_id} deleted from assessment #{assessment_id}")
    result = MutationResult(None)
    return emit_audit(
        audit, result, AuditAction.LINE_ITEM_DELETED, line_item_id, actor,
        old_value=snapshot,
        metadata={'assessment_id': assessment_id}
    )


def remove_original(session: Session, assessment_id: int, original_line_id: int, reason: str, actor: str = None, audit: AuditRecorder = None) -> MutationResult:
    """
    Propose removing an original estimate line by appending a pending
    'removed' entry that carries the negated amount.

    Raises:
        ValidationError: If reason is empty
        InvalidStateError: If the target is not an approved estimate line, or
            is already removed
    """
    audit = audit or AuditRecorder(session)
    reason = validate_reason(reason, 1)
    try:
        original = get_line_item(session, assessment_id, original_line_id, for_update=True)
        if original.source != LineItemSource.ESTIMATE or original.action != LineItemAction.ADDED:
            raise InvalidStateError(f'Line item #{original_line_id} is not an original estimate line')
        if original.status != LineItemStatus.APPROVED:
            raise InvalidStateError(f'Original line #{original_line_id} is {original.status.value} and cannot be removed')
        if find_reversal(session, original_line_id) is not None:
            raise InvalidStateError(f'Original line #{original_line_id} has been reversed and cannot be removed')
        if find_active_removal(session, original_line_id) is not None:
            raise InvalidStateError(f'Original line #{original_line_id} already has a removal in effect')

        removal = LineItem(
            assessment_id=assessment_id,
            source=LineItemSource.ADDITIONAL,
            action=LineItemAction.REMOVED,
            status=LineItemStatus.PENDING,
            description=f'Removed: {original.description}'[:255],
            amount=-original.amount,
            original_line_id=original.id,
            removal_reason=reason,
            created_by=actor
        )
        session.add(removal)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Removal #{removal.id} proposed for original line #{original_line_id}")
    result = MutationResult(removal)
    return emit_audit(
        audit, result, AuditAction.ORIGINAL_LINE_REMOVED, removal.id, actor,
        reason=reason,
        new_value={'amount': removal.amount, 'original_line_id': original_line_id},
        metadata={'assessment_id': assessment_id}
    )
