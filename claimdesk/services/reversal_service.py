"""
Reversal Service - counter-entries for the additionals ledger.

Approved, declined and removed entries are never edited. Their contribution to
the totals is cancelled or reinstated by appending an auto-approved reversal
entry that points back at the target through reverses_line_id:

- reverse_approved:           amount = -target.amount
- reinstate_declined:         amount = +target.amount
- reinstate_removed_original: amount = -removal.amount (restores the original)

A target is reversed at most once, and reversal entries are never reversed.
"""

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from claimdesk.exceptions import InvalidStateError
from claimdesk.models import (
    LineItem, LineItemAction, LineItemStatus, LineItemSource, AuditAction
)
from claimdesk.services.audit_service import AuditRecorder
from claimdesk.services.ledger_service import (
    MutationResult, emit_audit, find_active_removal, find_reversal,
    get_line_item, utcnow, validate_reason
)

logger = logging.getLogger(__name__)

REVERSAL_REASON_MIN_LENGTH = 10


def _effective_amount(line_item: LineItem) -> Decimal:
    """Contribution of a single entry to the approved total."""
    return line_item.amount if line_item.status == LineItemStatus.APPROVED else Decimal('0.00')


def _ensure_not_reversed(session: Session, target: LineItem) -> None:
    if target.action == LineItemAction.REVERSAL:
        raise InvalidStateError(f'Line item #{target.id} is a reversal entry and cannot be reversed')
    existing = find_reversal(session, target.id)
    if existing is not None:
        raise InvalidStateError(
            f'Line item #{target.id} has already been reversed by entry #{existing.id}',
            payload={'line_item_id': target.id, 'reversal_id': existing.id}
        )


def _append_reversal(session: Session, target: LineItem, amount: Decimal, description: str, reason: str, actor: str) -> LineItem:
    reversal = LineItem(
        assessment_id=target.assessment_id,
        source=LineItemSource.ADDITIONAL,
        action=LineItemAction.REVERSAL,
        status=LineItemStatus.APPROVED,
        description=description[:255],
        amount=amount,
        reverses_line_id=target.id,
        reversal_reason=reason,
        created_by=actor,
        approved_at=utcnow()
    )
    session.add(reversal)
    session.commit()
    return reversal


def _audit_reversal(audit, reversal: LineItem, target: LineItem, before: Decimal, action: AuditAction, reason: str, actor: str) -> MutationResult:
    result = MutationResult(reversal)
    return emit_audit(
        audit, result, action, target.id, actor,
        reason=reason,
        old_value={'effective_amount': before},
        new_value={'effective_amount': before + reversal.amount},
        metadata={
            'assessment_id': target.assessment_id,
            'reversal_id': reversal.id,
            'target_amount': target.amount,
            'reversal_amount': reversal.amount,
        }
    )


def reverse_approved(
    session: Session,
    assessment_id: int,
    line_item_id: int,
    reason: str,
    actor: str = None,
    audit: AuditRecorder = None,
    min_reason_length: int = REVERSAL_REASON_MIN_LENGTH
) -> MutationResult:
    """
    Cancel an approved line item by appending a negating reversal.

    Args:
        session: SQLAlchemy session
        assessment_id: Owning assessment
        line_item_id: Approved entry to cancel
        reason: Why the entry is reversed (min_reason_length chars or more)
        actor: Who performs the reversal
        audit: Audit recorder (defaults to one bound to session)

    Returns:
        MutationResult holding the new reversal entry

    Raises:
        ValidationError: If reason is too short
        NotFoundError: If the target does not exist on the assessment
        InvalidStateError: If the target is not approved, already reversed,
            is itself a reversal, or is a removal (use reinstate_removed_original)
    """
    audit = audit or AuditRecorder(session)
    reason = validate_reason(reason, min_reason_length)

    try:
        target = get_line_item(session, assessment_id, line_item_id, for_update=True)
        _ensure_not_reversed(session, target)

        if target.action == LineItemAction.REMOVED:
            raise InvalidStateError(
                f'Line item #{line_item_id} is a removal; reinstate the original line instead'
            )
        if target.status != LineItemStatus.APPROVED:
            raise InvalidStateError(
                f'Only approved items can be reversed. Line item #{line_item_id} is {target.status.value}'
            )
        if target.source == LineItemSource.ESTIMATE:
            removal = find_active_removal(session, target.id)
            if removal is not None:
                raise InvalidStateError(
                    f'Original line #{line_item_id} has removal #{removal.id} in effect and cannot be reversed'
                )

        before = _effective_amount(target)
        reversal = _append_reversal(
            session, target, -target.amount,
            f'Reversal of #{target.id}: {target.description}', reason, actor
        )
    except Exception:
        session.rollback()
        raise

    logger.info(f"Line item #{line_item_id} reversed by entry #{reversal.id} ({reversal.amount})")
    return _audit_reversal(audit, reversal, target, before, AuditAction.LINE_ITEM_REVERSED, reason, actor)


def reinstate_declined(
    session: Session,
    assessment_id: int,
    line_item_id: int,
    reason: str,
    actor: str = None,
    audit: AuditRecorder = None,
    min_reason_length: int = REVERSAL_REASON_MIN_LENGTH
) -> MutationResult:
    """
    Restore a declined line item by appending a reversal carrying its
    originally intended amount. The declined entry keeps its status.

    Raises:
        ValidationError: If reason is too short
        InvalidStateError: If the target is not declined or already reinstated,
            or is a removal whose original line is already removed or reversed
    """
    audit = audit or AuditRecorder(session)
    reason = validate_reason(reason, min_reason_length)

    try:
        target = get_line_item(session, assessment_id, line_item_id, for_update=True)
        _ensure_not_reversed(session, target)

        if target.status != LineItemStatus.DECLINED:
            raise InvalidStateError(
                f'Only declined items can be reinstated. Line item #{line_item_id} is {target.status.value}'
            )
        if target.action == LineItemAction.REMOVED:
            # The original must still count in full before a removal can apply
            removal = find_active_removal(session, target.original_line_id)
            if removal is not None:
                raise InvalidStateError(
                    f'Original line #{target.original_line_id} already has removal #{removal.id} in effect'
                )
            original_reversal = find_reversal(session, target.original_line_id)
            if original_reversal is not None:
                raise InvalidStateError(
                    f'Original line #{target.original_line_id} was reversed by entry #{original_reversal.id}; '
                    f'removal #{target.id} can no longer be applied'
                )

        before = _effective_amount(target)
        reversal = _append_reversal(
            session, target, target.amount,
            f'Reinstated: {target.description}', reason, actor
        )
    except Exception:
        session.rollback()
        raise

    logger.info(f"Declined line item #{line_item_id} reinstated by entry #{reversal.id} ({reversal.amount})")
    return _audit_reversal(audit, reversal, target, before, AuditAction.LINE_ITEM_REINSTATED, reason, actor)


def _resolve_removal(session: Session, assessment_id: int, line_item_id: int) -> LineItem:
    """Accept either the removal entry id or the removed original's id."""
    target = get_line_item(session, assessment_id, line_item_id, for_update=True)
    if target.action == LineItemAction.REMOVED:
        return target
    if target.source == LineItemSource.ESTIMATE and target.action == LineItemAction.ADDED:
        removal = find_active_removal(session, target.id)
        if removal is None:
            raise InvalidStateError(f'Original line #{line_item_id} has not been removed')
        return removal
    raise InvalidStateError(f'Line item #{line_item_id} is not a removed original line')


def reinstate_removed_original(
    session: Session,
    assessment_id: int,
    original_line_id: int,
    reason: str,
    actor: str = None,
    audit: AuditRecorder = None,
    min_reason_length: int = REVERSAL_REASON_MIN_LENGTH
) -> MutationResult:
    """
    Cancel an approved removal of an original estimate line, restoring the
    original's contribution to the totals.

    Args:
        original_line_id: Id of the removal entry, or of the removed original line

    Raises:
        ValidationError: If reason is too short
        InvalidStateError: If there is no approved removal to cancel, it was
            already reinstated, or the removal was applied by reinstating a
            declined removal (final)
    """
    audit = audit or AuditRecorder(session)
    reason = validate_reason(reason, min_reason_length)

    try:
        removal = _resolve_removal(session, assessment_id, original_line_id)

        if removal.status == LineItemStatus.PENDING:
            raise InvalidStateError(
                f'Removal #{removal.id} is still pending; delete it instead of reinstating'
            )
        if removal.status == LineItemStatus.DECLINED:
            if find_reversal(session, removal.id) is not None:
                raise InvalidStateError(
                    f'Removal #{removal.id} was declined and later applied by reinstatement; '
                    f'that removal is final and the original line cannot be restored'
                )
            raise InvalidStateError(
                f'Removal #{removal.id} was declined; the original line is already in effect'
            )
        _ensure_not_reversed(session, removal)

        before = _effective_amount(removal)
        reversal = _append_reversal(
            session, removal, -removal.amount,
            f'Reinstated original #{removal.original_line_id}: {removal.description}', reason, actor
        )
    except Exception:
        session.rollback()
        raise

    logger.info(f"Removal #{removal.id} cancelled by entry #{reversal.id} ({reversal.amount})")
    return _audit_reversal(audit, reversal, removal, before, AuditAction.ORIGINAL_LINE_REINSTATED, reason, actor)
