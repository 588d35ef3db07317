"""
Unit tests for reversal entries on the additionals ledger.

Covers reversing approved items, reinstating declined items and cancelling
removals of original estimate lines, plus the invariants that hold across all
of them (no edits, one reversal per target, audit failure is non-fatal).
"""

import json
import pytest
from decimal import Decimal

from claimdesk.exceptions import ValidationError, InvalidStateError, NotFoundError
from claimdesk.models import LineItem, LineItemAction, LineItemStatus, LineItemSource, AuditLog, AuditAction
from claimdesk.services import ledger_service
from claimdesk.services.reversal_service import (
    reverse_approved, reinstate_declined, reinstate_removed_original
)
from claimdesk.services.totals_service import calculate_totals

ACTOR = 'engineer@claimdesk.test'
REASON = 'Duplicate of estimate line 4'


def ledger(session, assessment):
    return ledger_service.list_line_items(session, assessment.id)


def total_approved(session, assessment):
    return calculate_totals(ledger(session, assessment), assessment.vat_percentage)['subtotal_approved']


class TestReverseApproved:
    """Tests for reverse_approved()."""

    def test_appends_negating_entry(self, session, assessment, approved_item):
        """The reversal is a new approved entry carrying the negated amount."""
        before = total_approved(session, assessment)
        assert before == Decimal('5000.00')

        result = reverse_approved(session, assessment.id, approved_item.id, REASON, actor=ACTOR)

        reversal = result.line_item
        assert reversal.action == LineItemAction.REVERSAL
        assert reversal.status == LineItemStatus.APPROVED
        assert reversal.source == LineItemSource.ADDITIONAL
        assert reversal.amount == Decimal('-5000.00')
        assert reversal.reverses_line_id == approved_item.id
        assert reversal.reversal_reason == REASON
        assert reversal.created_by == ACTOR
        assert total_approved(session, assessment) == Decimal('0.00')

    def test_target_is_not_modified(self, session, assessment, approved_item):
        reverse_approved(session, assessment.id, approved_item.id, REASON)

        session.refresh(approved_item)
        assert approved_item.status == LineItemStatus.APPROVED
        assert approved_item.amount == Decimal('5000.00')
        assert approved_item.reverses_line_id is None

    def test_ledger_grows_by_exactly_one(self, session, assessment, approved_item):
        count = len(ledger(session, assessment))
        reverse_approved(session, assessment.id, approved_item.id, REASON)
        assert len(ledger(session, assessment)) == count + 1

    def test_second_reversal_rejected(self, session, assessment, approved_item):
        """A target is reversed at most once."""
        reverse_approved(session, assessment.id, approved_item.id, REASON)
        count = len(ledger(session, assessment))

        with pytest.raises(InvalidStateError) as exc_info:
            reverse_approved(session, assessment.id, approved_item.id, REASON)

        assert 'already been reversed' in exc_info.value.message
        assert len(ledger(session, assessment)) == count

    def test_reversal_entry_cannot_be_reversed(self, session, assessment, approved_item):
        reversal = reverse_approved(session, assessment.id, approved_item.id, REASON).line_item

        with pytest.raises(InvalidStateError) as exc_info:
            reverse_approved(session, assessment.id, reversal.id, REASON)

        assert 'is a reversal entry' in exc_info.value.message

    def test_pending_item_cannot_be_reversed(self, session, assessment, pending_item):
        with pytest.raises(InvalidStateError):
            reverse_approved(session, assessment.id, pending_item.id, REASON)

    def test_declined_item_cannot_be_reversed(self, session, assessment, declined_item):
        with pytest.raises(InvalidStateError):
            reverse_approved(session, assessment.id, declined_item.id, REASON)

    @pytest.mark.parametrize('reason', ['', '   ', 'too short', '  short   '])
    def test_reason_too_short(self, session, assessment, approved_item, reason):
        count = len(ledger(session, assessment))

        with pytest.raises(ValidationError) as exc_info:
            reverse_approved(session, assessment.id, approved_item.id, reason)

        assert exc_info.value.payload['min_length'] == 10
        assert len(ledger(session, assessment)) == count

    def test_reason_of_ten_characters_accepted(self, session, assessment, approved_item):
        result = reverse_approved(session, assessment.id, approved_item.id, '0123456789')
        assert result.line_item.reversal_reason == '0123456789'

    def test_unknown_item(self, session, assessment):
        with pytest.raises(NotFoundError):
            reverse_approved(session, assessment.id, 424242, REASON)

    def test_original_estimate_line_can_be_reversed(self, session, assessment, estimate_lines):
        result = reverse_approved(session, assessment.id, estimate_lines[0].id, REASON)

        assert result.line_item.amount == Decimal('-8500.00')
        totals = calculate_totals(ledger(session, assessment))
        assert totals['estimate_subtotal'] == Decimal('11700.00')
        assert totals['additionals_subtotal'] == Decimal('-8500.00')
        assert totals['subtotal_approved'] == Decimal('3200.00')

    def test_removal_entry_rejected(self, session, assessment, estimate_lines):
        removal = ledger_service.remove_original(
            session, assessment.id, estimate_lines[0].id, 'Part not damaged'
        ).line_item
        ledger_service.approve(session, assessment.id, removal.id)

        with pytest.raises(InvalidStateError) as exc_info:
            reverse_approved(session, assessment.id, removal.id, REASON)

        assert 'reinstate the original line instead' in exc_info.value.message

    def test_audit_entry_records_before_and_after(self, session, assessment, approved_item):
        result = reverse_approved(session, assessment.id, approved_item.id, REASON, actor=ACTOR)

        log = session.query(AuditLog).filter(AuditLog.action == AuditAction.LINE_ITEM_REVERSED).one()
        assert result.audit_recorded is True
        assert log.entity_id == str(approved_item.id)
        assert log.assessment_id == assessment.id
        assert log.changed_by == ACTOR
        assert log.reason == REASON
        assert json.loads(log.old_value) == {'effective_amount': '5000.00'}
        assert json.loads(log.new_value) == {'effective_amount': '0.00'}
        assert log.details['reversal_id'] == result.line_item.id


class TestReinstateDeclined:
    """Tests for reinstate_declined()."""

    def test_appends_entry_with_intended_amount(self, session, assessment, declined_item):
        assert total_approved(session, assessment) == Decimal('0.00')

        result = reinstate_declined(session, assessment.id, declined_item.id, 'Insurer accepted on appeal')

        reversal = result.line_item
        assert reversal.action == LineItemAction.REVERSAL
        assert reversal.status == LineItemStatus.APPROVED
        assert reversal.amount == Decimal('5000.00')
        assert reversal.reverses_line_id == declined_item.id
        assert total_approved(session, assessment) == Decimal('5000.00')

    def test_declined_item_keeps_status(self, session, assessment, declined_item):
        reinstate_declined(session, assessment.id, declined_item.id, 'Insurer accepted on appeal')

        session.refresh(declined_item)
        assert declined_item.status == LineItemStatus.DECLINED
        assert declined_item.decline_reason == 'Not covered'

    def test_cannot_reinstate_twice(self, session, assessment, declined_item):
        reinstate_declined(session, assessment.id, declined_item.id, 'Insurer accepted on appeal')

        with pytest.raises(InvalidStateError):
            reinstate_declined(session, assessment.id, declined_item.id, 'Insurer accepted on appeal')

    def test_approved_item_rejected(self, session, assessment, approved_item):
        with pytest.raises(InvalidStateError) as exc_info:
            reinstate_declined(session, assessment.id, approved_item.id, 'Insurer accepted on appeal')

        assert 'Only declined items can be reinstated' in exc_info.value.message

    def test_reason_too_short(self, session, assessment, declined_item):
        with pytest.raises(ValidationError):
            reinstate_declined(session, assessment.id, declined_item.id, 'appeal')

    def test_audited_as_reinstated(self, session, assessment, declined_item):
        reinstate_declined(session, assessment.id, declined_item.id, 'Insurer accepted on appeal', actor=ACTOR)

        log = session.query(AuditLog).filter(AuditLog.action == AuditAction.LINE_ITEM_REINSTATED).one()
        assert json.loads(log.old_value) == {'effective_amount': '0.00'}
        assert json.loads(log.new_value) == {'effective_amount': '5000.00'}


class TestReinstateRemovedOriginal:
    """Tests for removing original estimate lines and cancelling the removal."""

    @pytest.fixture
    def approved_removal(self, session, assessment, estimate_lines):
        removal = ledger_service.remove_original(
            session, assessment.id, estimate_lines[0].id, 'Bumper can be repaired'
        ).line_item
        return ledger_service.approve(session, assessment.id, removal.id).line_item

    def test_approved_removal_subtracts_original(self, session, assessment, approved_removal):
        assert approved_removal.amount == Decimal('-8500.00')
        assert total_approved(session, assessment) == Decimal('3200.00')

    def test_reinstate_by_removal_id(self, session, assessment, approved_removal):
        result = reinstate_removed_original(session, assessment.id, approved_removal.id, 'Repair quote rejected')

        assert result.line_item.amount == Decimal('8500.00')
        assert result.line_item.reverses_line_id == approved_removal.id
        assert total_approved(session, assessment) == Decimal('11700.00')

    def test_reinstate_by_original_line_id(self, session, assessment, estimate_lines, approved_removal):
        result = reinstate_removed_original(session, assessment.id, estimate_lines[0].id, 'Repair quote rejected')

        assert result.line_item.reverses_line_id == approved_removal.id
        assert total_approved(session, assessment) == Decimal('11700.00')

    def test_original_line_untouched(self, session, assessment, estimate_lines, approved_removal):
        reinstate_removed_original(session, assessment.id, approved_removal.id, 'Repair quote rejected')

        original = session.get(LineItem, estimate_lines[0].id)
        assert original.status == LineItemStatus.APPROVED
        assert original.amount == Decimal('8500.00')

    def test_cannot_reinstate_twice(self, session, assessment, approved_removal):
        reinstate_removed_original(session, assessment.id, approved_removal.id, 'Repair quote rejected')

        with pytest.raises(InvalidStateError):
            reinstate_removed_original(session, assessment.id, approved_removal.id, 'Repair quote rejected')

    def test_pending_removal_rejected(self, session, assessment, estimate_lines):
        removal = ledger_service.remove_original(
            session, assessment.id, estimate_lines[0].id, 'Bumper can be repaired'
        ).line_item

        with pytest.raises(InvalidStateError) as exc_info:
            reinstate_removed_original(session, assessment.id, removal.id, 'Repair quote rejected')

        assert 'still pending' in exc_info.value.message

    def test_line_that_was_never_removed(self, session, assessment, estimate_lines):
        with pytest.raises(InvalidStateError) as exc_info:
            reinstate_removed_original(session, assessment.id, estimate_lines[1].id, 'Repair quote rejected')

        assert 'has not been removed' in exc_info.value.message

    def test_original_can_be_removed_again_after_reinstatement(self, session, assessment, estimate_lines, approved_removal):
        reinstate_removed_original(session, assessment.id, approved_removal.id, 'Repair quote rejected')

        result = ledger_service.remove_original(session, assessment.id, estimate_lines[0].id, 'Second opinion')
        assert result.line_item.status == LineItemStatus.PENDING

    def test_declined_removal_then_reinstated_applies_removal(self, session, assessment, estimate_lines):
        removal = ledger_service.remove_original(
            session, assessment.id, estimate_lines[0].id, 'Bumper can be repaired'
        ).line_item
        ledger_service.decline(session, assessment.id, removal.id, 'Insurer wants replacement')
        assert total_approved(session, assessment) == Decimal('11700.00')

        reinstate_declined(session, assessment.id, removal.id, 'Insurer changed their mind')

        assert total_approved(session, assessment) == Decimal('3200.00')
        with pytest.raises(InvalidStateError):
            ledger_service.remove_original(session, assessment.id, estimate_lines[0].id, 'Again')

    def test_declined_removal_of_reversed_original_cannot_be_reinstated(self, session, assessment, estimate_lines):
        """The original line is cancelled once, never twice."""
        original = estimate_lines[0]
        removal = ledger_service.remove_original(
            session, assessment.id, original.id, 'Bumper can be repaired'
        ).line_item
        ledger_service.decline(session, assessment.id, removal.id, 'Insurer wants replacement')
        reverse_approved(session, assessment.id, original.id, 'Line belongs to another claim')
        count = len(ledger(session, assessment))

        with pytest.raises(InvalidStateError) as exc_info:
            reinstate_declined(session, assessment.id, removal.id, 'Insurer changed their mind')

        assert 'can no longer be applied' in exc_info.value.message
        assert len(ledger(session, assessment)) == count
        assert total_approved(session, assessment) == Decimal('3200.00')

    def test_removal_applied_by_reinstatement_is_final(self, session, assessment, estimate_lines):
        removal = ledger_service.remove_original(
            session, assessment.id, estimate_lines[0].id, 'Bumper can be repaired'
        ).line_item
        ledger_service.decline(session, assessment.id, removal.id, 'Insurer wants replacement')
        reinstate_declined(session, assessment.id, removal.id, 'Insurer changed their mind')

        for target_id in (removal.id, estimate_lines[0].id):
            with pytest.raises(InvalidStateError) as exc_info:
                reinstate_removed_original(session, assessment.id, target_id, 'Repair quote rejected')
            assert 'that removal is final' in exc_info.value.message

        assert total_approved(session, assessment) == Decimal('3200.00')

    def test_declined_removal_not_yet_reinstated(self, session, assessment, estimate_lines):
        removal = ledger_service.remove_original(
            session, assessment.id, estimate_lines[0].id, 'Bumper can be repaired'
        ).line_item
        ledger_service.decline(session, assessment.id, removal.id, 'Insurer wants replacement')

        with pytest.raises(InvalidStateError) as exc_info:
            reinstate_removed_original(session, assessment.id, removal.id, 'Repair quote rejected')

        assert 'already in effect' in exc_info.value.message


class TestAuditFailure:
    """Audit failures never undo a committed ledger entry."""

    def test_reversal_persists_with_warning(self, session, assessment, approved_item, broken_audit):
        result = reverse_approved(session, assessment.id, approved_item.id, REASON)

        assert result.audit_recorded is False
        assert len(result.warnings) == 1
        assert 'could not be saved' in result.warnings[0]

        persisted = session.get(LineItem, result.line_item.id)
        assert persisted is not None
        assert persisted.reverses_line_id == approved_item.id
        assert total_approved(session, assessment) == Decimal('0.00')

    def test_reinstatement_persists_with_warning(self, session, assessment, declined_item, broken_audit):
        result = reinstate_declined(session, assessment.id, declined_item.id, 'Insurer accepted on appeal')

        assert result.audit_recorded is False
        assert total_approved(session, assessment) == Decimal('5000.00')
