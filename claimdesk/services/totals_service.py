"""
Totals Service - derives estimate totals and display flags from the ledger.

Reversals are approved entries with signed amounts, so the approved total is a
plain fold over the ledger: reversed entries net to zero and reinstated ones
count once. The per-item flags computed here are for display only.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Any

from claimdesk.models import LineItem, LineItemAction, LineItemStatus, LineItemSource
from claimdesk.utils.number_format import to_money

ZERO = Decimal('0.00')


def approved_total(items: Iterable[LineItem]) -> Decimal:
    """sum(amount for item in ledger where status == approved)"""
    return to_money(sum((item.amount for item in items if item.status == LineItemStatus.APPROVED), ZERO))


def reversed_flags(items: Iterable[LineItem]) -> Dict[int, bool]:
    """Map each entry id to True when any reversal targets it."""
    items = list(items)
    targeted = {
        item.reverses_line_id for item in items
        if item.action == LineItemAction.REVERSAL and item.reverses_line_id is not None
    }
    return {item.id: item.id in targeted for item in items}


def _removal_states(items: List[LineItem], flags: Dict[int, bool]) -> Dict[int, str]:
    """
    Removal state of each original estimate line: 'pending' when a removal
    awaits approval, 'removed' when a removal is in effect.
    """
    states = {}
    for item in items:
        if item.action != LineItemAction.REMOVED or item.original_line_id is None:
            continue
        reversed_ = flags.get(item.id, False)
        if item.status == LineItemStatus.PENDING:
            states.setdefault(item.original_line_id, 'pending')
        elif (item.status == LineItemStatus.APPROVED and not reversed_) or \
                (item.status == LineItemStatus.DECLINED and reversed_):
            states[item.original_line_id] = 'removed'
    return states


def calculate_totals(items: Iterable[LineItem], vat_percentage=Decimal('15')) -> Dict[str, Decimal]:
    """
    Calculate approved totals for an assessment ledger.

    Returns:
        dict with estimate_subtotal, additionals_subtotal, subtotal_approved,
        vat_percentage, vat_amount_approved, total_approved, pending_total and
        declined_total
    """
    items = list(items)
    vat_percentage = Decimal(str(vat_percentage if vat_percentage is not None else 0))

    estimate_subtotal = ZERO
    additionals_subtotal = ZERO
    pending_total = ZERO
    declined_total = ZERO

    for item in items:
        if item.status == LineItemStatus.APPROVED:
            if item.source == LineItemSource.ESTIMATE:
                estimate_subtotal += item.amount
            else:
                additionals_subtotal += item.amount
        elif item.status == LineItemStatus.PENDING:
            pending_total += item.amount
        else:
            declined_total += item.amount

    subtotal = estimate_subtotal + additionals_subtotal
    vat_amount = to_money(subtotal * vat_percentage / Decimal('100'))

    return {
        'estimate_subtotal': to_money(estimate_subtotal),
        'additionals_subtotal': to_money(additionals_subtotal),
        'subtotal_approved': to_money(subtotal),
        'vat_percentage': to_money(vat_percentage),
        'vat_amount_approved': vat_amount,
        'total_approved': to_money(subtotal) + vat_amount,
        'pending_total': to_money(pending_total),
        'declined_total': to_money(declined_total),
    }


def build_ledger_view(items: Iterable[LineItem], vat_percentage=Decimal('15')) -> Dict[str, Any]:
    """
    View model for the additionals tab: every entry in audit order with its
    display flags and the permitted actions, plus the totals.
    """
    items = list(items)
    flags = reversed_flags(items)
    removal_states = _removal_states(items, flags)

    reversal_sums: Dict[int, Decimal] = {}
    for item in items:
        if item.action == LineItemAction.REVERSAL and item.reverses_line_id is not None:
            reversal_sums[item.reverses_line_id] = reversal_sums.get(item.reverses_line_id, ZERO) + item.amount

    rows = []
    for item in items:
        is_reversed = flags[item.id]
        is_approved = item.status == LineItemStatus.APPROVED
        is_declined = item.status == LineItemStatus.DECLINED
        is_original = item.source == LineItemSource.ESTIMATE and item.action == LineItemAction.ADDED
        removal_state = removal_states.get(item.id) if is_original else None

        # A declined removal only applies while its original still counts in full
        removal_applicable = item.action != LineItemAction.REMOVED or (
            not flags.get(item.original_line_id, False)
            and item.original_line_id not in removal_states
        )

        own = item.amount if is_approved else ZERO
        row = item.to_dict()
        row.update({
            'is_reversed': is_reversed,
            'is_removed': removal_state == 'removed',
            'removal_pending': removal_state == 'pending',
            'effective_amount': str(to_money(own + reversal_sums.get(item.id, ZERO))),
            'can_delete': item.status == LineItemStatus.PENDING,
            'can_reverse': (
                is_approved and item.action == LineItemAction.ADDED
                and not is_reversed and removal_state is None
            ),
            'can_reinstate': not is_reversed and (
                (is_declined and item.action != LineItemAction.REVERSAL and removal_applicable)
                or (is_approved and item.action == LineItemAction.REMOVED)
            ),
            'can_remove': is_original and is_approved and not is_reversed and removal_state is None,
        })
        rows.append(row)

    totals = calculate_totals(items, vat_percentage)
    return {
        'line_items': rows,
        'totals': {key: str(value) for key, value in totals.items()},
    }
