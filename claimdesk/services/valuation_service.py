"""
Valuation Service - adjusted vehicle values per base-value variant.

For each variant (trade, market, retail) the adjusted value applies, in order:

1. the fixed valuation adjustment
2. the percentage-of-base valuation adjustment
3. the condition adjustment value (flat amount)

Extras are added on top to give the total adjusted value, from which the
client's write-off thresholds are derived. The condition adjustment
percentage is display-only and never feeds back into the adjusted value.
"""

import logging
from decimal import Decimal
from typing import Dict, Any, Optional

from sqlalchemy.orm import Session

from claimdesk.exceptions import ValidationError
from claimdesk.models import VehicleValues, VARIANTS, AuditAction
from claimdesk.services.audit_service import AuditRecorder
from claimdesk.services.ledger_service import get_assessment
from claimdesk.utils.number_format import to_money, parse_optional_amount

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
HUNDRED = Decimal('100')

INPUT_FIELDS = (
    'trade_value', 'market_value', 'retail_value',
    'valuation_adjustment', 'valuation_adjustment_percentage', 'condition_adjustment_value',
)
TEXT_FIELDS = ('sourced_from', 'sourced_code', 'remarks')


def _dec(value) -> Decimal:
    if value is None or value == '':
        return ZERO
    return Decimal(str(value))


def adjusted_value(base_value, fixed_adjustment=None, percentage_adjustment=None, condition_adjustment_value=None) -> Decimal:
    """
    Apply the adjustment chain to a base value.

    Examples:
        adjusted_value(240000, condition_adjustment_value=12000) -> Decimal('252000.00')
        adjusted_value(100000, 5000, 10) -> Decimal('115000.00')
    """
    base = _dec(base_value)
    value = base + _dec(fixed_adjustment)
    value += base * _dec(percentage_adjustment) / HUNDRED
    value += _dec(condition_adjustment_value)
    return to_money(value)


def condition_adjustment_percentage(adjustment_value, base_value) -> Decimal:
    """
    Display-only percentage equivalent of the condition adjustment:
    adjustment_value / base_value * 100, or 0 when there is no base value.
    """
    base = _dec(base_value)
    if base == 0:
        return ZERO
    return to_money(_dec(adjustment_value) / base * HUNDRED)


def extras_total(extras, variant: str) -> Decimal:
    """Sum the extras' value for one variant (e.g. 'retail')."""
    total = ZERO
    for extra in extras or []:
        total += _dec(extra.get(f'{variant}_value'))
    return to_money(total)


def writeoff_thresholds(total_adjusted, client=None) -> Dict[str, Optional[Decimal]]:
    """
    Borderline, total write-off and salvage amounts for a total adjusted value,
    using the client's percentages. Missing percentages yield None.
    """
    thresholds = {}
    for key, attr in (
        ('borderline_writeoff', 'borderline_writeoff_percentage'),
        ('total_writeoff', 'total_writeoff_percentage'),
        ('salvage', 'salvage_percentage'),
    ):
        percentage = getattr(client, attr, None) if client is not None else None
        if percentage is None:
            thresholds[key] = None
        else:
            thresholds[key] = to_money(_dec(total_adjusted) * _dec(percentage) / HUNDRED)
    return thresholds


def calculate_vehicle_values(inputs: Dict[str, Any], client=None) -> Dict[str, Any]:
    """
    Derive every computed valuation field from the inputs.

    Args:
        inputs: dict with the base values, adjustments and 'extras'
        client: object exposing the write-off percentages (optional)

    Returns:
        dict keyed by VehicleValues column names, plus
        '<variant>_condition_adjustment_percentage' for display
    """
    fixed = inputs.get('valuation_adjustment')
    percentage = inputs.get('valuation_adjustment_percentage')
    condition = inputs.get('condition_adjustment_value')
    extras = inputs.get('extras') or []

    derived = {}
    for variant in VARIANTS:
        base = inputs.get(f'{variant}_value')
        if base is None:
            for name in ('adjusted_value', 'extras_total', 'total_adjusted_value'):
                derived[f'{variant}_{name}'] = None
            for prefix in ('borderline_writeoff', 'total_writeoff', 'salvage'):
                derived[f'{prefix}_{variant}'] = None
            derived[f'{variant}_condition_adjustment_percentage'] = ZERO
            continue

        adjusted = adjusted_value(base, fixed, percentage, condition)
        extras_sum = extras_total(extras, variant)
        total_adjusted = to_money(adjusted + extras_sum)

        derived[f'{variant}_adjusted_value'] = adjusted
        derived[f'{variant}_extras_total'] = extras_sum
        derived[f'{variant}_total_adjusted_value'] = total_adjusted
        for prefix, amount in writeoff_thresholds(total_adjusted, client).items():
            derived[f'{prefix}_{variant}'] = amount
        derived[f'{variant}_condition_adjustment_percentage'] = condition_adjustment_percentage(condition, base)

    return derived


def _parse_extras(raw) -> list:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError('extras must be a list', payload={'field': 'extras'})

    extras = []
    for index, extra in enumerate(raw):
        if not isinstance(extra, dict) or not str(extra.get('description') or '').strip():
            raise ValidationError(f'Extra {index + 1} requires a description', payload={'field': 'extras'})
        parsed = {'description': str(extra['description']).strip()}
        for variant in VARIANTS:
            key = f'{variant}_value'
            try:
                amount = parse_optional_amount(extra.get(key), key, allow_negative=False)
            except ValueError as e:
                raise ValidationError(f'Extra {index + 1}: {e}', payload={'field': 'extras'})
            parsed[key] = str(amount) if amount is not None else None
        extras.append(parsed)
    return extras


def parse_valuation_inputs(data: dict) -> Dict[str, Any]:
    """
    Validate user input for a valuation update.

    Raises:
        ValidationError: If any numeric field is invalid
    """
    parsed = {}
    for field in INPUT_FIELDS:
        if field not in data:
            continue
        allow_negative = field not in ('trade_value', 'market_value', 'retail_value')
        try:
            parsed[field] = parse_optional_amount(data.get(field), field, allow_negative)
        except ValueError as e:
            raise ValidationError(str(e), payload={'field': field})
    for field in TEXT_FIELDS:
        if field in data:
            parsed[field] = str(data.get(field) or '').strip() or None
    if 'extras' in data:
        parsed['extras'] = _parse_extras(data.get('extras'))
    return parsed


def get_vehicle_values(session: Session, assessment_id: int) -> Optional[VehicleValues]:
    return session.query(VehicleValues).filter(
        VehicleValues.assessment_id == assessment_id
    ).first()


def vehicle_values_view(values: VehicleValues) -> Dict[str, Any]:
    """Saved values plus the display-only condition adjustment percentages."""
    percentages = {
        f'{variant}_condition_adjustment_percentage': str(condition_adjustment_percentage(
            values.condition_adjustment_value, getattr(values, f'{variant}_value')
        ))
        for variant in VARIANTS
    }
    return {
        'vehicle_values': values.to_dict(),
        'condition_adjustment_percentages': percentages,
    }


def save_vehicle_values(session: Session, assessment_id: int, data: dict, actor: str = None, audit: AuditRecorder = None) -> Dict[str, Any]:
    """
    Create or update the valuation for an assessment and recompute every
    derived field.

    Returns:
        dict with the saved values, display percentages and any warnings
    """
    audit = audit or AuditRecorder(session)
    parsed = parse_valuation_inputs(data)

    try:
        assessment = get_assessment(session, assessment_id)
        values = get_vehicle_values(session, assessment_id)
        old_snapshot = values.to_dict() if values else None
        if values is None:
            values = VehicleValues(assessment_id=assessment_id)
            session.add(values)

        for field, value in parsed.items():
            setattr(values, field, value)

        inputs = {field: getattr(values, field) for field in INPUT_FIELDS}
        inputs['extras'] = values.extras or []
        derived = calculate_vehicle_values(inputs, assessment.client)

        for field, value in derived.items():
            if not field.endswith('_condition_adjustment_percentage'):
                setattr(values, field, value)

        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Vehicle values saved for assessment #{assessment_id}")
    warnings = []
    recorded = audit.record(
        AuditAction.VALUATION_UPDATED, assessment_id, actor,
        entity_type='assessment',
        old_value=old_snapshot,
        new_value=values.to_dict()
    )
    if not recorded:
        warnings.append(f'Audit record for {AuditAction.VALUATION_UPDATED.value} on #{assessment_id} could not be saved')

    view = vehicle_values_view(values)
    view['warnings'] = warnings
    return view
