"""Assessment Service - assessments and the insurer clients they belong to."""

import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from claimdesk.exceptions import ValidationError, NotFoundError
from claimdesk.models import Assessment, Client, AuditAction
from claimdesk.services.audit_service import AuditRecorder
from claimdesk.utils.number_format import parse_optional_amount

logger = logging.getLogger(__name__)

PERCENTAGE_FIELDS = ('borderline_writeoff_percentage', 'total_writeoff_percentage', 'salvage_percentage')


def _parse_percentage(value, field):
    try:
        percentage = parse_optional_amount(value, field, allow_negative=False)
    except ValueError as e:
        raise ValidationError(str(e), payload={'field': field})
    if percentage is not None and percentage > 100:
        raise ValidationError(f'{field} cannot exceed 100', payload={'field': field})
    return percentage


def create_client(session: Session, data: dict) -> Client:
    """
    Create an insurer client with its write-off percentages.

    Raises:
        ValidationError: If name is missing or a percentage is invalid
    """
    name = str(data.get('name') or '').strip()
    if not name:
        raise ValidationError('name is required', payload={'field': 'name'})

    client = Client(
        name=name,
        type=str(data.get('type') or 'insurance').strip(),
        is_active=True
    )
    for field in PERCENTAGE_FIELDS:
        setattr(client, field, _parse_percentage(data.get(field), field))

    try:
        session.add(client)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Client #{client.id} created: {name}")
    return client


def create_assessment(session: Session, data: dict, actor: str = None, default_vat_percentage=Decimal('15'), audit: AuditRecorder = None) -> Assessment:
    """
    Create an assessment.

    Args:
        data: dict with 'assessment_number', optional 'client_id' and 'vat_percentage'

    Raises:
        ValidationError: If the number is missing or already used
        NotFoundError: If client_id does not exist
    """
    audit = audit or AuditRecorder(session)
    number = str(data.get('assessment_number') or '').strip()
    if not number:
        raise ValidationError('assessment_number is required', payload={'field': 'assessment_number'})

    vat_percentage = _parse_percentage(data.get('vat_percentage'), 'vat_percentage')
    if vat_percentage is None:
        vat_percentage = Decimal(str(default_vat_percentage))

    client_id = data.get('client_id')
    try:
        if client_id is not None:
            client = session.query(Client).filter(Client.id == client_id).first()
            if not client:
                raise NotFoundError(f'Client #{client_id} not found')

        assessment = Assessment(
            assessment_number=number,
            client_id=client_id,
            vat_percentage=vat_percentage
        )
        session.add(assessment)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationError(f'Assessment number {number} already exists', payload={'field': 'assessment_number'})
    except Exception:
        session.rollback()
        raise

    logger.info(f"Assessment #{assessment.id} created ({number})")
    audit.record(
        AuditAction.ASSESSMENT_CREATED, assessment.id, actor,
        entity_type='assessment',
        new_value={'assessment_number': number, 'client_id': client_id}
    )
    return assessment
