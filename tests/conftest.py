import pytest
import uuid
from decimal import Decimal

from claimdesk import create_app
from claimdesk.database import get_session, create_all, drop_all
from claimdesk.models import Client, Assessment
from claimdesk.services import ledger_service


ACTOR = 'engineer@claimdesk.test'


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(autouse=True)
def database(app):
    """Fresh schema for every test."""
    create_all()
    yield
    get_session().remove()
    drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def actor_headers():
    return {'X-Actor': ACTOR}


@pytest.fixture(scope='function')
def session():
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope='function')
def insurer(session):
    """Insurer client with write-off percentages."""
    insurer = Client(
        name='Test Insurance Co',
        type='insurance',
        borderline_writeoff_percentage=Decimal('65.00'),
        total_writeoff_percentage=Decimal('70.00'),
        salvage_percentage=Decimal('28.00'),
        is_active=True
    )
    session.add(insurer)
    session.commit()
    return insurer


@pytest.fixture(scope='function')
def assessment(session, insurer):
    """Assessment with 15% VAT."""
    suffix = str(uuid.uuid4())[:8]
    assessment = Assessment(
        assessment_number=f'ASM-2025-{suffix}',
        client_id=insurer.id,
        vat_percentage=Decimal('15.00')
    )
    session.add(assessment)
    session.commit()
    return assessment


@pytest.fixture(scope='function')
def pending_item(session, assessment):
    """Pending additional of R 5 000.00."""
    result = ledger_service.add_line_item(
        session, assessment.id, {'description': 'Bumper repair', 'amount': '5000'}, actor=ACTOR
    )
    return result.line_item


@pytest.fixture(scope='function')
def approved_item(session, assessment, pending_item):
    return ledger_service.approve(session, assessment.id, pending_item.id, actor=ACTOR).line_item


@pytest.fixture(scope='function')
def declined_item(session, assessment, pending_item):
    return ledger_service.decline(
        session, assessment.id, pending_item.id, 'Not covered', actor=ACTOR
    ).line_item


@pytest.fixture(scope='function')
def estimate_lines(session, assessment):
    """Two original estimate lines (approved)."""
    return ledger_service.import_estimate_lines(
        session, assessment.id,
        [
            {'description': 'Front bumper replace', 'amount': '8500.00'},
            {'description': 'Headlamp LH', 'amount': '3200.00'},
        ],
        actor=ACTOR
    ).line_items


@pytest.fixture(scope='function')
def broken_audit(monkeypatch):
    """Make every audit write fail as if the audit store were down."""
    def explode(*args, **kwargs):
        raise RuntimeError('audit store unavailable')

    monkeypatch.setattr('claimdesk.services.audit_service.AuditLog', explode)
