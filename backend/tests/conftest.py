"""
Pytest fixtures for contribution ledger tests.

Provides test database setup, two-tenant fixtures, a fixed clock, and a
customer card already assigned in Company A.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from contribution import create_app
from contribution.extensions import db
from contribution.models import Branch, Card, Company, Customer, User
from contribution.services.card_service import assign_card
from contribution.services.tenant_service import Actor, TenantContext

BUSINESS_DAY = date(2026, 3, 10)


def fixed_clock():
    return datetime(2026, 3, 10, 9, 30, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0.0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def clock():
    return fixed_clock


@pytest.fixture(scope='function')
def company_a(db_session):
    """Create Company A (first tenant)."""
    company = Company(name="Company A - Accra Susu", code="ACC", card_prefix="ACC", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Create Company B (second tenant)."""
    company = Company(name="Company B - Kumasi Savings", code="KSI", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def branch_a(db_session, company_a):
    branch = Branch(company_id=company_a.id, name="Madina")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session, company_b):
    branch = Branch(company_id=company_b.id, name="Adum")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def worker_a(db_session, company_a, branch_a):
    user = User(company_id=company_a.id, branch_id=branch_a.id, username="worker_a", full_name="Ama Worker")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def worker_a2(db_session, company_a, branch_a):
    user = User(company_id=company_a.id, branch_id=branch_a.id, username="worker_a2", full_name="Kofi Worker")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def worker_b(db_session, company_b, branch_b):
    user = User(company_id=company_b.id, branch_id=branch_b.id, username="worker_b")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def ceo_a(db_session, company_a):
    user = User(company_id=company_a.id, username="ceo_a")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def ceo_actor(ceo_a):
    return Actor(id=ceo_a.id, role="ceo")


@pytest.fixture(scope='function')
def worker_actor(worker_a):
    return Actor(id=worker_a.id, role="worker")


@pytest.fixture(scope='function')
def tenant_a(company_a):
    return TenantContext.scoped(company_a.id)


@pytest.fixture(scope='function')
def tenant_b(company_b):
    return TenantContext.scoped(company_b.id)


@pytest.fixture(scope='function')
def card_a(db_session, company_a):
    """100 boxes for 1000.00 (box price 10.00)."""
    card = Card(company_id=company_a.id, card_code="ACC-001", card_name="Standard", number_of_boxes=100, amount=Decimal("1000.00"))
    db_session.add(card)
    db_session.commit()
    return card


@pytest.fixture(scope='function')
def card_b(db_session, company_b):
    card = Card(company_id=company_b.id, card_code="CRD-001", card_name="Standard B", number_of_boxes=50, amount=Decimal("500.00"))
    db_session.add(card)
    db_session.commit()
    return card


@pytest.fixture(scope='function')
def customer_a(db_session, company_a, branch_a, worker_a, card_a):
    customer = Customer(
        company_id=company_a.id,
        branch_id=branch_a.id,
        worker_id=worker_a.id,
        card_id=card_a.id,
        name="Akosua Mensah",
        phone="0240000001",
        total_boxes=100,
        price_per_box=Decimal("10"),
        total_amount=Decimal("1000.00"),
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, company_b, branch_b, worker_b, card_b):
    customer = Customer(
        company_id=company_b.id,
        branch_id=branch_b.id,
        worker_id=worker_b.id,
        card_id=card_b.id,
        name="Yaw Boateng",
        total_boxes=50,
        price_per_box=Decimal("10"),
        total_amount=Decimal("500.00"),
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_card(db_session, tenant_a, customer_a, card_a, ceo_a):
    """customer_a holding card_a (100 boxes, 1000.00), nothing paid."""
    return assign_card(tenant_a, customer_a.id, card_a.id, ceo_a.id, clock=fixed_clock)
