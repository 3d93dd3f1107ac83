# backoffice/tests/conftest.py

from datetime import date, timedelta
from decimal import Decimal
from itertools import count

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import backoffice.models  # noqa: F401
from backoffice.core.db import Base, build_engine
from backoffice.credits.services import CreditService
from backoffice.customers.models import Customer
from backoffice.invoices.models import Invoice, derive_invoice_status
from backoffice.invoices.services import InvoiceService
from backoffice.ledger.services import LedgerService
from backoffice.payments.models import PaymentMethod
from backoffice.payments.schemas import RecordPaymentRequest
from backoffice.payments.services import PaymentService

TODAY = date(2025, 10, 15)
ACTOR = "user-42"

_invoice_numbers = count(1)


@pytest.fixture
def engine():
    """Fresh in-memory database per test; StaticPool keeps a single connection."""
    test_engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def db_session(engine):
    TestSession = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )
    session = TestSession()
    yield session
    session.close()


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def actor():
    return ACTOR


@pytest.fixture
def clock():
    return lambda: TODAY


@pytest.fixture
def audit_records():
    return []


@pytest.fixture
def recording_hook(audit_records):
    def hook(record):
        audit_records.append(record)
    return hook


@pytest.fixture
def payment_service(db_session, recording_hook, clock):
    return PaymentService(db_session, post_commit_hooks=[recording_hook], clock=clock)


@pytest.fixture
def credit_service(db_session, recording_hook, clock):
    return CreditService(db_session, post_commit_hooks=[recording_hook], clock=clock)


@pytest.fixture
def ledger_service(db_session):
    return LedgerService(db_session)


@pytest.fixture
def invoice_service(db_session, clock):
    return InvoiceService(db_session, clock=clock)


@pytest.fixture
def make_customer(db_session):
    """Factory for committed customers."""
    def _make(name="Acme Traders", opening_balance=Decimal("0.00"), company_name=None):
        customer = Customer(
            name=name,
            company_name=company_name,
            opening_balance=opening_balance,
            created_by=ACTOR,
        )
        db_session.add(customer)
        db_session.commit()
        return customer
    return _make


@pytest.fixture
def customer(make_customer):
    return make_customer()


@pytest.fixture
def make_invoice(db_session):
    """
    Factory for committed invoices. The balance defaults to the total and
    the status is derived the same way the engine derives it.
    """
    def _make(
        customer,
        total,
        invoice_date=TODAY - timedelta(days=10),
        due_date=None,
        balance=None,
        status=None,
    ):
        total = Decimal(str(total))
        balance = total if balance is None else Decimal(str(balance))
        if status is None:
            status = derive_invoice_status(balance, total, due_date, TODAY)
        invoice = Invoice(
            invoice_number=f"INV-{next(_invoice_numbers):05d}",
            customer_id=customer.id,
            invoice_date=invoice_date,
            due_date=due_date,
            total_amount=total,
            balance=balance,
            status=status,
            created_by=ACTOR,
        )
        db_session.add(invoice)
        db_session.commit()
        return invoice
    return _make


@pytest.fixture
def pay(payment_service):
    """Records a payment through the engine."""
    def _pay(customer, amount, payment_date=TODAY, invoice_ids=None, method=PaymentMethod.CASH):
        request = RecordPaymentRequest(
            customer_id=customer.id,
            amount=amount,
            payment_method=method,
            payment_date=payment_date,
            invoice_ids=invoice_ids,
        )
        return payment_service.allocate(request, ACTOR)
    return _pay
