from __future__ import annotations

import os

os.environ.setdefault("APP_ENV", "test")

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.db.base_class import Base  # noqa: E402
from app.db.session import SessionLocal, engine  # noqa: E402
from app.models.source_models import Expense, InvoicePayment, SourceInvoice  # noqa: E402
from app.models.tax_models import TaxProfile  # noqa: E402
from app.services.tax_reporting.aggregation import PeriodAggregation, PeriodDetails, PeriodTotals  # noqa: E402
from app.storage.s3_client import S3Client, get_report_storage  # noqa: E402

TENANT = "ws_test"
# Reference instant for tests: mid Q2 2025
NOW = datetime(2025, 5, 15, 12, 0, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_database_state():
    """Ensure each test sees a fresh database schema."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db_session():
    """Provide a database session for tests."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def profile_factory(db_session):
    """Insert a tax profile window directly, bypassing the service."""
    def _create(tenant_id: str = TENANT, **overrides) -> TaxProfile:
        data = {
            "tenant_id": tenant_id,
            "country": "DE",
            "regime": "STANDARD_VAT",
            "vat_enabled": True,
            "vat_id": "DE123456789",
            "vat_accounting_method": "SOLL",
            "filing_frequency": "QUARTERLY",
            "currency": "EUR",
            "effective_from": utc(2020, 1, 1),
        }
        data.update(overrides)
        profile = TaxProfile(**data)
        db_session.add(profile)
        db_session.commit()
        return profile
    return _create


@pytest.fixture
def documents(db_session):
    """Helpers that write source documents (invoices, payments, expenses)."""
    counter = {"n": 0}

    def _next_id(prefix: str) -> str:
        counter["n"] += 1
        return f"{prefix}_{counter['n']}"

    class _Documents:
        def invoice(self, issued_at, net, tax, tenant_id=TENANT, status="ISSUED", cross_border=False, total=None):
            invoice = SourceInvoice(
                id=_next_id("inv"),
                tenant_id=tenant_id,
                number=f"INV-{counter['n']:04d}",
                customer_name="Acme GmbH",
                status=status,
                issued_at=issued_at,
                net_amount_cents=net,
                tax_amount_cents=tax,
                total_amount_cents=net + tax if total is None else total,
                is_cross_border=cross_border,
            )
            db_session.add(invoice)
            db_session.commit()
            return invoice

        def payment(self, invoice, amount, paid_at):
            payment = InvoicePayment(id=_next_id("pay"), invoice_id=invoice.id, amount_cents=amount, paid_at=paid_at)
            db_session.add(payment)
            db_session.commit()
            return payment

        def expense(self, expense_date, total, tax, tenant_id=TENANT, status="BOOKED", archived_at=None):
            expense = Expense(
                id=_next_id("exp"),
                tenant_id=tenant_id,
                status=status,
                expense_date=expense_date,
                merchant_name="Office Supplies AG",
                total_amount_cents=total,
                tax_amount_cents=tax,
                archived_at=archived_at,
            )
            db_session.add(expense)
            db_session.commit()
            return expense

    return _Documents()


class FakeAggregation(PeriodAggregation):
    """Returns fixed totals for every period and records the calls."""

    def __init__(self, totals: PeriodTotals | None = None):
        self.totals = totals or PeriodTotals()
        self.calls: list[tuple] = []

    def get_details(self, tenant_id, start, end, method) -> PeriodDetails:
        raise NotImplementedError

    def get_totals(self, tenant_id, start, end, method) -> PeriodTotals:
        self.calls.append((tenant_id, start, end, method))
        return self.totals


@pytest.fixture
def storage(tmp_path):
    return S3Client(local_root=str(tmp_path / "reports"))


@pytest.fixture
def client(storage):
    """FastAPI TestClient acting for the test tenant."""
    from app.api.main import app

    app.dependency_overrides[get_report_storage] = lambda: storage
    try:
        yield TestClient(app, headers={"X-Tenant-Id": TENANT})
    finally:
        app.dependency_overrides.clear()
