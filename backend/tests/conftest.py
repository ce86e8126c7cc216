"""
Shared pytest fixtures.

Every test gets a fresh in-memory SQLite database with the full schema and
the GL categories seeded. ``client`` wires the FastAPI app to that database.
"""

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from parish_ledger.core.auth import create_access_token
from parish_ledger.core.database import Base, get_db

# Register every table with Base.metadata
from parish_ledger.shared.models.ingestion import IngestionLog  # noqa: F401
from parish_ledger.modules.members.models import Member, ZelleMemoMatch  # noqa: F401
from parish_ledger.modules.bank.models import BankTransaction  # noqa: F401
from parish_ledger.modules.finance import models as finance_models  # noqa: F401
from parish_ledger.modules.finance.gl_mapping import EXPENSE_CATEGORIES, INCOME_CATEGORIES
from parish_ledger.modules.finance.services import seed_categories
from parish_ledger.ingestion.parsers.chase_csv import compute_transaction_hash


# ================================================================
# DATABASE
# ================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    seed_categories(session, INCOME_CATEGORIES, EXPENSE_CATEGORIES)
    yield session
    session.close()


# ================================================================
# FACTORIES
# ================================================================

@pytest.fixture
def make_member(db):
    def _make(first_name="Almaz", last_name="Tesfay", **kwargs):
        member = Member(first_name=first_name, last_name=last_name, **kwargs)
        db.add(member)
        db.commit()
        return member
    return _make


@pytest.fixture
def operator(make_member):
    """Staff member recorded as collected_by."""
    return make_member("Dawit", "Kahsay", role="treasurer")


@pytest.fixture
def make_bank_txn(db):
    def _make(
        description="Zelle payment from ALMAZ G TESFAY 27250625041",
        amount="50.00",
        posting_date=date(2025, 1, 2),
        txn_type="ZELLE",
        **kwargs,
    ):
        amount = Decimal(amount)
        row = BankTransaction(
            transaction_hash=compute_transaction_hash(posting_date, description, amount),
            date=posting_date,
            amount=amount,
            description=description,
            type=txn_type,
            **kwargs,
        )
        db.add(row)
        db.commit()
        return row
    return _make


# ================================================================
# API
# ================================================================

@pytest.fixture
def client(session_factory, db):
    from parish_ledger.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(member_id: int, role: str = "member") -> dict:
        return {"Authorization": f"Bearer {create_access_token(member_id, role=role)}"}
    return _headers
