"""
Test configuration and shared fixtures for the rebate ledger test suite.

Uses an in-memory SQLite database by default (set TEST_DATABASE_URL to run
against PostgreSQL) with transaction-based isolation. Each test gets a clean
database state via automatic transaction rollback.
"""

import os
from datetime import datetime
from decimal import Decimal
from typing import Generator, Iterable, Optional, Tuple

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from core.database import Base
from utils.datetime_utils import BUSINESS_TZ

# Import all models to ensure they're registered with SQLAlchemy before any relationships are resolved
from models.department import Department
from models.referrer import Referrer
from models.transaction import Transaction
from models.test_detail import TestDetail
from models.referrer_rebate import ReferrerRebate  # noqa: F401
from models.rebate_contribution import RebateContribution  # noqa: F401
from models.category import Category  # noqa: F401
from models.expense import Expense  # noqa: F401
from models.expense_item import ExpenseItem  # noqa: F401
from models.activity_log import ActivityLog  # noqa: F401


# Test database URL
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")


def _create_test_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, echo=False)

    # One shared in-memory connection, with pysqlite's own transaction
    # handling turned off so SAVEPOINTs behave like they do on PostgreSQL.
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):  # type: ignore
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):  # type: ignore
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture(scope="session")
def db_engine():
    """
    Create a database engine for the test session.

    This engine is shared across all tests for performance.
    """
    engine = _create_test_engine(TEST_DATABASE_URL)

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Provide a database session for a test with automatic rollback.

    The session joins an outer transaction on its connection; anything the
    code under test commits only releases a savepoint, and the outer
    transaction is rolled back at teardown. Each test therefore gets a clean
    database state without recreating the schema.
    """
    connection = db_engine.connect()
    transaction = connection.begin()

    session = Session(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    # Teardown: rollback everything
    session.close()
    transaction.rollback()
    connection.close()


# Helper functions for creating rebate fixtures

def create_department(db_session: Session, name: str) -> Department:
    """Create and flush a department."""
    department = Department(name=name)
    db_session.add(department)
    db_session.flush()
    return department


def create_referrer(
    db_session: Session,
    last_name: str,
    first_name: str = "Maria",
    clinic_name: Optional[str] = None
) -> Referrer:
    """Create and flush a referring physician."""
    referrer = Referrer(
        first_name=first_name,
        last_name=last_name,
        clinic_name=clinic_name,
        status="active"
    )
    db_session.add(referrer)
    db_session.flush()
    return referrer


def create_transaction_with_tests(
    db_session: Session,
    referrer: Optional[Referrer],
    tests: Iterable[Tuple[Department, str]],
    transaction_date: Optional[datetime] = None,
    patient_last_name: str = "Santos"
) -> Tuple[Transaction, list[TestDetail]]:
    """
    Create a transaction and its active test details.

    Args:
        db_session: Database session
        referrer: Referring physician, or None for a walk-in
        tests: (department, discounted price) pairs
        transaction_date: Defaults to 2024-03-15 10:00 business time
        patient_last_name: Patient surname

    Returns:
        Tuple of (Transaction, test details in creation order)
    """
    transaction = Transaction(
        first_name="Juan",
        last_name=patient_last_name,
        referrer_id=referrer.id if referrer else None,
        transaction_date=transaction_date or datetime(2024, 3, 15, 10, 0, tzinfo=BUSINESS_TZ),
        status="active",
        user_id=1
    )
    db_session.add(transaction)
    db_session.flush()

    details = []
    for index, (department, price) in enumerate(tests):
        detail = TestDetail(
            transaction_id=transaction.id,
            department_id=department.id,
            test_name=f"{department.name} test {index + 1}",
            original_price=Decimal(price),
            discounted_price=Decimal(price),
            status="active"
        )
        db_session.add(detail)
        details.append(detail)
    db_session.flush()
    db_session.refresh(transaction)

    return transaction, details
