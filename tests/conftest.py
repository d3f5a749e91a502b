import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ["WHATSAPP_API_URL"] = ""

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base
from app.models.customer import Customer, CustomerStatus


def _sqlite_engine(url: str, **kwargs):
    engine = create_engine(url, connect_args={"check_same_thread": False}, **kwargs)

    # pysqlite does not emit BEGIN itself, which breaks SAVEPOINT handling.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def engine():
    database_url = os.getenv("TEST_DATABASE_URL")
    if database_url:
        engine = create_engine(database_url)
        Base.metadata.drop_all(engine)
        Base.metadata.create_all(engine)
    else:
        engine = _sqlite_engine("sqlite+pysqlite://", poolclass=StaticPool)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db_session(session_factory):
    # Services commit and roll back themselves, so each test gets a fresh
    # database instead of an outer transaction.
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _no_backoff_sleep(monkeypatch):
    sleeps: list[float] = []
    monkeypatch.setattr("app.services.numbering.time.sleep", sleeps.append)
    return sleeps


@pytest.fixture()
def make_customer(db_session):
    def _make(
        name: str = "Test Customer",
        monthly_fee: int = 150000,
        carried_debt: int = 0,
        status: CustomerStatus = CustomerStatus.active,
        phone: str | None = "081234567890",
    ) -> Customer:
        customer = Customer(
            name=name,
            phone=phone,
            monthly_fee=monthly_fee,
            carried_debt=carried_debt,
            status=status,
        )
        db_session.add(customer)
        db_session.commit()
        db_session.refresh(customer)
        return customer

    return _make


@pytest.fixture()
def customer(make_customer):
    return make_customer()


@pytest.fixture()
def bill(db_session, customer):
    from app.services import billing as billing_service

    summary = billing_service.generation.generate(db_session, 10, 2026)
    return summary["created"][0]
