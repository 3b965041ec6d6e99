"""
Pytest fixtures for the fabric inventory test suite.

Provides:
- an in-memory SQLite database per test
- a fixed clock (2024-03-10 09:00 UTC) and a recording email sender
- factories for fabrics and usage transactions
- a FastAPI TestClient with an Admin and a User account
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TECHTEX_SECRET_KEY", "test-secret-key-for-the-fabric-inventory-suite")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from techtex_core.app import models
from techtex_core.app.db import create_db_and_tables
from techtex_core.app.deps import get_clock, get_db, get_email_sender, get_password_hash
from techtex_core.app.schemas import (
    BagEntry, Fabric, FabricCategory, PurchaseTransaction, UsageStatus, UsageTransaction,
)
from techtex_core.app.services import (
    EmailSender, FixedClock, InventoryStore, NotificationService, SnapshotRepository,
)


class RecordingEmailSender(EmailSender):
    """Keeps every email instead of sending it."""

    def __init__(self):
        self.sent = []

    def send(self, email):
        self.sent.append(email)

    def subjects(self):
        return [e.subject for e in self.sent]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 10, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def outbox():
    return RecordingEmailSender()


@pytest.fixture
def store(db_session, clock, outbox):
    return InventoryStore(
        SnapshotRepository(db_session),
        clock=clock,
        notifier=NotificationService(clock, outbox, recipient="admin@techtex-bd.com"),
    )


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_fabric():
    def _make(fabric_id="Woven-1", code="WV-100", initial_stock=100.0, transactions=None,
              category=FabricCategory.WOVEN, name="Woven PP 90gsm"):
        return Fabric(
            id=fabric_id,
            code=code,
            name=name,
            category=category,
            initial_stock=initial_stock,
            transactions=transactions or [],
        )
    return _make


@pytest.fixture
def make_purchase(clock):
    def _make(tx_id="t-p-1", quantity=50.0, invoice_number=None):
        return PurchaseTransaction(id=tx_id, date=clock.now(), quantity=quantity, invoice_number=invoice_number)
    return _make


@pytest.fixture
def make_usage(clock):
    def _make(tx_id="t-u-1", status=UsageStatus.PENDING, pieces=10, per_piece=3.0,
              shipment_in_days=30, date=None, client_name="Acme Bags"):
        return UsageTransaction(
            id=tx_id,
            date=date or clock.now(),
            submitted_by="User",
            client_name=client_name,
            po_number="PO-778",
            machine_name_and_capacity="Loom 4 / 200kg",
            drawing_number="DRW-12",
            order_number="ORD-5501",
            shipment_date=clock.today() + timedelta(days=shipment_in_days),
            order_received_date=clock.today(),
            bags=[BagEntry(size="50x80", quantity=pieces)],
            fabric_consumption_per_piece=per_piece,
            status=status,
        )
    return _make


@pytest.fixture
def usage_payload(clock):
    """Request body for POST /fabrics/{id}/usages (10 pieces × 2 m² = 20 m²)."""
    return {
        "clientName": "Acme Bags",
        "poNumber": "PO-778",
        "machineNameAndCapacity": "Loom 4 / 200kg",
        "drawingNumber": "DRW-12",
        "orderNumber": "ORD-5501",
        "shipmentDate": (clock.today() + timedelta(days=3)).isoformat(),
        "orderReceivedDate": clock.today().isoformat(),
        "bags": [{"size": "50x80", "quantity": 6}, {"size": "60x90", "quantity": 4}],
        "fabricConsumptionPerPiece": 2.0,
    }


# =============================================================================
# API
# =============================================================================

@pytest.fixture
def app(session_factory, clock, outbox):
    from techtex_core.app.main import create_app

    application = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_clock] = lambda: clock
    application.dependency_overrides[get_email_sender] = lambda: outbox
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


def _add_user(session, username, role):
    session.add(models.User(
        full_name=username.title(),
        email=f"{username}@techtex-bd.com",
        username=username,
        password_hash=get_password_hash("secret123"),
        role=role,
    ))
    session.commit()


def _login(client, username):
    response = client.post("/auth/login", json={"username": username, "password": "secret123"})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def admin_headers(client, db_session):
    _add_user(db_session, "admin", "Admin")
    return _login(client, "admin")


@pytest.fixture
def user_headers(client, db_session):
    _add_user(db_session, "operator", "User")
    return _login(client, "operator")
