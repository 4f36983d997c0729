"""
Shared pytest fixtures.

Each test gets its own SQLite database file so that two independent sessions
(two "requests") can interleave reads and writes against the same data.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["INVITATION_CLEANUP_ENABLED"] = "false"
os.environ["MAILGUN_API_KEY"] = ""
os.environ["SENDGRID_API_KEY"] = ""
os.environ["APP_URL"] = "https://app.leasedesk.test"
os.environ["AGREEMENT_NOTIFICATION_EMAIL"] = ""

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base, get_db
from app.dependencies import get_document_renderer, get_notification_gateway
from app.main import app
from app.models.lease import Lease
from app.models.property import Property, Unit
from app.models.tenant import Tenant
from app.models.user import User, UserRole
from app.services.auth import create_access_token, get_password_hash
from app.services.invitations import InvitationBroker
from app.services.lease_agreements import AgreementLifecycleManager
from app.services.signatures import SignerInfo


class RecordingNotifier:
    """NotificationGateway double: records every send, optionally failing."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, template, vars):
        self.sent.append((to, template, vars))
        if self.fail:
            raise RuntimeError("mail transport down")
        return True

    def templates(self):
        return [template for _, template, _ in self.sent]

    def to(self, template):
        return [to for to, t, _ in self.sent if t == template]


class StubRenderer:
    """DocumentRenderer double producing a tiny fake PDF."""

    def __init__(self):
        self.calls = 0
        self.fail = False

    def render(self, lease, signatures, template_content=None):
        self.calls += 1
        if self.fail:
            raise RuntimeError("renderer crashed")
        roles = ",".join(sorted(s.signer_type.value for s in signatures))
        return f"%PDF-1.4 lease={lease.id} signers={roles}".encode()


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def renderer():
    return StubRenderer()


@pytest.fixture
def make_manager(notifier, renderer):
    def _make(session):
        return AgreementLifecycleManager(session, notifier=notifier, renderer=renderer)
    return _make


@pytest.fixture
def manager(db, make_manager):
    return make_manager(db)


@pytest.fixture
def broker(db, notifier):
    return InvitationBroker(db, notifier=notifier)


def create_lease(db, tenant_name="Jane Renter", tenant_email=None, unit_number="2B"):
    prop = Property(name="Maple Court", street="12 Maple St", city="Springfield", state="IL", zip_code="62704")
    db.add(prop)
    db.flush()
    unit = Unit(property_id=prop.id, unit_number=unit_number)
    tenant = Tenant(name=tenant_name, email=tenant_email)
    db.add_all([unit, tenant])
    db.flush()
    lease = Lease(
        unit_id=unit.id,
        tenant_id=tenant.id,
        start_date=date(2026, 11, 1),
        end_date=date(2027, 10, 31),
        monthly_rent=Decimal("1850.00"),
        security_deposit=Decimal("1850.00"),
    )
    db.add(lease)
    db.commit()
    db.refresh(lease)
    return lease


def create_user(db, email, role=UserRole.landlord, password="correct-horse", tenant_id=None):
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        role=role,
        full_name="Pat Manager" if role == UserRole.landlord else "Jane Renter",
        tenant_id=tenant_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def tenant_signer(email="jane@example.com", **kw):
    return SignerInfo(name="Jane Renter", email=email, ip_address="203.0.113.7", **kw)


def landlord_signer(email="pat@leasedesk.com", **kw):
    return SignerInfo(name="Pat Manager", email=email, ip_address="198.51.100.2", **kw)


@pytest.fixture
def lease(db):
    return create_lease(db)


@pytest.fixture
def client(session_factory, notifier, renderer):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_notification_gateway] = lambda: notifier
    app.dependency_overrides[get_document_renderer] = lambda: renderer
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def landlord(db):
    return create_user(db, "pat@leasedesk.com")


@pytest.fixture
def landlord_headers(landlord):
    token = create_access_token(landlord.id, landlord.email, landlord.role)
    return {"Authorization": f"Bearer {token}"}
