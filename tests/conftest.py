"""
Pytest configuration and fixtures for the PropertyVerify API tests
"""
import itertools
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-which-is-long-enough-for-hs256"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MEDIA_ROOT"] = tempfile.mkdtemp(prefix="pv-media-")
os.environ["SMS_BACKEND"] = "console"
os.environ["EMAIL_BACKEND"] = "console"
os.environ["ADMIN_PHONE"] = "+2348000000000"
os.environ["ADMIN_EMAIL"] = "ops@example.com"

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_notifier, get_payment_gateway
from app.main import app
from app.models.base import Base
from app.models.property import Property, PropertyType
from app.models.user import User, UserRole
from app.services.notifications import NotificationDispatcher
from app.services.payments import GatewayTransaction, PaymentGatewayError
from app.services.verification import VerificationService
from app.utils.auth import create_access_token, get_password_hash

PASSWORD = "password123"
_seq = itertools.count(1)


class FakeGateway:
    """In-memory stand-in for the payment gateway; amounts are in kobo."""

    def __init__(self):
        self.transactions = {}
        self.verified = []
        self.initialized = []
        self.unreachable = False

    def add(self, reference, amount, status="success"):
        self.transactions[reference] = GatewayTransaction(reference=reference, status=status, amount=amount)

    def verify_transaction(self, reference):
        self.verified.append(reference)
        if self.unreachable:
            raise PaymentGatewayError("Gateway unreachable: connection refused")
        if reference not in self.transactions:
            raise PaymentGatewayError("Gateway error HTTP 400: Transaction reference not found")
        return self.transactions[reference]

    def initialize_transaction(self, email, amount, reference, metadata=None):
        self.initialized.append({"email": email, "amount": amount, "reference": reference, "metadata": metadata})
        return {
            "authorization_url": f"https://checkout.example.com/{reference}",
            "access_code": "ac_test",
            "reference": reference,
        }


class RecordingNotifier(NotificationDispatcher):
    """Runs deliveries inline and records them instead of sending."""

    def __init__(self, fail=False):
        super().__init__()
        self.sent = []
        self.fail = fail

    def _deliver_sms(self, phone, message):
        if self.fail:
            raise RuntimeError("SMS provider down")
        self.sent.append(("sms", phone, message))

    def _deliver_email(self, to_email, subject, text):
        if self.fail:
            raise RuntimeError("SMTP down")
        self.sent.append(("email", to_email, subject))


@pytest.fixture(scope="session")
def client():
    """Test client with the app lifespan (database init/teardown) running"""
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="session")
def database(client):
    return app.state.database


@pytest.fixture(autouse=True)
def fresh_schema(database):
    """Every test starts from empty tables"""
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db_session(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def gateway():
    fake = FakeGateway()
    app.dependency_overrides[get_payment_gateway] = lambda: fake
    return fake


@pytest.fixture
def notifier():
    recorder = RecordingNotifier()
    app.dependency_overrides[get_notifier] = lambda: recorder
    return recorder


@pytest.fixture
def service(db_session, gateway, notifier):
    return VerificationService(db_session, gateway=gateway, notifier=notifier)


# ─── Factories ────────────────────────────────────────────────────────────────

@pytest.fixture
def user_factory(db_session):
    def _create_user(role=UserRole.USER, **kwargs):
        n = next(_seq)
        defaults = {
            "email": f"user{n}@example.com",
            "phone_number": f"+23480{n:08d}",
            "full_name": f"Test User {n}",
            "password_hash": get_password_hash(PASSWORD),
            "role": role,
            "is_active": True,
            "referral_code": f"TEST{n:04d}",
        }
        defaults.update(kwargs)
        user = User(**defaults)
        db_session.add(user)
        db_session.commit()
        return user

    return _create_user


@pytest.fixture
def property_factory(db_session):
    def _create_property(owner, **kwargs):
        defaults = {
            "title": "3 Bedroom Duplex",
            "description": "Spacious duplex with a boys quarter in a gated estate.",
            "property_type": PropertyType.HOUSE,
            "address": "12 Admiralty Way",
            "city": "Lekki",
            "state": "Lagos",
            "price": 85000000,
            "bedrooms": 3,
            "bathrooms": 4,
            "owner_id": owner.id,
        }
        defaults.update(kwargs)
        prop = Property(**defaults)
        db_session.add(prop)
        db_session.commit()
        return prop

    return _create_property


@pytest.fixture
def requester(user_factory):
    return user_factory(full_name="Ada Requester")


@pytest.fixture
def agent(user_factory):
    return user_factory(role=UserRole.AGENT, full_name="Bola Agent")


@pytest.fixture
def other_agent(user_factory):
    return user_factory(role=UserRole.AGENT, full_name="Chidi Agent")


@pytest.fixture
def admin(user_factory):
    return user_factory(role=UserRole.ADMIN, full_name="Dami Admin")


@pytest.fixture
def listing(property_factory, agent):
    return property_factory(agent)


def auth_headers(user):
    token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}
