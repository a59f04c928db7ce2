import pytest
from fastapi.testclient import TestClient

from courtpay.config import Settings
from courtpay.confirmation import ConfirmationHandler
from courtpay.database import Base, make_engine, make_session_factory
from courtpay.errors import UnknownSession
from courtpay.main import create_app
from courtpay.models import DomainKind
from courtpay.store import PaymentRecordStore
from courtpay.verifier import PaymentSession


class FakeVerifier:
    """Stands in for Stripe: returns whatever sessions the test registered."""

    def __init__(self):
        self.sessions = {}
        self.calls = []
        self.error = None

    def add(self, session_id, status="paid", amount_captured=10000, metadata=None, payment_reference=None):
        self.sessions[session_id] = PaymentSession(
            session_id=session_id,
            status=status,
            amount_captured=amount_captured,
            metadata=metadata or {},
            payment_reference=payment_reference or f"pi_{session_id}",
            currency="brl",
        )

    def retrieve_session(self, session_id):
        self.calls.append(session_id)
        if self.error:
            raise self.error
        if session_id not in self.sessions:
            raise UnknownSession(f"Payment session {session_id} not found at provider")
        return self.sessions[session_id]


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test_courtpay.db'}")
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def store():
    return PaymentRecordStore()


@pytest.fixture
def handler(verifier, session_factory):
    return ConfirmationHandler(verifier, session_factory)


@pytest.fixture
def seed(session_factory, store):
    """Create the pending PaymentRecord the initiation flow would have written."""

    def _seed(session_id, domain_kind, target_entity_id, amount_captured=0):
        with session_factory() as session:
            return store.create(session, session_id, DomainKind(domain_kind), target_entity_id, amount_captured)

    return _seed


@pytest.fixture
def client(verifier, session_factory):
    settings = Settings(database_url="sqlite://", stripe_webhook_secret="whsec_test")
    fastapi_app = create_app(settings, verifier=verifier, session_factory=session_factory)
    with TestClient(fastapi_app) as c:
        yield c
