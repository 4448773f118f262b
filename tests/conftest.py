import hashlib
import hmac
import json
import os
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Must be set before quickshow.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from quickshow.main import app
from quickshow.db.base import Base
from quickshow.db.session import get_db
from quickshow.api.deps import get_notifier
from quickshow.core.security import create_access_token
from quickshow.models.movie import Movie
from quickshow.models.show import Show
from quickshow.services.notifications import NotificationDispatcher
from quickshow.services.payments import (
    CheckoutSession,
    StripePaymentProvider,
    get_payment_provider,
)

WEBHOOK_SECRET = "whsec_test"


class FakeCheckoutProvider(StripePaymentProvider):
    """Real Stripe webhook verification, scripted checkout sessions."""

    def __init__(self):
        super().__init__(secret_key="sk_test", webhook_secret=WEBHOOK_SECRET)
        self.requests = []
        self.error = None
        self.cancelled = []
        self.cancel_error = None

    def open_checkout(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        n = len(self.requests)
        return CheckoutSession(
            session_id=f"cs_test_{n}",
            checkout_url=f"https://checkout.stripe.test/pay/cs_test_{n}",
        )

    def cancel_checkout(self, session_id):
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(session_id)


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    timestamp = int(timestamp or time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_type: str, booking_id=None, object_id="cs_test_1", payment_intent="pi_test_1") -> str:
    obj = {"id": object_id, "object": "checkout.session", "payment_intent": payment_intent}
    if booking_id is not None:
        obj["metadata"] = {"booking_id": str(booking_id)}
    return json.dumps({"id": "evt_test", "type": event_type, "data": {"object": obj}})


def intent_event(event_type: str, booking_id=None, intent_id="pi_test_1") -> str:
    obj = {"id": intent_id, "object": "payment_intent"}
    if booking_id is not None:
        obj["metadata"] = {"booking_id": str(booking_id)}
    return json.dumps({"id": "evt_test", "type": event_type, "data": {"object": obj}})


def naive_utc(value: datetime) -> datetime:
    """SQLite hands datetimes back without tzinfo."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@pytest.fixture
def engine(tmp_path):
    # File-backed so every thread gets its own real connection
    engine = create_engine(
        f"sqlite:///{tmp_path / 'quickshow_test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def payments():
    return FakeCheckoutProvider()


@pytest.fixture
def notifier(session_factory):
    return NotificationDispatcher(session_factory)


@pytest.fixture
def make_show(db):
    def _make_show(price="10.00", title="Dune: Part Two", starts_in=timedelta(days=2), occupied=None):
        movie = db.query(Movie).filter(Movie.title == title).first()
        if movie is None:
            movie = Movie(title=title)
            db.add(movie)
            db.flush()
        show = Show(
            movie_id=movie.id,
            theater_id="downtown",
            screen="1",
            format="2D",
            show_datetime=datetime.now(timezone.utc) + starts_in,
            price=Decimal(price),
            occupied_seats=dict(occupied or {}),
            seat_version=0,
        )
        db.add(show)
        db.commit()
        db.refresh(show)
        return show

    return _make_show


@pytest.fixture
def client(session_factory, payments, notifier):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: payments
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user_id: str, role: str = "user") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}
