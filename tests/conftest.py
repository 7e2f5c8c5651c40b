import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["CRON_SECRET"] = "cron-test-secret"
os.environ.pop("REDIS_URL", None)
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("ANTHROPIC_API_KEY", None)

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from casaora import models, models_payouts  # noqa: F401
from casaora.database import Base
from casaora.domain.payments.stripe_service import PaymentProviderError
from casaora.models import Booking, ProfessionalProfile, Profile

NOW = datetime(2026, 3, 2, 9, 0)  # a Monday


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_profile(db):
    counter = {"n": 0}

    def _make(role="customer", **kwargs):
        counter["n"] += 1
        profile = Profile(
            email=kwargs.pop("email", f"{role}{counter['n']}@example.com"),
            full_name=kwargs.pop("full_name", f"{role.title()} {counter['n']}"),
            role=role,
            **kwargs,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    return _make


@pytest.fixture
def make_professional(db, make_profile):
    def _make(hourly_rate_cop=40_000, city="Bogotá", profile_kwargs=None, **kwargs):
        profile = make_profile("professional", city=city, **(profile_kwargs or {}))
        kwargs.setdefault("service_category", "cleaning")
        kwargs.setdefault("stripe_connect_account_id", "acct_test")
        kwargs.setdefault("stripe_connect_onboarding_status", "complete")
        pro = ProfessionalProfile(profile_id=profile.id, hourly_rate_cop=hourly_rate_cop, **kwargs)
        db.add(pro)
        db.commit()
        db.refresh(profile)
        return profile

    return _make


@pytest.fixture
def make_booking(db):
    def _make(customer, professional, **kwargs):
        kwargs.setdefault("status", "confirmed")
        kwargs.setdefault("scheduled_start", NOW + timedelta(days=2))
        kwargs.setdefault("duration_minutes", 120)
        kwargs.setdefault("amount_estimated", 80_000)
        kwargs.setdefault("amount_authorized", 80_000)
        kwargs.setdefault("stripe_payment_intent_id", f"pi_{os.urandom(4).hex()}")
        if kwargs["scheduled_start"] and "scheduled_end" not in kwargs:
            kwargs["scheduled_end"] = kwargs["scheduled_start"] + timedelta(
                minutes=kwargs["duration_minutes"]
            )
        booking = Booking(customer_id=customer.id, professional_id=professional.id, **kwargs)
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    return _make


class FakeStripe:
    """Records calls and returns Stripe-shaped objects"""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)
        self.available = True
        self._transfers = 0

    def _record(self, name, **kwargs):
        self.calls.append((name, kwargs))
        if name in self.fail_on:
            raise PaymentProviderError(f"Stripe {name} failed: card_declined")

    def calls_named(self, name):
        return [kwargs for call, kwargs in self.calls if call == name]

    def is_available(self):
        return self.available

    def ensure_customer(self, email, name, profile_id, existing_customer_id=None):
        self._record("ensure_customer", profile_id=profile_id)
        return existing_customer_id or f"cus_{profile_id[:8]}"

    def create_payment_intent(
        self, amount, currency, customer_id, metadata=None, description=None, idempotency_key=None
    ):
        self._record(
            "create_payment_intent",
            amount=amount,
            currency=currency,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        return SimpleNamespace(
            id="pi_test_123", client_secret="pi_test_123_secret", status="requires_payment_method"
        )

    def capture_payment_intent(self, payment_intent_id, amount_to_capture=None, idempotency_key=None):
        self._record(
            "capture_payment_intent",
            payment_intent_id=payment_intent_id,
            amount_to_capture=amount_to_capture,
            idempotency_key=idempotency_key,
        )
        return SimpleNamespace(id=payment_intent_id, amount_received=amount_to_capture, status="succeeded")

    def cancel_payment_intent(self, payment_intent_id, reason="requested_by_customer"):
        self._record("cancel_payment_intent", payment_intent_id=payment_intent_id)
        return SimpleNamespace(id=payment_intent_id, status="canceled")

    def create_refund(self, payment_intent_id, amount=None, reason="requested_by_customer", idempotency_key=None):
        self._record("create_refund", payment_intent_id=payment_intent_id, amount=amount)
        return SimpleNamespace(id="re_test", amount=amount, status="succeeded")

    def create_transfer(self, amount, currency, destination, metadata=None, idempotency_key=None):
        self._record(
            "create_transfer",
            amount=amount,
            destination=destination,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        self._transfers += 1
        return SimpleNamespace(id=f"tr_test_{self._transfers}", amount=amount)


@pytest.fixture
def fake_stripe():
    return FakeStripe()


class FakeLLM:
    """StructuredLLM double that returns preset models in order"""

    model = "test-model"

    def __init__(self, *results, available=True):
        self.results = list(results)
        self.available = available
        self.requests = []

    def is_available(self):
        return self.available

    def generate(self, schema, system, user_message, max_tokens=1024, temperature=0.3):
        self.requests.append({"schema": schema, "system": system, "user_message": user_message})
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result
