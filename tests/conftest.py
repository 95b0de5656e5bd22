import os
import sys
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('APP_ENV', 'test')
os.environ.setdefault('SECRET_KEY', 'test-secret-key')
os.environ.setdefault('ADMIN_EMAIL', 'admin@example.com')
os.environ.setdefault('LOG_LEVEL', 'WARNING')

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from mealplan.config import settings  # noqa: E402
from mealplan.core.security import ROLE_ADMIN, ROLE_CUSTOMER, create_access_token  # noqa: E402
from mealplan.database import build_engine, get_db, init_db  # noqa: E402
from mealplan.main import app  # noqa: E402
from mealplan.models import (  # noqa: E402
    PlanType,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    utcnow,
)


@pytest.fixture
def engine(tmp_path):
    # File-backed so that threads get their own connections.
    engine = build_engine(f"sqlite:///{tmp_path / 'mealplan-test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    token = create_access_token(settings.admin_email, ROLE_ADMIN)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def customer_headers():
    def _headers(customer_id='customer-1'):
        token = create_access_token(customer_id, ROLE_CUSTOMER)
        return {'Authorization': f'Bearer {token}'}

    return _headers


@pytest.fixture
def make_plan(db):
    def _make(
        plan_name='Weekly Lunch',
        days=7,
        plan_type=PlanType.LUNCH_ONLY,
        total_vouchers=10,
        plan_price='500.00',
        is_active=True,
    ):
        plan = SubscriptionPlan(
            plan_name=plan_name,
            days=days,
            plan_type=plan_type,
            total_vouchers=total_vouchers,
            plan_price=Decimal(plan_price),
            description='',
            is_active=is_active,
        )
        db.add(plan)
        db.commit()
        db.refresh(plan)
        return plan

    return _make


@pytest.fixture
def make_subscription(db):
    """Insert a subscription directly, bypassing purchase checks."""

    def _make(
        plan,
        customer_id='customer-1',
        total_vouchers=None,
        used_vouchers=0,
        status=SubscriptionStatus.ACTIVE,
        purchase_date=None,
        expiry_date=None,
        amount_paid=None,
        is_deleted=False,
    ):
        purchase_date = purchase_date or utcnow()
        sub = Subscription(
            plan_id=plan.id,
            customer_id=customer_id,
            plan_type=plan.plan_type,
            duration_days=plan.days,
            total_vouchers=total_vouchers if total_vouchers is not None else plan.total_vouchers,
            used_vouchers=used_vouchers,
            amount_paid=amount_paid if amount_paid is not None else plan.plan_price,
            status=status,
            purchase_date=purchase_date,
            expiry_date=expiry_date or purchase_date + timedelta(days=plan.days),
            is_deleted=is_deleted,
            deleted_at=utcnow() if is_deleted else None,
        )
        db.add(sub)
        db.commit()
        db.refresh(sub)
        return sub

    return _make


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 1, 12, 0, 0))
