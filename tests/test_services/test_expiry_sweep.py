from datetime import timedelta

from mealplan.models import Subscription, SubscriptionStatus
from mealplan.services.expiry_sweep import expire_subscriptions


def test_sweep_expires_only_lapsed_active_records(db, make_plan, make_subscription, clock):
    plan = make_plan()
    lapsed = make_subscription(plan, purchase_date=clock.now - timedelta(days=8), expiry_date=clock.now - timedelta(days=1))
    on_boundary = make_subscription(plan, purchase_date=clock.now - timedelta(days=7), expiry_date=clock.now)
    current = make_subscription(plan, purchase_date=clock.now, expiry_date=clock.now + timedelta(days=7))
    cancelled = make_subscription(
        plan,
        status=SubscriptionStatus.CANCELLED,
        purchase_date=clock.now - timedelta(days=8),
        expiry_date=clock.now - timedelta(days=1),
    )
    deleted = make_subscription(
        plan,
        is_deleted=True,
        purchase_date=clock.now - timedelta(days=8),
        expiry_date=clock.now - timedelta(days=1),
    )

    assert expire_subscriptions(db, now=clock.now) == 2

    db.expire_all()
    statuses = {s.id: s.status for s in db.query(Subscription).all()}
    assert statuses[lapsed.id] == SubscriptionStatus.EXPIRED
    assert statuses[on_boundary.id] == SubscriptionStatus.EXPIRED
    assert statuses[current.id] == SubscriptionStatus.ACTIVE
    assert statuses[cancelled.id] == SubscriptionStatus.CANCELLED
    assert statuses[deleted.id] == SubscriptionStatus.ACTIVE


def test_sweep_is_idempotent(db, make_plan, make_subscription, clock):
    plan = make_plan()
    make_subscription(plan, purchase_date=clock.now - timedelta(days=8), expiry_date=clock.now - timedelta(days=1))

    assert expire_subscriptions(db, now=clock.now) == 1
    assert expire_subscriptions(db, now=clock.now) == 0


def test_sweep_keeps_voucher_counts(db, make_plan, make_subscription, clock):
    plan = make_plan(total_vouchers=10)
    sub = make_subscription(
        plan,
        used_vouchers=4,
        purchase_date=clock.now - timedelta(days=8),
        expiry_date=clock.now - timedelta(days=1),
    )
    expire_subscriptions(db, now=clock.now)
    db.refresh(sub)
    assert sub.used_vouchers == 4
    assert sub.remaining_vouchers == 6


def test_sweep_script_uses_its_own_session(session_factory, make_plan, make_subscription, clock, monkeypatch, capsys):
    import importlib.util
    from pathlib import Path

    path = Path(__file__).resolve().parents[2] / 'scripts' / 'expire_subscriptions.py'
    module_spec = importlib.util.spec_from_file_location('expire_subscriptions_script', path)
    script = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(script)
    monkeypatch.setattr(script, 'SessionLocal', session_factory)

    plan = make_plan()
    make_subscription(plan, purchase_date=clock.now - timedelta(days=8), expiry_date=clock.now - timedelta(days=1))

    assert script.main() == 1
    assert 'Expired 1 subscription(s)' in capsys.readouterr().out
