from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from mealplan.models import Subscription, SubscriptionStatus, utcnow

logger = logging.getLogger(__name__)


def expire_subscriptions(db: Session, now: datetime | None = None) -> int:
    """
    Mark every live ACTIVE subscription whose expiry has passed as EXPIRED.

    Returns the number of rows changed. Safe to run repeatedly and alongside
    voucher use, which applies the same transition lazily.
    """
    now = now or utcnow()
    result = db.execute(
        update(Subscription)
        .where(
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.is_deleted.is_(False),
            Subscription.expiry_date <= now,
        )
        .values(status=SubscriptionStatus.EXPIRED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    updated = result.rowcount or 0
    if updated:
        logger.info(f"Expiry sweep marked {updated} subscription(s) EXPIRED")
    else:
        logger.debug("Expiry sweep found nothing to expire")
    return updated
