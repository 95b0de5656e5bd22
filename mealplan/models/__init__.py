"""
SQLAlchemy models for the meal subscription core.
"""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; all datetime columns are stored as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PlanType(str, enum.Enum):
    BOTH = "BOTH"
    LUNCH_ONLY = "LUNCH_ONLY"
    DINNER_ONLY = "DINNER_ONLY"

    def overlaps(self, other: "PlanType") -> bool:
        """BOTH overlaps every scope; the single-meal scopes only overlap themselves."""
        return self is other or PlanType.BOTH in (self, other)

    def covers(self, requested: "PlanType") -> bool:
        """Whether a subscription of this scope can serve a request for ``requested``."""
        return self is requested or self is PlanType.BOTH


class PlanDuration(enum.IntEnum):
    WEEK = 7
    TWO_WEEKS = 14
    MONTH = 30
    TWO_MONTHS = 60


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    EXHAUSTED = "EXHAUSTED"

    @property
    def is_terminal(self) -> bool:
        return self is not SubscriptionStatus.ACTIVE


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"
    __table_args__ = (
        CheckConstraint("total_vouchers >= 1 AND total_vouchers <= 1000", name="plan_vouchers_range"),
        CheckConstraint("plan_price >= 0", name="plan_price_non_negative"),
        Index("ix_subscription_plans_active_type_days", "is_active", "plan_type", "days"),
        Index("ix_subscription_plans_active_price", "is_active", "plan_price"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    plan_name = Column(String(100), nullable=False)
    days = Column(Integer, nullable=False)
    plan_type = Column(
        Enum(PlanType, native_enum=False, length=20, name="plan_type"),
        nullable=False,
        default=PlanType.BOTH,
    )
    total_vouchers = Column(Integer, nullable=False)
    plan_price = Column(Numeric(10, 2), nullable=False)
    compare_at_plan_price = Column(Numeric(10, 2))
    description = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint("used_vouchers >= 0", name="used_vouchers_non_negative"),
        CheckConstraint("used_vouchers <= total_vouchers", name="used_within_total"),
        CheckConstraint("total_vouchers >= 1", name="total_vouchers_positive"),
        Index("ix_subscriptions_customer_status_purchase", "customer_id", "status", "purchase_date"),
        Index("ix_subscriptions_customer_deleted", "customer_id", "is_deleted"),
        Index("ix_subscriptions_plan_status", "plan_id", "status"),
        Index("ix_subscriptions_status_expiry", "status", "expiry_date"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    plan_id = Column(Uuid, ForeignKey("subscription_plans.id", ondelete="RESTRICT"), nullable=False)
    customer_id = Column(String(128), nullable=False)
    # Snapshot of the plan at purchase time.
    plan_type = Column(Enum(PlanType, native_enum=False, length=20, name="plan_type"), nullable=False)
    duration_days = Column(Integer, nullable=False)
    total_vouchers = Column(Integer, nullable=False)
    amount_paid = Column(Numeric(10, 2), nullable=False)

    purchase_date = Column(DateTime, nullable=False, default=utcnow)
    expiry_date = Column(DateTime, nullable=False)
    used_vouchers = Column(Integer, nullable=False, default=0)
    status = Column(
        Enum(SubscriptionStatus, native_enum=False, length=20, name="subscription_status"),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
    )
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    plan = relationship("SubscriptionPlan", lazy="joined")

    @property
    def remaining_vouchers(self) -> int:
        return self.total_vouchers - self.used_vouchers

    def is_expired_at(self, now: datetime) -> bool:
        # Still usable at the expiry instant itself.
        return now > self.expiry_date

    @property
    def is_exhausted(self) -> bool:
        return self.used_vouchers >= self.total_vouchers
