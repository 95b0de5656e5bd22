from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field, field_validator

from mealplan.models import PlanType, Subscription, SubscriptionStatus, utcnow
from mealplan.schemas.plan import CamelModel, serialize_plan


class PurchaseRequest(CamelModel):
    plan_id: uuid.UUID
    amount_paid: Decimal = Field(ge=0)

    @field_validator("amount_paid", mode="before")
    @classmethod
    def coerce_amount(cls, value: Any) -> Any:
        if isinstance(value, float):
            return str(value)
        return value


class UseVoucherRequest(CamelModel):
    subscription_id: uuid.UUID


class StatusUpdateRequest(CamelModel):
    status: str


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_subscription(
    sub: Subscription,
    now: datetime | None = None,
    include_plan: bool = True,
) -> dict[str, Any]:
    """Render a subscription with its derived voucher values."""
    now = now or utcnow()
    data: dict[str, Any] = {
        "id": str(sub.id),
        "planId": str(sub.plan_id),
        "customerId": sub.customer_id,
        "planType": PlanType(sub.plan_type).value,
        "durationDays": sub.duration_days,
        "purchaseDate": _iso(sub.purchase_date),
        "expiryDate": _iso(sub.expiry_date),
        "totalVouchers": sub.total_vouchers,
        "usedVouchers": sub.used_vouchers,
        "amountPaid": float(sub.amount_paid),
        "status": SubscriptionStatus(sub.status).value,
        "isDeleted": sub.is_deleted,
        "deletedAt": _iso(sub.deleted_at),
        "createdAt": _iso(sub.created_at),
        "updatedAt": _iso(sub.updated_at),
        "remainingVouchers": sub.remaining_vouchers,
        "isExpired": sub.is_expired_at(now),
        "isExhausted": sub.is_exhausted,
    }
    if include_plan:
        data["plan"] = serialize_plan(sub.plan) if sub.plan is not None else None
    return data
