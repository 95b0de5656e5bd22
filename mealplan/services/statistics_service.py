from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from sqlalchemy import func

from mealplan.models import PlanType, Subscription, SubscriptionPlan, SubscriptionStatus, utcnow


def _money(value: Any) -> float:
    return round(float(value or 0), 2)


class StatisticsService:
    """Read-only rollups over the subscription ledger and plan catalog."""

    def __init__(self, db, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def subscription_statistics(self) -> dict[str, Any]:
        now = self.clock()
        live = Subscription.is_deleted.is_(False)

        total = self.db.query(func.count(Subscription.id)).filter(live).scalar() or 0
        by_status: dict[str, int] = {}
        for status in SubscriptionStatus:
            query = self.db.query(func.count(Subscription.id)).filter(live, Subscription.status == status)
            if status is SubscriptionStatus.ACTIVE:
                query = query.filter(Subscription.expiry_date > now)
            by_status[status.value.lower()] = query.scalar() or 0
        # Still flagged ACTIVE but past expiry, waiting for the sweep.
        by_status["lapsed"] = (
            self.db.query(func.count(Subscription.id))
            .filter(live, Subscription.status == SubscriptionStatus.ACTIVE, Subscription.expiry_date <= now)
            .scalar()
            or 0
        )

        totals = (
            self.db.query(
                func.coalesce(func.sum(Subscription.amount_paid), 0),
                func.avg(Subscription.amount_paid),
                func.coalesce(func.sum(Subscription.total_vouchers), 0),
                func.coalesce(func.sum(Subscription.used_vouchers), 0),
            )
            .filter(live)
            .one()
        )
        revenue_total, revenue_avg, issued, used = totals
        issued = int(issued or 0)
        used = int(used or 0)

        return {
            "totalSubscriptions": total,
            "subscriptionsByStatus": by_status,
            "subscriptionsByPlan": await self.subscriptions_by_plan(),
            "revenue": {
                "total": _money(revenue_total),
                "average": _money(revenue_avg),
            },
            "vouchers": {
                "totalIssued": issued,
                "totalUsed": used,
                "usageRate": round(used / issued * 100, 2) if issued else 0.0,
            },
        }

    async def subscriptions_by_plan(self) -> list[dict[str, Any]]:
        rows = (
            self.db.query(
                SubscriptionPlan,
                func.count(Subscription.id),
                func.coalesce(func.sum(Subscription.amount_paid), 0),
                func.coalesce(func.sum(Subscription.total_vouchers), 0),
                func.coalesce(func.sum(Subscription.used_vouchers), 0),
            )
            .join(Subscription, Subscription.plan_id == SubscriptionPlan.id)
            .filter(Subscription.is_deleted.is_(False))
            .group_by(SubscriptionPlan.id)
            .order_by(func.count(Subscription.id).desc())
            .all()
        )
        return [
            {
                "planId": str(plan.id),
                "planName": plan.plan_name,
                "planType": PlanType(plan.plan_type).value,
                "days": plan.days,
                "isActive": plan.is_active,
                "count": count,
                "totalRevenue": _money(revenue),
                "totalVouchersIssued": int(issued or 0),
                "totalVouchersUsed": int(used or 0),
            }
            for plan, count, revenue, issued, used in rows
        ]

    async def plan_statistics(self) -> dict[str, Any]:
        total = self.db.query(func.count(SubscriptionPlan.id)).scalar() or 0
        active = (
            self.db.query(func.count(SubscriptionPlan.id))
            .filter(SubscriptionPlan.is_active.is_(True))
            .scalar()
            or 0
        )
        rows = (
            self.db.query(
                SubscriptionPlan.plan_type,
                func.count(SubscriptionPlan.id),
                func.avg(SubscriptionPlan.plan_price),
                func.min(SubscriptionPlan.plan_price),
                func.max(SubscriptionPlan.plan_price),
            )
            .group_by(SubscriptionPlan.plan_type)
            .all()
        )
        return {
            "totalPlans": total,
            "activePlans": active,
            "inactivePlans": total - active,
            "plansByType": [
                {
                    "planType": PlanType(plan_type).value,
                    "count": count,
                    "averagePrice": _money(avg_price),
                    "minPrice": _money(min_price),
                    "maxPrice": _money(max_price),
                }
                for plan_type, count, avg_price, min_price, max_price in rows
            ],
        }

    async def customer_summary(self, customer_id: str) -> dict[str, Any]:
        now = self.clock()
        mine = [Subscription.customer_id == customer_id, Subscription.is_deleted.is_(False)]

        total = self.db.query(func.count(Subscription.id)).filter(*mine).scalar() or 0
        active = (
            self.db.query(func.count(Subscription.id))
            .filter(*mine, Subscription.status == SubscriptionStatus.ACTIVE, Subscription.expiry_date > now)
            .scalar()
            or 0
        )
        spent, issued, used = (
            self.db.query(
                func.coalesce(func.sum(Subscription.amount_paid), 0),
                func.coalesce(func.sum(Subscription.total_vouchers), 0),
                func.coalesce(func.sum(Subscription.used_vouchers), 0),
            )
            .filter(*mine)
            .one()
        )
        issued = int(issued or 0)
        used = int(used or 0)
        return {
            "totalSubscriptions": total,
            "activeSubscriptions": active,
            "totalSpent": _money(spent),
            "vouchers": {
                "total": issued,
                "used": used,
                "remaining": issued - used,
            },
        }
