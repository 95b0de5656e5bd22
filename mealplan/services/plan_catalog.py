"""
Plan catalog: the purchasable plan templates.

A plan is identified for activation purposes by (name, days, plan type)
among active plans. Editing or deactivating a plan never touches
subscriptions already issued from it; those carry their own snapshot.
"""
from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from mealplan.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from mealplan.models import PlanDuration, PlanType, SubscriptionPlan
from mealplan.schemas.plan import PlanCreate, PlanUpdate
from mealplan.services.query_utils import apply_sort, paginate

logger = logging.getLogger(__name__)

PLAN_SORT_COLUMNS = {
    "createdAt": SubscriptionPlan.created_at,
    "planPrice": SubscriptionPlan.plan_price,
    "days": SubscriptionPlan.days,
    "planName": SubscriptionPlan.plan_name,
    "totalVouchers": SubscriptionPlan.total_vouchers,
}

DUPLICATE_PLAN_MESSAGE = "A subscription plan with the same name, type, and duration already exists"


class PlanCatalog:
    def __init__(self, db: Session):
        self.db = db

    def _find_active_duplicate(
        self,
        plan_name: str,
        days: int,
        plan_type: PlanType,
        exclude_id: uuid.UUID | None = None,
    ) -> SubscriptionPlan | None:
        query = self.db.query(SubscriptionPlan).filter(
            SubscriptionPlan.plan_name == plan_name.strip(),
            SubscriptionPlan.days == int(days),
            SubscriptionPlan.plan_type == plan_type,
            SubscriptionPlan.is_active.is_(True),
        )
        if exclude_id is not None:
            query = query.filter(SubscriptionPlan.id != exclude_id)
        return query.first()

    def create_plan(self, payload: PlanCreate) -> SubscriptionPlan:
        if payload.is_active and self._find_active_duplicate(
            payload.plan_name, payload.days, payload.plan_type
        ):
            raise ConflictError(DUPLICATE_PLAN_MESSAGE, code="DUPLICATE_PLAN")

        plan = SubscriptionPlan(
            plan_name=payload.plan_name,
            days=int(payload.days),
            plan_type=payload.plan_type,
            total_vouchers=payload.total_vouchers,
            plan_price=payload.plan_price,
            compare_at_plan_price=payload.compare_at_plan_price,
            description=payload.description,
            is_active=payload.is_active,
        )
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Created plan {plan.id} ({plan.plan_name}, {plan.days}d, {plan.plan_type.value})")
        return plan

    def get_plan(self, plan_id: uuid.UUID, active_only: bool = False) -> SubscriptionPlan:
        query = self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id)
        if active_only:
            query = query.filter(SubscriptionPlan.is_active.is_(True))
        plan = query.first()
        if plan is None:
            message = "Subscription plan not found or inactive" if active_only else "Subscription plan not found"
            raise NotFoundError(message, code="PLAN_NOT_FOUND")
        return plan

    def update_plan(self, plan_id: uuid.UUID, payload: PlanUpdate) -> SubscriptionPlan:
        plan = self.get_plan(plan_id)
        changes = payload.model_dump(exclude_unset=True)

        for required in ("plan_name", "days", "plan_type", "total_vouchers", "plan_price", "is_active"):
            if required in changes and changes[required] is None:
                raise ValidationError(f"{required} cannot be null")

        name = changes.get("plan_name", plan.plan_name)
        days = changes.get("days", plan.days)
        plan_type = changes.get("plan_type", plan.plan_type)
        will_be_active = changes.get("is_active", plan.is_active)
        identity_changed = any(k in changes for k in ("plan_name", "days", "plan_type"))
        reactivating = will_be_active and not plan.is_active
        if will_be_active and (identity_changed or reactivating):
            if self._find_active_duplicate(name, days, plan_type, exclude_id=plan.id):
                raise ConflictError(DUPLICATE_PLAN_MESSAGE, code="DUPLICATE_PLAN")

        price = changes.get("plan_price", plan.plan_price)
        compare_at = changes.get("compare_at_plan_price", plan.compare_at_plan_price)
        if compare_at is not None and Decimal(compare_at) < Decimal(price):
            raise ValidationError("Compare at price must be greater than or equal to plan price")

        for field, value in changes.items():
            if field == "days":
                value = int(value)
            elif field == "description" and value is None:
                value = ""
            setattr(plan, field, value)

        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Updated plan {plan.id}: {sorted(changes)}")
        return plan

    def deactivate_plan(self, plan_id: uuid.UUID) -> SubscriptionPlan:
        plan = self.get_plan(plan_id)
        plan.is_active = False
        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Deactivated plan {plan.id}")
        return plan

    def activate_plan(self, plan_id: uuid.UUID) -> SubscriptionPlan:
        plan = self.get_plan(plan_id)
        if plan.is_active:
            raise InvalidStateError("Subscription plan is already active")
        if self._find_active_duplicate(plan.plan_name, plan.days, plan.plan_type, exclude_id=plan.id):
            raise ConflictError(
                "Cannot activate: A subscription plan with the same name, type, "
                "and duration is already active",
                code="DUPLICATE_PLAN",
            )
        plan.is_active = True
        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Activated plan {plan.id}")
        return plan

    def list_plans_admin(
        self,
        plan_type: Optional[PlanType] = None,
        days: Optional[PlanDuration] = None,
        is_active: Optional[bool] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[SubscriptionPlan], dict[str, int]]:
        query = self.db.query(SubscriptionPlan)
        if plan_type is not None:
            query = query.filter(SubscriptionPlan.plan_type == plan_type)
        if days is not None:
            query = query.filter(SubscriptionPlan.days == int(days))
        if is_active is not None:
            query = query.filter(SubscriptionPlan.is_active.is_(is_active))
        if min_price is not None:
            query = query.filter(SubscriptionPlan.plan_price >= min_price)
        if max_price is not None:
            query = query.filter(SubscriptionPlan.plan_price <= max_price)
        query = apply_sort(query, PLAN_SORT_COLUMNS, sort_by, sort_order)
        return paginate(query, page, limit)

    def list_active_plans(
        self,
        plan_type: Optional[PlanType] = None,
        days: Optional[PlanDuration] = None,
        sort_by: str = "planPrice",
        sort_order: str = "asc",
    ) -> list[SubscriptionPlan]:
        query = self.db.query(SubscriptionPlan).filter(SubscriptionPlan.is_active.is_(True))
        if plan_type is not None:
            query = query.filter(SubscriptionPlan.plan_type == plan_type)
        if days is not None:
            query = query.filter(SubscriptionPlan.days == int(days))
        return apply_sort(query, PLAN_SORT_COLUMNS, sort_by, sort_order).all()

    def list_active_plans_grouped(self) -> dict[str, list[SubscriptionPlan]]:
        plans = (
            self.db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.plan_type, SubscriptionPlan.days, SubscriptionPlan.plan_price)
            .all()
        )
        grouped: dict[str, list[SubscriptionPlan]] = defaultdict(list)
        for plan in plans:
            grouped[PlanType(plan.plan_type).value].append(plan)
        return dict(grouped)

