"""
Subscription ledger: purchase, voucher consumption, cancellation and admin
maintenance of customer subscriptions.

Status moves only out of ACTIVE (to EXPIRED, EXHAUSTED or CANCELLED) and
never back, except through the admin status override. Every transition that
races with voucher use is a single conditional UPDATE keyed on the prior
status, so two callers can never both spend the last voucher.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import case, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mealplan.config import settings
from mealplan.core.exceptions import (
    ConflictError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    PriceMismatchError,
    SubscriptionExpiredError,
    ValidationError,
    VouchersExhaustedError,
)
from mealplan.models import PlanType, Subscription, SubscriptionStatus, utcnow
from mealplan.schemas.plan import round_money
from mealplan.services.plan_catalog import PlanCatalog
from mealplan.services.query_utils import apply_sort, paginate

logger = logging.getLogger(__name__)

ACTIVE = SubscriptionStatus.ACTIVE
EXPIRED = SubscriptionStatus.EXPIRED
EXHAUSTED = SubscriptionStatus.EXHAUSTED
CANCELLED = SubscriptionStatus.CANCELLED

MAX_WRITE_ATTEMPTS = 3

SUBSCRIPTION_SORT_COLUMNS = {
    "purchaseDate": Subscription.purchase_date,
    "expiryDate": Subscription.expiry_date,
    "createdAt": Subscription.created_at,
    "amountPaid": Subscription.amount_paid,
    "usedVouchers": Subscription.used_vouchers,
    "status": Subscription.status,
}


def parse_status(value: str) -> SubscriptionStatus:
    try:
        return SubscriptionStatus(value.strip().upper())
    except ValueError:
        raise ValidationError(
            "Invalid status value",
            code="INVALID_STATUS_VALUE",
            data={"validStatuses": [s.value for s in SubscriptionStatus]},
        )


class SubscriptionLedger:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        price_tolerance: Optional[Decimal] = None,
    ):
        self.db = db
        self.clock = clock
        self.price_tolerance = (
            price_tolerance if price_tolerance is not None else settings.price_tolerance
        )

    # Lookups

    def _owned_query(self, customer_id: str, subscription_id: uuid.UUID, include_deleted: bool):
        query = self.db.query(Subscription).filter(
            Subscription.id == subscription_id,
            Subscription.customer_id == customer_id,
        )
        if not include_deleted:
            query = query.filter(Subscription.is_deleted.is_(False))
        return query

    def get_my_subscription(
        self,
        customer_id: str,
        subscription_id: uuid.UUID,
        include_deleted: bool = True,
    ) -> Subscription:
        sub = self._owned_query(customer_id, subscription_id, include_deleted).first()
        if sub is None:
            raise NotFoundError("Subscription not found", code="SUBSCRIPTION_NOT_FOUND")
        return sub

    def get_subscription(self, subscription_id: uuid.UUID) -> Subscription:
        sub = self.db.query(Subscription).filter(Subscription.id == subscription_id).first()
        if sub is None:
            raise NotFoundError("Subscription not found", code="SUBSCRIPTION_NOT_FOUND")
        return sub

    def _active_query(self, customer_id: str, now: datetime):
        return self.db.query(Subscription).filter(
            Subscription.customer_id == customer_id,
            Subscription.status == ACTIVE,
            Subscription.is_deleted.is_(False),
            Subscription.expiry_date > now,
        )

    # Purchase

    def purchase(self, customer_id: str, plan_id: uuid.UUID, amount_paid: Decimal) -> Subscription:
        try:
            plan = PlanCatalog(self.db).get_plan(plan_id, active_only=True)
        except NotFoundError:
            raise NotFoundError(
                "Subscription plan not found or is no longer available", code="PLAN_NOT_FOUND"
            )

        provided = Decimal(str(amount_paid))
        price = Decimal(plan.plan_price)
        if abs(provided - price) > self.price_tolerance:
            raise PriceMismatchError(expected=float(price), provided=float(provided))
        amount = round_money(provided)

        now = self.clock()
        requested = PlanType(plan.plan_type)
        for existing in self._active_query(customer_id, now).all():
            existing_type = PlanType(existing.plan_type)
            if existing_type.overlaps(requested):
                logger.warning(
                    f"Customer {customer_id} blocked from buying {requested.value}: "
                    f"active {existing_type.value} subscription {existing.id}"
                )
                raise ConflictError(
                    f"You already have an active {existing_type.value} subscription",
                    code="ACTIVE_SUBSCRIPTION_EXISTS",
                    data={"existingSubscriptionId": str(existing.id)},
                )

        sub = Subscription(
            plan_id=plan.id,
            customer_id=customer_id,
            plan_type=requested,
            duration_days=plan.days,
            total_vouchers=plan.total_vouchers,
            amount_paid=amount,
            purchase_date=now,
            expiry_date=now + timedelta(days=plan.days),
            used_vouchers=0,
            status=ACTIVE,
        )
        self.db.add(sub)
        self.db.commit()
        self.db.refresh(sub)
        logger.info(
            f"Customer {customer_id} purchased plan {plan.id} as subscription {sub.id} "
            f"({sub.total_vouchers} vouchers, expires {sub.expiry_date.isoformat()})"
        )
        return sub

    # Voucher consumption

    def use_voucher(self, customer_id: str, subscription_id: uuid.UUID) -> tuple[Subscription, int]:
        """
        Spend one voucher. Returns the updated subscription and the vouchers left.

        The increment and the status flip to EXHAUSTED happen in one
        conditional UPDATE. When it matches no row, the record is re-read to
        report why, correcting a stale ACTIVE status on the way.
        """
        for _ in range(MAX_WRITE_ATTEMPTS):
            now = self.clock()
            stmt = (
                update(Subscription)
                .where(
                    Subscription.id == subscription_id,
                    Subscription.customer_id == customer_id,
                    Subscription.is_deleted.is_(False),
                    Subscription.status == ACTIVE,
                    Subscription.expiry_date >= now,
                    Subscription.used_vouchers < Subscription.total_vouchers,
                )
                .values(
                    used_vouchers=Subscription.used_vouchers + 1,
                    status=case(
                        (Subscription.used_vouchers + 1 >= Subscription.total_vouchers, EXHAUSTED.value),
                        else_=ACTIVE.value,
                    ),
                    updated_at=now,
                )
                .returning(Subscription.used_vouchers, Subscription.total_vouchers)
                .execution_options(synchronize_session=False)
            )
            row = self.db.execute(stmt).first()
            if row is not None:
                self.db.commit()
                remaining = row.total_vouchers - row.used_vouchers
                logger.info(
                    f"Voucher used on subscription {subscription_id} by {customer_id}; {remaining} remaining"
                )
                return self.get_my_subscription(customer_id, subscription_id), remaining

            self.db.rollback()
            self._raise_voucher_rejection(customer_id, subscription_id, now)

        raise InternalError("Failed to use voucher. Please try again", code="VOUCHER_WRITE_CONFLICT")

    def _raise_voucher_rejection(self, customer_id: str, subscription_id: uuid.UUID, now: datetime) -> None:
        """Raise the error explaining why a voucher could not be spent.

        Returns normally only when the record looks usable again, which means
        a concurrent writer changed it between the UPDATE and this read.
        """
        sub = self.get_my_subscription(customer_id, subscription_id, include_deleted=False)
        status = SubscriptionStatus(sub.status)
        message = f"Cannot use voucher: Subscription is {status.value.lower()}"
        if status is EXHAUSTED:
            raise VouchersExhaustedError(message, data={"status": status.value})
        if status is EXPIRED:
            raise SubscriptionExpiredError(message, data={"status": status.value})
        if status is not ACTIVE:
            raise InvalidStateError(message, code="INVALID_SUBSCRIPTION_STATUS", data={"status": status.value})

        if sub.is_expired_at(now):
            self._correct_status(sub.id, EXPIRED, now)
            raise SubscriptionExpiredError("Subscription has expired")
        if sub.remaining_vouchers <= 0:
            self._correct_status(sub.id, EXHAUSTED, now)
            raise VouchersExhaustedError("No vouchers remaining in this subscription")

    def _correct_status(self, subscription_id: uuid.UUID, target: SubscriptionStatus, now: datetime) -> None:
        """Move an ACTIVE record that was observed to be past its end into ``target``.

        Failures are logged and swallowed; the caller reports the domain error either way.
        """
        conditions = [Subscription.id == subscription_id, Subscription.status == ACTIVE]
        if target is EXHAUSTED:
            conditions.append(Subscription.used_vouchers >= Subscription.total_vouchers)
        else:
            conditions.append(Subscription.expiry_date < now)
        try:
            result = self.db.execute(
                update(Subscription)
                .where(*conditions)
                .values(status=target, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            if result.rowcount:
                logger.info(f"Subscription {subscription_id} marked {target.value} on access")
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Failed to mark subscription {subscription_id} as {target.value}")

    # Cancellation

    def cancel(self, customer_id: str, subscription_id: uuid.UUID) -> Subscription:
        for _ in range(MAX_WRITE_ATTEMPTS):
            sub = self.get_my_subscription(customer_id, subscription_id, include_deleted=False)
            status = SubscriptionStatus(sub.status)
            if status is CANCELLED:
                raise ConflictError("Subscription is already cancelled", code="ALREADY_CANCELLED")
            if status is not ACTIVE:
                raise InvalidStateError(
                    f"Cannot cancel an {status.value.lower()} subscription",
                    code="INVALID_SUBSCRIPTION_STATUS",
                    data={"status": status.value},
                )

            result = self.db.execute(
                update(Subscription)
                .where(Subscription.id == sub.id, Subscription.status == ACTIVE)
                .values(status=CANCELLED, updated_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                self.db.commit()
                logger.info(f"Customer {customer_id} cancelled subscription {subscription_id}")
                return self.get_my_subscription(customer_id, subscription_id)
            # Status moved under us; re-read and classify again.
            self.db.rollback()

        raise InternalError("Failed to cancel subscription. Please try again", code="CANCEL_WRITE_CONFLICT")

    # Customer reads

    def list_my_subscriptions(
        self,
        customer_id: str,
        status: Optional[str] = None,
        include_deleted: bool = False,
        sort_by: str = "purchaseDate",
        sort_order: str = "desc",
    ) -> list[Subscription]:
        query = self.db.query(Subscription).filter(Subscription.customer_id == customer_id)
        if status:
            query = query.filter(Subscription.status == parse_status(status))
        if not include_deleted:
            query = query.filter(Subscription.is_deleted.is_(False))
        return apply_sort(query, SUBSCRIPTION_SORT_COLUMNS, sort_by, sort_order).all()

    def check_active_for_scope(
        self,
        customer_id: str,
        plan_type: Optional[PlanType] = None,
    ) -> list[Subscription]:
        """Unexpired ACTIVE subscriptions with vouchers left that can serve ``plan_type``.

        A BOTH subscription serves any requested scope. With no scope given,
        every usable subscription is returned.
        """
        now = self.clock()
        query = self._active_query(customer_id, now).filter(
            Subscription.used_vouchers < Subscription.total_vouchers
        )
        if plan_type is not None:
            query = query.filter(Subscription.plan_type.in_([plan_type, PlanType.BOTH]))
        return query.order_by(Subscription.expiry_date.asc()).all()

    # Admin

    def list_subscriptions(
        self,
        status: Optional[str] = None,
        customer_id: Optional[str] = None,
        plan_id: Optional[uuid.UUID] = None,
        include_deleted: bool = False,
        sort_by: str = "purchaseDate",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Subscription], dict[str, int]]:
        query = self.db.query(Subscription)
        if status:
            query = query.filter(Subscription.status == parse_status(status))
        if customer_id:
            query = query.filter(Subscription.customer_id == customer_id)
        if plan_id:
            query = query.filter(Subscription.plan_id == plan_id)
        if not include_deleted:
            query = query.filter(Subscription.is_deleted.is_(False))
        query = apply_sort(query, SUBSCRIPTION_SORT_COLUMNS, sort_by, sort_order)
        return paginate(query, page, limit)

    def set_status(self, subscription_id: uuid.UUID, status: str) -> Subscription:
        target = parse_status(status)
        sub = self.get_subscription(subscription_id)
        if target is EXHAUSTED and sub.used_vouchers != sub.total_vouchers:
            raise InvalidStateError(
                "Cannot mark a subscription exhausted while vouchers remain",
                data={"remainingVouchers": sub.remaining_vouchers},
            )
        previous = SubscriptionStatus(sub.status)
        sub.status = target
        self.db.commit()
        self.db.refresh(sub)
        logger.info(f"Admin set subscription {sub.id} status {previous.value} -> {target.value}")
        return sub

    def soft_delete(self, subscription_id: uuid.UUID) -> Subscription:
        sub = self.get_subscription(subscription_id)
        if sub.is_deleted:
            raise InvalidStateError("Subscription is already deleted")
        sub.is_deleted = True
        sub.deleted_at = self.clock()
        self.db.commit()
        self.db.refresh(sub)
        logger.info(f"Soft-deleted subscription {sub.id}")
        return sub

    def restore(self, subscription_id: uuid.UUID) -> Subscription:
        sub = self.get_subscription(subscription_id)
        if not sub.is_deleted:
            raise InvalidStateError("Subscription is not deleted")
        sub.is_deleted = False
        sub.deleted_at = None
        self.db.commit()
        self.db.refresh(sub)
        logger.info(f"Restored subscription {sub.id}")
        return sub
