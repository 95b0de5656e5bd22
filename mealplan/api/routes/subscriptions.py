"""
Subscription API Routes
Customer purchase and voucher use, plus admin ledger maintenance.
"""
from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from mealplan.api.dependencies import get_current_admin, get_current_customer, get_ledger, get_statistics
from mealplan.api.errors import success
from mealplan.database import get_db
from mealplan.schemas.plan import parse_plan_filters
from mealplan.schemas.subscription import (
    PurchaseRequest,
    StatusUpdateRequest,
    UseVoucherRequest,
    serialize_subscription,
)
from mealplan.services.expiry_sweep import expire_subscriptions
from mealplan.services.statistics_service import StatisticsService
from mealplan.services.subscription_ledger import SubscriptionLedger

router = APIRouter()
admin_only = [Depends(get_current_admin)]


# Customer


@router.post("/purchase", status_code=status.HTTP_201_CREATED)
async def purchase_subscription(
    payload: PurchaseRequest,
    customer_id: str = Depends(get_current_customer),
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    sub = ledger.purchase(customer_id, payload.plan_id, payload.amount_paid)
    return success("Subscription purchased successfully", serialize_subscription(sub))


@router.get("/my")
async def list_my_subscriptions(
    status_filter: Optional[str] = Query(None, alias="status"),
    include_deleted: bool = Query(False, alias="includeDeleted"),
    sort_by: str = Query("purchaseDate", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    customer_id: str = Depends(get_current_customer),
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    subs = ledger.list_my_subscriptions(customer_id, status_filter, include_deleted, sort_by, sort_order)
    return success("Subscriptions retrieved successfully", [serialize_subscription(s) for s in subs])


@router.get("/my/active")
async def list_my_active_subscriptions(
    customer_id: str = Depends(get_current_customer),
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    subs = ledger.check_active_for_scope(customer_id)
    return success("Active subscriptions retrieved successfully", [serialize_subscription(s) for s in subs])


@router.get("/my/summary")
async def my_subscription_summary(
    customer_id: str = Depends(get_current_customer),
    stats: StatisticsService = Depends(get_statistics),
) -> Dict[str, Any]:
    return success("Subscription summary retrieved", await stats.customer_summary(customer_id))


@router.get("/my/check")
async def check_active_subscription(
    plan_type: Optional[str] = Query(None, alias="planType"),
    customer_id: str = Depends(get_current_customer),
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    parsed_type, _ = parse_plan_filters(plan_type, None)
    subs = ledger.check_active_for_scope(customer_id, parsed_type)
    return success(
        "Subscription check completed",
        {
            "hasActiveSubscription": bool(subs),
            "activeSubscriptions": [serialize_subscription(s) for s in subs],
        },
    )


@router.get("/my/{subscription_id}")
async def get_my_subscription(
    subscription_id: uuid.UUID,
    customer_id: str = Depends(get_current_customer),
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    sub = ledger.get_my_subscription(customer_id, subscription_id)
    return success("Subscription retrieved successfully", serialize_subscription(sub))


@router.patch("/my/{subscription_id}/cancel")
async def cancel_my_subscription(
    subscription_id: uuid.UUID,
    customer_id: str = Depends(get_current_customer),
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    sub = ledger.cancel(customer_id, subscription_id)
    return success("Subscription cancelled successfully", serialize_subscription(sub))


@router.post("/use-voucher")
async def use_voucher(
    payload: UseVoucherRequest,
    customer_id: str = Depends(get_current_customer),
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    sub, remaining = ledger.use_voucher(customer_id, payload.subscription_id)
    return success(
        "Voucher used successfully",
        {
            "subscription": serialize_subscription(sub),
            "remainingVouchers": remaining,
            "voucherUsed": True,
        },
    )


# Admin


@router.get("/", dependencies=admin_only)
async def list_subscriptions(
    status_filter: Optional[str] = Query(None, alias="status"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    plan_id: Optional[uuid.UUID] = Query(None, alias="planId"),
    include_deleted: bool = Query(False, alias="includeDeleted"),
    sort_by: str = Query("purchaseDate", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page: int = 1,
    limit: int = 20,
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    subs, pagination = ledger.list_subscriptions(
        status=status_filter,
        customer_id=customer_id,
        plan_id=plan_id,
        include_deleted=include_deleted,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return success(
        "Subscriptions retrieved successfully",
        {"subscriptions": [serialize_subscription(s) for s in subs], "pagination": pagination},
    )


@router.get("/stats", dependencies=admin_only)
async def subscription_stats(stats: StatisticsService = Depends(get_statistics)) -> Dict[str, Any]:
    return success("Subscription statistics retrieved", await stats.subscription_statistics())


@router.post("/update-expired", dependencies=admin_only)
async def update_expired_subscriptions(db: Session = Depends(get_db)) -> Dict[str, Any]:
    updated = expire_subscriptions(db)
    return success("Expired subscriptions updated", {"updatedCount": updated})


@router.get("/{subscription_id}", dependencies=admin_only)
async def get_subscription(
    subscription_id: uuid.UUID,
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    return success("Subscription retrieved successfully", serialize_subscription(ledger.get_subscription(subscription_id)))


@router.patch("/{subscription_id}/status", dependencies=admin_only)
async def update_subscription_status(
    subscription_id: uuid.UUID,
    payload: StatusUpdateRequest,
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    sub = ledger.set_status(subscription_id, payload.status)
    return success("Subscription status updated successfully", serialize_subscription(sub))


@router.delete("/{subscription_id}", dependencies=admin_only)
async def delete_subscription(
    subscription_id: uuid.UUID,
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    sub = ledger.soft_delete(subscription_id)
    return success("Subscription deleted successfully", serialize_subscription(sub))


@router.patch("/{subscription_id}/restore", dependencies=admin_only)
async def restore_subscription(
    subscription_id: uuid.UUID,
    ledger: SubscriptionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    sub = ledger.restore(subscription_id)
    return success("Subscription restored successfully", serialize_subscription(sub))
