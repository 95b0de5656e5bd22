"""
Plan catalog routes.
Public listing of active plans and admin management of the catalog.
"""
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from mealplan.api.dependencies import get_current_admin, get_plan_catalog, get_statistics
from mealplan.api.errors import success
from mealplan.schemas.plan import PlanCreate, PlanUpdate, parse_plan_filters, serialize_plan
from mealplan.services.plan_catalog import PlanCatalog
from mealplan.services.statistics_service import StatisticsService

router = APIRouter()
admin_only = [Depends(get_current_admin)]


# Public


@router.get("/public")
async def list_active_plans(
    plan_type: Optional[str] = Query(None, alias="planType"),
    days: Optional[str] = None,
    sort_by: str = Query("planPrice", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> Dict[str, Any]:
    parsed_type, parsed_days = parse_plan_filters(plan_type, days)
    plans = catalog.list_active_plans(parsed_type, parsed_days, sort_by, sort_order)
    return success(
        "Active subscription plans retrieved successfully",
        [serialize_plan(p) for p in plans],
    )


@router.get("/public/grouped")
async def list_active_plans_grouped(catalog: PlanCatalog = Depends(get_plan_catalog)) -> Dict[str, Any]:
    grouped = catalog.list_active_plans_grouped()
    return success(
        "Subscription plans grouped by type",
        {plan_type: [serialize_plan(p) for p in plans] for plan_type, plans in grouped.items()},
    )


@router.get("/public/{plan_id}")
async def get_active_plan(plan_id: uuid.UUID, catalog: PlanCatalog = Depends(get_plan_catalog)) -> Dict[str, Any]:
    plan = catalog.get_plan(plan_id, active_only=True)
    return success("Subscription plan retrieved successfully", serialize_plan(plan))


# Admin


@router.post("/", status_code=status.HTTP_201_CREATED, dependencies=admin_only)
async def create_plan(payload: PlanCreate, catalog: PlanCatalog = Depends(get_plan_catalog)) -> Dict[str, Any]:
    plan = catalog.create_plan(payload)
    return success("Subscription plan created successfully", serialize_plan(plan))


@router.get("/", dependencies=admin_only)
async def list_plans(
    plan_type: Optional[str] = Query(None, alias="planType"),
    days: Optional[str] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    min_price: Optional[Decimal] = Query(None, alias="minPrice"),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page: int = 1,
    limit: int = 20,
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> Dict[str, Any]:
    parsed_type, parsed_days = parse_plan_filters(plan_type, days)
    plans, pagination = catalog.list_plans_admin(
        plan_type=parsed_type,
        days=parsed_days,
        is_active=is_active,
        min_price=min_price,
        max_price=max_price,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return success(
        "Subscription plans retrieved successfully",
        {"subscriptionPlans": [serialize_plan(p) for p in plans], "pagination": pagination},
    )


@router.get("/stats", dependencies=admin_only)
async def plan_stats(stats: StatisticsService = Depends(get_statistics)) -> Dict[str, Any]:
    return success("Subscription plan statistics retrieved", await stats.plan_statistics())


@router.get("/{plan_id}", dependencies=admin_only)
async def get_plan(plan_id: uuid.UUID, catalog: PlanCatalog = Depends(get_plan_catalog)) -> Dict[str, Any]:
    return success("Subscription plan retrieved successfully", serialize_plan(catalog.get_plan(plan_id)))


@router.put("/{plan_id}", dependencies=admin_only)
async def update_plan(
    plan_id: uuid.UUID,
    payload: PlanUpdate,
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> Dict[str, Any]:
    plan = catalog.update_plan(plan_id, payload)
    return success("Subscription plan updated successfully", serialize_plan(plan))


@router.patch("/{plan_id}/activate", dependencies=admin_only)
async def activate_plan(plan_id: uuid.UUID, catalog: PlanCatalog = Depends(get_plan_catalog)) -> Dict[str, Any]:
    plan = catalog.activate_plan(plan_id)
    return success("Subscription plan activated successfully", serialize_plan(plan))


@router.delete("/{plan_id}", dependencies=admin_only)
async def deactivate_plan(plan_id: uuid.UUID, catalog: PlanCatalog = Depends(get_plan_catalog)) -> Dict[str, Any]:
    plan = catalog.deactivate_plan(plan_id)
    return success("Subscription plan deactivated successfully", serialize_plan(plan))
