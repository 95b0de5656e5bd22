"""Shared API auth and service dependencies."""
from fastapi import Depends
from sqlalchemy.orm import Session

from mealplan.core.security import get_current_admin, get_current_customer
from mealplan.database import get_db
from mealplan.services.plan_catalog import PlanCatalog
from mealplan.services.statistics_service import StatisticsService
from mealplan.services.subscription_ledger import SubscriptionLedger


def get_plan_catalog(db: Session = Depends(get_db)) -> PlanCatalog:
    return PlanCatalog(db)


def get_ledger(db: Session = Depends(get_db)) -> SubscriptionLedger:
    return SubscriptionLedger(db)


def get_statistics(db: Session = Depends(get_db)) -> StatisticsService:
    return StatisticsService(db)


__all__ = [
    "get_current_admin",
    "get_current_customer",
    "get_ledger",
    "get_plan_catalog",
    "get_statistics",
]
