from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from mealplan.core.exceptions import ValidationError
from mealplan.models import PlanDuration, PlanType, SubscriptionPlan

CENT = Decimal("0.01")


def round_money(value: Decimal | float | int | str) -> Decimal:
    """Round a money amount to two decimals, half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_duration(value: Any) -> Any:
    """Accept 7, "7" and the legacy "7D" spelling."""
    if isinstance(value, str):
        cleaned = value.strip().upper()
        if cleaned.endswith("D"):
            cleaned = cleaned[:-1]
        if cleaned.isdigit():
            return int(cleaned)
    return value


def parse_plan_type(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


def parse_plan_filters(
    plan_type: Optional[str],
    days: Optional[str],
) -> tuple[Optional[PlanType], Optional[PlanDuration]]:
    """Parse the planType/days query filters shared by the listing endpoints."""
    parsed_type = None
    parsed_days = None
    if plan_type:
        try:
            parsed_type = PlanType(parse_plan_type(plan_type))
        except ValueError:
            raise ValidationError(
                f"{plan_type} is not a valid plan type",
                data={"validPlanTypes": [t.value for t in PlanType]},
            )
    if days:
        try:
            parsed_days = PlanDuration(parse_duration(days))
        except (TypeError, ValueError):
            raise ValidationError(
                f"{days} is not a valid plan duration",
                data={"validDurations": [d.value for d in PlanDuration]},
            )
    return parsed_type, parsed_days


def _money_input(value: Any) -> Any:
    # Floats go through str() so 499.99 stays 499.99 rather than its binary expansion.
    if isinstance(value, float):
        return str(value)
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlanCreate(CamelModel):
    plan_name: str = Field(min_length=3, max_length=100)
    days: PlanDuration
    plan_type: PlanType = PlanType.BOTH
    total_vouchers: int = Field(ge=1, le=1000)
    plan_price: Decimal = Field(ge=0)
    compare_at_plan_price: Optional[Decimal] = Field(default=None, ge=0)
    description: str = Field(default="", max_length=1000)
    is_active: bool = True

    @field_validator("plan_name", "description", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("days", mode="before")
    @classmethod
    def normalize_days(cls, value: Any) -> Any:
        return parse_duration(value)

    @field_validator("plan_type", mode="before")
    @classmethod
    def normalize_plan_type(cls, value: Any) -> Any:
        return parse_plan_type(value)

    @field_validator("plan_price", "compare_at_plan_price", mode="before")
    @classmethod
    def coerce_money(cls, value: Any) -> Any:
        return _money_input(value)

    @field_validator("plan_price", "compare_at_plan_price")
    @classmethod
    def round_price(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        return None if value is None else round_money(value)

    @model_validator(mode="after")
    def check_compare_price(self) -> "PlanCreate":
        if self.compare_at_plan_price is not None and self.compare_at_plan_price < self.plan_price:
            raise ValueError("Compare at price must be greater than or equal to plan price")
        return self


class PlanUpdate(CamelModel):
    plan_name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    days: Optional[PlanDuration] = None
    plan_type: Optional[PlanType] = None
    total_vouchers: Optional[int] = Field(default=None, ge=1, le=1000)
    plan_price: Optional[Decimal] = Field(default=None, ge=0)
    compare_at_plan_price: Optional[Decimal] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, max_length=1000)
    is_active: Optional[bool] = None

    @field_validator("plan_name", "description", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("days", mode="before")
    @classmethod
    def normalize_days(cls, value: Any) -> Any:
        return parse_duration(value)

    @field_validator("plan_type", mode="before")
    @classmethod
    def normalize_plan_type(cls, value: Any) -> Any:
        return parse_plan_type(value)

    @field_validator("plan_price", "compare_at_plan_price", mode="before")
    @classmethod
    def coerce_money(cls, value: Any) -> Any:
        return _money_input(value)

    @field_validator("plan_price", "compare_at_plan_price")
    @classmethod
    def round_price(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        return None if value is None else round_money(value)


def serialize_plan(plan: SubscriptionPlan) -> dict[str, Any]:
    return {
        "id": str(plan.id),
        "planName": plan.plan_name,
        "days": plan.days,
        "planType": PlanType(plan.plan_type).value,
        "totalVouchers": plan.total_vouchers,
        "planPrice": float(plan.plan_price),
        "compareAtPlanPrice": (
            float(plan.compare_at_plan_price) if plan.compare_at_plan_price is not None else None
        ),
        "description": plan.description or "",
        "isActive": plan.is_active,
        "createdAt": plan.created_at.isoformat() if plan.created_at else None,
        "updatedAt": plan.updated_at.isoformat() if plan.updated_at else None,
    }
