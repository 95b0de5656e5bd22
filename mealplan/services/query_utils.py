"""Sorting and pagination shared by the list endpoints."""
from __future__ import annotations

import math
from typing import Any, Mapping

from sqlalchemy.orm import Query

from mealplan.core.exceptions import ValidationError

MAX_PAGE_SIZE = 100


def apply_sort(query: Query, columns: Mapping[str, Any], sort_by: str, sort_order: str) -> Query:
    column = columns.get(sort_by)
    if column is None:
        raise ValidationError(
            f"Invalid sort field: {sort_by}",
            data={"validSortFields": sorted(columns)},
        )
    order = (sort_order or "desc").lower()
    if order not in ("asc", "desc"):
        raise ValidationError("sortOrder must be 'asc' or 'desc'")
    return query.order_by(column.asc() if order == "asc" else column.desc())


def paginate(query: Query, page: int, limit: int) -> tuple[list[Any], dict[str, int]]:
    if page < 1:
        raise ValidationError("page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, {
        "currentPage": page,
        "totalPages": math.ceil(total / limit) if total else 0,
        "totalCount": total,
        "limit": limit,
    }
