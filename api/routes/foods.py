"""
GET /api/v1/foods endpoint.

Full-text search on product names, brand/category/store id filters,
multi-field sorting and page-based pagination. Also handles the
GET /api/v1/foods/{id} single-item endpoint.
"""

import sqlite3

from fastapi import APIRouter, Depends, HTTPException, Query

from api.database import get_db
from api.models import FoodOut, FoodPageOut
from utils.query import DEFAULT_PAGE_SIZE, SORTABLE_FIELDS, get_food, parse_sort, query_foods

router = APIRouter(prefix="/foods", tags=["foods"])


@router.get("", response_model=FoodPageOut, summary="List foods")
def list_foods(
    q: str | None = Query(None, description="Search product names (prefix match on the last word)"),
    brand: list[int] | None = Query(None, description="Filter by brand id(s)"),
    category: list[int] | None = Query(None, description="Filter by category id(s)"),
    store: list[int] | None = Query(None, description="Filter by store id(s)"),
    sort: list[str] | None = Query(
        None,
        description=f"Sort spec(s) field[:asc|desc]; fields: {', '.join(SORTABLE_FIELDS)}",
    ),
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=500, description="Max items per page"),
    conn: sqlite3.Connection = Depends(get_db),
) -> FoodPageOut:
    """Return a paginated, filtered list of foods.

    Without ``sort`` the order is search rank when ``q`` is given, else name.
    """
    try:
        sort_fields = [parse_sort(s) for s in sort or []]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    result = query_foods(
        conn, q,
        brand_ids=brand or [], category_ids=category or [], store_ids=store or [],
        sort=sort_fields, page=page, limit=limit,
    )
    return FoodPageOut(
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
        has_next=result.has_next,
        items=[FoodOut(**item) for item in result.items],
    )


@router.get("/{food_id}", response_model=FoodOut, summary="Get single food")
def get_food_item(
    food_id: int,
    conn: sqlite3.Connection = Depends(get_db),
) -> FoodOut:
    """Return a single food row by ID."""
    row = get_food(conn, food_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Food {food_id} not found")
    return FoodOut(**row)
