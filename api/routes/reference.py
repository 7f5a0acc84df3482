"""
Lookup list endpoints for filter pickers.

GET /api/v1/brands      → brands, optionally FTS-filtered with ?q=
GET /api/v1/categories  → categories
GET /api/v1/stores      → stores

The returned ids are the values accepted by the brand/category/store
filters of GET /api/v1/foods.
"""

import sqlite3

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from api.database import get_db
from api.models import LookupOut
from utils.query import DEFAULT_LOOKUP_LIMIT, list_lookup

router = APIRouter(tags=["reference"])

_CACHE_HEADER = {"Cache-Control": "max-age=3600"}


def _lookup_response(conn: sqlite3.Connection, kind: str, q: str | None,
                     limit: int) -> JSONResponse:
    data = list_lookup(conn, kind, q, limit=limit)
    return JSONResponse(content=data, headers=_CACHE_HEADER)


@router.get("/brands", response_model=list[LookupOut], summary="List brands")
def list_brands(
    q: str | None = Query(None, description="Search text; results ordered by rank"),
    limit: int = Query(DEFAULT_LOOKUP_LIMIT, ge=1, le=1000),
    conn: sqlite3.Connection = Depends(get_db),
) -> JSONResponse:
    """Return brands alphabetically, or matching ``q`` by rank."""
    return _lookup_response(conn, "brands", q, limit)


@router.get("/categories", response_model=list[LookupOut], summary="List categories")
def list_categories(
    q: str | None = Query(None, description="Search text; results ordered by rank"),
    limit: int = Query(DEFAULT_LOOKUP_LIMIT, ge=1, le=1000),
    conn: sqlite3.Connection = Depends(get_db),
) -> JSONResponse:
    """Return categories alphabetically, or matching ``q`` by rank."""
    return _lookup_response(conn, "categories", q, limit)


@router.get("/stores", response_model=list[LookupOut], summary="List stores")
def list_stores(
    q: str | None = Query(None, description="Search text; results ordered by rank"),
    limit: int = Query(DEFAULT_LOOKUP_LIMIT, ge=1, le=1000),
    conn: sqlite3.Connection = Depends(get_db),
) -> JSONResponse:
    """Return stores alphabetically, or matching ``q`` by rank."""
    return _lookup_response(conn, "stores", q, limit)
