"""
Pydantic response models for the read API.

Optional fields default to None so that rows with NULL columns validate.
Nutrient values are per 100 g, rounded to two decimals at export time.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


# ── Lookup models ─────────────────────────────────────────────────────────────

class LookupOut(BaseModel):
    """A brand, category or store with its lookup id."""
    id: int = Field(..., description="Lookup table id, usable as a food filter", examples=[12])
    name: str = Field(..., description="Distinct token from the product lists", examples=["Ritter Sport"])


# ── Food models ───────────────────────────────────────────────────────────────

class FoodOut(BaseModel):
    """A single exported product row."""
    id: int = Field(..., description="Food row id", examples=[1001])
    name: str | None = Field(None, description="Product name, or the raw brands text when the name was empty",
                             examples=["Vollmilch Schokolade"])
    url: str | None = Field(None, description="OpenFoodFacts product page")
    image_url: str | None = Field(None, description="Product image URL")
    brands: list[str] | None = Field(None, description="Brands, split from the comma-separated source field",
                                     examples=[["Ritter Sport"]])
    categories: list[str] | None = Field(None, description="Categories", examples=[["Snacks", "Chocolates"]])
    stores: list[str] | None = Field(None, description="Stores", examples=[["Edeka", "Rewe"]])
    fat: float = Field(..., description="Fat in g per 100 g", examples=[30.5])
    protein: float = Field(..., description="Protein in g per 100 g", examples=[7.2])
    carbs: float = Field(..., description="Carbohydrates in g per 100 g", examples=[55.0])
    energy: float = Field(..., description="Energy in kcal per 100 g", examples=[540.0])
    protein_fat_index: float | None = Field(None, description="protein / fat; absent when fat is 0 or missing",
                                            examples=[0.24])


class FoodPageOut(BaseModel):
    """Response body for GET /api/v1/foods."""
    total: int = Field(..., description="Total matching rows (before pagination)", examples=[3842])
    page: int = Field(..., description="1-based page number", examples=[1])
    limit: int = Field(..., description="Page size used", examples=[21])
    total_pages: int = Field(..., description="Number of pages at this page size", examples=[183])
    has_next: bool = Field(..., description="Whether a further page exists")
    items: list[FoodOut] = Field(..., description="Food rows for this page")


# ── Error model ───────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Standard error response body."""
    error: str = Field(..., description="Short error category", examples=["Bad request"])
    detail: str | None = Field(None, description="Extended error detail")
    status_code: int = Field(..., ge=400, le=599, description="HTTP status code", examples=[400])
