"""Pydantic schemas for material requests and their matches."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from wastex.domain.enums import (
    Frequency,
    MaterialCategory,
    QualityGrade,
    QuantityUnit,
    Urgency,
)


class CreateMaterialRequest(BaseModel):
    """Request body for a buyer's material request."""

    title: str = Field(..., min_length=3, max_length=200)
    material_type: str = Field(..., min_length=1, max_length=120, examples=["PET bottles"])
    category: MaterialCategory
    quantity_value: Decimal = Field(..., gt=0)
    quantity_unit: QuantityUnit = QuantityUnit.KG
    frequency: Frequency
    budget_min: Decimal | None = Field(default=None, ge=0)
    budget_max: Decimal = Field(..., gt=0, description="Maximum price the buyer will pay")
    preferred_cities: list[str] = Field(default_factory=list, max_length=20)
    state: str | None = None
    quality_grade: QualityGrade
    urgency: Urgency = Urgency.MEDIUM
    description: str | None = Field(default=None, max_length=5000)


class MatchEntry(BaseModel):
    listing_id: uuid.UUID
    score: int = Field(..., ge=0, le=100)
    reasons: list[str]


class MaterialRequestResponse(BaseModel):
    """Response schema for a material request, matches included."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    buyer_id: uuid.UUID
    title: str
    material_type: str
    category: str
    quantity_value: Decimal
    quantity_unit: str
    frequency: str
    budget_min: Decimal | None
    budget_max: Decimal
    currency: str
    preferred_cities: list[str]
    quality_grade: str
    urgency: str
    status: str
    matches: list[MatchEntry]
    matches_computed_at: datetime | None
    created_at: datetime
