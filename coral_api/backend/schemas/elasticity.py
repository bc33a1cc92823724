"""Response models for the elasticity summary (camelCase on the wire)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class LambdaSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    estimate: float
    ci_lower: float | None = Field(default=None, serialization_alias="ciLower")
    ci_upper: float | None = Field(default=None, serialization_alias="ciUpper")
    p_decline: float | None = Field(default=None, serialization_alias="pDecline")
    interpretation: str


class CategoryElasticity(BaseModel):
    """Summed elasticity per transition category, in percent."""

    stasis: float
    growth: float
    shrinkage: float
    fragmentation: float


class DominantInsight(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dominant: str
    dominant_pct: float = Field(serialization_alias="dominantPct")
    implication: str


class ElasticitySummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lambda_: LambdaSummary = Field(serialization_alias="lambda")
    generation_time: float | None = Field(default=None, serialization_alias="generationTime")
    elasticity: CategoryElasticity
    insights: DominantInsight
