"""Pydantic request models. Engine records (dataclasses) are embedded
as-is, so the JSON shape of each input matches the core's data model;
responses are the engines' own dataclasses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from crm_insights.config import (
    CAMPAIGN_MAX_RESULTS, CAMPAIGN_MIN_CONFIDENCE, FORECAST_DEFAULT_CONFIDENCE,
    FORECAST_DEFAULT_DAYS, MIN_SEGMENT_SIZE, RECOMMENDATION_MAX_RESULTS,
    RECOMMENDATION_MIN_CONFIDENCE, SEGMENT_COUNT, SEGMENT_QUALITY_MODE,
)
from crm_insights.models import (
    Campaign, ChurnRiskScore, CustomerBehavior, CustomerProfile,
    CustomerSegmentationData, Product, QueryClassification, RevenueDataPoint,
)


class ForecastRequest(BaseModel):
    history: list[RevenueDataPoint]
    forecast_days: int = Field(FORECAST_DEFAULT_DAYS, ge=1, le=365)
    confidence_level: float = FORECAST_DEFAULT_CONFIDENCE


class ChurnBatchRequest(BaseModel):
    customers: list[CustomerBehavior]
    prioritize_high_value: bool = False
    min_confidence: float | None = Field(None, ge=0, le=1)
    max_results: int | None = Field(None, ge=1)


class ChurnBatchResponse(BaseModel):
    predictions: list[ChurnRiskScore]
    total: int


class SegmentationRequest(BaseModel):
    customers: list[CustomerSegmentationData]
    segment_count: int = Field(SEGMENT_COUNT, ge=1)
    min_segment_size: int = Field(MIN_SEGMENT_SIZE, ge=1)
    include_rfm: bool = True
    stability_analysis: bool = False
    quality_mode: Literal["placeholder", "computed"] = SEGMENT_QUALITY_MODE
    random_state: int | None = None
    reference_date: datetime | None = None


class ProductRecommendationRequest(BaseModel):
    profile: CustomerProfile
    products: list[Product]
    max_recommendations: int = Field(RECOMMENDATION_MAX_RESULTS, ge=1)
    min_confidence: float = Field(RECOMMENDATION_MIN_CONFIDENCE, ge=0, le=1)
    include_cross_sell: bool = True
    include_up_sell: bool = True
    exclude_recent: bool = True


class CampaignRecommendationRequest(BaseModel):
    profiles: list[CustomerProfile]
    campaigns: list[Campaign]
    max_campaigns: int = Field(CAMPAIGN_MAX_RESULTS, ge=1)
    min_confidence: float = Field(CAMPAIGN_MIN_CONFIDENCE, ge=0, le=1)
    target_segments: list[str] | None = None


class SegmentInsightRequest(BaseModel):
    profiles: list[CustomerProfile]


class RecommendationSummaryRequest(BaseModel):
    profiles: list[CustomerProfile]
    products: list[Product]
    campaigns: list[Campaign] = []


class NLQueryRequest(BaseModel):
    query: str = Field(min_length=3, max_length=500)
    tenant_id: str = Field(min_length=1)
    context: Literal["leads", "bookings", "revenue", "contacts", "analytics"] | None = None
    language: Literal["de", "en"] = "de"


class NLQueryResponse(BaseModel):
    classification: QueryClassification
    sql: str
    params: list
    tables: list[str]
    visualization_type: str
    expected_columns: list[str]
