"""Plain data records passed into and returned from the analytics engines.

Inputs arrive already fetched and tenant-scoped; outputs are built fresh
per call and never persisted here. The API layer and the CLIs validate
raw JSON into these dataclasses with pydantic's TypeAdapter.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from sqlalchemy import TextClause, text


# ── Forecasting ────────────────────────────────────────────────

@dataclass
class RevenueDataPoint:
    date: datetime
    amount: float
    booking_count: int = 0
    average_order_value: float = 0.0
    currency: str = "EUR"


@dataclass
class RevenueForecast:
    date: datetime
    predicted_amount: float
    confidence_lower: float
    confidence_upper: float
    confidence_level: float
    trend_direction: Literal["up", "down", "stable"]
    seasonality_factor: float


@dataclass
class ForecastMetrics:
    mape: float
    rmse: float
    mae: float
    r_squared: float
    accuracy: Literal["high", "medium", "low"]
    confidence: float
    data_quality_score: float


@dataclass
class SeasonalityPattern:
    daily: list[float]
    weekly: list[float]
    monthly: list[float]
    yearly: list[float]
    dominant_cycle: Literal["weekly", "monthly", "yearly"]


@dataclass
class ForecastResult:
    forecasts: list[RevenueForecast]
    metrics: ForecastMetrics
    seasonality: SeasonalityPattern


@dataclass
class ForecastSummary:
    total_forecast_revenue: float
    growth_rate: float
    trend_direction: Literal["increasing", "decreasing", "stable"]
    accuracy: str
    confidence: float
    risk_factors: list[str]
    opportunities: list[str]


# ── Churn ──────────────────────────────────────────────────────

@dataclass
class CustomerBehavior:
    customer_id: str
    total_bookings: int
    total_spent: float
    avg_booking_value: float
    last_booking_days_ago: float
    booking_frequency_days: float
    email_open_rate: float
    email_click_rate: float
    website_visits_last_30d: int
    support_tickets_count: int
    refund_requests: int
    preferred_destination_changes: int
    payment_delays: int
    mobile_app_usage: float
    newsletter_subscribed: bool
    referral_count: int
    account_age_days: float
    last_login_days_ago: float
    profile_completion: float


@dataclass
class ChurnRiskScore:
    customer_id: str
    churn_probability: float
    risk_level: Literal["low", "medium", "high", "critical"]
    confidence: float
    primary_risk_factors: list[str]
    recommended_actions: list[str]
    retention_score: float
    predicted_ltv_remaining: float
    time_to_churn_days: int | None


@dataclass
class RiskFactorCount:
    factor: str
    impact: float
    frequency: int


@dataclass
class RetentionOpportunity:
    segment: str
    customer_count: int
    potential_revenue: float
    recommended_action: str


@dataclass
class ChurnInsights:
    total_customers: int
    high_risk_customers: int
    churn_rate_trend: int
    top_risk_factors: list[RiskFactorCount]
    retention_opportunities: list[RetentionOpportunity]


# ── Segmentation ───────────────────────────────────────────────

@dataclass
class CustomerSegmentationData:
    customer_id: str
    tenant_id: str
    age: int
    location_country: str
    location_city: str
    language_preference: str
    total_bookings: int
    total_spent: float
    avg_booking_value: float
    first_booking_date: datetime
    booking_frequency_days: float
    preferred_destinations: list[str]
    preferred_package_types: list[str]
    email_open_rate: float
    email_click_rate: float
    website_session_count: int
    avg_session_duration: float
    page_views_total: int
    social_media_engagement: float
    payment_method_preferences: list[str]
    payment_delays_count: int
    refund_requests_count: int
    cancellation_rate: float
    referral_count: int
    review_count: int
    loyalty_program_tier: Literal["bronze", "silver", "gold", "platinum"]
    loyalty_points_balance: float
    support_ticket_count: int
    communication_preferences: list[str]
    travel_style: str
    travel_frequency: str
    booking_lead_time_days: float
    seasonal_pattern: str
    budget_sensitivity: str
    account_status: str
    last_activity_date: datetime
    created_at: datetime
    updated_at: datetime
    gender: str | None = None
    last_booking_date: datetime | None = None
    avg_review_rating: float | None = None
    avg_resolution_satisfaction: float | None = None


@dataclass
class SegmentCharacteristics:
    age_range: dict[str, int]
    avg_booking_value: float
    avg_booking_frequency: float
    preferred_destinations: list[str]
    preferred_package_types: list[str]
    travel_style: str
    communication_preference: str
    loyalty_distribution: dict[str, float]


@dataclass
class SegmentInsights:
    key_behaviors: list[str] = field(default_factory=list)
    opportunities: list[str] = field(default_factory=list)
    risks: list[str] = field(default_factory=list)
    recommended_strategies: list[str] = field(default_factory=list)


@dataclass
class SegmentMetrics:
    lifetime_value: float
    acquisition_cost: float
    retention_rate: float
    satisfaction_score: float
    net_promoter_score: float
    campaign_response_rate: float


@dataclass
class CustomerSegment:
    segment_id: str
    segment_name: str
    description: str
    customer_count: int
    total_value: float
    avg_customer_value: float
    growth_rate: float
    churn_risk: Literal["low", "medium", "high"]
    engagement_level: Literal["low", "medium", "high"]
    profitability: Literal["low", "medium", "high"]
    characteristics: SegmentCharacteristics
    insights: SegmentInsights
    metrics: SegmentMetrics
    customer_ids: list[str] = field(default_factory=list)


@dataclass
class QualityMetrics:
    silhouette_score: float
    davies_bouldin_index: float
    calinski_harabasz_index: float
    segment_stability: float | None
    confidence_level: float


@dataclass
class CrossSegmentInsights:
    largest_segment: str
    most_valuable_segment: str
    fastest_growing_segment: str
    highest_risk_segment: str
    best_opportunity_segment: str


@dataclass
class StrategicRecommendation:
    priority: Literal["urgent", "high", "medium", "low"]
    category: Literal["retention", "growth", "optimization"]
    recommendation: str
    expected_impact: str
    implementation_effort: Literal["low", "medium", "high"]


@dataclass
class SegmentationAnalysis:
    analysis_id: str
    tenant_id: str
    analysis_date: datetime
    total_customers: int
    segments: list[CustomerSegment]
    segment_quality_metrics: QualityMetrics
    insights: CrossSegmentInsights
    recommendations: list[StrategicRecommendation]


# ── Recommendations ────────────────────────────────────────────

@dataclass
class BookingRecord:
    destination: str
    package_type: str
    price: float
    booking_date: datetime
    satisfaction_score: float | None = None


@dataclass
class EmailPreferences:
    promotions: bool = True
    newsletters: bool = True
    recommendations: bool = True


@dataclass
class CustomerProfile:
    customer_id: str
    age: int
    location: str
    preferred_destinations: list[str]
    booking_history: list[BookingRecord]
    total_spent: float
    avg_booking_value: float
    booking_frequency_days: float
    last_booking_days_ago: float
    engagement_score: float
    loyalty_tier: Literal["bronze", "silver", "gold", "platinum"]
    communication_preference: Literal["email", "sms", "whatsapp", "phone"]
    budget_range: Literal["budget", "mid-range", "premium", "luxury"]
    travel_style: str
    seasonal_preferences: list[str] = field(default_factory=list)
    email_preferences: EmailPreferences = field(default_factory=EmailPreferences)


@dataclass
class Product:
    id: str
    name: str
    type: str
    destination: str
    price: float
    package_type: str
    travel_style: str
    price_category: str = "mid-range"
    features: list[str] = field(default_factory=list)


@dataclass
class Campaign:
    id: str
    name: str
    type: Literal["email", "sms", "push", "whatsapp"]
    target_segment: str
    template: str
    cta: str = ""
    ab_test_enabled: bool = False


@dataclass
class ProductRecommendation:
    customer_id: str
    product_id: str
    product_name: str
    product_type: str
    destination: str
    price: float
    confidence_score: float
    reasoning: list[str]
    expected_conversion_rate: float
    expected_revenue: float
    priority: Literal["urgent", "high", "medium", "low"]
    validity_days: int
    personalization_factors: list[str]
    cross_sell_potential: float
    up_sell_potential: float


@dataclass
class SendTime:
    day_of_week: int
    hour: int
    timezone: str


@dataclass
class CampaignRecommendation:
    campaign_id: str
    campaign_name: str
    campaign_type: str
    target_segment: str
    message_template: str
    call_to_action: str
    confidence_score: float
    expected_open_rate: float
    expected_click_rate: float
    expected_conversion_rate: float
    optimal_send_time: SendTime
    urgency_level: Literal["critical", "high", "medium", "low"]
    personalization_tokens: dict[str, str]
    a_b_test_variant: str | None = None


@dataclass
class SegmentInsight:
    segment_id: str
    segment_name: str
    customer_count: int
    characteristics: list[str]
    value_score: float
    growth_potential: float
    recommended_actions: list[str]
    success_probability: float
    expected_roi: float


@dataclass
class SegmentBreakdown:
    count: int
    avg_confidence: float
    expected_revenue: float


@dataclass
class RecommendationSummary:
    total_recommendations: int
    high_priority_count: int
    expected_total_revenue: float
    avg_confidence_score: float
    product_recommendations: int
    campaign_recommendations: int
    cross_sell_opportunities: int
    up_sell_opportunities: int
    segment_breakdown: dict[str, SegmentBreakdown]


# ── Natural-language queries ───────────────────────────────────

QueryType = Literal["leads", "bookings", "revenue", "contacts", "analytics", "unknown"]


@dataclass
class QueryFilter:
    field: str
    operator: Literal["eq", "ne", "gt", "lt", "gte", "lte", "like", "in", "between"]
    value: Any
    table: str | None = None


@dataclass
class TimeFrame:
    type: Literal["absolute", "relative"]
    start: datetime | None = None
    end: datetime | None = None
    period: Literal["day", "week", "month", "year"] | None = None
    count: int | None = None


@dataclass
class QueryClassification:
    type: QueryType
    confidence: float
    intent: Literal["list", "count", "compare", "analyze", "sum"]
    entities: dict[str, Any]
    filters: list[QueryFilter]
    aggregation: Literal["count", "sum", "avg", "max", "min"] | None = None
    timeframe: TimeFrame | None = None


_PLACEHOLDER = re.compile(r"\$(\d+)")


@dataclass
class SQLQueryResult:
    sql: str
    params: list[Any]
    tables: list[str]
    visualization_type: Literal["table", "chart", "metrics"]
    expected_columns: list[str]

    def to_sqlalchemy(self) -> tuple[TextClause, dict[str, Any]]:
        """Rewrite positional $n placeholders as named SQLAlchemy binds.

        Returns:
            (text clause, bind params) ready for ``conn.execute``.
        """
        clause = text(_PLACEHOLDER.sub(lambda m: f":p{m.group(1)}", self.sql))
        binds = {f"p{i}": value for i, value in enumerate(self.params, start=1)}
        return clause, binds


@dataclass
class CompiledQuery:
    classification: QueryClassification
    result: SQLQueryResult
