"""Recommendation endpoints: products, campaigns, rule segments, summary."""

from fastapi import APIRouter

from crm_insights.analysis.recommendations import SmartRecommendationsEngine
from crm_insights.app.schemas import (
    CampaignRecommendationRequest, ProductRecommendationRequest,
    RecommendationSummaryRequest, SegmentInsightRequest,
)
from crm_insights.models import (
    CampaignRecommendation, ProductRecommendation, RecommendationSummary, SegmentInsight,
)

router = APIRouter(prefix="/recommendations", tags=["Recommendations"])

engine = SmartRecommendationsEngine()


@router.post("/products", response_model=list[ProductRecommendation])
def recommend_products(body: ProductRecommendationRequest):
    return engine.generate_product_recommendations(
        body.profile,
        body.products,
        max_recommendations=body.max_recommendations,
        min_confidence=body.min_confidence,
        include_cross_sell=body.include_cross_sell,
        include_up_sell=body.include_up_sell,
        exclude_recent=body.exclude_recent,
    )


@router.post("/campaigns", response_model=list[CampaignRecommendation])
def recommend_campaigns(body: CampaignRecommendationRequest):
    return engine.generate_campaign_recommendations(
        body.profiles,
        body.campaigns,
        max_campaigns=body.max_campaigns,
        min_confidence=body.min_confidence,
        target_segments=body.target_segments,
    )


@router.post("/segments", response_model=list[SegmentInsight])
def segment_insights(body: SegmentInsightRequest):
    return engine.analyze_customer_segments(body.profiles)


@router.post("/summary", response_model=RecommendationSummary)
def recommendation_summary(body: RecommendationSummaryRequest):
    product_recs = [
        rec for profile in body.profiles
        for rec in engine.generate_product_recommendations(profile, body.products)
    ]
    campaign_recs = engine.generate_campaign_recommendations(body.profiles, body.campaigns)
    return engine.generate_recommendation_summary(body.profiles, product_recs, campaign_recs)
