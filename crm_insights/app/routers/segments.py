"""Segment endpoints: full RFM + behavioral segmentation analysis."""

from fastapi import APIRouter

from crm_insights.analysis.segmentation import CustomerSegmentationEngine
from crm_insights.app.schemas import SegmentationRequest
from crm_insights.config import SegmentationConfig
from crm_insights.models import SegmentationAnalysis

router = APIRouter(prefix="/segments", tags=["Segments"])

engine = CustomerSegmentationEngine()


@router.post("/analysis", response_model=SegmentationAnalysis)
def analyze_segments(body: SegmentationRequest):
    config = SegmentationConfig(
        segment_count=body.segment_count,
        min_segment_size=body.min_segment_size,
        include_rfm=body.include_rfm,
        stability_analysis=body.stability_analysis,
        quality_mode=body.quality_mode,
        random_state=body.random_state,
    )
    return engine.perform_segmentation_analysis(
        body.customers, config=config, reference_date=body.reference_date
    )
