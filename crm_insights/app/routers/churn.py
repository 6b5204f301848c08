"""Churn endpoints: single score, prioritized batch, population insights."""

from fastapi import APIRouter

from crm_insights.analysis.churn_model import ChurnPredictor
from crm_insights.app.schemas import ChurnBatchRequest, ChurnBatchResponse
from crm_insights.models import ChurnInsights, ChurnRiskScore, CustomerBehavior

router = APIRouter(prefix="/churn", tags=["Churn"])

predictor = ChurnPredictor()


@router.post("/score", response_model=ChurnRiskScore)
def score_customer(behavior: CustomerBehavior):
    return predictor.predict_churn_risk(behavior)


@router.post("/batch", response_model=ChurnBatchResponse)
def score_batch(body: ChurnBatchRequest):
    predictions = predictor.batch_predict_churn(
        body.customers,
        prioritize_high_value=body.prioritize_high_value,
        min_confidence=body.min_confidence,
        max_results=body.max_results,
    )
    return ChurnBatchResponse(predictions=predictions, total=len(predictions))


@router.post("/insights", response_model=ChurnInsights)
def churn_insights(body: ChurnBatchRequest):
    predictions = predictor.batch_predict_churn(body.customers)
    return predictor.generate_churn_insights(predictions)
