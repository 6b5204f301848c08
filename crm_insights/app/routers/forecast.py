"""Forecast endpoints: daily revenue forecast and headline summary."""

from fastapi import APIRouter

from crm_insights.analysis.forecasting import RevenueForecaster
from crm_insights.app.schemas import ForecastRequest
from crm_insights.models import ForecastResult, ForecastSummary

router = APIRouter(prefix="/forecast", tags=["Forecast"])

forecaster = RevenueForecaster()


@router.post("", response_model=ForecastResult)
def create_forecast(body: ForecastRequest):
    return forecaster.generate_forecast(
        body.history, forecast_days=body.forecast_days, confidence_level=body.confidence_level
    )


@router.post("/summary", response_model=ForecastSummary)
def create_forecast_summary(body: ForecastRequest):
    return forecaster.get_forecast_summary(body.history, days=body.forecast_days)
