"""Revenue Forecasting: Holt-Winters exponential smoothing on daily revenue.

Fits level, trend and a weekly seasonal index to a contiguous daily series,
then projects forward with confidence bands that widen with the horizon.

Key principle: the caller fills gap days with zero-amount points. The
forecaster treats the input as one observation per calendar day.

Usage:
    python -m crm_insights.analysis.forecasting data/revenue_history.json
"""

from pathlib import Path
import sys

import pandas as pd
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from sklearn.metrics import (
    mean_absolute_error, mean_absolute_percentage_error, mean_squared_error, r2_score,
)

from crm_insights.config import (
    FORECAST_DEFAULT_CONFIDENCE, FORECAST_DEFAULT_DAYS, FORECAST_METRICS_WINDOW,
    FORECAST_MIN_HISTORY, HOLT_WINTERS_ALPHA, HOLT_WINTERS_BETA, HOLT_WINTERS_GAMMA,
    REPORTS_DIR, SEASONAL_PERIOD, Z_SCORE_FALLBACK, Z_SCORES,
)
from crm_insights.errors import InsufficientDataError
from crm_insights.loaders import load_records
from crm_insights.logger import log
from crm_insights.models import (
    ForecastMetrics, ForecastResult, ForecastSummary, RevenueDataPoint,
    RevenueForecast, SeasonalityPattern,
)
from crm_insights.timeutils import to_naive


class RevenueForecaster:
    """Holt-Winters forecaster for a daily revenue series.

    Holds only the smoothing constants, so one instance can be shared
    across threads.
    """

    def __init__(
        self,
        alpha: float = HOLT_WINTERS_ALPHA,
        beta: float = HOLT_WINTERS_BETA,
        gamma: float = HOLT_WINTERS_GAMMA,
    ):
        self._alpha = alpha
        self._beta = beta
        self._gamma = gamma
        self._period = SEASONAL_PERIOD

    def generate_forecast(
        self,
        history: list[RevenueDataPoint],
        forecast_days: int = FORECAST_DEFAULT_DAYS,
        confidence_level: float = FORECAST_DEFAULT_CONFIDENCE,
    ) -> ForecastResult:
        """Forecast the next ``forecast_days`` days of revenue.

        Args:
            history: Daily revenue points, one per calendar day.
            forecast_days: Horizon length.
            confidence_level: 0.95, 0.90 or 0.99 (anything else uses the 99% z).

        Returns:
            ForecastResult with forecasts, accuracy metrics and seasonality.

        Raises:
            InsufficientDataError: fewer than 14 history points.
        """
        if len(history) < FORECAST_MIN_HISTORY:
            log.warning(f"Forecast requested with only {len(history)} data points")
            raise InsufficientDataError(
                f"At least {FORECAST_MIN_HISTORY} data points required for forecasting",
                required=FORECAST_MIN_HISTORY, actual=len(history),
            )
        if forecast_days < 1:
            raise ValueError("forecast_days must be at least 1")

        series = self._prepare_series(history)
        seasonality = self._detect_seasonality(series)
        data = series["amount"].to_numpy(dtype=float)

        level, trend, seasonal = self._holt_winters(
            data, np.array(seasonality.weekly), forecast_days
        )
        predictions = self._project(level, trend, seasonal, forecast_days)
        forecasts = self._build_forecasts(
            series, data, level, seasonal, predictions, confidence_level
        )
        metrics = self._calculate_metrics(data, forecasts)

        log.info(
            f"Forecast {forecast_days} days from {len(data)} points "
            f"(dominant cycle: {seasonality.dominant_cycle}, accuracy: {metrics.accuracy})"
        )
        return ForecastResult(forecasts=forecasts, metrics=metrics, seasonality=seasonality)

    def get_forecast_summary(
        self, history: list[RevenueDataPoint], days: int = FORECAST_DEFAULT_DAYS
    ) -> ForecastSummary:
        """Condense a forecast into totals, growth and headline risks.

        Growth compares the forecast total against the last ``days`` of
        actual revenue.
        """
        result = self.generate_forecast(history, days)
        forecasts, metrics = result.forecasts, result.metrics

        total_forecast = sum(f.predicted_amount for f in forecasts)
        recent = self._prepare_series(history)["amount"].iloc[-days:].sum()
        growth_rate = (total_forecast - recent) / recent * 100 if recent > 0 else 0.0

        counts = pd.Series([f.trend_direction for f in forecasts]).value_counts()
        up, down, stable = (int(counts.get(k, 0)) for k in ("up", "down", "stable"))
        if up > down and up > stable:
            direction = "increasing"
        elif down > up and down > stable:
            direction = "decreasing"
        else:
            direction = "stable"

        risk_factors = []
        if metrics.accuracy == "low":
            risk_factors.append("Low forecast accuracy - results may be unreliable")
        if growth_rate < -10:
            risk_factors.append("Significant revenue decline predicted")
        if metrics.data_quality_score < 0.7:
            risk_factors.append("Insufficient historical data quality")

        opportunities = []
        if growth_rate > 10:
            opportunities.append("Strong revenue growth expected")
        if direction == "increasing":
            opportunities.append("Positive trend momentum")
        if metrics.confidence > 0.8:
            opportunities.append("High confidence predictions - good for planning")

        return ForecastSummary(
            total_forecast_revenue=round(total_forecast, 2),
            growth_rate=round(float(growth_rate), 2),
            trend_direction=direction,
            accuracy=metrics.accuracy,
            confidence=metrics.confidence,
            risk_factors=risk_factors,
            opportunities=opportunities,
        )

    # ── Private helpers ────────────────────────────────────────

    @staticmethod
    def _prepare_series(history: list[RevenueDataPoint]) -> pd.DataFrame:
        df = pd.DataFrame({
            "date": pd.to_datetime([to_naive(p.date) for p in history]),
            "amount": [float(p.amount) for p in history],
        })
        return df.sort_values("date", kind="stable").reset_index(drop=True)

    @staticmethod
    def _bucket_means(amounts: pd.Series, keys: pd.Series, size: int) -> list[float]:
        """Average amount per bucket; empty buckets are 0."""
        means = amounts.groupby(keys.to_numpy()).mean()
        return means.reindex(range(size), fill_value=0.0).astype(float).tolist()

    def _detect_seasonality(self, series: pd.DataFrame) -> SeasonalityPattern:
        """Bucket averages by hour, weekday (Sunday = 0), day of month and month.

        The dominant cycle is the weekly/monthly/yearly pattern with the
        largest variance; the hourly pattern is reported but not compared.
        """
        dates, amounts = series["date"], series["amount"]

        daily = self._bucket_means(amounts, dates.dt.hour, 24)
        weekly = self._bucket_means(amounts, (dates.dt.dayofweek + 1) % 7, 7)
        monthly = self._bucket_means(amounts, dates.dt.day - 1, 31)
        yearly = self._bucket_means(amounts, dates.dt.month - 1, 12)

        weekly_var = float(np.var(weekly))
        monthly_var = float(np.var(monthly[:30]))
        yearly_var = float(np.var(yearly))
        max_var = max(weekly_var, monthly_var, yearly_var)

        if max_var == yearly_var:
            dominant = "yearly"
        elif max_var == monthly_var:
            dominant = "monthly"
        else:
            dominant = "weekly"

        return SeasonalityPattern(
            daily=daily, weekly=weekly, monthly=monthly, yearly=yearly,
            dominant_cycle=dominant,
        )

    def _holt_winters(
        self, data: np.ndarray, weekly: np.ndarray, horizon: int
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Multiplicative-season Holt-Winters pass over the history.

        Returns:
            (level, trend, seasonal); seasonal covers history + horizon.
        """
        n, s = len(data), self._period
        pattern_mean = weekly.mean()
        if pattern_mean:
            seasonal = np.array([weekly[i % s] / pattern_mean for i in range(n + horizon)])
        else:
            seasonal = np.ones(n + horizon)

        level = np.zeros(n)
        trend = np.zeros(n)
        level[0] = data[0]
        trend[0] = data[1] - data[0]

        for i in range(1, n):
            prev_seasonal = seasonal[i - s] if i >= s and seasonal[i - s] else seasonal[i % s]
            if not prev_seasonal:
                prev_seasonal = 1.0

            level[i] = (
                self._alpha * (data[i] / prev_seasonal)
                + (1 - self._alpha) * (level[i - 1] + trend[i - 1])
            )
            trend[i] = (
                self._beta * (level[i] - level[i - 1])
                + (1 - self._beta) * trend[i - 1]
            )
            if i >= s:
                if level[i]:
                    seasonal[i] = (
                        self._gamma * (data[i] / level[i])
                        + (1 - self._gamma) * seasonal[i - s]
                    )
                else:
                    seasonal[i] = seasonal[i - s]

        return level, trend, seasonal

    def _project(
        self, level: np.ndarray, trend: np.ndarray, seasonal: np.ndarray, horizon: int
    ) -> list[float]:
        n, s = len(level), self._period
        predictions = []
        for i in range(horizon):
            factor = seasonal[n + i - s] or seasonal[(n + i) % s]
            predictions.append(max(0.0, float((level[-1] + (i + 1) * trend[-1]) * factor)))
        return predictions

    def _build_forecasts(
        self,
        series: pd.DataFrame,
        data: np.ndarray,
        level: np.ndarray,
        seasonal: np.ndarray,
        predictions: list[float],
        confidence_level: float,
    ) -> list[RevenueForecast]:
        """Attach dates, widening confidence bands and trend labels."""
        n = len(data)
        fitted_seasonal = np.where(seasonal[:n] != 0, seasonal[:n], 1.0)
        residuals = data - level * fitted_seasonal
        std_dev = float(np.std(residuals))
        z = Z_SCORES.get(confidence_level, Z_SCORE_FALLBACK)
        last_date = series["date"].iloc[-1]

        forecasts = []
        for i, predicted in enumerate(predictions):
            margin = z * std_dev * np.sqrt(i + 1)

            if i == 0 or predicted == predictions[i - 1]:
                direction = "stable"
            elif predicted > predictions[i - 1]:
                direction = "up"
            else:
                direction = "down"

            forecasts.append(RevenueForecast(
                date=(last_date + pd.Timedelta(days=i + 1)).to_pydatetime(),
                predicted_amount=round(predicted, 2),
                confidence_lower=max(0.0, round(predicted - margin, 2)),
                confidence_upper=round(predicted + margin, 2),
                confidence_level=confidence_level,
                trend_direction=direction,
                seasonality_factor=float(seasonal[n + i] or 1.0),
            ))
        return forecasts

    @staticmethod
    def _calculate_metrics(
        data: np.ndarray, forecasts: list[RevenueForecast]
    ) -> ForecastMetrics:
        """Compare the latest actuals against the first forecasts.

        Not a held-out backtest: it reuses the tail of the history as the
        reference for the head of the forecast.
        """
        actual = data[-min(FORECAST_METRICS_WINDOW, len(data)):]
        predicted = np.array([f.predicted_amount for f in forecasts[:FORECAST_METRICS_WINDOW]])
        m = min(len(actual), len(predicted))
        actual, predicted = actual[:m], predicted[:m]

        nonzero = actual != 0
        if nonzero.any():
            mape = mean_absolute_percentage_error(actual[nonzero], predicted[nonzero]) * 100
        else:
            mape = 100.0
        rmse = float(np.sqrt(mean_squared_error(actual, predicted)))
        mae = float(mean_absolute_error(actual, predicted))
        r_squared = max(0.0, float(r2_score(actual, predicted))) if m > 1 else 0.0

        if mape < 10 and r_squared > 0.8:
            accuracy = "high"
        elif mape < 20 and r_squared > 0.6:
            accuracy = "medium"
        else:
            accuracy = "low"

        return ForecastMetrics(
            mape=round(float(mape), 2),
            rmse=round(rmse, 2),
            mae=round(mae, 2),
            r_squared=round(r_squared, 3),
            accuracy=accuracy,
            confidence=round(max(0.0, min(1.0, (100 - mape) / 100)), 3),
            data_quality_score=round(min(1.0, m / 30) * (r_squared + 0.2), 3),
        )


# ── Plotting ───────────────────────────────────────────────────

def plot_forecast(
    history: list[RevenueDataPoint], forecasts: list[RevenueForecast], output_dir: Path
) -> None:
    """Historical revenue plus forecast with its confidence band."""
    hist = RevenueForecaster._prepare_series(history)
    fc = pd.DataFrame([vars(f) for f in forecasts])

    fig, ax = plt.subplots(figsize=(14, 6))
    ax.plot(hist["date"], hist["amount"], "b-", linewidth=1.5, label="Historical")
    ax.plot(fc["date"], fc["predicted_amount"], "r--", linewidth=2, label="Forecast")
    ax.fill_between(
        fc["date"], fc["confidence_lower"], fc["confidence_upper"],
        alpha=0.2, color="#e74c3c",
        label=f"{forecasts[0].confidence_level:.0%} Confidence Interval",
    )

    ax.set_xlabel("Date")
    ax.set_ylabel("Revenue (€)")
    ax.set_title(f"Daily Revenue: Historical + {len(forecasts)}-Day Forecast")
    ax.legend(loc="upper left")

    import matplotlib.ticker as mticker
    ax.yaxis.set_major_formatter(mticker.FuncFormatter(lambda x, _: f"€{x:,.0f}"))

    plt.tight_layout()
    fig.savefig(output_dir / "forecast.png")
    plt.close(fig)


# ── CLI Entry Point ────────────────────────────────────────────

def main():
    print("=" * 60)
    print("Revenue Forecasting")
    print("=" * 60)

    input_path = sys.argv[1] if len(sys.argv) > 1 else "data/revenue_history.json"
    output_dir = REPORTS_DIR / "forecast"
    output_dir.mkdir(parents=True, exist_ok=True)

    forecaster = RevenueForecaster()

    print("\n[1/3] Loading revenue history...")
    history = load_records(input_path, RevenueDataPoint)
    print(f"  {len(history):,} daily points")

    print(f"\n[2/3] Generating {FORECAST_DEFAULT_DAYS}-day forecast...")
    result = forecaster.generate_forecast(history)
    plot_forecast(history, result.forecasts, output_dir)
    print(f"  Dominant cycle: {result.seasonality.dominant_cycle}")

    m = result.metrics
    print(f"  MAPE: {m.mape}%  RMSE: {m.rmse:,.2f}  MAE: {m.mae:,.2f}  R²: {m.r_squared}")
    print(f"  Accuracy: {m.accuracy} (confidence {m.confidence:.0%})")

    print("\n[3/3] Summarising...")
    summary = forecaster.get_forecast_summary(history)
    print(f"  Total forecast: €{summary.total_forecast_revenue:,.0f} "
          f"({summary.growth_rate:+.1f}% vs last {FORECAST_DEFAULT_DAYS} days, "
          f"{summary.trend_direction})")
    for risk in summary.risk_factors:
        print(f"  ⚠ {risk}")
    for opportunity in summary.opportunities:
        print(f"  ✓ {opportunity}")

    pd.DataFrame([vars(f) for f in result.forecasts]).to_csv(
        output_dir / "forecast.csv", index=False
    )

    print(f"\n✅ Forecasting complete. Reports saved to {output_dir}/")


if __name__ == "__main__":
    main()
