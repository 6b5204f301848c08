"""Churn Risk Scoring: weighted health score over behavioral aggregates.

Each customer's raw behavior is normalized into [0, 1] health features,
rolled up into six category scores, weighted into one health score and
inverted into a churn probability. No training: every weight and
threshold is a hand-tuned constant.

Usage:
    python -m crm_insights.analysis.churn_model data/customer_behavior.json
"""

from pathlib import Path
import math
import sys

import pandas as pd
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns
from scipy.special import expit

from crm_insights.config import (
    CHURN_BASELINE_RATE, CHURN_RISK_TIERS, CHURN_TOP_TIER, MAX_RECOMMENDED_ACTIONS,
    MAX_RISK_FACTORS, REPORTS_DIR, TIME_TO_CHURN_FLOOR_DAYS,
    TIME_TO_CHURN_MIN_PROBABILITY,
)
from crm_insights.loaders import load_records
from crm_insights.logger import log
from crm_insights.models import (
    ChurnInsights, ChurnRiskScore, CustomerBehavior, RetentionOpportunity,
    RiskFactorCount,
)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class ChurnPredictor:
    """Scores churn risk from per-customer behavioral aggregates."""

    CATEGORY_WEIGHTS = {
        "recency": 0.25,
        "frequency": 0.20,
        "monetary": 0.20,
        "engagement": 0.15,
        "satisfaction": 0.10,
        "loyalty": 0.10,
    }

    # Ordered (code, predicate, message) checks. Output keeps this order;
    # it is a display order, not an importance ranking.
    RISK_FACTOR_RULES = [
        ("booking_recency",
         lambda f, b: f["booking_recency"] < 0.3,
         lambda b: f"Long time since last booking ({b.last_booking_days_ago:g} days)"),
        ("booking_frequency",
         lambda f, b: f["booking_frequency"] < 0.3,
         lambda b: "Low booking frequency"),
        ("email_engagement",
         lambda f, b: f["email_engagement"] < 0.3,
         lambda b: "Poor email engagement"),
        ("login_recency",
         lambda f, b: f["login_recency"] < 0.3,
         lambda b: "Infrequent login activity"),
        ("support_tickets",
         lambda f, b: b.support_tickets_count > 3,
         lambda b: "High support ticket volume"),
        ("refunds",
         lambda f, b: b.refund_requests > 0,
         lambda b: "History of refund requests"),
        ("payment_delays",
         lambda f, b: b.payment_delays > 1,
         lambda b: "Payment reliability issues"),
        ("website_activity",
         lambda f, b: f["website_activity"] < 0.2,
         lambda b: "Low website engagement"),
        ("newsletter",
         lambda f, b: not b.newsletter_subscribed,
         lambda b: "Not subscribed to newsletter"),
        ("profile",
         lambda f, b: b.profile_completion < 0.5,
         lambda b: "Incomplete profile"),
    ]

    TIER_ACTIONS = {
        "critical": [
            "Schedule immediate personal outreach call",
            "Offer exclusive discount or upgrade",
        ],
        "high": [
            "Send personalized retention email campaign",
            "Offer loyalty bonus or reward points",
        ],
        "medium": [
            "Include in monthly newsletter with special offers",
            "Send destination recommendation based on preferences",
        ],
        "low": [
            "Continue regular engagement campaigns",
        ],
    }

    FACTOR_ACTIONS = {
        "email_engagement": "Optimize email content and timing",
        "login_recency": "Send app usage reminder with benefits",
        "support_tickets": "Proactive customer service follow-up",
        "booking_frequency": "Send seasonal travel inspiration",
        "newsletter": "Newsletter re-subscription campaign",
    }

    def predict_churn_risk(self, behavior: CustomerBehavior) -> ChurnRiskScore:
        """Score one customer.

        Returns:
            ChurnRiskScore with probability, tier, factors, actions,
            remaining LTV and time-to-churn (None for low-risk customers).
        """
        features = self._extract_features(behavior)
        probability = self._churn_probability(features)
        confidence = self._confidence(features)
        risk_level = self._categorize_risk(probability)

        fired = [
            (code, message(behavior))
            for code, predicate, message in self.RISK_FACTOR_RULES
            if predicate(features, behavior)
        ][:MAX_RISK_FACTORS]
        actions = self._recommend_actions(risk_level, [code for code, _ in fired], behavior)

        retention = 1 - probability
        rounded_probability = round(probability, 3)

        return ChurnRiskScore(
            customer_id=behavior.customer_id,
            churn_probability=rounded_probability,
            risk_level=risk_level,
            confidence=round(confidence, 3),
            primary_risk_factors=[message for _, message in fired],
            recommended_actions=actions,
            retention_score=round(1 - rounded_probability, 3),
            predicted_ltv_remaining=round(self._remaining_ltv(behavior, retention), 2),
            time_to_churn_days=self._time_to_churn(features, probability),
        )

    def batch_predict_churn(
        self,
        behaviors: list[CustomerBehavior],
        prioritize_high_value: bool = False,
        min_confidence: float | None = None,
        max_results: int | None = None,
    ) -> list[ChurnRiskScore]:
        """Score a batch, then filter, sort and cap.

        Args:
            behaviors: One record per customer.
            prioritize_high_value: Sort by probability x remaining LTV instead
                of probability alone.
            min_confidence: Drop scores below this confidence.
            max_results: Keep only the first N after sorting.
        """
        predictions = [self.predict_churn_risk(b) for b in behaviors]

        if min_confidence:
            predictions = [p for p in predictions if p.confidence >= min_confidence]

        if prioritize_high_value:
            predictions.sort(
                key=lambda p: p.churn_probability * p.predicted_ltv_remaining, reverse=True
            )
        else:
            predictions.sort(key=lambda p: p.churn_probability, reverse=True)

        if max_results:
            predictions = predictions[:max_results]

        log.info(f"Scored {len(behaviors):,} customers, returning {len(predictions):,}")
        return predictions

    batch_predict = batch_predict_churn

    def generate_churn_insights(self, predictions: list[ChurnRiskScore]) -> ChurnInsights:
        """Aggregate a scored batch into counts, top factors and opportunities."""
        total = len(predictions)
        if total == 0:
            return ChurnInsights(
                total_customers=0, high_risk_customers=0, churn_rate_trend=0,
                top_risk_factors=[], retention_opportunities=[],
            )

        df = pd.DataFrame({
            "risk_level": [p.risk_level for p in predictions],
            "probability": [p.churn_probability for p in predictions],
        })
        high_risk = int(df["risk_level"].isin(["high", "critical"]).sum())
        trend = int(round((df["probability"].mean() - CHURN_BASELINE_RATE) * 100))

        factor_counts = (
            pd.Series([f for p in predictions for f in p.primary_risk_factors], dtype=object)
            .value_counts(sort=False)
            .sort_values(ascending=False, kind="stable")
            .head(5)
        )
        top_factors = [
            RiskFactorCount(factor=factor, impact=count / total, frequency=int(count))
            for factor, count in factor_counts.items()
        ]

        return ChurnInsights(
            total_customers=total,
            high_risk_customers=high_risk,
            churn_rate_trend=trend,
            top_risk_factors=top_factors,
            retention_opportunities=self._retention_opportunities(predictions),
        )

    # ── Private helpers ────────────────────────────────────────

    @staticmethod
    def _extract_features(b: CustomerBehavior) -> dict[str, float]:
        """Normalize raw behavior into health features (1 = healthy).

        ``refund_risk`` is the exception: 1 = many refunds.
        """
        return {
            "booking_recency": max(0.0, 1 - b.last_booking_days_ago / 90),
            "login_recency": max(0.0, 1 - b.last_login_days_ago / 90),
            "booking_frequency": max(0.0, 1 - (b.booking_frequency_days - 30) / 335),
            "website_activity": min(1.0, b.website_visits_last_30d / 20),
            "total_value": _clamp((b.total_spent - 1000) / 9000),
            "avg_order_value": _clamp((b.avg_booking_value - 500) / 4500),
            "email_engagement": (b.email_open_rate + b.email_click_rate) / 2,
            "mobile_usage": _clamp(b.mobile_app_usage),
            "support_satisfaction": max(0.0, 1 - b.support_tickets_count / 5),
            "payment_reliability": max(0.0, 1 - b.payment_delays / 3),
            "refund_risk": min(1.0, b.refund_requests / 3),
            "account_tenure": min(1.0, b.account_age_days / 730),
            "referral_activity": min(1.0, b.referral_count / 5),
            "newsletter_loyalty": 1.0 if b.newsletter_subscribed else 0.0,
            "profile_completeness": b.profile_completion,
        }

    def _churn_probability(self, f: dict[str, float]) -> float:
        categories = {
            "recency": (f["booking_recency"] + f["login_recency"]) / 2,
            "frequency": (f["booking_frequency"] + f["website_activity"]) / 2,
            "monetary": (f["total_value"] + f["avg_order_value"]) / 2,
            "engagement": (f["email_engagement"] + f["mobile_usage"] + f["newsletter_loyalty"]) / 3,
            "satisfaction": (
                f["support_satisfaction"] + f["payment_reliability"] + (1 - f["refund_risk"])
            ) / 3,
            "loyalty": (
                f["account_tenure"] + f["referral_activity"] + f["profile_completeness"]
            ) / 3,
        }
        health = sum(categories[name] * w for name, w in self.CATEGORY_WEIGHTS.items())
        churn = _clamp(1 - health)
        # Logistic squash spreads scores away from 0.5
        return float(expit(5 * (churn - 0.5)))

    @staticmethod
    def _confidence(features: dict[str, float]) -> float:
        """sqrt(completeness x consistency); a reliability proxy only."""
        values = np.array(list(features.values()), dtype=float)
        completeness = np.isfinite(values).mean()
        consistency = max(0.0, 1 - float(np.var(values[np.isfinite(values)])))
        return math.sqrt(completeness * consistency)

    @staticmethod
    def _categorize_risk(probability: float) -> str:
        for upper, tier in CHURN_RISK_TIERS:
            if probability < upper:
                return tier
        return CHURN_TOP_TIER

    def _recommend_actions(
        self, risk_level: str, factor_codes: list[str], behavior: CustomerBehavior
    ) -> list[str]:
        actions = list(self.TIER_ACTIONS[risk_level])
        if risk_level == "critical" and behavior.total_spent > 2000:
            actions.append("Assign dedicated account manager")

        actions += [self.FACTOR_ACTIONS[c] for c in factor_codes if c in self.FACTOR_ACTIONS]
        return list(dict.fromkeys(actions))[:MAX_RECOMMENDED_ACTIONS]

    @staticmethod
    def _remaining_ltv(behavior: CustomerBehavior, retention: float) -> float:
        """Expected spend over a retention-scaled horizon of at most 3 years."""
        avg_value = behavior.avg_booking_value or 1500
        frequency_days = behavior.booking_frequency_days or 365
        years_remaining = min(3.0, retention * 3)
        return max(0.0, avg_value * (365 / frequency_days) * years_remaining * retention)

    @staticmethod
    def _time_to_churn(features: dict[str, float], probability: float) -> int | None:
        if probability < TIME_TO_CHURN_MIN_PROBABILITY:
            return None
        engagement_decline = 1 - (features["email_engagement"] + features["website_activity"]) / 2
        days = 90 * (1 - probability) * (1 - engagement_decline)
        return max(TIME_TO_CHURN_FLOOR_DAYS, int(round(days)))

    @staticmethod
    def _retention_opportunities(
        predictions: list[ChurnRiskScore],
    ) -> list[RetentionOpportunity]:
        def mentions(p: ChurnRiskScore, *words: str) -> bool:
            return any(w in f for f in p.primary_risk_factors for w in words)

        groups = [
            ("High-Value At-Risk", "Personal outreach with VIP treatment",
             [p for p in predictions
              if p.risk_level in ("high", "critical") and p.predicted_ltv_remaining > 2000]),
            ("Engagement Issues", "Personalized content marketing campaign",
             [p for p in predictions
              if p.risk_level == "medium" and mentions(p, "engagement", "email")]),
            ("Dormant Customers", "Win-back campaign with special offers",
             [p for p in predictions
              if p.risk_level == "high" and mentions(p, "booking", "login")]),
        ]

        return [
            RetentionOpportunity(
                segment=segment,
                customer_count=len(members),
                potential_revenue=round(sum(p.predicted_ltv_remaining for p in members), 2),
                recommended_action=action,
            )
            for segment, action, members in groups
            if members
        ][:3]


# ── Plotting ───────────────────────────────────────────────────

def plot_risk_distribution(predictions: list[ChurnRiskScore], output_dir: Path) -> None:
    """Histogram of churn probabilities coloured by risk tier."""
    df = pd.DataFrame({
        "churn_probability": [p.churn_probability for p in predictions],
        "risk_level": [p.risk_level for p in predictions],
    })

    fig, ax = plt.subplots(figsize=(10, 6))
    sns.histplot(
        data=df, x="churn_probability", hue="risk_level",
        hue_order=["low", "medium", "high", "critical"],
        bins=20, multiple="stack", palette="RdYlGn_r", ax=ax,
    )
    ax.set_xlabel("Churn Probability")
    ax.set_ylabel("Customers")
    ax.set_title("Churn Risk Distribution")

    plt.tight_layout()
    fig.savefig(output_dir / "churn_distribution.png")
    plt.close(fig)


# ── CLI Entry Point ────────────────────────────────────────────

def main():
    print("=" * 60)
    print("Churn Risk Scoring")
    print("=" * 60)

    input_path = sys.argv[1] if len(sys.argv) > 1 else "data/customer_behavior.json"
    output_dir = REPORTS_DIR / "churn"
    output_dir.mkdir(parents=True, exist_ok=True)

    predictor = ChurnPredictor()

    print("\n[1/3] Loading customer behavior...")
    behaviors = load_records(input_path, CustomerBehavior)

    print("\n[2/3] Scoring churn risk...")
    predictions = predictor.batch_predict_churn(behaviors, prioritize_high_value=True)
    plot_risk_distribution(predictions, output_dir)

    df = pd.DataFrame([vars(p) for p in predictions])
    print(df["risk_level"].value_counts().to_string())

    print("\nTop 10 by value at risk:")
    print(df.head(10)[
        ["customer_id", "churn_probability", "risk_level", "predicted_ltv_remaining"]
    ].to_string(index=False))

    print("\n[3/3] Aggregating insights...")
    insights = predictor.generate_churn_insights(predictions)
    print(f"  High-risk customers: {insights.high_risk_customers:,} of {insights.total_customers:,}")
    print(f"  Churn trend vs baseline: {insights.churn_rate_trend:+d} pts")
    for factor in insights.top_risk_factors:
        print(f"  {factor.factor}: {factor.frequency} ({factor.impact:.0%})")
    for opp in insights.retention_opportunities:
        print(f"  → {opp.segment}: {opp.customer_count} customers, "
              f"€{opp.potential_revenue:,.0f}: {opp.recommended_action}")

    df.to_csv(output_dir / "churn_scores.csv", index=False)

    print(f"\n✅ Churn scoring complete. Reports saved to {output_dir}/")


if __name__ == "__main__":
    main()
