"""Customer Segmentation: RFM buckets plus behavioral K-means clusters.

Two passes over the same population:
- RFM: every customer lands in one of 11 named buckets (rfm.py)
- Clustering: K-means over an 18-feature profile (clustering.py)

Both passes produce segments; the combined list drops segments smaller
than ``min_segment_size`` and is sorted by total value (avg x count).
A customer appears in at most one segment per pass, but may appear once
in each pass.

Usage:
    python -m crm_insights.analysis.segmentation data/customers.json
"""

from pathlib import Path
from datetime import datetime
import sys
import uuid

import pandas as pd
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from crm_insights.analysis.clustering import (
    NEVER_BOOKED_DAYS, KMeansClusterer, build_feature_matrix, cluster_name,
    compute_quality_metrics, min_max_normalize,
)
from crm_insights.analysis.rfm import RFMScorer
from crm_insights.config import (
    ACTIVE_WINDOW_DAYS, CUSTOMER_ACQUISITION_COST, DEFAULT_REVIEW_RATING,
    INACTIVE_WINDOW_DAYS, REPORTS_DIR, SegmentationConfig,
)
from crm_insights.errors import InsufficientDataError
from crm_insights.loaders import load_records
from crm_insights.logger import log
from crm_insights.models import (
    CrossSegmentInsights, CustomerSegment, CustomerSegmentationData, SegmentCharacteristics,
    SegmentInsights, SegmentMetrics, SegmentationAnalysis, StrategicRecommendation,
)
from crm_insights.timeutils import days_between, reference_time


def format_segment_name(name: str) -> str:
    """``loyal_customers`` -> ``Loyal Customers``."""
    return " ".join(word[:1].upper() + word[1:] for word in name.split("_"))


def _top_values(values: list, count: int = 3) -> list[str]:
    """Most frequent values, ties in first-seen order."""
    if not values:
        return []
    counts = pd.Series([str(v) for v in values]).value_counts(sort=False)
    return counts.sort_values(ascending=False, kind="stable").head(count).index.tolist()


def _most_common(values: list) -> str:
    top = _top_values(values, 1)
    return top[0] if top else ""


class CustomerSegmentationEngine:
    """Builds named customer segments with insights and metrics."""

    def __init__(self, config: SegmentationConfig | None = None):
        self._config = config or SegmentationConfig()

    def perform_segmentation_analysis(
        self,
        customers: list[CustomerSegmentationData],
        config: SegmentationConfig | None = None,
        reference_date: datetime | None = None,
    ) -> SegmentationAnalysis:
        """Segment one tenant's customers.

        Args:
            customers: Customer profiles, already tenant-scoped.
            config: Per-call override of the engine's SegmentationConfig.
            reference_date: "Now" for all recency calculations.

        Returns:
            SegmentationAnalysis with segments, cross-segment insights,
            strategic recommendations and quality metrics.

        Raises:
            InsufficientDataError: fewer than segment_count x min_segment_size customers.
        """
        cfg = config or self._config
        now = reference_time(reference_date)
        required = cfg.segment_count * cfg.min_segment_size

        if len(customers) < required:
            log.warning(f"Segmentation requested for {len(customers)} customers, need {required}")
            raise InsufficientDataError(
                f"Insufficient customer data. Need at least {required} customers "
                f"for {cfg.segment_count} segments.",
                required=required, actual=len(customers),
            )

        segments: list[CustomerSegment] = []
        if cfg.include_rfm:
            segments += self._rfm_segments(customers, now)

        X = min_max_normalize(build_feature_matrix(customers, now).to_numpy())
        km = KMeansClusterer(n_clusters=cfg.segment_count, random_state=cfg.random_state).fit(X)
        segments += self._cluster_segments(customers, km.labels_, now)

        final_segments = sorted(
            (s for s in segments if s.customer_count >= cfg.min_segment_size),
            key=lambda s: s.avg_customer_value * s.customer_count,
            reverse=True,
        )

        stability_labels = None
        if cfg.quality_mode == "computed" and cfg.stability_analysis:
            seed = None if cfg.random_state is None else cfg.random_state + 1
            stability_labels = KMeansClusterer(
                n_clusters=cfg.segment_count, random_state=seed
            ).fit(X).labels_
        quality = compute_quality_metrics(X, km.labels_, cfg.quality_mode, stability_labels)

        log.info(
            f"Segmented {len(customers):,} customers into {len(final_segments)} segments "
            f"({len(segments) - len(final_segments)} below minimum size dropped)"
        )

        return SegmentationAnalysis(
            analysis_id=str(uuid.uuid4()),
            tenant_id=customers[0].tenant_id if customers else "",
            analysis_date=now,
            total_customers=len(customers),
            segments=final_segments,
            segment_quality_metrics=quality,
            insights=self._cross_segment_insights(final_segments),
            recommendations=self._strategic_recommendations(final_segments),
        )

    # ── Segment passes ─────────────────────────────────────────

    def _rfm_segments(
        self, customers: list[CustomerSegmentationData], now: datetime
    ) -> list[CustomerSegment]:
        groups = RFMScorer(reference_date=now).group_by_segment(customers)
        return [self._build_segment(name, members, "rfm", now) for name, members in groups.items()]

    def _cluster_segments(
        self, customers: list[CustomerSegmentationData], labels: np.ndarray, now: datetime
    ) -> list[CustomerSegment]:
        segments = []
        for index in range(labels.max() + 1 if len(labels) else 0):
            members = [c for c, label in zip(customers, labels) if label == index]
            if members:
                segments.append(self._build_segment(cluster_name(index), members, "behavioral", now))
        return segments

    # ── Segment construction ───────────────────────────────────

    def _build_segment(
        self,
        name: str,
        customers: list[CustomerSegmentationData],
        kind: str,
        now: datetime,
    ) -> CustomerSegment:
        df = pd.DataFrame({
            "total_spent": [c.total_spent for c in customers],
            "avg_booking_value": [c.avg_booking_value for c in customers],
            "booking_frequency_days": [c.booking_frequency_days for c in customers],
            "age": [c.age for c in customers],
            "email_open_rate": [c.email_open_rate for c in customers],
            "email_click_rate": [c.email_click_rate for c in customers],
            "days_since_activity": [days_between(now, c.last_activity_date) for c in customers],
            "days_since_booking": [
                days_between(now, c.last_booking_date) if c.last_booking_date else NEVER_BOOKED_DAYS
                for c in customers
            ],
        })
        total_value = float(df["total_spent"].sum())
        avg_value = total_value / len(customers)

        characteristics = SegmentCharacteristics(
            age_range={"min": int(df["age"].min()), "max": int(df["age"].max())},
            avg_booking_value=float(df["avg_booking_value"].mean()),
            avg_booking_frequency=float(df["booking_frequency_days"].mean()),
            preferred_destinations=_top_values(
                [d for c in customers for d in c.preferred_destinations]
            ),
            preferred_package_types=_top_values(
                [p for c in customers for p in c.preferred_package_types]
            ),
            travel_style=_most_common([c.travel_style for c in customers]),
            communication_preference=_most_common(
                [p for c in customers for p in c.communication_preferences]
            ),
            loyalty_distribution={
                tier: float(share) for tier, share in
                pd.Series([c.loyalty_program_tier for c in customers])
                .value_counts(normalize=True, sort=False).items()
            },
        )

        engagement = ((df["email_open_rate"] + df["email_click_rate"]) / 2).mean()
        avg_days_since_booking = df["days_since_booking"].mean()

        return CustomerSegment(
            segment_id=str(uuid.uuid4()),
            segment_name=format_segment_name(name),
            description=self._describe(characteristics, kind),
            customer_count=len(customers),
            total_value=round(total_value, 2),
            avg_customer_value=round(avg_value, 2),
            growth_rate=float((df["days_since_activity"] < ACTIVE_WINDOW_DAYS).mean()),
            churn_risk=(
                "high" if avg_days_since_booking > 365
                else "medium" if avg_days_since_booking > 180
                else "low"
            ),
            engagement_level=(
                "high" if engagement > 0.6 else "medium" if engagement > 0.3 else "low"
            ),
            profitability=(
                "high" if avg_value > 5000 else "medium" if avg_value > 2000 else "low"
            ),
            characteristics=characteristics,
            insights=self._segment_insights(df, characteristics),
            metrics=self._segment_metrics(customers, df),
            customer_ids=[c.customer_id for c in customers],
        )

    @staticmethod
    def _describe(characteristics: SegmentCharacteristics, kind: str) -> str:
        base = "RFM-based segment" if kind == "rfm" else "Behavioral segment"
        age = characteristics.age_range
        return (
            f"{base} with average booking value of €{round(characteristics.avg_booking_value)}, "
            f"age range {age['min']}-{age['max']}, "
            f"primarily {characteristics.travel_style} travelers."
        )

    @staticmethod
    def _segment_insights(
        df: pd.DataFrame, characteristics: SegmentCharacteristics
    ) -> SegmentInsights:
        insights = SegmentInsights()

        if characteristics.avg_booking_frequency < 90:
            insights.key_behaviors.append("High booking frequency - books every 3 months")
        if characteristics.avg_booking_value > 3000:
            insights.key_behaviors.append("High-value bookings - premium customer segment")

        if (df["email_open_rate"] > 0.5).mean() > 0.7:
            insights.opportunities.append(
                "High email engagement - excellent channel for promotions"
            )

        if (df["days_since_activity"] > INACTIVE_WINDOW_DAYS).mean() > 0.3:
            insights.risks.append("30% of segment showing low activity - churn risk")

        if characteristics.avg_booking_value > 2000:
            insights.recommended_strategies.append(
                "Target with premium packages and exclusive experiences"
            )
        insights.recommended_strategies += [
            "Implement personalized email campaigns",
            "Monitor engagement metrics closely",
        ]
        return insights

    @staticmethod
    def _segment_metrics(
        customers: list[CustomerSegmentationData], df: pd.DataFrame
    ) -> SegmentMetrics:
        ratings = pd.Series(
            [c.avg_review_rating for c in customers if c.avg_review_rating is not None],
            dtype=float,
        )
        if len(ratings):
            promoters = int((ratings >= 4.5).sum())
            detractors = int((ratings <= 3.5).sum())
            nps = (promoters - detractors) / len(ratings) * 100
        else:
            nps = 0.0
        satisfaction = float(ratings.mean()) if len(ratings) and ratings.mean() else DEFAULT_REVIEW_RATING

        active = [c.account_status == "active" for c in customers]
        recent = (df["days_since_activity"] < ACTIVE_WINDOW_DAYS).to_numpy()

        return SegmentMetrics(
            lifetime_value=round(float(df["total_spent"].mean()), 2),
            acquisition_cost=CUSTOMER_ACQUISITION_COST,
            retention_rate=float(np.mean(np.array(active) & recent)),
            satisfaction_score=round(satisfaction, 2),
            net_promoter_score=round(nps, 1),
            campaign_response_rate=float(df["email_click_rate"].mean()),
        )

    # ── Cross-segment views ────────────────────────────────────

    @staticmethod
    def _cross_segment_insights(segments: list[CustomerSegment]) -> CrossSegmentInsights:
        def first_name(candidates) -> str:
            return next((s.segment_name for s in candidates), "")

        def arg_max(key) -> str:
            return max(segments, key=key).segment_name if segments else ""

        return CrossSegmentInsights(
            largest_segment=arg_max(lambda s: s.customer_count),
            most_valuable_segment=arg_max(lambda s: s.avg_customer_value),
            fastest_growing_segment=arg_max(lambda s: s.growth_rate),
            highest_risk_segment=first_name(s for s in segments if s.churn_risk == "high"),
            best_opportunity_segment=first_name(
                s for s in segments
                if s.engagement_level == "high" and s.profitability == "high"
            ),
        )

    @staticmethod
    def _strategic_recommendations(
        segments: list[CustomerSegment],
    ) -> list[StrategicRecommendation]:
        recommendations = []

        if any(s.avg_customer_value > 3000 for s in segments):
            recommendations.append(StrategicRecommendation(
                priority="high", category="retention",
                recommendation="Launch VIP loyalty program for high-value segments",
                expected_impact="Increase retention by 15-25% and average booking value by 10%",
                implementation_effort="medium",
            ))
        if any(s.churn_risk == "high" for s in segments):
            recommendations.append(StrategicRecommendation(
                priority="urgent", category="retention",
                recommendation="Implement immediate win-back campaigns for high-risk segments",
                expected_impact="Reduce churn by 20-30% and recover 10-15% of at-risk customers",
                implementation_effort="low",
            ))
        if any(s.engagement_level == "high" and s.growth_rate > 0.5 for s in segments):
            recommendations.append(StrategicRecommendation(
                priority="high", category="growth",
                recommendation="Expand marketing investment in fast-growing, engaged segments",
                expected_impact="Increase acquisition by 25-35% in target segments",
                implementation_effort="medium",
            ))
        recommendations.append(StrategicRecommendation(
            priority="medium", category="optimization",
            recommendation="Implement segment-specific personalization for email campaigns",
            expected_impact="Improve email engagement by 20-40% across all segments",
            implementation_effort="high",
        ))
        return recommendations


# ── Plotting ───────────────────────────────────────────────────

def plot_segments(analysis: SegmentationAnalysis, output_dir: Path) -> None:
    """Segment size and average value side by side."""
    df = pd.DataFrame({
        "segment": [s.segment_name for s in analysis.segments],
        "customers": [s.customer_count for s in analysis.segments],
        "avg_value": [s.avg_customer_value for s in analysis.segments],
    })

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(16, 6))
    palette = sns.color_palette("viridis", len(df))

    ax1.barh(df["segment"][::-1], df["customers"][::-1], color=palette[::-1])
    ax1.set_xlabel("Customers")
    ax1.set_title("Segment Size")

    ax2.barh(df["segment"][::-1], df["avg_value"][::-1], color=palette[::-1])
    ax2.set_xlabel("Avg Customer Value (€)")
    ax2.set_title("Segment Value")

    plt.tight_layout()
    fig.savefig(output_dir / "segments.png")
    plt.close(fig)


# ── CLI Entry Point ────────────────────────────────────────────

def main():
    print("=" * 60)
    print("Customer Segmentation")
    print("=" * 60)

    input_path = sys.argv[1] if len(sys.argv) > 1 else "data/customers.json"
    output_dir = REPORTS_DIR / "segments"
    output_dir.mkdir(parents=True, exist_ok=True)

    print("\n[1/3] Loading customers...")
    customers = load_records(input_path, CustomerSegmentationData)

    print("\n[2/3] Running RFM and behavioral segmentation...")
    analysis = CustomerSegmentationEngine().perform_segmentation_analysis(customers)
    plot_segments(analysis, output_dir)

    summary = pd.DataFrame([{
        "segment": s.segment_name,
        "customers": s.customer_count,
        "avg_value": s.avg_customer_value,
        "growth_rate": round(s.growth_rate, 3),
        "churn_risk": s.churn_risk,
        "engagement": s.engagement_level,
        "profitability": s.profitability,
    } for s in analysis.segments])
    print(summary.to_string(index=False))

    print("\n[3/3] Cross-segment insights...")
    for label, value in vars(analysis.insights).items():
        print(f"  {label.replace('_', ' ').capitalize()}: {value or '-'}")
    for rec in analysis.recommendations:
        print(f"  [{rec.priority}] {rec.recommendation}")

    summary.to_csv(output_dir / "segments.csv", index=False)

    print(f"\n✅ Segmentation complete. Reports saved to {output_dir}/")


if __name__ == "__main__":
    main()
