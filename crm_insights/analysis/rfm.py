"""RFM Scoring: Recency, Frequency, Monetary sub-scores and named buckets.

Each customer gets a 1-5 score on each axis from fixed thresholds, then
falls into the first matching bucket of an ordered rule table.

Usage:
    python -m crm_insights.analysis.rfm data/customers.json
"""

from datetime import datetime
import sys

import pandas as pd

from crm_insights.loaders import load_records
from crm_insights.models import CustomerSegmentationData
from crm_insights.timeutils import days_between, reference_time

# (lower bound, score) pairs checked top-down
RECENCY_THRESHOLDS = [(30, 5), (90, 4), (180, 3), (365, 2)]           # days <= bound
FREQUENCY_THRESHOLDS = [(6, 5), (4, 4), (2, 3), (1, 2)]               # bookings/year >= bound
MONETARY_THRESHOLDS = [(5000, 5), (3000, 4), (1500, 3), (500, 2)]     # avg booking value >= bound

# Ordered (bucket, predicate) table; first match wins, "lost" catches the rest.
# Rule overlaps are intentional and resolved purely by position.
RFM_SEGMENT_RULES = [
    ("champions",           lambda r, f, m: r >= 4 and f >= 4 and m >= 4),
    ("loyal_customers",     lambda r, f, m: r >= 3 and f >= 4 and m >= 4),
    ("potential_loyalists", lambda r, f, m: r >= 4 and f <= 2 and m >= 3),
    ("new_customers",       lambda r, f, m: r >= 4 and f <= 2 and m <= 2),
    ("promising",           lambda r, f, m: r >= 3 and f >= 2 and m <= 3),
    ("need_attention",      lambda r, f, m: r >= 3 and f >= 2 and m >= 3),
    ("cannot_lose_them",    lambda r, f, m: r <= 2 and f >= 2 and m >= 3),
    ("at_risk",             lambda r, f, m: r <= 2 and f >= 3 and m <= 2),
    ("about_to_sleep",      lambda r, f, m: r <= 3 and f <= 2 and m >= 3),
    ("hibernating",         lambda r, f, m: r <= 2 and f <= 2 and m <= 2),
]
RFM_FALLBACK_SEGMENT = "lost"
RFM_SEGMENTS = [name for name, _ in RFM_SEGMENT_RULES] + [RFM_FALLBACK_SEGMENT]


def recency_score(customer: CustomerSegmentationData, now: datetime) -> int:
    """5 = booked within 30 days; customers who never booked score 1."""
    if customer.last_booking_date is None:
        return 1
    days = days_between(now, customer.last_booking_date)
    for bound, score in RECENCY_THRESHOLDS:
        if days <= bound:
            return score
    return 1


def frequency_score(customer: CustomerSegmentationData) -> int:
    days = customer.booking_frequency_days
    bookings_per_year = 365 / days if days > 0 else float("inf")
    for bound, score in FREQUENCY_THRESHOLDS:
        if bookings_per_year >= bound:
            return score
    return 1


def monetary_score(customer: CustomerSegmentationData) -> int:
    for bound, score in MONETARY_THRESHOLDS:
        if customer.avg_booking_value >= bound:
            return score
    return 1


def classify_rfm(r: int, f: int, m: int) -> str:
    """Map sub-scores to a bucket name via the ordered rule table."""
    for name, predicate in RFM_SEGMENT_RULES:
        if predicate(r, f, m):
            return name
    return RFM_FALLBACK_SEGMENT


class RFMScorer:
    """Computes RFM scores and buckets for a customer population."""

    def __init__(self, reference_date: datetime | None = None):
        self._now = reference_time(reference_date)

    def score_customers(self, customers: list[CustomerSegmentationData]) -> pd.DataFrame:
        """Score every customer.

        Returns:
            DataFrame with columns: customer_id, r_score, f_score, m_score,
            rfm_segment (one row per input customer, input order).
        """
        rows = []
        for c in customers:
            r, f, m = recency_score(c, self._now), frequency_score(c), monetary_score(c)
            rows.append({
                "customer_id": c.customer_id,
                "r_score": r, "f_score": f, "m_score": m,
                "rfm_segment": classify_rfm(r, f, m),
            })
        return pd.DataFrame(
            rows, columns=["customer_id", "r_score", "f_score", "m_score", "rfm_segment"]
        )

    def group_by_segment(
        self, customers: list[CustomerSegmentationData]
    ) -> dict[str, list[CustomerSegmentationData]]:
        """Customers per bucket, in rule-table order; empty buckets omitted."""
        scores = self.score_customers(customers)
        groups: dict[str, list[CustomerSegmentationData]] = {name: [] for name in RFM_SEGMENTS}
        for customer, segment in zip(customers, scores["rfm_segment"]):
            groups[segment].append(customer)
        return {name: members for name, members in groups.items() if members}


def main():
    print("=" * 60)
    print("RFM Analysis")
    print("=" * 60)

    input_path = sys.argv[1] if len(sys.argv) > 1 else "data/customers.json"
    customers = load_records(input_path, CustomerSegmentationData)

    scores = RFMScorer().score_customers(customers)
    print(f"  RFM computed for {len(scores):,} customers")

    print("\nRFM Segment Distribution:")
    print(scores["rfm_segment"].value_counts().to_string())

    print("\nAverage scores per segment:")
    summary = scores.groupby("rfm_segment")[["r_score", "f_score", "m_score"]].mean().round(2)
    print(summary.to_string())


if __name__ == "__main__":
    main()
