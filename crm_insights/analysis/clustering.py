"""Behavioral Clustering: K-means over an 18-dimension customer profile.

Feature groups (demographic, behavioral, financial, engagement, loyalty)
are each capped into roughly [0, 1], then min-max normalized across the
population so no single raw scale dominates the Euclidean distance.

K-means is implemented directly on numpy: centroids start uniformly at
random in the unit hypercube (seedable), and a cluster that loses all of
its members falls back to centroid 0 for the next iteration.

Usage:
    python -m crm_insights.analysis.clustering data/customers.json
"""

from datetime import datetime
import sys

import pandas as pd
import numpy as np
from sklearn.metrics import (
    adjusted_rand_score, calinski_harabasz_score, davies_bouldin_score, silhouette_score,
)

from crm_insights.config import (
    KMEANS_MAX_ITERATIONS, KMEANS_TOLERANCE, PLACEHOLDER_QUALITY_METRICS, SEGMENT_COUNT,
)
from crm_insights.loaders import load_records
from crm_insights.logger import log
from crm_insights.models import CustomerSegmentationData, QualityMetrics
from crm_insights.timeutils import days_between, reference_time

FEATURE_NAMES = [
    # Demographic
    "age", "account_age_years",
    # Behavioral
    "total_bookings", "days_since_last_booking", "booking_frequency_days", "booking_lead_time_days",
    # Financial
    "total_spent", "avg_booking_value", "payment_reliability", "refund_reliability",
    # Engagement
    "email_open_rate", "email_click_rate", "website_sessions", "days_since_last_activity",
    # Loyalty
    "referrals", "reviews", "loyalty_tier", "loyalty_points",
]

LOYALTY_TIER_SCORES = {"bronze": 0.25, "silver": 0.5, "gold": 0.75, "platinum": 1.0}

CLUSTER_NAMES = [
    "high_value_loyalists",
    "frequent_travelers",
    "budget_conscious",
    "premium_seekers",
    "family_travelers",
    "occasional_bookers",
    "price_sensitive",
    "experience_seekers",
]

NEVER_BOOKED_DAYS = 999


def cluster_name(index: int) -> str:
    """Raw name for cluster ``index``; ``segment_N`` past the named eight."""
    return CLUSTER_NAMES[index] if index < len(CLUSTER_NAMES) else f"segment_{index + 1}"


def extract_feature_vector(customer: CustomerSegmentationData, now: datetime) -> list[float]:
    c = customer
    account_age_years = days_between(now, c.created_at) / 365
    days_since_activity = days_between(now, c.last_activity_date)
    days_since_booking = (
        days_between(now, c.last_booking_date) if c.last_booking_date else NEVER_BOOKED_DAYS
    )

    return [
        c.age / 100,
        account_age_years / 10,
        min(c.total_bookings / 50, 1),
        min(days_since_booking / 365, 1),
        min(c.booking_frequency_days / 365, 1),
        min(c.booking_lead_time_days / 365, 1),
        min(c.total_spent / 50000, 1),
        min(c.avg_booking_value / 10000, 1),
        1 - min(c.payment_delays_count / 10, 1),
        1 - min(c.refund_requests_count / 5, 1),
        c.email_open_rate,
        c.email_click_rate,
        min(c.website_session_count / 100, 1),
        min(days_since_activity / 365, 1),
        min(c.referral_count / 10, 1),
        min(c.review_count / 20, 1),
        LOYALTY_TIER_SCORES.get(c.loyalty_program_tier, 0.25),
        min(c.loyalty_points_balance / 10000, 1),
    ]


def build_feature_matrix(
    customers: list[CustomerSegmentationData], reference_date: datetime | None = None
) -> pd.DataFrame:
    """One row of raw (capped, not yet normalized) features per customer."""
    now = reference_time(reference_date)
    return pd.DataFrame(
        [extract_feature_vector(c, now) for c in customers],
        columns=FEATURE_NAMES,
        index=[c.customer_id for c in customers],
    )


def min_max_normalize(X: np.ndarray) -> np.ndarray:
    """Scale each column to [0, 1]; constant columns become 0."""
    X = np.asarray(X, dtype=float)
    mins = X.min(axis=0)
    ranges = X.max(axis=0) - mins
    safe = np.where(ranges == 0, 1.0, ranges)
    return np.where(ranges == 0, 0.0, (X - mins) / safe)


class KMeansClusterer:
    """Lloyd's K-means with random unit-cube initialization."""

    def __init__(
        self,
        n_clusters: int = SEGMENT_COUNT,
        max_iter: int = KMEANS_MAX_ITERATIONS,
        tol: float = KMEANS_TOLERANCE,
        random_state: int | None = None,
    ):
        self._k = n_clusters
        self._max_iter = max_iter
        self._tol = tol
        self._random_state = random_state
        self._centroids: np.ndarray | None = None
        self._labels: np.ndarray | None = None
        self._n_iter = 0

    def fit(self, X: np.ndarray) -> "KMeansClusterer":
        """Run K-means until every centroid moves less than ``tol``.

        Args:
            X: (n_samples, n_features) matrix, normally min-max normalized.

        Returns:
            self (for chaining).
        """
        X = np.asarray(X, dtype=float)
        rng = np.random.default_rng(self._random_state)
        centroids = rng.random((self._k, X.shape[1]))

        for iteration in range(1, self._max_iter + 1):
            labels = self._assign(X, centroids)
            new_centroids = np.array([
                X[labels == j].mean(axis=0) if np.any(labels == j) else centroids[0]
                for j in range(self._k)
            ])
            shifts = np.linalg.norm(centroids - new_centroids, axis=1)
            centroids = new_centroids
            self._n_iter = iteration
            if np.all(shifts < self._tol):
                break

        self._centroids = centroids
        self._labels = self._assign(X, centroids)
        log.debug(
            f"K-means k={self._k} stopped after {self._n_iter} iterations, "
            f"{len(np.unique(self._labels))} non-empty clusters"
        )
        return self

    def predict(self, X: np.ndarray) -> np.ndarray:
        if self._centroids is None:
            raise ValueError("Call fit() first")
        return self._assign(np.asarray(X, dtype=float), self._centroids)

    @property
    def labels_(self) -> np.ndarray:
        if self._labels is None:
            raise ValueError("Call fit() first")
        return self._labels

    @property
    def cluster_centers_(self) -> np.ndarray:
        if self._centroids is None:
            raise ValueError("Call fit() first")
        return self._centroids

    @property
    def n_iter_(self) -> int:
        return self._n_iter

    @staticmethod
    def _assign(X: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        """Nearest centroid per row; ties go to the lowest index."""
        distances = np.linalg.norm(X[:, None, :] - centroids[None, :, :], axis=2)
        return distances.argmin(axis=1)


def compute_quality_metrics(
    X: np.ndarray,
    labels: np.ndarray,
    mode: str = "placeholder",
    stability_labels: np.ndarray | None = None,
) -> QualityMetrics:
    """Clustering quality report.

    ``placeholder`` returns the fixed reference values. ``computed`` scores
    the actual clustering; stability is the adjusted Rand index against a
    second, differently seeded run when one is supplied.
    """
    if mode == "placeholder":
        return QualityMetrics(**PLACEHOLDER_QUALITY_METRICS)
    if mode != "computed":
        raise ValueError(f"Unknown quality mode: {mode!r}")

    n_labels = len(np.unique(labels))
    if 2 <= n_labels <= len(X) - 1:
        silhouette = float(silhouette_score(X, labels))
        davies_bouldin = float(davies_bouldin_score(X, labels))
        calinski_harabasz = float(calinski_harabasz_score(X, labels))
    else:
        log.warning(f"Quality metrics undefined for {n_labels} cluster(s)")
        silhouette = davies_bouldin = calinski_harabasz = 0.0

    stability = None
    if stability_labels is not None:
        stability = round(float(adjusted_rand_score(labels, stability_labels)), 3)

    parts = [(silhouette + 1) / 2]
    if stability is not None:
        parts.append(max(0.0, stability))

    return QualityMetrics(
        silhouette_score=round(silhouette, 3),
        davies_bouldin_index=round(davies_bouldin, 3),
        calinski_harabasz_index=round(calinski_harabasz, 3),
        segment_stability=stability,
        confidence_level=round(float(np.mean(parts)), 3),
    )


def main():
    print("=" * 60)
    print("Behavioral Clustering")
    print("=" * 60)

    input_path = sys.argv[1] if len(sys.argv) > 1 else "data/customers.json"
    customers = load_records(input_path, CustomerSegmentationData)

    print("\n[1/2] Building feature matrix...")
    features = build_feature_matrix(customers)
    X = min_max_normalize(features.to_numpy())
    print(f"  {X.shape[0]:,} customers x {X.shape[1]} features")

    print(f"\n[2/2] Clustering into {SEGMENT_COUNT} groups...")
    km = KMeansClusterer(n_clusters=SEGMENT_COUNT).fit(X)
    sizes = pd.Series(km.labels_).value_counts().sort_index()
    for idx, size in sizes.items():
        print(f"  {cluster_name(int(idx)):<22} {size:>6,}")

    quality = compute_quality_metrics(X, km.labels_, mode="computed")
    print(f"\n  Silhouette: {quality.silhouette_score}  "
          f"Davies-Bouldin: {quality.davies_bouldin_index}  "
          f"Calinski-Harabasz: {quality.calinski_harabasz_index}")


if __name__ == "__main__":
    main()
