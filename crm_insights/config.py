"""Central configuration for the CRM analytics core.

Every tuning constant and threshold shared across the engines lives here.
Engine modules import from this config instead of hardcoding values; the
per-engine weight tables stay on the engine classes themselves.
"""

from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv
import os

load_dotenv()

# ── Project paths ──────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).resolve().parent.parent
REPORTS_DIR = PROJECT_ROOT / "reports"

# ── Logging ────────────────────────────────────────────────────

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR")    # unset = console only

# ── Forecasting ────────────────────────────────────────────────

FORECAST_MIN_HISTORY = 14         # Two full weekly cycles
FORECAST_DEFAULT_DAYS = 30
FORECAST_DEFAULT_CONFIDENCE = 0.95
FORECAST_METRICS_WINDOW = 30      # Days compared for MAPE/RMSE/MAE/R²

HOLT_WINTERS_ALPHA = 0.3          # Level smoothing
HOLT_WINTERS_BETA = 0.1           # Trend smoothing
HOLT_WINTERS_GAMMA = 0.1          # Seasonal smoothing
SEASONAL_PERIOD = 7               # Weekly cycle

Z_SCORES = {
    0.95: 1.96,
    0.90: 1.645,
}
Z_SCORE_FALLBACK = 2.576          # 99%

# ── Churn scoring ──────────────────────────────────────────────

CHURN_RISK_TIERS = [              # (upper bound, tier), checked in order
    (0.25, "low"),
    (0.50, "medium"),
    (0.75, "high"),
]
CHURN_TOP_TIER = "critical"
CHURN_BASELINE_RATE = 0.25        # Trend proxy baseline
TIME_TO_CHURN_MIN_PROBABILITY = 0.3
TIME_TO_CHURN_FLOOR_DAYS = 7
MAX_RISK_FACTORS = 5
MAX_RECOMMENDED_ACTIONS = 4

# ── Segmentation ───────────────────────────────────────────────

SEGMENT_COUNT = 8
MIN_SEGMENT_SIZE = 10
KMEANS_MAX_ITERATIONS = 100
KMEANS_TOLERANCE = 0.001
ACTIVE_WINDOW_DAYS = 90           # "Recently active" for growth/retention
INACTIVE_WINDOW_DAYS = 180
CUSTOMER_ACQUISITION_COST = 150.0
DEFAULT_REVIEW_RATING = 4.0

# "placeholder" reports the fixed quality constants below; "computed"
# derives them from the clustering with scikit-learn.
SEGMENT_QUALITY_MODE = os.getenv("SEGMENT_QUALITY_MODE", "placeholder")
PLACEHOLDER_QUALITY_METRICS = {
    "silhouette_score": 0.65,
    "davies_bouldin_index": 1.2,
    "calinski_harabasz_index": 150.0,
    "segment_stability": 0.85,
    "confidence_level": 0.78,
}

RANDOM_STATE = int(os.environ["RANDOM_STATE"]) if os.getenv("RANDOM_STATE") else None

# ── Recommendations ────────────────────────────────────────────

RECOMMENDATION_MAX_RESULTS = 10
RECOMMENDATION_MIN_CONFIDENCE = 0.3
CAMPAIGN_MAX_RESULTS = 5
CAMPAIGN_MIN_CONFIDENCE = 0.4
RECENT_INTERACTION_DAYS = 30
CONVERSION_RATE_BOUNDS = (0.01, 0.30)
CAMPAIGN_SEND_DAY = 2             # Tuesday (0 = Sunday)
CAMPAIGN_SEND_HOUR = 10
CAMPAIGN_TIMEZONE = "Europe/Berlin"
DEFAULT_DESTINATION = "Mecca"

# ── Natural-language queries ───────────────────────────────────

QUERY_RESULT_LIMIT = 50
HOT_LEAD_SCORE = 70

LEAD_SCORE_RANGES = {
    "hot": (70, 100),
    "warm": (40, 69),
    "cold": (0, 39),
}

# Tables (and their columns) that generated SQL may touch
ALLOWED_TABLES = {
    "contacts": {
        "id", "tenant_id", "first_name", "last_name", "email", "phone",
        "country", "city", "lead_score", "budget_min", "budget_max",
        "source", "created_at", "updated_at",
    },
    "bookings": {
        "id", "tenant_id", "contact_id", "total_amount", "currency",
        "status", "booking_date", "travel_dates", "created_at", "updated_at",
    },
    "contact_engagement_metrics": {
        "contact_id", "last_activity_at",
    },
}


@dataclass
class SegmentationConfig:
    """Bundled options for one segmentation run.

    Production code uses the defaults; tests pass modified instances
    (usually a fixed random_state and a smaller population).
    """
    segment_count: int = SEGMENT_COUNT
    min_segment_size: int = MIN_SEGMENT_SIZE
    include_rfm: bool = True
    stability_analysis: bool = False
    quality_mode: str = SEGMENT_QUALITY_MODE
    random_state: int | None = RANDOM_STATE
