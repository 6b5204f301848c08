"""Shared fixtures: record factories with sensible defaults and a fixed clock."""

from datetime import datetime, timedelta
import random

import pytest

from crm_insights.models import (
    BookingRecord, Campaign, CustomerBehavior, CustomerProfile, CustomerSegmentationData,
    Product, RevenueDataPoint,
)

NOW = datetime(2025, 6, 15, 12, 0)


@pytest.fixture
def now():
    return NOW


# ---------------------------------------------------------------------------
# Forecasting
# ---------------------------------------------------------------------------

@pytest.fixture
def make_history():
    """Daily revenue with a weekly bump on weekends and a gentle upward trend."""
    def factory(days: int = 60, base: float = 1000.0, start: datetime = NOW - timedelta(days=90)):
        points = []
        for i in range(days):
            date = start + timedelta(days=i)
            weekend = 1.3 if date.weekday() >= 5 else 1.0
            amount = (base + i * 5) * weekend
            points.append(RevenueDataPoint(date=date, amount=amount, booking_count=3))
        return points
    return factory


# ---------------------------------------------------------------------------
# Churn
# ---------------------------------------------------------------------------

@pytest.fixture
def make_behavior():
    def factory(**overrides) -> CustomerBehavior:
        fields = dict(
            customer_id="cust-1",
            total_bookings=6,
            total_spent=6000.0,
            avg_booking_value=1000.0,
            last_booking_days_ago=45,
            booking_frequency_days=120,
            email_open_rate=0.4,
            email_click_rate=0.1,
            website_visits_last_30d=8,
            support_tickets_count=1,
            refund_requests=0,
            preferred_destination_changes=1,
            payment_delays=0,
            mobile_app_usage=0.5,
            newsletter_subscribed=True,
            referral_count=1,
            account_age_days=500,
            last_login_days_ago=10,
            profile_completion=0.8,
        )
        fields.update(overrides)
        return CustomerBehavior(**fields)
    return factory


@pytest.fixture
def perfect_customer(make_behavior):
    return make_behavior(
        customer_id="perfect",
        last_booking_days_ago=1,
        booking_frequency_days=30,
        email_open_rate=1.0,
        email_click_rate=0.8,
        account_age_days=1095,
        total_spent=12000.0,
        avg_booking_value=4000.0,
        website_visits_last_30d=20,
        support_tickets_count=0,
        mobile_app_usage=0.9,
        referral_count=5,
        last_login_days_ago=1,
        profile_completion=1.0,
    )


@pytest.fixture
def troubled_customer(make_behavior):
    return make_behavior(
        customer_id="troubled",
        last_booking_days_ago=180,
        booking_frequency_days=200,
        email_open_rate=0.1,
        email_click_rate=0.01,
        support_tickets_count=3,
        payment_delays=2,
        refund_requests=1,
        total_spent=800.0,
        avg_booking_value=400.0,
        website_visits_last_30d=1,
        mobile_app_usage=0.05,
        newsletter_subscribed=False,
        referral_count=0,
        account_age_days=200,
        last_login_days_ago=120,
        profile_completion=0.3,
    )


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

@pytest.fixture
def make_segmentation_customer():
    def factory(index: int, rng: random.Random | None = None, **overrides) -> CustomerSegmentationData:
        rng = rng or random.Random(index)
        bookings = rng.randint(1, 20)
        spent = round(rng.uniform(300, 30000), 2)
        fields = dict(
            customer_id=f"c-{index:04d}",
            tenant_id="tenant-a",
            age=rng.randint(20, 75),
            location_country="Germany",
            location_city="Berlin",
            language_preference="de",
            total_bookings=bookings,
            total_spent=spent,
            avg_booking_value=round(spent / bookings, 2),
            first_booking_date=NOW - timedelta(days=rng.randint(400, 2000)),
            booking_frequency_days=rng.uniform(20, 400),
            preferred_destinations=rng.sample(["Mecca", "Medina", "Istanbul", "Dubai", "Cairo"], 2),
            preferred_package_types=[rng.choice(["economy", "standard", "premium", "luxury"])],
            email_open_rate=rng.random(),
            email_click_rate=rng.random() * 0.3,
            website_session_count=rng.randint(0, 120),
            avg_session_duration=rng.uniform(30, 600),
            page_views_total=rng.randint(0, 500),
            social_media_engagement=rng.random(),
            payment_method_preferences=["card"],
            payment_delays_count=rng.randint(0, 4),
            refund_requests_count=rng.randint(0, 2),
            cancellation_rate=rng.random() * 0.2,
            referral_count=rng.randint(0, 6),
            review_count=rng.randint(0, 15),
            loyalty_program_tier=rng.choice(["bronze", "silver", "gold", "platinum"]),
            loyalty_points_balance=rng.uniform(0, 12000),
            support_ticket_count=rng.randint(0, 5),
            communication_preferences=[rng.choice(["email", "sms", "whatsapp"])],
            travel_style=rng.choice(["family", "solo", "group", "luxury"]),
            travel_frequency="yearly",
            booking_lead_time_days=rng.uniform(7, 180),
            seasonal_pattern="summer",
            budget_sensitivity="medium",
            account_status=rng.choice(["active", "active", "inactive"]),
            last_activity_date=NOW - timedelta(days=rng.randint(0, 400)),
            created_at=NOW - timedelta(days=rng.randint(400, 2500)),
            updated_at=NOW,
            last_booking_date=NOW - timedelta(days=rng.randint(1, 500)),
            avg_review_rating=rng.choice([None, 3.0, 4.0, 4.8]),
        )
        fields.update(overrides)
        return CustomerSegmentationData(**fields)
    return factory


@pytest.fixture
def segmentation_population(make_segmentation_customer):
    rng = random.Random(42)
    return [make_segmentation_customer(i, rng) for i in range(200)]


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

@pytest.fixture
def make_profile():
    def factory(**overrides) -> CustomerProfile:
        fields = dict(
            customer_id="anna-001",
            age=42,
            location="Berlin",
            preferred_destinations=["Mecca"],
            booking_history=[
                BookingRecord(
                    destination="Mecca", package_type="standard", price=2500.0,
                    booking_date=NOW - timedelta(days=200),
                ),
            ],
            total_spent=7500.0,
            avg_booking_value=2500.0,
            booking_frequency_days=180,
            last_booking_days_ago=200,
            engagement_score=0.6,
            loyalty_tier="silver",
            communication_preference="email",
            budget_range="mid-range",
            travel_style="family",
            seasonal_preferences=["summer"],
        )
        fields.update(overrides)
        return CustomerProfile(**fields)
    return factory


@pytest.fixture
def make_product():
    def factory(**overrides) -> Product:
        fields = dict(
            id="p-umrah-premium",
            name="Umrah Premium Package",
            type="package",
            destination="Mecca",
            price=2800.0,
            package_type="premium",
            travel_style="family",
            price_category="premium",
            features=["5-star hotel", "guided tours"],
        )
        fields.update(overrides)
        return Product(**fields)
    return factory


@pytest.fixture
def make_campaign():
    def factory(**overrides) -> Campaign:
        fields = dict(
            id="camp-1",
            name="Family Summer Umrah",
            type="email",
            target_segment="family_travelers",
            template="Hello {{name}}, as a {{loyalty_tier}} member you get early access!",
            cta="Book now",
        )
        fields.update(overrides)
        return Campaign(**fields)
    return factory
