"""
Product and campaign recommendation tests.

Guards against:
1. Confidence or rate fields escaping [0, 1] on odd inputs
2. Recently booked destinations being re-recommended
3. Rule-segment precedence changes breaking campaign targeting
4. Priority sort and result caps being ignored
"""
from datetime import timedelta
import random

import pytest

from crm_insights.analysis.recommendations import SmartRecommendationsEngine
from crm_insights.models import BookingRecord, CustomerProfile, Product


@pytest.fixture
def engine():
    return SmartRecommendationsEngine()


def _random_profile(rng: random.Random, index: int, now) -> CustomerProfile:
    destinations = ["Mecca", "Medina", "Istanbul", "Dubai", "Cairo"]
    packages = ["economy", "standard", "premium", "luxury", "custom"]
    history = [
        BookingRecord(
            destination=rng.choice(destinations),
            package_type=rng.choice(packages),
            price=rng.uniform(0, 15000),
            booking_date=now - timedelta(days=rng.randint(0, 1500)),
        )
        for _ in range(rng.randint(0, 6))
    ]
    return CustomerProfile(
        customer_id=f"cust-{index}",
        age=rng.randint(18, 90),
        location="Berlin",
        preferred_destinations=rng.sample(destinations, rng.randint(0, 3)),
        booking_history=history,
        total_spent=rng.uniform(0, 60000),
        avg_booking_value=rng.uniform(0, 12000),
        booking_frequency_days=rng.uniform(0, 1000),
        last_booking_days_ago=rng.uniform(0, 2000),
        engagement_score=rng.random(),
        loyalty_tier=rng.choice(["bronze", "silver", "gold", "platinum"]),
        communication_preference=rng.choice(["email", "sms", "whatsapp", "phone"]),
        budget_range=rng.choice(["budget", "mid-range", "premium", "luxury"]),
        travel_style=rng.choice(["family", "solo", "group", "luxury"]),
        seasonal_preferences=rng.sample(["spring", "summer", "autumn", "winter"], rng.randint(0, 2)),
    )


def _random_product(rng: random.Random, index: int) -> Product:
    return Product(
        id=f"p-{index}",
        name=f"Package {index}",
        type=rng.choice(["package", "hotel", "flight"]),
        destination=rng.choice(["Mecca", "Medina", "Istanbul", "Dubai", "Cairo"]),
        price=rng.uniform(0, 20000),
        package_type=rng.choice(["economy", "standard", "premium", "luxury", "custom"]),
        travel_style=rng.choice(["family", "solo", "group", "luxury"]),
        price_category=rng.choice(["budget", "mid-range", "premium", "luxury", "unknown"]),
        features=["wifi"] if rng.random() < 0.5 else [],
    )


# ---------------------------------------------------------------------------
# Product recommendations
# ---------------------------------------------------------------------------

def test_default_profile_recommendation(engine, make_profile, make_product, now):
    recs = engine.generate_product_recommendations(make_profile(), [make_product()], now=now)
    assert len(recs) == 1
    rec = recs[0]

    assert rec.customer_id == "anna-001"
    assert rec.confidence_score == pytest.approx(0.708, abs=0.002)
    assert rec.priority == "high"
    assert rec.reasoning == ["Matches your preferred destination: Mecca"]
    assert rec.validity_days == 55
    assert rec.cross_sell_potential == pytest.approx(0.8)
    assert rec.up_sell_potential == pytest.approx(1.0)
    assert rec.personalization_factors == [
        "preferred_destination", "travel_style_family", "loyalty_silver",
    ]
    assert rec.expected_revenue == pytest.approx(rec.price * rec.expected_conversion_rate, abs=0.5)


def test_recently_booked_destination_excluded(engine, make_profile, make_product, now):
    profile = make_profile(booking_history=[
        BookingRecord(destination="Mecca", package_type="standard", price=2500.0,
                      booking_date=now - timedelta(days=10)),
    ])
    assert engine.generate_product_recommendations(profile, [make_product()], now=now) == []

    kept = engine.generate_product_recommendations(
        profile, [make_product()], exclude_recent=False, now=now
    )
    assert len(kept) == 1


def test_min_confidence_filters(engine, make_profile, make_product, now):
    recs = engine.generate_product_recommendations(
        make_profile(), [make_product()], min_confidence=0.95, now=now
    )
    assert recs == []


def test_cross_and_up_sell_can_be_disabled(engine, make_profile, make_product, now):
    rec = engine.generate_product_recommendations(
        make_profile(), [make_product()], include_cross_sell=False, include_up_sell=False, now=now
    )[0]
    assert rec.cross_sell_potential == 0
    assert rec.up_sell_potential == 0


def test_sorted_by_priority_then_confidence_and_capped(engine, now):
    rng = random.Random(21)
    products = [_random_product(rng, i) for i in range(60)]
    order = {"urgent": 4, "high": 3, "medium": 2, "low": 1}

    for i in range(20):
        recs = engine.generate_product_recommendations(
            _random_profile(rng, i, now), products, max_recommendations=7, min_confidence=0.0,
            now=now,
        )
        assert len(recs) <= 7
        keys = [(order[r.priority], r.confidence_score) for r in recs]
        assert keys == sorted(keys, reverse=True)


def test_empty_catalog(engine, make_profile, now):
    assert engine.generate_product_recommendations(make_profile(), [], now=now) == []


def test_product_scores_stay_in_unit_range(engine, now):
    rng = random.Random(1234)
    products = [_random_product(rng, i) for i in range(30)]
    for i in range(60):
        profile = _random_profile(rng, i, now)
        for rec in engine.generate_product_recommendations(
            profile, products, max_recommendations=30, min_confidence=0.0, now=now
        ):
            assert 0 <= rec.confidence_score <= 1
            assert 0.01 <= rec.expected_conversion_rate <= 0.3
            assert 0 <= rec.cross_sell_potential <= 1
            assert 0 <= rec.up_sell_potential <= 1
            assert len(rec.reasoning) <= 3


# ---------------------------------------------------------------------------
# Rule segments
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("overrides,expected", [
    (dict(total_spent=12000.0, booking_frequency_days=60, last_booking_days_ago=30,
          budget_range="luxury", avg_booking_value=4000.0), "high_value_frequent"),
    (dict(budget_range="luxury", avg_booking_value=4000.0, travel_style="solo"), "luxury_seekers"),
    (dict(budget_range="budget", avg_booking_value=800.0, travel_style="family"), "budget_conscious"),
    (dict(travel_style="family"), "family_travelers"),
    (dict(total_spent=6000.0, last_booking_days_ago=200, travel_style="solo"),
     "inactive_high_potential"),
    (dict(total_spent=1000.0, travel_style="solo"), "budget_conscious"),
])
def test_assign_segment_precedence(engine, make_profile, overrides, expected):
    assert engine.assign_segment(make_profile(**overrides)) == expected


def test_analyze_segments_order_and_content(engine, make_profile):
    profiles = [
        make_profile(customer_id="fam-1"),
        make_profile(customer_id="lux-1", budget_range="luxury", avg_booking_value=5000.0,
                     travel_style="solo", age=50),
    ]
    insights = engine.analyze_customer_segments(profiles)

    assert [i.segment_id for i in insights] == ["luxury_seekers", "family_travelers"]
    family = insights[1]
    assert family.segment_name == "Family Travelers"
    assert family.customer_count == 1
    assert family.characteristics == [
        "Average age: 42", "Average spending: €7500", "Primary travel style: family",
    ]
    # Not recently booked (200 days), engagement 0.6
    assert family.growth_potential == pytest.approx(0.36)
    assert "Launch win-back campaigns for inactive customers" in family.recommended_actions
    assert family.expected_roi == pytest.approx(
        (7500 * 0.1 * family.success_probability - 50) / 50, abs=0.01
    )


def test_analyze_segments_empty(engine):
    assert engine.analyze_customer_segments([]) == []


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------

def test_campaign_recommendation_fields(engine, make_profile, make_campaign, now):
    recs = engine.generate_campaign_recommendations([make_profile()], [make_campaign()], now=now)
    assert len(recs) == 1
    rec = recs[0]

    # Engagement 0.6, full segment fit, email outside the best hours
    assert rec.confidence_score == pytest.approx(0.76)
    assert rec.urgency_level == "high"
    assert rec.expected_open_rate == pytest.approx(0.4)
    assert rec.expected_click_rate == pytest.approx(0.024)
    assert rec.message_template == "Hello anna, as a silver member you get early access!"
    assert rec.call_to_action == "Book now"
    assert rec.personalization_tokens == {
        "customer_id": "anna-001",
        "loyalty_tier": "silver",
        "preferred_destination": "Mecca",
        "last_booking_value": "2500",
    }
    assert (rec.optimal_send_time.day_of_week, rec.optimal_send_time.hour) == (2, 10)
    assert rec.optimal_send_time.timezone == "Europe/Berlin"
    assert rec.a_b_test_variant is None


def test_email_timing_window_raises_confidence(engine, make_profile, make_campaign, now):
    morning = now.replace(hour=10)
    rec = engine.generate_campaign_recommendations(
        [make_profile()], [make_campaign()], now=morning
    )[0]
    assert rec.confidence_score == pytest.approx(0.84)


def test_ab_variant_from_customer_id(engine, make_profile, make_campaign, now):
    campaign = make_campaign(ab_test_enabled=True)
    a = engine.generate_campaign_recommendations([make_profile()], [campaign], now=now)[0]
    b = engine.generate_campaign_recommendations(
        [make_profile(customer_id="omar-002")], [campaign], now=now
    )[0]
    assert a.a_b_test_variant == "variant_a"
    assert b.a_b_test_variant == "variant_b"


def test_campaign_without_audience_skipped(engine, make_profile, make_campaign, now):
    campaign = make_campaign(target_segment="luxury_seekers")
    assert engine.generate_campaign_recommendations([make_profile()], [campaign], now=now) == []


def test_target_segments_filter(engine, make_profile, make_campaign, now):
    recs = engine.generate_campaign_recommendations(
        [make_profile()], [make_campaign()], target_segments=["budget_conscious"], now=now
    )
    assert recs == []


def test_campaign_rates_stay_in_unit_range(engine, make_campaign, now):
    rng = random.Random(99)
    profiles = [_random_profile(rng, i, now) for i in range(150)]
    campaigns = [
        make_campaign(id=f"camp-{i}", type=channel, target_segment=segment)
        for i, (channel, segment) in enumerate(
            (channel, segment)
            for channel in ("email", "sms", "push", "whatsapp")
            for segment in engine.SEGMENT_NAMES
        )
    ]
    recs = engine.generate_campaign_recommendations(
        profiles, campaigns, max_campaigns=50, min_confidence=0.0, now=now
    )
    assert recs
    for rec in recs:
        for value in (rec.confidence_score, rec.expected_open_rate,
                      rec.expected_click_rate, rec.expected_conversion_rate):
            assert 0 <= value <= 1
    confidences = [r.confidence_score for r in recs]
    assert confidences == sorted(confidences, reverse=True)


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def test_summary_rolls_up_by_segment(engine, make_profile, make_product, make_campaign, now):
    profiles = [make_profile()]
    product_recs = engine.generate_product_recommendations(profiles[0], [make_product()], now=now)
    campaign_recs = engine.generate_campaign_recommendations(profiles, [make_campaign()], now=now)

    summary = engine.generate_recommendation_summary(profiles, product_recs, campaign_recs)

    assert summary.total_recommendations == 2
    assert summary.product_recommendations == 1
    assert summary.campaign_recommendations == 1
    assert summary.high_priority_count == 1
    assert summary.cross_sell_opportunities == 1
    assert summary.up_sell_opportunities == 1
    assert summary.expected_total_revenue == pytest.approx(product_recs[0].expected_revenue)
    breakdown = summary.segment_breakdown["Family Travelers"]
    assert breakdown.count == 1
    assert breakdown.avg_confidence == product_recs[0].confidence_score


def test_summary_empty(engine):
    summary = engine.generate_recommendation_summary([], [], [])
    assert summary.total_recommendations == 0
    assert summary.avg_confidence_score == 0
    assert summary.segment_breakdown == {}
