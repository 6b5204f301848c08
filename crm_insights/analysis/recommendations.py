"""Product & Campaign Recommendations: heuristic compatibility scoring.

Product confidence is a weighted blend of seven sub-scores (behavioral,
content, temporal, value, engagement, conversion likelihood, loyalty).
Campaign confidence blends audience engagement, segment fit and send
timing.

The five rule-based segments used here for campaign targeting are a
separate, simpler concept from the statistical segments built by
segmentation.py; the two are never mixed.

Usage:
    python -m crm_insights.analysis.recommendations data/profiles.json data/products.json [data/campaigns.json]
"""

from datetime import datetime, timedelta
import math
import sys

import pandas as pd
import numpy as np

from crm_insights.config import (
    CAMPAIGN_MAX_RESULTS, CAMPAIGN_MIN_CONFIDENCE, CAMPAIGN_SEND_DAY, CAMPAIGN_SEND_HOUR,
    CAMPAIGN_TIMEZONE, CONVERSION_RATE_BOUNDS, DEFAULT_DESTINATION, RECENT_INTERACTION_DAYS,
    RECOMMENDATION_MAX_RESULTS, RECOMMENDATION_MIN_CONFIDENCE, REPORTS_DIR,
)
from crm_insights.loaders import load_records
from crm_insights.logger import log
from crm_insights.models import (
    Campaign, CampaignRecommendation, CustomerProfile, Product, ProductRecommendation,
    RecommendationSummary, SegmentBreakdown, SegmentInsight, SendTime,
)
from crm_insights.timeutils import reference_time, to_naive


class SmartRecommendationsEngine:
    """Ranks products per customer and campaigns per audience."""

    FEATURE_WEIGHTS = {
        "behavioral_similarity": 0.25,
        "content_similarity": 0.20,
        "temporal_patterns": 0.15,
        "value_alignment": 0.15,
        "engagement_history": 0.10,
        "conversion_likelihood": 0.10,
        "loyalty_factor": 0.05,
    }

    LOYALTY_SCORES = {"bronze": 0.25, "silver": 0.5, "gold": 0.75, "platinum": 1.0}
    LOYALTY_LIKELIHOOD_BONUS = {"bronze": 0.0, "silver": 0.05, "gold": 0.1, "platinum": 0.2}
    LOYALTY_CONVERSION_MULTIPLIER = {"bronze": 0.8, "silver": 1.0, "gold": 1.2, "platinum": 1.5}
    LOYALTY_VALIDITY_BONUS = {"bronze": 0, "silver": 7, "gold": 14, "platinum": 30}
    LOYALTY_CROSS_SELL_BONUS = {"bronze": 0.0, "silver": 0.1, "gold": 0.2, "platinum": 0.3}

    BUDGET_LEVELS = {"budget": 1, "mid-range": 2, "premium": 3, "luxury": 4}
    PACKAGE_TIERS = {"economy": 1, "standard": 2, "premium": 3, "luxury": 4}
    PRIORITY_ORDER = {"urgent": 4, "high": 3, "medium": 2, "low": 1}

    CHANNEL_OPEN_RATES = {"email": 0.22, "sms": 0.85, "push": 0.15, "whatsapp": 0.70}
    CHANNEL_CLICK_RATES = {"email": 0.03, "sms": 0.15, "push": 0.02, "whatsapp": 0.20}

    # Ordered (segment id, predicate); unmatched profiles fall back to budget_conscious
    SEGMENT_RULES = [
        ("high_value_frequent",
         lambda p: p.total_spent > 10000 and p.booking_frequency_days < 90
         and p.last_booking_days_ago < 60),
        ("luxury_seekers",
         lambda p: p.budget_range == "luxury" and p.avg_booking_value > 3000),
        ("budget_conscious",
         lambda p: p.budget_range == "budget" and p.avg_booking_value < 1000),
        ("family_travelers",
         lambda p: p.travel_style == "family"),
        ("inactive_high_potential",
         lambda p: p.total_spent > 5000 and p.last_booking_days_ago > 180),
    ]
    DEFAULT_SEGMENT = "budget_conscious"

    # Display order for segment reports
    SEGMENT_NAMES = {
        "high_value_frequent": "High-Value Frequent Travelers",
        "budget_conscious": "Budget-Conscious Travelers",
        "luxury_seekers": "Luxury Experience Seekers",
        "family_travelers": "Family Travelers",
        "inactive_high_potential": "Inactive High-Potential",
    }

    CAMPAIGN_COST_PER_CUSTOMER = 50.0

    # ── Products ───────────────────────────────────────────────

    def generate_product_recommendations(
        self,
        profile: CustomerProfile,
        products: list[Product],
        max_recommendations: int = RECOMMENDATION_MAX_RESULTS,
        min_confidence: float = RECOMMENDATION_MIN_CONFIDENCE,
        include_cross_sell: bool = True,
        include_up_sell: bool = True,
        exclude_recent: bool = True,
        now: datetime | None = None,
    ) -> list[ProductRecommendation]:
        """Rank products for one customer.

        Products booked at the same destination within the last 30 days
        are skipped when ``exclude_recent`` is set. Results are sorted by
        priority tier, then confidence, and capped at ``max_recommendations``.
        """
        now = reference_time(now)
        recommendations = []

        for product in products:
            if exclude_recent and self._recently_interacted(profile, product, now):
                continue

            confidence = self._product_confidence(profile, product, now)
            if confidence < min_confidence:
                continue

            conversion_rate = self._conversion_rate(profile, confidence)
            recommendations.append(ProductRecommendation(
                customer_id=profile.customer_id,
                product_id=product.id,
                product_name=product.name,
                product_type=product.type,
                destination=product.destination,
                price=product.price,
                confidence_score=round(confidence, 3),
                reasoning=self._reasoning(profile, product, confidence),
                expected_conversion_rate=round(conversion_rate, 4),
                expected_revenue=round(product.price * conversion_rate, 2),
                priority=self._priority(confidence, product.price),
                validity_days=(
                    30 + math.floor(profile.engagement_score * 30)
                    + self.LOYALTY_VALIDITY_BONUS[profile.loyalty_tier]
                ),
                personalization_factors=self._personalization_factors(profile, product),
                cross_sell_potential=(
                    self._cross_sell_potential(profile, product) if include_cross_sell else 0.0
                ),
                up_sell_potential=(
                    self._up_sell_potential(profile, product) if include_up_sell else 0.0
                ),
            ))

        recommendations.sort(
            key=lambda r: (self.PRIORITY_ORDER[r.priority], r.confidence_score), reverse=True
        )
        log.debug(
            f"{profile.customer_id}: {len(recommendations)} of {len(products)} products qualified"
        )
        return recommendations[:max_recommendations]

    # ── Campaigns ──────────────────────────────────────────────

    def generate_campaign_recommendations(
        self,
        profiles: list[CustomerProfile],
        campaigns: list[Campaign],
        max_campaigns: int = CAMPAIGN_MAX_RESULTS,
        min_confidence: float = CAMPAIGN_MIN_CONFIDENCE,
        target_segments: list[str] | None = None,
        now: datetime | None = None,
    ) -> list[CampaignRecommendation]:
        """Score each campaign against the customers of its target segment.

        Campaigns whose segment has no customers are skipped.
        """
        now = reference_time(now)
        recommendations = []

        for campaign in campaigns:
            if target_segments is not None and campaign.target_segment not in target_segments:
                continue

            audience = [p for p in profiles if self.assign_segment(p) == campaign.target_segment]
            if not audience:
                continue

            confidence = self._campaign_confidence(audience, campaign, now)
            if confidence < min_confidence:
                continue

            open_rate = self._open_rate(audience, campaign)
            click_rate = min(0.5, self.CHANNEL_CLICK_RATES[campaign.type] * (open_rate / 0.5))
            avg_likelihood = float(np.mean([self._conversion_likelihood(p) for p in audience]))
            lead = audience[0]

            recommendations.append(CampaignRecommendation(
                campaign_id=campaign.id,
                campaign_name=campaign.name,
                campaign_type=campaign.type,
                target_segment=campaign.target_segment,
                message_template=self._personalize_message(campaign.template, lead),
                call_to_action=campaign.cta,
                confidence_score=round(confidence, 3),
                expected_open_rate=round(open_rate, 4),
                expected_click_rate=round(click_rate, 4),
                expected_conversion_rate=round(click_rate * avg_likelihood * 0.1, 4),
                optimal_send_time=SendTime(
                    day_of_week=CAMPAIGN_SEND_DAY, hour=CAMPAIGN_SEND_HOUR,
                    timezone=CAMPAIGN_TIMEZONE,
                ),
                urgency_level=self._urgency(confidence, len(audience)),
                personalization_tokens={
                    "customer_id": lead.customer_id,
                    "loyalty_tier": lead.loyalty_tier,
                    "preferred_destination": (
                        lead.preferred_destinations[0]
                        if lead.preferred_destinations else DEFAULT_DESTINATION
                    ),
                    "last_booking_value": f"{lead.avg_booking_value:g}",
                },
                a_b_test_variant=(
                    ("variant_a" if lead.customer_id.endswith("1") else "variant_b")
                    if campaign.ab_test_enabled else None
                ),
            ))

        recommendations.sort(key=lambda r: r.confidence_score, reverse=True)
        return recommendations[:max_campaigns]

    # ── Segments & summary ─────────────────────────────────────

    def assign_segment(self, profile: CustomerProfile) -> str:
        """Rule-based segment id for campaign targeting (first rule wins)."""
        for segment_id, predicate in self.SEGMENT_RULES:
            if predicate(profile):
                return segment_id
        return self.DEFAULT_SEGMENT

    def analyze_customer_segments(self, profiles: list[CustomerProfile]) -> list[SegmentInsight]:
        """Describe each non-empty rule-based segment."""
        groups: dict[str, list[CustomerProfile]] = {sid: [] for sid in self.SEGMENT_NAMES}
        for profile in profiles:
            groups[self.assign_segment(profile)].append(profile)

        insights = []
        for segment_id, members in groups.items():
            if not members:
                continue

            df = pd.DataFrame({
                "age": [p.age for p in members],
                "total_spent": [p.total_spent for p in members],
                "engagement": [p.engagement_score for p in members],
                "last_booking": [p.last_booking_days_ago for p in members],
                "travel_style": [p.travel_style for p in members],
                "likelihood": [self._conversion_likelihood(p) for p in members],
            })
            avg_value = float(df["total_spent"].mean())
            avg_engagement = float(df["engagement"].mean())
            success = float(df["likelihood"].mean())
            style_counts = df["travel_style"].value_counts(sort=False)

            actions = []
            if avg_engagement < 0.5:
                actions.append("Implement re-engagement campaigns")
            if (df["last_booking"] > 180).sum() > len(members) * 0.3:
                actions.append("Launch win-back campaigns for inactive customers")
            actions += ["Personalize product recommendations", "Optimize communication timing"]

            insights.append(SegmentInsight(
                segment_id=segment_id,
                segment_name=self.SEGMENT_NAMES[segment_id],
                customer_count=len(members),
                characteristics=[
                    f"Average age: {round(df['age'].mean())}",
                    f"Average spending: €{round(avg_value)}",
                    f"Primary travel style: {style_counts.idxmax()}",
                ],
                value_score=round(avg_value, 2),
                growth_potential=round(
                    avg_engagement * 0.6 + float((df["last_booking"] < 90).mean()) * 0.4, 3
                ),
                recommended_actions=actions,
                success_probability=round(success, 3),
                expected_roi=round(
                    (avg_value * 0.1 * success - self.CAMPAIGN_COST_PER_CUSTOMER)
                    / self.CAMPAIGN_COST_PER_CUSTOMER, 3
                ),
            ))
        return insights

    def generate_recommendation_summary(
        self,
        profiles: list[CustomerProfile],
        product_recommendations: list[ProductRecommendation],
        campaign_recommendations: list[CampaignRecommendation],
    ) -> RecommendationSummary:
        """Roll recommendations up into totals and a per-segment breakdown."""
        segment_of = {p.customer_id: self.assign_segment(p) for p in profiles}

        breakdown = {}
        for insight in self.analyze_customer_segments(profiles):
            recs = [
                r for r in product_recommendations
                if segment_of.get(r.customer_id) == insight.segment_id
            ]
            breakdown[insight.segment_name] = SegmentBreakdown(
                count=len(recs),
                avg_confidence=(
                    round(float(np.mean([r.confidence_score for r in recs])), 3) if recs else 0.0
                ),
                expected_revenue=round(sum(r.expected_revenue for r in recs), 2),
            )

        products = product_recommendations
        return RecommendationSummary(
            total_recommendations=len(products) + len(campaign_recommendations),
            high_priority_count=sum(r.priority in ("high", "urgent") for r in products),
            expected_total_revenue=round(sum(r.expected_revenue for r in products), 2),
            avg_confidence_score=(
                round(float(np.mean([r.confidence_score for r in products])), 3)
                if products else 0.0
            ),
            product_recommendations=len(products),
            campaign_recommendations=len(campaign_recommendations),
            cross_sell_opportunities=sum(r.cross_sell_potential > 0.5 for r in products),
            up_sell_opportunities=sum(r.up_sell_potential > 0.5 for r in products),
            segment_breakdown=breakdown,
        )

    # ── Product scoring helpers ────────────────────────────────

    def _product_confidence(
        self, profile: CustomerProfile, product: Product, now: datetime
    ) -> float:
        scores = {
            "behavioral_similarity": self._behavioral_similarity(profile, product),
            "content_similarity": self._content_similarity(profile, product),
            "temporal_patterns": self._temporal_alignment(profile, now),
            "value_alignment": self._value_alignment(profile, product),
            "engagement_history": profile.engagement_score,
            "conversion_likelihood": self._conversion_likelihood(profile),
            "loyalty_factor": self.LOYALTY_SCORES[profile.loyalty_tier],
        }
        confidence = sum(scores[name] * w for name, w in self.FEATURE_WEIGHTS.items())
        return max(0.0, min(1.0, confidence))

    @staticmethod
    def _behavioral_similarity(profile: CustomerProfile, product: Product) -> float:
        destination = 1.0 if product.destination in profile.preferred_destinations else 0.3

        package_types = [b.package_type for b in profile.booking_history]
        package_share = (
            package_types.count(product.package_type) / len(package_types) if package_types else 0.0
        )

        high = max(product.price, profile.avg_booking_value)
        price_ratio = min(product.price, profile.avg_booking_value) / high if high > 0 else 1.0
        price = price_ratio * 0.8 + 0.2

        return destination * 0.5 + package_share * 0.3 + price * 0.2

    def _content_similarity(self, profile: CustomerProfile, product: Product) -> float:
        style = 1.0 if profile.travel_style == product.travel_style else 0.5

        profile_level = self.BUDGET_LEVELS.get(profile.budget_range, 2)
        product_level = self.BUDGET_LEVELS.get(product.price_category, 2)
        budget = max(0.0, 1 - abs(profile_level - product_level) * 0.3)

        # No per-feature booking data yet: known features score neutral 0.5
        features = 0.5 * 0.3 if product.features and profile.booking_history else 0.15

        return style * 0.4 + budget * 0.3 + features

    @staticmethod
    def _season(month: int) -> str:
        """Season for a 1-12 month number."""
        if 3 <= month <= 5:
            return "spring"
        if 6 <= month <= 8:
            return "summer"
        if 9 <= month <= 11:
            return "autumn"
        return "winter"

    def _temporal_alignment(self, profile: CustomerProfile, now: datetime) -> float:
        seasonal = 1.0 if self._season(now.month) in profile.seasonal_preferences else 0.3

        # Within +/- 30 days of the customer's usual booking interval
        start = max(0.0, profile.booking_frequency_days - 30)
        end = profile.booking_frequency_days + 30
        timing = 1.0 if start <= profile.last_booking_days_ago <= end else 0.6

        return seasonal * 0.6 + timing * 0.4

    @staticmethod
    def _value_alignment(profile: CustomerProfile, product: Product) -> float:
        budget = profile.avg_booking_value * 1.2
        if product.price <= budget * 0.8:
            return 1.0
        if product.price <= budget * 1.2:
            return 0.7
        if product.price <= budget * 1.5:
            return 0.3
        return 0.1

    def _conversion_likelihood(self, profile: CustomerProfile) -> float:
        likelihood = (
            max(0.0, 1 - profile.last_booking_days_ago / 365) * 0.3
            + max(0.0, 1 - profile.booking_frequency_days / 365) * 0.3
            + profile.engagement_score * 0.2
            + self.LOYALTY_LIKELIHOOD_BONUS[profile.loyalty_tier]
        )
        return min(1.0, likelihood)

    @staticmethod
    def _recently_interacted(profile: CustomerProfile, product: Product, now: datetime) -> bool:
        cutoff = now - timedelta(days=RECENT_INTERACTION_DAYS)
        return any(
            b.destination == product.destination and to_naive(b.booking_date) >= cutoff
            for b in profile.booking_history
        )

    @staticmethod
    def _reasoning(profile: CustomerProfile, product: Product, confidence: float) -> list[str]:
        reasons = []
        if product.destination in profile.preferred_destinations:
            reasons.append(f"Matches your preferred destination: {product.destination}")
        if confidence > 0.8:
            reasons.append("High compatibility with your travel preferences")
        if product.price <= profile.avg_booking_value * 1.1:
            reasons.append("Within your typical spending range")
        if profile.loyalty_tier in ("gold", "platinum"):
            reasons.append("Exclusive offer for valued customers")
        if profile.engagement_score > 0.7:
            reasons.append("Based on your high engagement with our recommendations")
        return reasons[:3]

    def _conversion_rate(self, profile: CustomerProfile, confidence: float) -> float:
        rate = (
            confidence * 0.15
            * self.LOYALTY_CONVERSION_MULTIPLIER[profile.loyalty_tier]
            * (0.5 + profile.engagement_score)
            * max(0.5, 1 - profile.last_booking_days_ago / 365)
        )
        low, high = CONVERSION_RATE_BOUNDS
        return max(low, min(high, rate))

    @staticmethod
    def _priority(confidence: float, price: float) -> str:
        if confidence >= 0.8 and price >= 2000:
            return "urgent"
        if confidence >= 0.7:
            return "high"
        if confidence >= 0.5:
            return "medium"
        return "low"

    @staticmethod
    def _personalization_factors(profile: CustomerProfile, product: Product) -> list[str]:
        factors = []
        if product.destination in profile.preferred_destinations:
            factors.append("preferred_destination")
        if profile.travel_style:
            factors.append(f"travel_style_{profile.travel_style}")
        if profile.loyalty_tier != "bronze":
            factors.append(f"loyalty_{profile.loyalty_tier}")
        if len(profile.booking_history) >= 3:
            factors.append("repeat_customer")
        return factors

    def _cross_sell_potential(self, profile: CustomerProfile, product: Product) -> float:
        complementary = any(
            b.destination == product.destination and b.package_type != product.package_type
            for b in profile.booking_history
        )
        potential = (0.7 if complementary else 0.3) + self.LOYALTY_CROSS_SELL_BONUS[profile.loyalty_tier]
        return min(1.0, potential)

    def _up_sell_potential(self, profile: CustomerProfile, product: Product) -> float:
        product_tier = self.PACKAGE_TIERS.get(product.package_type, 1)
        lower_tier_booked = any(
            b.destination == product.destination
            and self.PACKAGE_TIERS.get(b.package_type, 1) < product_tier
            for b in profile.booking_history
        )
        potential = 0.8 if lower_tier_booked else 0.2
        if profile.avg_booking_value * 1.5 >= product.price:
            potential += 0.2
        return min(1.0, potential)

    # ── Campaign scoring helpers ───────────────────────────────

    def _campaign_confidence(
        self, audience: list[CustomerProfile], campaign: Campaign, now: datetime
    ) -> float:
        avg_engagement = float(np.mean([p.engagement_score for p in audience]))
        fit = sum(self.assign_segment(p) == campaign.target_segment for p in audience) / len(audience)

        if campaign.type == "email":
            timing = 1.0 if 9 <= now.hour <= 11 or 14 <= now.hour <= 16 else 0.6
        else:
            timing = 0.8

        return avg_engagement * 0.4 + fit * 0.4 + timing * 0.2

    def _open_rate(self, audience: list[CustomerProfile], campaign: Campaign) -> float:
        avg_engagement = float(np.mean([p.engagement_score for p in audience]))
        return min(0.95, self.CHANNEL_OPEN_RATES[campaign.type] + avg_engagement * 0.3)

    @staticmethod
    def _urgency(confidence: float, audience_size: int) -> str:
        if confidence >= 0.8 and audience_size >= 100:
            return "critical"
        if confidence >= 0.7:
            return "high"
        if confidence >= 0.5:
            return "medium"
        return "low"

    @staticmethod
    def _personalize_message(template: str, profile: CustomerProfile) -> str:
        return (
            template
            .replace("{{name}}", profile.customer_id.split("-")[0], 1)
            .replace("{{loyalty_tier}}", profile.loyalty_tier, 1)
        )


# ── CLI Entry Point ────────────────────────────────────────────

def main():
    print("=" * 60)
    print("Product & Campaign Recommendations")
    print("=" * 60)

    if len(sys.argv) < 3:
        print("usage: python -m crm_insights.analysis.recommendations "
              "PROFILES.json PRODUCTS.json [CAMPAIGNS.json]")
        sys.exit(2)

    output_dir = REPORTS_DIR / "recommendations"
    output_dir.mkdir(parents=True, exist_ok=True)
    engine = SmartRecommendationsEngine()

    print("\n[1/4] Loading profiles and catalog...")
    profiles = load_records(sys.argv[1], CustomerProfile)
    products = load_records(sys.argv[2], Product)
    campaigns = load_records(sys.argv[3], Campaign) if len(sys.argv) > 3 else []

    print("\n[2/4] Scoring products per customer...")
    product_recs = [
        rec for profile in profiles
        for rec in engine.generate_product_recommendations(profile, products)
    ]
    print(f"  {len(product_recs):,} product recommendations")

    print("\n[3/4] Scoring campaigns...")
    campaign_recs = engine.generate_campaign_recommendations(profiles, campaigns)
    for rec in campaign_recs:
        print(f"  {rec.campaign_name} -> {rec.target_segment} "
              f"(confidence {rec.confidence_score:.2f}, {rec.urgency_level})")

    print("\n[4/4] Summarising...")
    summary = engine.generate_recommendation_summary(profiles, product_recs, campaign_recs)
    print(f"  High priority: {summary.high_priority_count:,}")
    print(f"  Expected revenue: €{summary.expected_total_revenue:,.2f}")
    for name, seg in summary.segment_breakdown.items():
        print(f"  {name:<32} {seg.count:>5} recs  €{seg.expected_revenue:,.0f}")

    pd.DataFrame([vars(r) for r in product_recs]).to_csv(
        output_dir / "product_recommendations.csv", index=False
    )

    print(f"\n✅ Recommendations complete. Reports saved to {output_dir}/")


if __name__ == "__main__":
    main()
