"""Query Parser: free text -> QueryClassification.

Every stage is total: an unrecognized query comes back as type
``unknown`` with whatever entities could still be found.

Usage:
    parser = NaturalLanguageQueryParser()
    parser.parse_query("Zeige mir alle heißen Leads aus Deutschland")
"""

from datetime import datetime, timedelta
from typing import Any

import pandas as pd

from crm_insights.config import LEAD_SCORE_RANGES
from crm_insights.logger import log
from crm_insights.models import QueryClassification, QueryFilter, TimeFrame
from crm_insights.query.patterns import (
    AGGREGATION_PATTERNS, BOOKING_STATUSES, BUDGET_PATTERN, COUNTRIES, COUNTRY_VALUES,
    DEFAULT_INTENTS, INTENT_PATTERNS, LEAD_STATUSES, QUERY_PATTERNS, TIME_PATTERNS,
)
from crm_insights.timeutils import reference_time


class NaturalLanguageQueryParser:
    """Regex and dictionary based query classifier (German and English)."""

    def parse_query(
        self, query: str, context: str | None = None, now: datetime | None = None
    ) -> QueryClassification:
        """Classify a query and extract its entities, filters and timeframe.

        Args:
            query: Raw user text.
            context: Previous query type; its patterns are tried first.
            now: Reference time for relative timeframes.

        Returns:
            QueryClassification (type ``unknown`` when nothing matched).
        """
        normalized = query.lower().strip()
        now = reference_time(now)

        query_type = self._classify(normalized, context)
        entities = self._extract_entities(normalized)
        timeframe = self._extract_timeframe(normalized, now)

        classification = QueryClassification(
            type=query_type,
            confidence=self._confidence(normalized, query_type, entities, timeframe),
            intent=self._intent(normalized, query_type),
            entities=entities,
            filters=self._build_filters(entities, query_type),
            aggregation=self._aggregation(normalized),
            timeframe=timeframe,
        )
        log.debug(
            f"Parsed '{normalized}' as {classification.type}/{classification.intent} "
            f"(confidence {classification.confidence}, {len(classification.filters)} filters)"
        )
        return classification

    # ── Private helpers ────────────────────────────────────────

    @staticmethod
    def _classify(query: str, context: str | None) -> str:
        if context and context != "analytics" and context in QUERY_PATTERNS:
            if any(p.search(query) for p in QUERY_PATTERNS[context]):
                return context

        for query_type, patterns in QUERY_PATTERNS.items():
            if any(p.search(query) for p in patterns):
                return query_type
        return "unknown"

    @staticmethod
    def _first_match(query: str, dictionary: dict[str, list[str]]) -> str | None:
        for key, variants in dictionary.items():
            if any(variant in query for variant in variants):
                return key
        return None

    def _extract_entities(self, query: str) -> dict[str, Any]:
        entities: dict[str, Any] = {}

        country = self._first_match(query, COUNTRIES)
        if country:
            entities["country"] = country

        lead_status = self._first_match(query, LEAD_STATUSES)
        if lead_status:
            entities["lead_status"] = lead_status

        # First number in the query, whatever it refers to
        budget = BUDGET_PATTERN.search(query)
        if budget:
            entities["budget_amount"] = int(budget.group(1))

        status = self._first_match(query, BOOKING_STATUSES)
        if status:
            entities["status"] = status

        return entities

    @staticmethod
    def _build_filters(entities: dict[str, Any], query_type: str) -> list[QueryFilter]:
        filters = []

        if "country" in entities:
            country = entities["country"]
            filters.append(QueryFilter(
                field="country", operator="eq", value=COUNTRY_VALUES.get(country, country)
            ))

        if query_type == "leads" and entities.get("lead_status") in LEAD_SCORE_RANGES:
            low, high = LEAD_SCORE_RANGES[entities["lead_status"]]
            filters.append(QueryFilter(field="lead_score", operator="between", value=[low, high]))

        if entities.get("budget_amount"):
            filters.append(QueryFilter(
                field="budget_max", operator="gte", value=entities["budget_amount"]
            ))

        if query_type == "bookings" and "status" in entities:
            filters.append(QueryFilter(field="status", operator="eq", value=entities["status"]))

        return filters

    @staticmethod
    def _extract_timeframe(query: str, now: datetime) -> TimeFrame | None:
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        end_of_day = timedelta(days=1, microseconds=-1)

        if TIME_PATTERNS["today"].search(query):
            return TimeFrame(type="absolute", start=midnight, end=midnight + end_of_day)

        if TIME_PATTERNS["yesterday"].search(query):
            start = midnight - timedelta(days=1)
            return TimeFrame(type="absolute", start=start, end=start + end_of_day)

        if TIME_PATTERNS["last_week"].search(query):
            return TimeFrame(
                type="relative", start=now - timedelta(days=7), end=now, period="week", count=1
            )

        if TIME_PATTERNS["last_month"].search(query):
            start = (pd.Timestamp(now) - pd.DateOffset(months=1)).to_pydatetime()
            return TimeFrame(type="relative", start=start, end=now, period="month", count=1)

        if TIME_PATTERNS["this_month"].search(query):
            return TimeFrame(type="absolute", start=midnight.replace(day=1), end=now)

        match = TIME_PATTERNS["number_days"].search(query)
        if match:
            days = int(match.group(1) or match.group(2))
            return TimeFrame(
                type="relative", start=now - timedelta(days=days), end=now,
                period="day", count=days,
            )

        return None

    @staticmethod
    def _aggregation(query: str) -> str | None:
        for name, pattern in AGGREGATION_PATTERNS:
            if pattern.search(query):
                return name
        return None

    @staticmethod
    def _intent(query: str, query_type: str) -> str:
        for name, pattern in INTENT_PATTERNS:
            if pattern.search(query):
                return name
        return DEFAULT_INTENTS.get(query_type, "list")

    @staticmethod
    def _confidence(
        query: str, query_type: str, entities: dict[str, Any], timeframe: TimeFrame | None
    ) -> float:
        """Completeness heuristic, not a calibrated probability."""
        confidence = 0.3
        if query_type != "unknown":
            confidence += 0.4
        confidence += min(len(entities) * 0.1, 0.3)
        if timeframe is not None:
            confidence += 0.1
        if any(ch.isdigit() for ch in query):
            confidence += 0.05
        if len(query) > 20:
            confidence += 0.05
        return min(round(confidence, 2), 1.0)
