"""SQL Builder: QueryClassification -> parameterized, tenant-scoped SQL.

Templates use positional ``$n`` placeholders with ``$1`` always bound to
the tenant id. Filter fields are resolved against ALLOWED_TABLES before
they reach the SQL text; anything else raises UnsafeQueryError.
"""

import re
from typing import Any

from crm_insights.config import ALLOWED_TABLES, HOT_LEAD_SCORE, QUERY_RESULT_LIMIT
from crm_insights.errors import UnsafeQueryError, UnsupportedQueryTypeError
from crm_insights.models import QueryClassification, QueryFilter, SQLQueryResult, TimeFrame

DANGEROUS_PATTERNS = [
    re.compile(pattern, re.IGNORECASE | re.DOTALL)
    for pattern in (
        r"drop\s+table",
        r"delete\s+from",
        r"truncate",
        r"alter\s+table",
        r"create\s+table",
        r"insert\s+into",
        r"update\s+.*set",
        r"exec\s*\(",
        r"union.*select",
        r";\s*--",
        r"/\*.*\*/",
    )
]

OPERATORS = {
    "eq": "=",
    "ne": "!=",
    "gt": ">",
    "lt": "<",
    "gte": ">=",
    "lte": "<=",
    "like": "ILIKE",
}

TABLE_ALIASES = {"contacts": "c", "bookings": "b", "contact_engagement_metrics": "em"}

_LEADS_SELECT = """
SELECT
    c.id, c.first_name, c.last_name, c.email, c.phone, c.country, c.city,
    c.lead_score, c.budget_min, c.budget_max, c.source, c.created_at, c.updated_at,
    COALESCE(em.last_activity_at, c.created_at) AS last_activity
FROM contacts c
LEFT JOIN contact_engagement_metrics em ON c.id = em.contact_id
WHERE c.tenant_id = $1"""

_LEADS_COUNT = """
SELECT COUNT(*) AS total_leads
FROM contacts c
WHERE c.tenant_id = $1"""

_BOOKINGS_SELECT = """
SELECT
    b.id, b.contact_id, c.first_name, c.last_name, c.email,
    b.total_amount, b.currency, b.status, b.booking_date, b.travel_dates,
    b.created_at, b.updated_at
FROM bookings b
JOIN contacts c ON b.contact_id = c.id
WHERE b.tenant_id = $1"""

_BOOKINGS_COUNT = """
SELECT COUNT(*) AS total_bookings
FROM bookings b
JOIN contacts c ON b.contact_id = c.id
WHERE b.tenant_id = $1"""

_REVENUE = """
SELECT
    SUM(b.total_amount) AS total_revenue,
    COUNT(*) AS booking_count,
    AVG(b.total_amount) AS avg_booking_value,
    b.currency
FROM bookings b
WHERE b.tenant_id = $1 AND b.status != 'cancelled'"""

_CONTACTS_SELECT = """
SELECT
    c.id, c.first_name, c.last_name, c.email, c.phone, c.country, c.city,
    c.budget_min, c.budget_max, c.source, c.created_at
FROM contacts c
WHERE c.tenant_id = $1"""

_CONTACTS_COUNT = """
SELECT COUNT(*) AS total_contacts
FROM contacts c
WHERE c.tenant_id = $1"""

_ANALYTICS = f"""
SELECT
    (SELECT COUNT(*) FROM contacts WHERE tenant_id = $1) AS total_contacts,
    (SELECT COUNT(*) FROM bookings WHERE tenant_id = $1) AS total_bookings,
    (SELECT SUM(total_amount) FROM bookings
        WHERE tenant_id = $1 AND status != 'cancelled') AS total_revenue,
    (SELECT COUNT(*) FROM contacts
        WHERE tenant_id = $1 AND lead_score >= {HOT_LEAD_SCORE}) AS hot_leads"""


def validate_query(sql: str) -> bool:
    """False if the SQL matches any mutating or injection pattern."""
    return not any(pattern.search(sql) for pattern in DANGEROUS_PATTERNS)


class SQLQueryBuilder:
    """Builds SQL for one tenant. Holds only the tenant id."""

    def __init__(self, tenant_id: str):
        if not tenant_id:
            raise ValueError("tenant_id must not be empty")
        self._tenant_id = tenant_id

    def build_query(self, classification: QueryClassification) -> SQLQueryResult:
        """Pick the template for ``classification.type`` and bind its clauses.

        Raises:
            UnsupportedQueryTypeError: No template for the type (e.g. ``unknown``).
            UnsafeQueryError: A filter names a column outside the allow-list.
        """
        builders = {
            "leads": self._leads_query,
            "bookings": self._bookings_query,
            "revenue": self._revenue_query,
            "contacts": self._contacts_query,
            "analytics": self._analytics_query,
        }
        builder = builders.get(classification.type)
        if builder is None:
            raise UnsupportedQueryTypeError(classification.type)
        return builder(classification)

    def validate_query(self, sql: str) -> bool:
        return validate_query(sql)

    # ── Templates ──────────────────────────────────────────────

    @staticmethod
    def _wants_count(c: QueryClassification) -> bool:
        return c.intent == "count" or c.aggregation == "count"

    def _leads_query(self, c: QueryClassification) -> SQLQueryResult:
        tables = ["contacts", "contact_engagement_metrics"]
        if self._wants_count(c):
            sql, params = self._compose(_LEADS_COUNT, c, ["contacts"], "c.created_at")
            return SQLQueryResult(sql, params, ["contacts"], "metrics", ["total_leads"])

        sql, params = self._compose(
            _LEADS_SELECT, c, tables, "c.created_at",
            order_by="c.lead_score DESC, c.created_at DESC",
        )
        return SQLQueryResult(
            sql, params, tables, "table",
            ["first_name", "last_name", "email", "lead_score", "country", "last_activity"],
        )

    def _bookings_query(self, c: QueryClassification) -> SQLQueryResult:
        tables = ["bookings", "contacts"]
        if self._wants_count(c):
            sql, params = self._compose(_BOOKINGS_COUNT, c, tables, "b.created_at")
            return SQLQueryResult(sql, params, tables, "metrics", ["total_bookings"])

        sql, params = self._compose(
            _BOOKINGS_SELECT, c, tables, "b.created_at", order_by="b.created_at DESC"
        )
        return SQLQueryResult(
            sql, params, tables, "table",
            ["first_name", "last_name", "total_amount", "status", "booking_date"],
        )

    def _revenue_query(self, c: QueryClassification) -> SQLQueryResult:
        # Entity filters do not apply to the revenue rollup
        sql, params = self._compose(
            _REVENUE, c, ["bookings"], "b.created_at",
            use_filters=False, group_by="b.currency",
        )
        return SQLQueryResult(
            sql, params, ["bookings"], "metrics",
            ["total_revenue", "booking_count", "avg_booking_value", "currency"],
        )

    def _contacts_query(self, c: QueryClassification) -> SQLQueryResult:
        if self._wants_count(c):
            sql, params = self._compose(_CONTACTS_COUNT, c, ["contacts"], "c.created_at")
            return SQLQueryResult(sql, params, ["contacts"], "metrics", ["total_contacts"])

        sql, params = self._compose(
            _CONTACTS_SELECT, c, ["contacts"], "c.created_at", order_by="c.created_at DESC"
        )
        return SQLQueryResult(
            sql, params, ["contacts"], "table",
            ["first_name", "last_name", "email", "country", "budget_max"],
        )

    def _analytics_query(self, c: QueryClassification) -> SQLQueryResult:
        return SQLQueryResult(
            _ANALYTICS.strip(), [self._tenant_id], ["contacts", "bookings"], "metrics",
            ["total_contacts", "total_bookings", "total_revenue", "hot_leads"],
        )

    # ── Clause assembly ────────────────────────────────────────

    def _compose(
        self,
        template: str,
        c: QueryClassification,
        tables: list[str],
        time_column: str,
        use_filters: bool = True,
        order_by: str | None = None,
        group_by: str | None = None,
    ) -> tuple[str, list[Any]]:
        """Append filter and timeframe clauses to ``template`` in bind order."""
        params: list[Any] = [self._tenant_id]
        lines = [template.strip()]

        if use_filters:
            for f in c.filters:
                column = self._resolve_column(f, tables)
                clause, values = self._filter_clause(column, f, len(params) + 1)
                lines.append(f"  AND {clause}")
                params.extend(values)

        if c.timeframe is not None:
            time_clause = self._time_clause(c.timeframe, time_column, len(params) + 1)
            if time_clause is not None:
                clause, values = time_clause
                lines.append(f"  AND {clause}")
                params.extend(values)

        if group_by:
            lines.append(f"GROUP BY {group_by}")
        if order_by:
            lines.append(f"ORDER BY {order_by}")
            lines.append(f"LIMIT {QUERY_RESULT_LIMIT}")

        return "\n".join(lines), params

    @staticmethod
    def _resolve_column(f: QueryFilter, tables: list[str]) -> str:
        """Alias-qualified column for ``f``; the first listed table owning it wins."""
        if f.table and f.table not in tables:
            raise UnsafeQueryError(f"Table not allowed in this query: {f.table!r}")

        for table in [f.table] if f.table else tables:
            if f.field in ALLOWED_TABLES[table]:
                return f"{TABLE_ALIASES[table]}.{f.field}"
        raise UnsafeQueryError(f"Filter field not allowed: {f.field!r}")

    @staticmethod
    def _filter_clause(column: str, f: QueryFilter, index: int) -> tuple[str, list[Any]]:
        if f.operator == "between":
            low, high = f.value
            return f"{column} BETWEEN ${index} AND ${index + 1}", [low, high]
        if f.operator == "in":
            return f"{column} = ANY(${index})", [list(f.value)]
        return f"{column} {OPERATORS.get(f.operator, '=')} ${index}", [f.value]

    @staticmethod
    def _time_clause(
        timeframe: TimeFrame, column: str, index: int
    ) -> tuple[str, list[str]] | None:
        if timeframe.type == "absolute" and timeframe.start and timeframe.end:
            return (
                f"{column} BETWEEN ${index} AND ${index + 1}",
                [timeframe.start.isoformat(), timeframe.end.isoformat()],
            )
        if timeframe.type == "relative" and timeframe.start:
            return f"{column} >= ${index}", [timeframe.start.isoformat()]
        return None
