"""
Natural-language query parser, SQL builder and pipeline tests.

Guards against:
1. Classification precedence changes (first matching type wins)
2. Filters or timeframes silently dropped from COUNT templates
3. Non-allow-listed columns reaching the SQL text
4. Dangerous SQL passing the safety check
"""
from datetime import datetime

import pytest

from crm_insights.errors import UnsafeQueryError, UnsupportedQueryTypeError
from crm_insights.models import QueryClassification, QueryFilter, TimeFrame
from crm_insights.query.parser import NaturalLanguageQueryParser
from crm_insights.query.patterns import EXAMPLE_QUERIES
from crm_insights.query.pipeline import compile_query
from crm_insights.query.sql_builder import SQLQueryBuilder, validate_query


@pytest.fixture
def parser():
    return NaturalLanguageQueryParser()


@pytest.fixture
def builder():
    return SQLQueryBuilder("tenant-a")


def _classification(**overrides) -> QueryClassification:
    fields = dict(type="leads", confidence=0.9, intent="list", entities={}, filters=[])
    fields.update(overrides)
    return QueryClassification(**fields)


# ---------------------------------------------------------------------------
# Parser: classification
# ---------------------------------------------------------------------------

def test_count_leads_from_germany(parser, now):
    c = parser.parse_query("wie viele leads aus deutschland", now=now)
    assert c.type == "leads"
    assert c.intent == "count"
    assert c.aggregation == "count"
    assert c.entities == {"country": "deutschland"}
    assert c.filters == [QueryFilter(field="country", operator="eq", value="Germany")]
    assert c.timeframe is None
    assert c.confidence == 0.85


def test_hot_leads_last_week(parser, now):
    c = parser.parse_query("Zeige mir alle heißen Leads aus Deutschland der letzten Woche", now=now)
    assert c.type == "leads"
    assert c.intent == "list"
    assert c.entities["lead_status"] == "hot"
    assert QueryFilter(field="lead_score", operator="between", value=[70, 100]) in c.filters
    assert c.timeframe.type == "relative"
    assert c.timeframe.period == "week"
    assert (now - c.timeframe.start).days == 7


def test_cancelled_bookings_with_day_count(parser, now):
    c = parser.parse_query("Zeige mir stornierte Buchungen der letzten 7 Tage", now=now)
    assert c.type == "bookings"
    assert c.entities["status"] == "cancelled"
    assert QueryFilter(field="status", operator="eq", value="cancelled") in c.filters
    assert c.timeframe.period == "day"
    assert c.timeframe.count == 7


def test_revenue_defaults_to_sum_intent(parser, now):
    c = parser.parse_query("Welcher Umsatz wurde in den letzten 30 Tagen generiert?", now=now)
    assert c.type == "revenue"
    assert c.intent == "sum"
    assert c.timeframe.count == 30


def test_analytics_query(parser, now):
    c = parser.parse_query("Zeige mir die Statistik", now=now)
    assert c.type == "analytics"
    assert c.intent == "analyze"


def test_contacts_with_budget(parser, now):
    c = parser.parse_query("Liste alle Kontakte mit Budget über 3000 EUR", now=now)
    assert c.type == "contacts"
    assert c.entities["budget_amount"] == 3000
    assert QueryFilter(field="budget_max", operator="gte", value=3000) in c.filters


def test_unrecognized_query(parser, now):
    c = parser.parse_query("hallo welt", now=now)
    assert c.type == "unknown"
    assert c.filters == []
    assert c.confidence == 0.3


def test_lead_status_only_filters_leads(parser, now):
    c = parser.parse_query("umsatz von heißen kunden", now=now)
    assert c.type == "revenue"
    assert c.entities["lead_status"] == "hot"
    assert all(f.field != "lead_score" for f in c.filters)


def test_context_biases_classification(parser, now):
    query = "zeige mir neue kontakte"
    assert parser.parse_query(query, now=now).type == "leads"
    assert parser.parse_query(query, context="contacts", now=now).type == "contacts"
    assert parser.parse_query(query, context="analytics", now=now).type == "leads"


def test_confidence_is_capped(parser, now):
    c = parser.parse_query(
        "wie viele heiße leads aus deutschland mit 5000 euro storniert heute", now=now
    )
    assert c.confidence == 1.0


# ---------------------------------------------------------------------------
# Parser: timeframes and aggregation
# ---------------------------------------------------------------------------

def test_today_timeframe(parser, now):
    tf = parser.parse_query("umsatz heute", now=now).timeframe
    assert tf.type == "absolute"
    assert tf.start == datetime(2025, 6, 15)
    assert tf.end == datetime(2025, 6, 15, 23, 59, 59, 999999)


def test_yesterday_timeframe(parser, now):
    tf = parser.parse_query("umsatz gestern", now=now).timeframe
    assert tf.start == datetime(2025, 6, 14)
    assert tf.end == datetime(2025, 6, 14, 23, 59, 59, 999999)


def test_last_month_timeframe(parser, now):
    tf = parser.parse_query("umsatz letzten monat", now=now).timeframe
    assert tf.type == "relative"
    assert tf.period == "month"
    assert tf.start == datetime(2025, 5, 15, 12, 0)


def test_this_month_timeframe(parser, now):
    tf = parser.parse_query("revenue this month", now=now).timeframe
    assert tf.type == "absolute"
    assert tf.start == datetime(2025, 6, 1)
    assert tf.end == now


def test_today_wins_over_last_week(parser, now):
    tf = parser.parse_query("umsatz heute und letzte woche", now=now).timeframe
    assert tf.type == "absolute"


@pytest.mark.parametrize("query,expected", [
    ("wie viele buchungen", "count"),
    ("gesamt umsatz", "sum"),
    ("durchschnitt umsatz", "avg"),
    ("höchste buchung", "max"),
    ("show revenue", None),
])
def test_aggregation_detection(parser, now, query, expected):
    assert parser.parse_query(query, now=now).aggregation == expected


# ---------------------------------------------------------------------------
# SQL builder
# ---------------------------------------------------------------------------

def test_count_template_scoped_to_tenant_with_country(parser, builder, now):
    result = builder.build_query(parser.parse_query("wie viele leads aus deutschland", now=now))
    assert "COUNT(*)" in result.sql
    assert "c.tenant_id = $1" in result.sql
    assert "c.country = $2" in result.sql
    assert result.params == ["tenant-a", "Germany"]
    assert result.visualization_type == "metrics"
    assert result.expected_columns == ["total_leads"]
    assert validate_query(result.sql)


def test_list_template_binds_between_and_timeframe(parser, builder, now):
    c = parser.parse_query("Zeige mir alle heißen Leads aus Deutschland der letzten Woche", now=now)
    result = builder.build_query(c)
    assert "c.lead_score BETWEEN $3 AND $4" in result.sql
    assert "c.created_at >= $5" in result.sql
    assert result.params[:4] == ["tenant-a", "Germany", 70, 100]
    assert result.params[4] == c.timeframe.start.isoformat()
    assert result.sql.endswith("LIMIT 50")
    assert result.tables == ["contacts", "contact_engagement_metrics"]


def test_bookings_count_keeps_filters(builder):
    c = _classification(
        type="bookings", intent="count",
        filters=[QueryFilter(field="status", operator="eq", value="confirmed")],
    )
    result = builder.build_query(c)
    assert "COUNT(*) AS total_bookings" in result.sql
    assert "b.status = $2" in result.sql
    assert result.params == ["tenant-a", "confirmed"]


def test_bookings_filter_columns_qualified_by_owner(builder):
    c = _classification(type="bookings", filters=[
        QueryFilter(field="country", operator="eq", value="Germany"),
        QueryFilter(field="total_amount", operator="gt", value=1000),
    ])
    sql = builder.build_query(c).sql
    assert "c.country = $2" in sql
    assert "b.total_amount > $3" in sql


def test_revenue_ignores_entity_filters(builder):
    c = _classification(
        type="revenue", intent="sum",
        filters=[QueryFilter(field="country", operator="eq", value="Germany")],
        timeframe=TimeFrame(type="absolute", start=datetime(2025, 6, 1), end=datetime(2025, 6, 15)),
    )
    result = builder.build_query(c)
    assert "country" not in result.sql
    assert "b.created_at BETWEEN $2 AND $3" in result.sql
    assert result.params == ["tenant-a", "2025-06-01T00:00:00", "2025-06-15T00:00:00"]
    assert "GROUP BY b.currency" in result.sql


def test_analytics_template(builder):
    result = builder.build_query(_classification(type="analytics", intent="analyze"))
    assert result.params == ["tenant-a"]
    assert result.expected_columns == ["total_contacts", "total_bookings", "total_revenue", "hot_leads"]
    assert "lead_score >= 70" in result.sql


@pytest.mark.parametrize("operator,fragment,params", [
    ("like", "c.email ILIKE $2", ["%@example.com"]),
    ("ne", "c.email != $2", ["%@example.com"]),
])
def test_operator_rendering(builder, operator, fragment, params):
    c = _classification(type="contacts", filters=[
        QueryFilter(field="email", operator=operator, value="%@example.com"),
    ])
    result = builder.build_query(c)
    assert fragment in result.sql
    assert result.params[1:] == params


def test_in_operator_binds_one_array(builder):
    c = _classification(type="contacts", filters=[
        QueryFilter(field="country", operator="in", value=["Germany", "Austria"]),
    ])
    result = builder.build_query(c)
    assert "c.country = ANY($2)" in result.sql
    assert result.params == ["tenant-a", ["Germany", "Austria"]]


def test_non_allow_listed_field_rejected(builder):
    c = _classification(filters=[QueryFilter(field="password_hash", operator="eq", value="x")])
    with pytest.raises(UnsafeQueryError):
        builder.build_query(c)


def test_injection_in_field_name_rejected(builder):
    c = _classification(filters=[
        QueryFilter(field="country = 'x' OR 1=1 --", operator="eq", value="x"),
    ])
    with pytest.raises(UnsafeQueryError):
        builder.build_query(c)


def test_foreign_table_rejected(builder):
    c = _classification(filters=[
        QueryFilter(field="id", operator="eq", value=1, table="payments"),
    ])
    with pytest.raises(UnsafeQueryError):
        builder.build_query(c)


def test_unknown_type_unsupported(builder):
    with pytest.raises(UnsupportedQueryTypeError) as exc:
        builder.build_query(_classification(type="unknown"))
    assert exc.value.query_type == "unknown"


def test_empty_tenant_rejected():
    with pytest.raises(ValueError):
        SQLQueryBuilder("")


# ---------------------------------------------------------------------------
# Safety check
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("sql", [
    "DROP TABLE contacts",
    "drop table contacts",
    "SELECT 1; DrOp TaBlE bookings",
    "DELETE FROM contacts",
    "TRUNCATE bookings",
    "ALTER TABLE contacts ADD x int",
    "CREATE TABLE t (id int)",
    "INSERT INTO contacts VALUES (1)",
    "UPDATE contacts\nSET email = ''",
    "EXEC (xp_cmdshell)",
    "SELECT 1 UNION SELECT password FROM users",
    "SELECT 1; -- comment",
    "SELECT /* hidden */ 1",
])
def test_dangerous_sql_rejected(sql):
    assert validate_query(sql) is False


@pytest.mark.parametrize("query", EXAMPLE_QUERIES["de"] + EXAMPLE_QUERIES["en"])
def test_generated_sql_passes_safety_check(parser, builder, now, query):
    c = parser.parse_query(query, now=now)
    if c.type == "unknown":
        pytest.skip("not classified")
    assert builder.validate_query(builder.build_query(c).sql)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def test_compile_query(now):
    compiled = compile_query("wie viele leads aus deutschland", "tenant-a", now=now)
    assert compiled.classification.type == "leads"
    assert compiled.result.params[0] == "tenant-a"


def test_compile_query_unknown_raises(now):
    with pytest.raises(UnsupportedQueryTypeError):
        compile_query("hallo welt", "tenant-a", now=now)


def test_compile_query_rejects_unsafe_sql(monkeypatch, now):
    monkeypatch.setattr(SQLQueryBuilder, "validate_query", lambda self, sql: False)
    with pytest.raises(UnsafeQueryError):
        compile_query("wie viele leads aus deutschland", "tenant-a", now=now)


def test_to_sqlalchemy_named_binds(now):
    result = compile_query("wie viele leads aus deutschland", "tenant-a", now=now).result
    clause, binds = result.to_sqlalchemy()
    assert "$" not in str(clause)
    assert ":p1" in str(clause)
    assert ":p2" in str(clause)
    assert binds == {"p1": "tenant-a", "p2": "Germany"}
