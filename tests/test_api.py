"""
HTTP layer tests.

Guards against:
1. Domain errors leaking as 500s instead of 4xx with details
2. Request bodies drifting from the engines' record shapes
3. Unsupported queries losing their example suggestions
"""

from fastapi.encoders import jsonable_encoder
from fastapi.testclient import TestClient
import pytest

from crm_insights.app.main import app
from crm_insights.query.patterns import EXAMPLE_QUERIES


@pytest.fixture(scope="module")
def client():
    return TestClient(app)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


# ---------------------------------------------------------------------------
# Forecast
# ---------------------------------------------------------------------------

def test_forecast(client, make_history):
    payload = {"history": jsonable_encoder(make_history(30)), "forecast_days": 7}
    response = client.post("/api/v1/forecast", json=payload)
    assert response.status_code == 200
    assert len(response.json()["forecasts"]) == 7


def test_forecast_short_history_is_422(client, make_history):
    payload = {"history": jsonable_encoder(make_history(5))}
    response = client.post("/api/v1/forecast", json=payload)
    assert response.status_code == 422
    body = response.json()
    assert body["required"] == 14
    assert body["actual"] == 5


# ---------------------------------------------------------------------------
# Churn
# ---------------------------------------------------------------------------

def test_churn_score(client, troubled_customer):
    response = client.post("/api/v1/churn/score", json=jsonable_encoder(troubled_customer))
    assert response.status_code == 200
    body = response.json()
    assert body["customer_id"] == "troubled"
    assert body["risk_level"] in {"high", "critical"}


def test_churn_batch(client, perfect_customer, troubled_customer):
    payload = {"customers": jsonable_encoder([perfect_customer, troubled_customer])}
    body = client.post("/api/v1/churn/batch", json=payload).json()
    assert body["total"] == 2
    assert body["predictions"][0]["customer_id"] == "troubled"


# ---------------------------------------------------------------------------
# Segments and recommendations
# ---------------------------------------------------------------------------

def test_segmentation_too_few_customers_is_422(client, make_segmentation_customer):
    customers = [make_segmentation_customer(i) for i in range(5)]
    response = client.post(
        "/api/v1/segments/analysis", json={"customers": jsonable_encoder(customers)}
    )
    assert response.status_code == 422
    assert response.json()["required"] == 80


def test_product_recommendations(client, make_profile, make_product):
    payload = {
        "profile": jsonable_encoder(make_profile()),
        "products": jsonable_encoder([make_product()]),
    }
    response = client.post("/api/v1/recommendations/products", json=payload)
    assert response.status_code == 200
    recs = response.json()
    assert len(recs) == 1
    assert recs[0]["product_id"] == "p-umrah-premium"


def test_segment_insights(client, make_profile):
    payload = {"profiles": jsonable_encoder([make_profile(), make_profile(customer_id="b-2")])}
    response = client.post("/api/v1/recommendations/segments", json=payload)
    assert response.status_code == 200
    assert sum(s["customer_count"] for s in response.json()) == 2


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

def test_query_compiles_sql(client):
    response = client.post(
        "/api/v1/query", json={"query": "wie viele leads aus deutschland", "tenant_id": "t-1"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["classification"]["type"] == "leads"
    assert "COUNT(*)" in body["sql"]
    assert body["params"] == ["t-1", "Germany"]
    assert body["visualization_type"] == "metrics"


def test_unknown_query_returns_suggestions(client):
    response = client.post(
        "/api/v1/query", json={"query": "hallo welt", "tenant_id": "t-1", "language": "en"}
    )
    assert response.status_code == 400
    assert response.json()["detail"]["suggestions"] == EXAMPLE_QUERIES["en"]


def test_query_too_short_is_rejected(client):
    response = client.post("/api/v1/query", json={"query": "ab", "tenant_id": "t-1"})
    assert response.status_code == 422


def test_example_queries(client):
    assert client.get("/api/v1/query/examples?language=en").json() == EXAMPLE_QUERIES["en"]
    assert client.get("/api/v1/query/examples?language=fr").json() == EXAMPLE_QUERIES["de"]
