"""Query endpoint: natural language -> validated SQL (never executed here)."""

from fastapi import APIRouter, HTTPException

from crm_insights.app.schemas import NLQueryRequest, NLQueryResponse
from crm_insights.errors import UnsupportedQueryTypeError
from crm_insights.query.patterns import EXAMPLE_QUERIES
from crm_insights.query.pipeline import compile_query

router = APIRouter(prefix="/query", tags=["Query"])


@router.post("", response_model=NLQueryResponse)
def compile_natural_language_query(body: NLQueryRequest):
    try:
        compiled = compile_query(body.query, body.tenant_id, context=body.context)
    except UnsupportedQueryTypeError as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": str(exc), "suggestions": EXAMPLE_QUERIES[body.language]},
        ) from exc

    result = compiled.result
    return NLQueryResponse(
        classification=compiled.classification,
        sql=result.sql,
        params=result.params,
        tables=result.tables,
        visualization_type=result.visualization_type,
        expected_columns=result.expected_columns,
    )


@router.get("/examples")
def example_queries(language: str = "de"):
    return EXAMPLE_QUERIES.get(language, EXAMPLE_QUERIES["de"])
