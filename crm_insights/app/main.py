"""CRM Insights FastAPI application.

Thin caller layer over the analytics engines. Every endpoint takes
already-fetched records in the request body; nothing here touches a
database, and query endpoints return SQL without executing it.

Usage:
    uvicorn crm_insights.app.main:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crm_insights.app.config import settings
from crm_insights.app.routers import churn, forecast, query, recommendations, segments
from crm_insights.errors import InsufficientDataError, UnsafeQueryError
from crm_insights.logger import log

app = FastAPI(
    title="CRM Insights API",
    description="Revenue forecasting, churn scoring, segmentation, recommendations "
                "and natural-language queries",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(forecast.router, prefix=settings.api_prefix)
app.include_router(churn.router, prefix=settings.api_prefix)
app.include_router(segments.router, prefix=settings.api_prefix)
app.include_router(recommendations.router, prefix=settings.api_prefix)
app.include_router(query.router, prefix=settings.api_prefix)


@app.exception_handler(InsufficientDataError)
async def insufficient_data_handler(request: Request, exc: InsufficientDataError):
    log.warning(f"{request.url.path}: {exc}")
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "required": exc.required, "actual": exc.actual},
    )


@app.exception_handler(UnsafeQueryError)
async def unsafe_query_handler(request: Request, exc: UnsafeQueryError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/")
def root():
    return {"status": "ok", "app": "CRM Insights API", "docs": "/docs"}


@app.get("/health")
def health():
    return {"status": "healthy"}
