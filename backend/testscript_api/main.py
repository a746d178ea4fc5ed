"""
TestScript Validation Service
Structural validation of FHIR TestScript resources with fallback-aware
forwarding to an external FHIR $validate endpoint.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import migrate, validate
from .core.config import settings
from .core.request_logging import RequestLoggingMiddleware

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Checks FHIR TestScript resources against structural TestScript invariants "
        "and forwards sound documents to a FHIR validation server."
    ),
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(validate.router, prefix="/api/v1")
app.include_router(migrate.router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.APP_NAME, "version": settings.VERSION}
