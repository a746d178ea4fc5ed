"""Validation API: local structural checks, then the external FHIR validator."""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool

from ..core.config import settings
from ..models.outcome import exception_outcome, structure_outcome, success_outcome
from ..models.testscript import FhirVersion, ValidationMode
from ..services.fhir_validation_client import FHIRValidationClient, fhir_validation_client
from ..services.position_locator import enrich_outcome, locate, render_document
from ..services.structure_validator import validate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/validate", tags=["validation"])


def get_validation_client() -> FHIRValidationClient:
    return fhir_validation_client


def resolve_fhir_version(value: Optional[str]) -> FhirVersion:
    version = FhirVersion.parse(value)
    if version is None:
        if value:
            logger.warning("Unknown X-FHIR-Version %r, using %s", value, settings.DEFAULT_FHIR_VERSION)
        version = FhirVersion.parse(settings.DEFAULT_FHIR_VERSION) or FhirVersion.R5
    return version


@router.post("")
async def validate_test_script(
    request: Request,
    x_fhir_version: Optional[str] = Header(default=None),
    x_validation_mode: Optional[str] = Header(default=None),
    client: FHIRValidationClient = Depends(get_validation_client),
):
    """
    Validate a TestScript and always answer with an OperationOutcome.
    Structural errors are returned directly; a structurally sound document is
    forwarded to the FHIR server, falling back to the local result when the
    server cannot be reached.
    """
    version = resolve_fhir_version(x_fhir_version)
    mode = ValidationMode.parse(x_validation_mode)

    raw = await request.body()
    try:
        document = json.loads(raw)
    except (ValueError, RecursionError) as exc:
        logger.info("Rejected malformed validation request: %s", exc)
        return exception_outcome(f"Request body is not valid JSON: {exc}")

    result = validate(document, mode)
    text, positions = render_document(document)

    if not result.valid:
        for issue in result.errors:
            issue.line, issue.column = locate(positions, issue.location)
        return structure_outcome(result)

    remote = await run_in_threadpool(client.validate, document, version)
    if remote is None:
        logger.info("Falling back to local %s validation result", mode.value)
        return success_outcome()

    return enrich_outcome(remote, text)
