"""Migration API: move TestScripts between FHIR R4 and R5."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel

from ..models.testscript import FhirVersion
from ..services.version_migration import check_version_compatibility, migrate_test_script
from .validate import resolve_fhir_version

router = APIRouter(prefix="/migrate", tags=["migration"])


class MigrationResponse(BaseModel):
    success: bool
    source_version: FhirVersion
    target_version: FhirVersion
    compatible: bool
    compatibility_issues: List[str]
    warnings: List[str]
    errors: List[str]
    document: Optional[Dict[str, Any]] = None


@router.post("", response_model=MigrationResponse)
def migrate(
    document: Dict[str, Any],
    target: str,
    dry_run: bool = False,
    suppress_warnings: bool = False,
    x_fhir_version: Optional[str] = Header(default=None),
):
    """Migrate a TestScript from the X-FHIR-Version release to `target`."""
    target_version = FhirVersion.parse(target)
    if target_version is None:
        raise HTTPException(status_code=400, detail=f"Unsupported target FHIR version: {target}")
    source_version = resolve_fhir_version(x_fhir_version)

    compatible, issues = check_version_compatibility(document, source_version, target_version)
    result = migrate_test_script(
        document, source_version, target_version, dry_run=dry_run, suppress_warnings=suppress_warnings,
    )
    return MigrationResponse(
        success=result.success,
        source_version=result.source_version,
        target_version=result.target_version,
        compatible=compatible,
        compatibility_issues=issues,
        warnings=result.warnings,
        errors=result.errors,
        document=result.document,
    )
