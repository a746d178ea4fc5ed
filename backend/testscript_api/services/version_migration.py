"""
FHIR version migration for TestScript documents.
Moves documents between R4 and R5 and reports what could not be carried over.
"""
import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..models.testscript import FhirVersion

logger = logging.getLogger(__name__)

# Top-level TestScript elements introduced in R5
R5_ONLY_ELEMENTS = ("scope",)


@dataclass
class MigrationResult:
    source_version: FhirVersion
    target_version: FhirVersion
    success: bool = False
    document: Optional[Dict] = None
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _r5_to_r4(document: Dict, result: MigrationResult) -> None:
    for element in R5_ONLY_ELEMENTS:
        if element in document:
            del document[element]
            result.warnings.append(f"TestScript.{element} was removed (not available in R4)")
    result.warnings.append("Migration from R5 to R4: some extended features may not be available")


def _r4_to_r5(document: Dict, result: MigrationResult) -> None:
    # R4 documents are forward compatible; nothing to rewrite
    result.warnings.append("Migration from R4 to R5: R5 features are available but not enabled automatically")


MIGRATIONS = {
    (FhirVersion.R5, FhirVersion.R4): _r5_to_r4,
    (FhirVersion.R4, FhirVersion.R5): _r4_to_r5,
}


def migrate_test_script(
    document: Dict,
    source: FhirVersion,
    target: FhirVersion,
    dry_run: bool = False,
    suppress_warnings: bool = False,
) -> MigrationResult:
    """
    Migrate a TestScript between FHIR versions without touching the input.
    In a dry run the warnings are collected but no document is returned;
    with suppress_warnings they are dropped from the result.
    """
    result = MigrationResult(source_version=source, target_version=target)

    if source == target:
        result.success = True
        result.document = document
        return result

    migration = MIGRATIONS.get((source, target))
    if migration is None:
        result.errors.append(f"Migration from {source.value} to {target.value} is not supported")
        return result

    migrated = copy.deepcopy(document)
    migration(migrated, result)
    logger.info(
        "Migrated TestScript %s from %s to %s with %d warning(s)",
        document.get("id", "<no id>"), source.value, target.value, len(result.warnings),
    )

    if not dry_run:
        result.document = migrated
    if suppress_warnings:
        result.warnings = []
    result.success = not result.errors
    return result


def batch_migrate(
    documents: List[Dict],
    source: FhirVersion,
    target: FhirVersion,
    dry_run: bool = False,
    suppress_warnings: bool = False,
) -> List[MigrationResult]:
    return [
        migrate_test_script(document, source, target, dry_run=dry_run, suppress_warnings=suppress_warnings)
        for document in documents
    ]


def check_version_compatibility(
    document: Dict,
    current: FhirVersion,
    target: FhirVersion,
) -> Tuple[bool, List[str]]:
    """Report the elements that would be lost moving from current to target."""
    issues: List[str] = []
    if current == FhirVersion.R5 and target == FhirVersion.R4:
        for element in R5_ONLY_ELEMENTS:
            if element in document:
                issues.append(f"TestScript.{element} is not available in FHIR R4")
    return not issues, issues
