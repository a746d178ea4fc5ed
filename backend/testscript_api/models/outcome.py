"""
Validation results and the FHIR OperationOutcome issues built from them.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

LINE_EXTENSION_URL = "http://hl7.org/fhir/StructureDefinition/operationoutcome-issue-line"
COLUMN_EXTENSION_URL = "http://hl7.org/fhir/StructureDefinition/operationoutcome-issue-col"


@dataclass
class StructureIssue:
    """A single structural finding, addressed by its path into the document."""
    message: str
    location: List[str]
    line: Optional[int] = None
    column: Optional[int] = None


@dataclass
class ValidationResult:
    errors: List[StructureIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def position_extensions(line: int, column: int) -> List[Dict]:
    return [
        {"url": LINE_EXTENSION_URL, "valueInteger": line},
        {"url": COLUMN_EXTENSION_URL, "valueInteger": column},
    ]


def structure_issue(issue: StructureIssue) -> Dict:
    """Convert a StructureIssue into an error-level OperationOutcome issue."""
    return {
        "severity": "error",
        "code": "structure",
        "diagnostics": issue.message,
        "location": list(issue.location),
        "extension": position_extensions(issue.line or 1, issue.column or 1),
    }


def operation_outcome(issues: List[Dict]) -> Dict:
    return {"resourceType": "OperationOutcome", "issue": issues}


def structure_outcome(result: ValidationResult) -> Dict:
    return operation_outcome([structure_issue(error) for error in result.errors])


def success_outcome(message: str = "Local structural validation passed") -> Dict:
    return operation_outcome([{
        "severity": "information",
        "code": "informational",
        "diagnostics": message,
        "extension": position_extensions(1, 1),
    }])


def exception_outcome(message: str) -> Dict:
    return operation_outcome([{
        "severity": "error",
        "code": "exception",
        "diagnostics": message,
        "extension": position_extensions(1, 1),
    }])
