import copy

import httpx
import pytest
from fastapi.testclient import TestClient

from testscript_api.api.validate import get_validation_client
from testscript_api.main import app
from testscript_api.models.testscript import FhirVersion
from testscript_api.services.fhir_validation_client import FHIRValidationClient

R4_URL = "https://fhir.example.com/baseR4/TestScript/$validate"
R5_URL = "https://fhir.example.com/baseR5/TestScript/$validate"

VALID_TEST_SCRIPT = {
    "resourceType": "TestScript",
    "id": "patient-read",
    "name": "PatientRead",
    "status": "active",
    "metadata": {
        "capability": [
            {
                "required": True,
                "validated": False,
                "capabilities": "http://hl7.org/fhir/CapabilityStatement/example",
            }
        ]
    },
    "setup": {
        "action": [
            {
                "operation": {
                    "type": {
                        "system": "http://terminology.hl7.org/CodeSystem/testscript-operation-codes",
                        "code": "create",
                    },
                    "resource": "Patient",
                    "method": "post",
                    "sourceId": "patient-fixture",
                    "requestHeader": [{"field": "Content-Type", "value": "application/fhir+json"}],
                }
            }
        ]
    },
    "test": [
        {
            "name": "read",
            "action": [
                {
                    "operation": {
                        "type": {"code": "read"},
                        "resource": "Patient",
                        "method": "get",
                        "targetId": "patient-fixture",
                    }
                },
                {
                    "assert": {
                        "description": "Confirm that the returned HTTP status is 200(OK).",
                        "direction": "response",
                        "response": "okay",
                        "operator": "equals",
                    }
                },
            ],
        }
    ],
    "teardown": {
        "action": [
            {
                "operation": {
                    "type": {"code": "delete"},
                    "resource": "Patient",
                    "targetId": "patient-fixture",
                }
            }
        ]
    },
}


@pytest.fixture
def valid_test_script():
    return copy.deepcopy(VALID_TEST_SCRIPT)


@pytest.fixture
def make_validation_client():
    """Build a FHIRValidationClient whose requests are answered by `handler`."""
    def _make(handler, enabled=True):
        return FHIRValidationClient(
            endpoints={FhirVersion.R4: R4_URL, FhirVersion.R5: R5_URL},
            timeout=10,
            enabled=enabled,
            transport=httpx.MockTransport(handler),
        )
    return _make


@pytest.fixture
def api_client(make_validation_client):
    """TestClient factory; the external validator is replaced by `handler`."""
    def _make(handler, enabled=True):
        client = make_validation_client(handler, enabled=enabled)
        app.dependency_overrides[get_validation_client] = lambda: client
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()
