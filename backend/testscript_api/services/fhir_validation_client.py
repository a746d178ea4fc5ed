"""
External FHIR $validate client.
Sends a TestScript to a FHIR server for authoritative validation. A single
attempt is made per call; any failure yields None so callers can fall back to
the local structural result.
"""
import logging
from typing import Dict, Optional

import httpx

from ..core.config import settings
from ..models.testscript import FhirVersion

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"


def build_parameters(test_script: Dict) -> Dict:
    """Wrap a TestScript in the Parameters resource expected by $validate."""
    return {
        "resourceType": "Parameters",
        "parameter": [{"name": "resource", "resource": test_script}],
    }


class FHIRValidationClient:
    """HTTP client for the external FHIR validation server."""

    def __init__(
        self,
        endpoints: Optional[Dict[FhirVersion, str]] = None,
        timeout: Optional[float] = None,
        enabled: Optional[bool] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.endpoints = endpoints or {
            FhirVersion.R4: settings.FHIR_VALIDATION_URL_R4,
            FhirVersion.R5: settings.FHIR_VALIDATION_URL_R5,
        }
        self.timeout = settings.FHIR_VALIDATION_TIMEOUT if timeout is None else timeout
        self.enabled = settings.REMOTE_VALIDATION_ENABLED if enabled is None else enabled
        self.transport = transport

    def endpoint_for(self, version: FhirVersion) -> Optional[str]:
        return self.endpoints.get(version)

    def validate(self, test_script: Dict, version: FhirVersion) -> Optional[Dict]:
        """
        POST the TestScript to the $validate endpoint for the given FHIR version.
        Returns the OperationOutcome, or None if the server is unavailable.
        """
        url = self.endpoint_for(version)
        if not self.enabled or not url:
            logger.debug("Remote validation skipped (enabled=%s, url=%s)", self.enabled, url)
            return None

        headers = {"Content-Type": FHIR_JSON, "Accept": FHIR_JSON}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(url, json=build_parameters(test_script), headers=headers)
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPError as exc:
            logger.warning("FHIR validation server %s unavailable: %s", url, exc)
            return None
        except ValueError as exc:
            logger.warning("FHIR validation server %s returned invalid JSON: %s", url, exc)
            return None
        except RecursionError:
            logger.warning("TestScript too deeply nested to send to %s", url)
            return None

        if not isinstance(payload, dict) or payload.get("resourceType") != "OperationOutcome":
            logger.warning("FHIR validation server %s did not return an OperationOutcome", url)
            return None
        return payload


fhir_validation_client = FHIRValidationClient()
