"""
Code systems used by FHIR TestScript documents.
Values follow the R5 value sets; R4 documents use the same codes.
"""
from enum import Enum
from typing import Optional


class FhirVersion(str, Enum):
    R4 = "R4"
    R5 = "R5"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["FhirVersion"]:
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class ValidationMode(str, Enum):
    BASIC = "basic"        # Lenient subset used for imports
    EXTENDED = "extended"  # Full rule set

    @classmethod
    def parse(cls, value: Optional[str]) -> "ValidationMode":
        """Map "import" or "basic" to BASIC and anything else to EXTENDED."""
        if value and value.strip().lower() in ("import", "basic"):
            return cls.BASIC
        return cls.EXTENDED


class TestScriptStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    RETIRED = "retired"
    UNKNOWN = "unknown"


class HttpMethod(str, Enum):
    GET = "get"
    POST = "post"
    PUT = "put"
    DELETE = "delete"
    PATCH = "patch"
    HEAD = "head"
    OPTIONS = "options"


class AssertionDirection(str, Enum):
    REQUEST = "request"
    RESPONSE = "response"


class AssertionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    IN = "in"
    NOT_IN = "notIn"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    EMPTY = "empty"
    NOT_EMPTY = "notEmpty"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    EVAL = "eval"
    MANUAL_EVAL = "manualEval"


# http://hl7.org/fhir/assert-response-code-types
ASSERTION_RESPONSE_CODES = frozenset({
    "continue", "switchingProtocols", "okay", "created", "accepted",
    "nonAuthoritativeInformation", "noContent", "resetContent", "partialContent",
    "multipleChoices", "movedPermanently", "found", "seeOther", "notModified",
    "useProxy", "temporaryRedirect", "permanentRedirect", "badRequest", "unauthorized",
    "paymentRequired", "forbidden", "notFound", "methodNotAllowed", "notAcceptable",
    "proxyAuthenticationRequired", "requestTimeout", "conflict", "gone", "lengthRequired",
    "preconditionFailed", "contentTooLarge", "uriTooLong", "unsupportedMediaType",
    "rangeNotSatisfiable", "expectationFailed", "misdirectedRequest", "unprocessableContent",
    "upgradeRequired", "internalServerError", "notImplemented", "badGateway",
    "serviceUnavailable", "gatewayTimeout", "httpVersionNotSupported",
    # R4 spellings
    "bad", "unprocessable",
})

STATUS_CODES = frozenset(s.value for s in TestScriptStatus)
HTTP_METHODS = frozenset(m.value for m in HttpMethod)
ASSERTION_DIRECTIONS = frozenset(d.value for d in AssertionDirection)
ASSERTION_OPERATORS = frozenset(o.value for o in AssertionOperator)
