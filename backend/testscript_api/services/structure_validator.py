"""
Rule-based structural validator for FHIR TestScript documents.

Rules are declared once in a table keyed by node type and applied by a single
walker. Each rule names the field it reports on (relative to the node being
checked), whether it only runs in extended mode, and optionally the phases
(setup / test / teardown) it is limited to.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional, Tuple

from ..models.outcome import StructureIssue, ValidationResult
from ..models.testscript import (
    ASSERTION_DIRECTIONS,
    ASSERTION_OPERATORS,
    ASSERTION_RESPONSE_CODES,
    HTTP_METHODS,
    STATUS_CODES,
    ValidationMode,
)

logger = logging.getLogger(__name__)

# Node types visited by the walker
DOCUMENT = "document"
METADATA = "metadata"
CAPABILITY = "capability"
SECTION = "section"  # setup or teardown
TEST = "test"
ACTION = "action"
OPERATION = "operation"
ASSERTION = "assert"
REQUEST_HEADER = "requestHeader"

TEST_PHASE = frozenset({"test"})


@dataclass(frozen=True)
class Rule:
    node: str
    field: Tuple[str, ...]
    message: str
    violated: Callable[[Dict], bool]
    extended_only: bool = True
    phases: Optional[FrozenSet[str]] = None


def _present(node: Dict, key: str) -> bool:
    return node.get(key) is not None


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _invalid_code(node: Dict, key: str, codes: FrozenSet[str], fold_case: bool = False) -> bool:
    """True when the field is set to something outside the code set."""
    if not _present(node, key):
        return False
    value = node[key]
    if not isinstance(value, str):
        return True
    return (value.lower() if fold_case else value) not in codes


def _not_object(node: Dict, key: str) -> bool:
    return _present(node, key) and not isinstance(node[key], dict)


def _not_array(node: Dict, key: str) -> bool:
    return _present(node, key) and not isinstance(node[key], list)


def _empty_array(value: Any) -> bool:
    return not isinstance(value, list) or not value


def _non_object_entries(value: Any) -> bool:
    return isinstance(value, list) and any(not isinstance(item, dict) for item in value)


def _operation_type_code_missing(operation: Dict) -> bool:
    operation_type = operation.get("type")
    if operation_type is None:
        return True
    return isinstance(operation_type, dict) and not _is_text(operation_type.get("code"))


def _operation_target_missing(operation: Dict) -> bool:
    return all(_blank(operation.get(key)) for key in ("url", "sourceId", "targetId", "params"))


def _compare_source_incomplete(assertion: Dict) -> bool:
    return (
        _present(assertion, "compareToSourceId")
        and not _present(assertion, "compareToSourceExpression")
        and not _present(assertion, "compareToSourcePath")
    )


def _request_with(key: str) -> Callable[[Dict], bool]:
    return lambda assertion: assertion.get("direction") == "request" and _present(assertion, key)


def _operation_target_rule(phase: str, constraint: str) -> Rule:
    return Rule(
        OPERATION, (),
        f"{constraint}: {phase.capitalize()} operation SHALL contain either sourceId or targetId or params or url",
        _operation_target_missing,
        phases=frozenset({phase}),
    )


RULES: Tuple[Rule, ...] = (
    # ── Document ────────────────────────────────────────────────────────────
    Rule(DOCUMENT, ("resourceType",), 'resourceType must be "TestScript"',
         lambda doc: doc.get("resourceType") != "TestScript", extended_only=False),
    Rule(DOCUMENT, ("status",), "TestScript must have a status",
         lambda doc: _blank(doc.get("status")), extended_only=False),
    Rule(DOCUMENT, ("status",), "status must be one of: draft, active, retired, unknown",
         lambda doc: not _blank(doc.get("status")) and _invalid_code(doc, "status", STATUS_CODES),
         extended_only=False),
    Rule(DOCUMENT, ("name",), "TestScript must have a name",
         lambda doc: _blank(doc.get("name"))),
    Rule(DOCUMENT, ("name",), "name must be a string",
         lambda doc: _present(doc, "name") and not isinstance(doc["name"], str)),
    Rule(DOCUMENT, ("metadata",), "TestScript must contain metadata",
         lambda doc: doc.get("metadata") is None),
    Rule(DOCUMENT, ("metadata",), "metadata must be an object",
         lambda doc: _not_object(doc, "metadata")),
    Rule(DOCUMENT, ("setup",), "setup must be an object",
         lambda doc: _not_object(doc, "setup")),
    Rule(DOCUMENT, ("teardown",), "teardown must be an object",
         lambda doc: _not_object(doc, "teardown")),
    Rule(DOCUMENT, ("test",), "test must be an array",
         lambda doc: _not_array(doc, "test")),
    Rule(DOCUMENT, ("test",), "test must contain at least one test",
         lambda doc: isinstance(doc.get("test"), list) and not doc["test"]),
    Rule(DOCUMENT, ("test",), "Every test must be an object",
         lambda doc: _non_object_entries(doc.get("test"))),

    # ── Metadata ────────────────────────────────────────────────────────────
    Rule(METADATA, ("capability",), "metadata must contain at least one capability",
         lambda metadata: _empty_array(metadata.get("capability"))),
    Rule(METADATA, ("capability",), "Every capability must be an object",
         lambda metadata: _non_object_entries(metadata.get("capability"))),
    Rule(CAPABILITY, ("capabilities",), "Capability must reference a CapabilityStatement in 'capabilities'",
         lambda capability: not _is_text(capability.get("capabilities"))),
    Rule(CAPABILITY, (), "tst-4: Capability SHALL contain required or validated or both",
         lambda capability: not _present(capability, "required") and not _present(capability, "validated")),
    Rule(CAPABILITY, ("required",), "required must be a boolean",
         lambda capability: _present(capability, "required") and not isinstance(capability["required"], bool)),
    Rule(CAPABILITY, ("validated",), "validated must be a boolean",
         lambda capability: _present(capability, "validated") and not isinstance(capability["validated"], bool)),

    # ── Setup / teardown / test containers ─────────────────────────────────
    Rule(SECTION, ("action",), "{phase} must contain at least one action",
         lambda section: _empty_array(section.get("action"))),
    Rule(SECTION, ("action",), "Every {phase} action must be an object",
         lambda section: _non_object_entries(section.get("action"))),
    Rule(TEST, ("action",), "Test must contain at least one action",
         lambda test: _empty_array(test.get("action"))),
    Rule(TEST, ("action",), "Every test action must be an object",
         lambda test: _non_object_entries(test.get("action"))),

    # ── Actions ─────────────────────────────────────────────────────────────
    Rule(ACTION, (), "tst-2: Test action SHALL contain either an operation or assert but not both",
         lambda action: _present(action, "operation") and _present(action, "assert"),
         phases=TEST_PHASE),
    Rule(ACTION, (), "Test action must contain either an operation or an assert",
         lambda action: not _present(action, "operation") and not _present(action, "assert"),
         phases=TEST_PHASE),
    Rule(ACTION, ("operation",), "operation must be an object",
         lambda action: _not_object(action, "operation")),
    Rule(ACTION, ("assert",), "assert must be an object",
         lambda action: _not_object(action, "assert")),

    # ── Operations ──────────────────────────────────────────────────────────
    Rule(OPERATION, ("type",), "operation.type must be a Coding object",
         lambda operation: _not_object(operation, "type")),
    Rule(OPERATION, ("type", "code"), "Operation must declare type.code",
         _operation_type_code_missing),
    Rule(OPERATION, ("resource",), "Operation must declare a resource",
         lambda operation: not _is_text(operation.get("resource"))),
    _operation_target_rule("setup", "tst-7"),
    _operation_target_rule("test", "tst-8"),
    _operation_target_rule("teardown", "tst-9"),
    Rule(OPERATION, ("method",), "method must be one of: " + ", ".join(sorted(HTTP_METHODS)),
         lambda operation: _invalid_code(operation, "method", HTTP_METHODS, fold_case=True)),
    Rule(OPERATION, ("requestHeader",), "requestHeader must be an array",
         lambda operation: _not_array(operation, "requestHeader")),
    Rule(OPERATION, ("requestHeader",), "Every requestHeader must be an object",
         lambda operation: _non_object_entries(operation.get("requestHeader"))),
    Rule(REQUEST_HEADER, ("field",), "Request header must name a field",
         lambda header: not _is_text(header.get("field"))),
    Rule(REQUEST_HEADER, ("value",), "Request header value must be a string",
         lambda header: not isinstance(header.get("value"), str)),

    # ── Assertions ──────────────────────────────────────────────────────────
    Rule(ASSERTION, ("description",), "Assertion must have a description",
         lambda assertion: not _is_text(assertion.get("description"))),
    Rule(ASSERTION, ("operator",), "operator must be one of: " + ", ".join(sorted(ASSERTION_OPERATORS)),
         lambda assertion: _invalid_code(assertion, "operator", ASSERTION_OPERATORS)),
    Rule(ASSERTION, ("direction",), "direction must be one of: request, response",
         lambda assertion: _invalid_code(assertion, "direction", ASSERTION_DIRECTIONS)),
    Rule(ASSERTION, ("response",), "response must be an HTTP response code name (e.g. okay, created, notFound)",
         lambda assertion: _invalid_code(assertion, "response", ASSERTION_RESPONSE_CODES)),
    Rule(ASSERTION, ("response",), "response must be absent when direction is request",
         _request_with("response")),
    Rule(ASSERTION, ("responseCode",), "responseCode must be absent when direction is request",
         _request_with("responseCode")),
    Rule(ASSERTION, ("compareToSourceId",),
         "compareToSourceId requires compareToSourceExpression or compareToSourcePath",
         _compare_source_incomplete),
    Rule(ASSERTION, (), "Assertion must not contain both response and requestMethod",
         lambda assertion: _present(assertion, "response") and _present(assertion, "requestMethod")),
)


def _rules_by_node(rules: Tuple[Rule, ...]) -> Dict[str, Tuple[Rule, ...]]:
    grouped: Dict[str, List[Rule]] = {}
    for rule in rules:
        grouped.setdefault(rule.node, []).append(rule)
    return {node: tuple(node_rules) for node, node_rules in grouped.items()}


RULES_BY_NODE = _rules_by_node(RULES)

Visit = Tuple[str, Dict, List[str], str]


def _objects(value: Any, base: List[str]) -> Iterator[Tuple[List[str], Dict]]:
    """Yield (path, item) for every object inside an array; anything else is skipped."""
    if not isinstance(value, list):
        return
    for index, item in enumerate(value):
        if isinstance(item, dict):
            yield base + [str(index)], item


def _walk_actions(actions: Any, base: List[str], phase: str) -> Iterator[Visit]:
    for path, action in _objects(actions, base):
        yield ACTION, action, path, phase

        operation = action.get("operation")
        if isinstance(operation, dict):
            operation_path = path + ["operation"]
            yield OPERATION, operation, operation_path, phase
            for header_path, header in _objects(operation.get("requestHeader"), operation_path + ["requestHeader"]):
                yield REQUEST_HEADER, header, header_path, phase

        assertion = action.get("assert")
        if isinstance(assertion, dict):
            yield ASSERTION, assertion, path + ["assert"], phase


def _walk(document: Dict) -> Iterator[Visit]:
    """Visit nodes in a fixed order: document, metadata, setup, teardown, tests."""
    yield DOCUMENT, document, [], ""

    metadata = document.get("metadata")
    if isinstance(metadata, dict):
        yield METADATA, metadata, ["metadata"], ""
        for path, capability in _objects(metadata.get("capability"), ["metadata", "capability"]):
            yield CAPABILITY, capability, path, ""

    for phase in ("setup", "teardown"):
        section = document.get(phase)
        if isinstance(section, dict):
            yield SECTION, section, [phase], phase
            yield from _walk_actions(section.get("action"), [phase, "action"], phase)

    for path, test in _objects(document.get("test"), ["test"]):
        yield TEST, test, path, "test"
        yield from _walk_actions(test.get("action"), path + ["action"], "test")


def _applies(rule: Rule, mode: ValidationMode, phase: str) -> bool:
    if rule.extended_only and mode is not ValidationMode.EXTENDED:
        return False
    return rule.phases is None or phase in rule.phases


def validate(document: Any, mode: Any = ValidationMode.EXTENDED) -> ValidationResult:
    """
    Check a TestScript-shaped document against the structural rule set.

    Every applicable rule is evaluated; violations are collected in walk order
    rather than failing on the first one. The document is never modified, and
    anything that is not a JSON object is checked as an empty one.
    """
    mode = ValidationMode.parse(mode)
    if not isinstance(document, dict):
        document = {}

    errors: List[StructureIssue] = []
    for node_type, node, path, phase in _walk(document):
        for rule in RULES_BY_NODE.get(node_type, ()):
            if _applies(rule, mode, phase) and rule.violated(node):
                errors.append(StructureIssue(
                    message=rule.message.format(phase=phase),
                    location=path + list(rule.field),
                ))

    logger.debug("Structural validation (%s) found %d issue(s)", mode.value, len(errors))
    return ValidationResult(errors=errors)
