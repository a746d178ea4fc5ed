import copy

from testscript_api.models.testscript import ValidationMode
from testscript_api.services.structure_validator import validate


def _locations(result):
    return [issue.location for issue in result.errors]


def _messages_at(result, location):
    return [issue.message for issue in result.errors if issue.location == location]


# ---------------------------------------------------------------------------
# Document-level rules (both modes)
# ---------------------------------------------------------------------------

def test_valid_document_passes(valid_test_script):
    result = validate(valid_test_script, ValidationMode.EXTENDED)
    assert result.valid is True
    assert result.errors == []


def test_wrong_resource_type_reported_once():
    """Scenario: a Patient is not a TestScript; name is fine and nothing crashes."""
    result = validate({"resourceType": "Patient", "status": "draft", "name": "X"}, ValidationMode.EXTENDED)
    assert result.valid is False
    assert _locations(result).count(["resourceType"]) == 1
    assert ["name"] not in _locations(result)


def test_wrong_resource_type_in_import_mode():
    result = validate({"resourceType": "Bundle", "status": "draft"}, ValidationMode.BASIC)
    assert _locations(result) == [["resourceType"]]


def test_missing_status_reported_once():
    result = validate({"resourceType": "TestScript", "name": "T"}, ValidationMode.EXTENDED)
    status_errors = [loc for loc in _locations(result) if loc[-1] == "status"]
    assert status_errors == [["status"]]
    assert _messages_at(result, ["status"]) == ["TestScript must have a status"]


def test_unknown_status_reported_once():
    for status in ("final", "DRAFT", 5, ["draft"]):
        result = validate({"resourceType": "TestScript", "status": status}, ValidationMode.BASIC)
        assert _locations(result) == [["status"]], status
        assert "draft, active, retired, unknown" in result.errors[0].message


def test_import_mode_accepts_minimal_document():
    """Scenario: resourceType and status alone pass lenient import validation."""
    result = validate({"resourceType": "TestScript", "status": "draft"}, ValidationMode.BASIC)
    assert result.valid is True


def test_import_mode_skips_content_rules():
    document = {
        "resourceType": "TestScript",
        "status": "draft",
        "name": 42,
        "metadata": {"capability": []},
        "setup": {"action": []},
        "test": [{"action": [{"operation": {}, "assert": {}}]}],
    }
    assert validate(document, "import").valid is True
    assert validate(document, ValidationMode.EXTENDED).valid is False


def test_mode_strings_are_accepted():
    document = {"resourceType": "TestScript", "status": "draft"}
    assert validate(document, "import").valid is True
    assert validate(document, "basic").valid is True
    # Extended mode also requires a name and metadata
    assert _locations(validate(document, "extended")) == [["name"], ["metadata"]]
    assert _locations(validate(document, None)) == [["name"], ["metadata"]]


def test_name_of_wrong_type_is_a_structural_error():
    result = validate({"resourceType": "TestScript", "status": "draft", "name": 42}, ValidationMode.EXTENDED)
    assert _messages_at(result, ["name"]) == ["name must be a string"]


def test_non_object_document_does_not_raise():
    for document in (None, [], [1, 2], "TestScript", 7):
        result = validate(document, ValidationMode.EXTENDED)
        assert ["resourceType"] in _locations(result)
        assert ["status"] in _locations(result)


def test_issues_follow_walk_order():
    document = {
        "resourceType": "Observation",
        "metadata": {"capability": []},
        "setup": {"action": []},
        "teardown": {"action": []},
        "test": [{"action": []}],
    }
    result = validate(document, ValidationMode.EXTENDED)
    assert _locations(result) == [
        ["resourceType"],
        ["status"],
        ["name"],
        ["metadata", "capability"],
        ["setup", "action"],
        ["teardown", "action"],
        ["test", "0", "action"],
    ]
    assert result.errors[4].message == "setup must contain at least one action"
    assert result.errors[5].message == "teardown must contain at least one action"


def test_validation_is_idempotent_and_pure(valid_test_script):
    valid_test_script["status"] = "pending"
    valid_test_script["test"][0]["action"].append({})
    snapshot = copy.deepcopy(valid_test_script)

    first = validate(valid_test_script, ValidationMode.EXTENDED)
    second = validate(valid_test_script, ValidationMode.EXTENDED)

    assert first.errors == second.errors
    assert valid_test_script == snapshot


# ---------------------------------------------------------------------------
# Metadata and containers
# ---------------------------------------------------------------------------

METADATA = {"capability": [{"required": True, "capabilities": "http://example.org/CapabilityStatement/server"}]}


class TestMetadataRules:
    def _document(self, **fields):
        document = {"resourceType": "TestScript", "status": "draft", "name": "T", "metadata": copy.deepcopy(METADATA)}
        document.update(fields)
        return document

    def test_capability_requires_reference_and_flag(self):
        document = self._document(metadata={"capability": [
            {"required": True},
            {"capabilities": "http://example.org/CapabilityStatement/x"},
        ]})
        result = validate(document, ValidationMode.EXTENDED)
        assert _locations(result) == [
            ["metadata", "capability", "0", "capabilities"],
            ["metadata", "capability", "1"],
        ]
        assert result.errors[1].message.startswith("tst-4")

    def test_capability_flags_must_be_booleans(self):
        document = self._document(metadata={"capability": [
            {"capabilities": "http://example.org/cs", "required": "yes"},
        ]})
        result = validate(document, ValidationMode.EXTENDED)
        assert _locations(result) == [["metadata", "capability", "0", "required"]]

    def test_metadata_without_capabilities(self):
        result = validate(self._document(metadata={}), ValidationMode.EXTENDED)
        assert _locations(result) == [["metadata", "capability"]]

    def test_metadata_of_wrong_type(self):
        result = validate(self._document(metadata="none"), ValidationMode.EXTENDED)
        assert _locations(result) == [["metadata"]]

    def test_metadata_is_required_in_extended_mode(self):
        document = self._document()
        del document["metadata"]
        result = validate(document, ValidationMode.EXTENDED)
        assert _locations(result) == [["metadata"]]
        assert result.errors[0].message == "TestScript must contain metadata"
        assert validate(document, ValidationMode.BASIC).valid is True

    def test_null_metadata_counts_as_missing(self):
        result = validate(self._document(metadata=None), ValidationMode.EXTENDED)
        assert _messages_at(result, ["metadata"]) == ["TestScript must contain metadata"]

    def test_setup_without_action_property(self):
        result = validate(self._document(setup={}), ValidationMode.EXTENDED)
        assert _locations(result) == [["setup", "action"]]

    def test_test_without_actions(self):
        result = validate(self._document(test=[{"name": "empty"}]), ValidationMode.EXTENDED)
        assert _locations(result) == [["test", "0", "action"]]

    def test_test_must_be_an_array(self):
        result = validate(self._document(test={"action": []}), ValidationMode.EXTENDED)
        assert _locations(result) == [["test"]]

    def test_empty_test_array_is_an_error(self):
        document = self._document(test=[])
        result = validate(document, ValidationMode.EXTENDED)
        assert _locations(result) == [["test"]]
        assert result.errors[0].message == "test must contain at least one test"
        assert validate(document, ValidationMode.BASIC).valid is True

    def test_absent_test_array_is_not_an_error(self):
        assert validate(self._document(), ValidationMode.EXTENDED).valid is True


# ---------------------------------------------------------------------------
# Actions, operations and assertions
# ---------------------------------------------------------------------------

class TestActionRules:
    def _document(self, actions, phase="test"):
        document = {"resourceType": "TestScript", "status": "active", "name": "T1", "metadata": copy.deepcopy(METADATA)}
        if phase == "test":
            document["test"] = [{"action": actions}]
        else:
            document[phase] = {"action": actions}
        return document

    def test_operation_and_assert_together_violate_tst2(self):
        """Scenario: an action carrying both an operation and an assertion."""
        document = self._document([
            {"operation": {"resource": "Patient"}, "assert": {"description": "x"}},
        ])
        result = validate(document, ValidationMode.EXTENDED)
        messages = _messages_at(result, ["test", "0", "action", "0"])
        assert len(messages) == 1
        assert "tst-2" in messages[0]

    def test_empty_action_reported_at_action(self):
        result = validate(self._document([{"operation": {"type": {"code": "read"}, "resource": "Patient", "url": "/Patient/1"}}, {}]),
                          ValidationMode.EXTENDED)
        assert _locations(result) == [["test", "0", "action", "1"]]
        assert "tst-2" not in result.errors[0].message

    def test_setup_actions_are_not_checked_for_exclusivity(self):
        both = {
            "operation": {"type": {"code": "create"}, "resource": "Patient", "sourceId": "f"},
            "assert": {"description": "created"},
        }
        result = validate(self._document([both, {}], phase="setup"), ValidationMode.EXTENDED)
        assert result.valid is True

    def test_operation_without_type_code(self):
        """Scenario: resource set but no type.code."""
        document = self._document([{"operation": {"resource": "Patient", "url": "/Patient"}}])
        result = validate(document, ValidationMode.EXTENDED)
        assert _locations(result) == [["test", "0", "action", "0", "operation", "type", "code"]]

    def test_operation_type_of_wrong_type(self):
        document = self._document([{"operation": {"type": "read", "resource": "Patient", "url": "/Patient"}}])
        result = validate(document, ValidationMode.EXTENDED)
        assert _locations(result) == [["test", "0", "action", "0", "operation", "type"]]

    def test_operation_without_resource(self):
        document = self._document([{"operation": {"type": {"code": "search"}, "params": "?name=x"}}])
        result = validate(document, ValidationMode.EXTENDED)
        assert _locations(result) == [["test", "0", "action", "0", "operation", "resource"]]

    def test_operation_target_constraint_depends_on_phase(self):
        operation = {"operation": {"type": {"code": "read"}, "resource": "Patient"}}
        setup = validate(self._document([operation], phase="setup"), ValidationMode.EXTENDED)
        test = validate(self._document([operation]), ValidationMode.EXTENDED)
        teardown = validate(self._document([operation], phase="teardown"), ValidationMode.EXTENDED)

        assert setup.errors[0].message.startswith("tst-7")
        assert test.errors[0].message.startswith("tst-8")
        assert teardown.errors[0].message.startswith("tst-9")
        assert teardown.errors[0].location == ["teardown", "action", "0", "operation"]

    def test_method_is_case_insensitive(self):
        ok = {"type": {"code": "read"}, "resource": "Patient", "url": "/Patient/1", "method": "GET"}
        bad = dict(ok, method="FETCH")
        assert validate(self._document([{"operation": ok}]), ValidationMode.EXTENDED).valid is True
        result = validate(self._document([{"operation": bad}]), ValidationMode.EXTENDED)
        assert _locations(result) == [["test", "0", "action", "0", "operation", "method"]]

    def test_request_headers_need_field_and_value(self):
        operation = {
            "type": {"code": "read"}, "resource": "Patient", "url": "/Patient/1",
            "requestHeader": [{"field": "Accept", "value": "application/fhir+json"}, {"field": ""}],
        }
        result = validate(self._document([{"operation": operation}]), ValidationMode.EXTENDED)
        base = ["test", "0", "action", "0", "operation", "requestHeader", "1"]
        assert _locations(result) == [base + ["field"], base + ["value"]]

    def test_assertion_requires_description(self):
        result = validate(self._document([{"assert": {"response": "okay"}}]), ValidationMode.EXTENDED)
        assert _locations(result) == [["test", "0", "action", "0", "assert", "description"]]

    def test_assertion_codes_are_checked(self):
        assertion = {"description": "d", "operator": "like", "direction": "sideways", "response": "fine"}
        result = validate(self._document([{"assert": assertion}]), ValidationMode.EXTENDED)
        base = ["test", "0", "action", "0", "assert"]
        assert _locations(result) == [base + ["operator"], base + ["direction"], base + ["response"]]

    def test_request_direction_excludes_response(self):
        assertion = {"description": "d", "direction": "request", "response": "okay", "responseCode": "200"}
        result = validate(self._document([{"assert": assertion}]), ValidationMode.EXTENDED)
        base = ["test", "0", "action", "0", "assert"]
        assert _locations(result) == [base + ["response"], base + ["responseCode"]]

    def test_compare_to_source_needs_expression_or_path(self):
        assertion = {"description": "d", "compareToSourceId": "fixture"}
        result = validate(self._document([{"assert": assertion}]), ValidationMode.EXTENDED)
        assert _locations(result) == [["test", "0", "action", "0", "assert", "compareToSourceId"]]

        assertion["compareToSourcePath"] = "fhir:Patient/fhir:name"
        assert validate(self._document([{"assert": assertion}]), ValidationMode.EXTENDED).valid is True

    def test_response_and_request_method_conflict(self):
        assertion = {"description": "d", "response": "okay", "requestMethod": "get"}
        result = validate(self._document([{"assert": assertion}]), ValidationMode.EXTENDED)
        assert _locations(result) == [["test", "0", "action", "0", "assert"]]
