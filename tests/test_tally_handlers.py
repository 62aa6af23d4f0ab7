import pytest

from tallyflow.connectors import factory
from tallyflow.connectors.factory import (
    execute_node,
    execute_tool,
    get_node_handler,
    get_registry_status,
    get_tool_handler,
    register_tool,
)
from tallyflow.core.config import settings
from tallyflow.exceptions.api_exceptions import ValidationError
from tallyflow.handlers.base_tally_handler import (
    flags_from_params,
    param_bool,
    parse_json_param,
    position_from_params,
    selector_from_params,
)
from tallyflow.handlers.tally_form_handler import TallyFormHandler
from tallyflow.handlers.tally_submission_handler import TallySubmissionHandler


@pytest.fixture
def handler(fake_api):
    return TallyFormHandler(request=fake_api)


@pytest.mark.asyncio
async def test_add_field_envelope(handler, fake_api):
    result = await handler.execute({
        "operation": "addField",
        "formId": "form-1",
        "fieldType": "input",
        "label": "Email",
        "positionMode": "index",
        "positionIndex": "0",
        "dryRun": False,
        "backup": False,
    })

    assert result["status"] == "success"
    assert result["error"] is None
    assert isinstance(result["duration_ms"], int)
    [record] = result["output"]
    assert record["pairedItem"] == {"item": 0}
    assert record["json"]["updated"] is True
    assert "backup" not in record["json"]
    assert record["json"]["form"]["blocks"][0]["label"] == "Email"


@pytest.mark.asyncio
async def test_read_operations(handler):
    forms = await handler.execute({"operation": "getAll"})
    assert [r["json"]["id"] for r in forms["output"]] == ["form-1", "form-2"]

    questions = await handler.execute({"operation": "listQuestions", "formId": "form-1"})
    assert [r["json"]["blockUuid"] for r in questions["output"]] == ["q1", "o1"]

    groups = await handler.execute({"operation": "listSourceQuestionGroups", "sourceFormId": "form-1"})
    assert len(groups["output"]) == 4


@pytest.mark.asyncio
async def test_items_override_node_params_and_are_paired(handler):
    result = await handler.execute({
        "operation": "get",
        "items": [{"params": {"formId": "form-2"}}, {"params": {"formId": "form-1"}}],
    })

    assert [(r["json"]["id"], r["pairedItem"]["item"]) for r in result["output"]] == [("form-2", 0), ("form-1", 1)]


@pytest.mark.asyncio
async def test_error_aborts_without_continue_on_fail(handler):
    result = await handler.execute({"operation": "get", "items": [{"params": {"formId": "nope"}}, {"params": {"formId": "form-1"}}]})
    assert result["status"] == "error"
    assert result["output"] is None
    assert "Not found" in result["error"]


@pytest.mark.asyncio
async def test_continue_on_fail_emits_error_records(handler):
    result = await handler.execute({
        "operation": "deleteField",
        "formId": "form-1",
        "targetSelectBy": "label",
        "continueOnFail": True,
        "dryRun": True,
        "items": [{"params": {"targetFieldLabel": "Nope"}}, {"params": {"targetFieldLabel": "Name"}}],
    })

    assert result["status"] == "success"
    first, second = result["output"]
    assert first == {"json": {"error": "No matching fields were found to delete"}, "pairedItem": {"item": 0}}
    assert second["json"]["preview"] is True
    assert second["pairedItem"] == {"item": 1}


@pytest.mark.asyncio
async def test_unsupported_operation(handler, fake_api):
    result = await handler.execute({"operation": "explode"})
    assert result["status"] == "error"
    assert "Unsupported operation 'explode'" in result["error"]
    assert fake_api.calls == []


@pytest.mark.asyncio
async def test_missing_required_param(handler):
    result = await handler.execute({"operation": "updateField", "payloadPatch": "{}"})
    assert result["error"] == "Parameter 'formId' is required"


@pytest.mark.asyncio
async def test_rollback_chained_from_previous_write(handler, fake_api):
    write = await handler.execute({
        "operation": "deleteField", "formId": "form-1", "targetFieldUuids": ["o1", "o2"],
        "dryRun": False, "backup": True, "optimistic": True,
    })
    previous_output = write["output"][0]["json"]
    assert len(previous_output["form"]["blocks"]) == 3

    restored = await handler.execute({
        "operation": "rollbackForm",
        "rollbackFormId": "form-1",
        "dryRun": False,
        "items": [{"json": previous_output}],
    })

    assert restored["status"] == "success"
    assert len(restored["output"][0]["json"]["form"]["blocks"]) == 5
    assert len(fake_api.forms["form-1"]["blocks"]) == 5


@pytest.mark.asyncio
async def test_copy_questions_uses_insert_position(handler):
    result = await handler.execute({
        "operation": "copyQuestions",
        "sourceFormId": "form-1",
        "destFormId": "form-2",
        "sourceQuestionGroups": ["g1"],
        "insertPositionMode": "after",
        "insertRefUuid": "d1",
        "dryRun": True,
    })
    record = result["output"][0]["json"]
    assert record["sourceFormId"] == "form-1"
    assert [b["type"] for b in record["proposedBlocks"]] == ["INPUT_EMAIL", "TITLE", "INPUT_TEXT", "TEXTAREA"]


@pytest.mark.asyncio
async def test_sync_select_options_with_json_string(handler):
    result = await handler.execute({
        "operation": "syncSelectOptions",
        "formId": "form-1",
        "targetFieldUuid": "o1",
        "optionsJson": '["Green"]',
        "preserveExtras": True,
        "dryRun": True,
    })
    record = result["output"][0]["json"]
    assert record["proposedBlocks"][3]["payload"]["options"] == [{"label": "Green", "value": "Green"}]


@pytest.mark.asyncio
async def test_invalid_json_parameter_is_reported(handler):
    result = await handler.execute({
        "operation": "addField", "formId": "form-1", "fieldType": "select", "optionsJson": "[oops",
    })
    assert result["status"] == "error"
    assert "optionsJson" in result["error"]


@pytest.mark.asyncio
async def test_submission_handler(fake_api):
    fake_api.submissions["form-1"] = {"items": [{"id": "s1"}, {"id": "s2"}]}
    result = await TallySubmissionHandler(request=fake_api).execute({"operation": "getAll", "formId": "form-1"})
    assert [r["json"]["id"] for r in result["output"]] == ["s1", "s2"]


@pytest.mark.asyncio
async def test_missing_token(monkeypatch):
    monkeypatch.setattr(settings, "TALLY_API_TOKEN", "")
    result = await TallyFormHandler().execute({"operation": "getAll"})
    assert result["status"] == "error"
    assert "token" in result["error"]


def test_registry_contains_tally_nodes():
    assert isinstance(get_node_handler("Tally.form"), TallyFormHandler)
    assert isinstance(get_tool_handler("Tally.submission"), TallySubmissionHandler)
    status = get_registry_status()
    assert status["scanned"] is True
    assert {"Tally.form", "Tally.submission"} <= set(status["node_keys"])
    with pytest.raises(ValueError):
        get_node_handler("Tally.unknown")


@pytest.mark.asyncio
async def test_execute_node_injects_creds(monkeypatch):
    monkeypatch.setattr(settings, "TALLY_API_TOKEN", "")
    result = await execute_node("Tally.form", {"operation": "getAll"}, creds={})
    assert "token" in result["error"]


def test_param_helpers():
    assert flags_from_params({"dryRun": True, "backup": False, "optimistic": False}).model_dump() == {
        "dry_run": True, "backup": False, "optimistic": False,
    }
    assert position_from_params({}).mode == "end"
    assert position_from_params({"insertPositionMode": "before", "insertRefUuid": " x "}, prefix="insert").ref_uuid == "x"
    with pytest.raises(ValidationError):
        position_from_params({"positionMode": "after"})
    with pytest.raises(ValidationError):
        position_from_params({"positionMode": "sideways"})

    selector = selector_from_params({"targetSelectBy": "label", "targetFieldLabel": "A", "targetFieldLabels": ["B"]})
    assert selector.labels == ["A", "B"]
    assert parse_json_param('{"a": 1}', "payload", dict) == {"a": 1}
    assert parse_json_param("", "payload", dict, {}) == {}
    with pytest.raises(ValidationError):
        parse_json_param("[1]", "payload", dict)


@pytest.mark.asyncio
async def test_list_form_options_operation(handler):
    result = await handler.execute({"operation": "listFormOptions", "includeCreateNew": True})
    assert [r["json"]["value"] for r in result["output"]] == ["__CREATE_NEW__", "form-1", "form-2"]


@pytest.mark.asyncio
async def test_execute_tool_uses_token_from_creds(monkeypatch):
    captured = {}

    def fake_make_tally_request(token):
        captured["token"] = token

        async def request(method, endpoint, body=None):
            return {"items": [{"id": "remote"}]}

        return request

    monkeypatch.setattr("tallyflow.handlers.base_tally_handler.make_tally_request", fake_make_tally_request)
    result = await execute_tool("Tally.form", {"operation": "getAll"}, {"api_token": "tok-123"})

    assert captured["token"] == "tok-123"
    assert result["output"] == [{"json": {"id": "remote"}, "pairedItem": {"item": 0}}]


@pytest.mark.asyncio
async def test_add_field_accepts_numeric_options(handler):
    result = await handler.execute({
        "operation": "addField",
        "formId": "form-1",
        "fieldType": "select",
        "optionsJson": "[1, 2, 3]",
        "dryRun": True,
    })

    assert result["status"] == "success"
    proposed = result["output"][0]["json"]["proposedBlocks"]
    assert [b["label"] for b in proposed if b["type"] == "DROPDOWN_OPTION"] == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_add_field_bad_definition_is_a_validation_error(handler, fake_api):
    result = await handler.execute({
        "operation": "addField", "formId": "form-1", "fieldType": "input", "label": ["x"], "dryRun": True,
    })

    assert result["status"] == "error"
    assert result["error"].startswith("Invalid field definition (label)")
    assert fake_api.writes == []


@pytest.mark.asyncio
async def test_text_flags_are_parsed_as_booleans(handler, fake_api):
    result = await handler.execute({
        "operation": "deleteField",
        "formId": "form-1",
        "targetFieldUuid": "q1",
        "dryRun": "false",
        "backup": "false",
        "optimistic": "false",
    })

    record = result["output"][0]["json"]
    assert record["updated"] is True
    assert "preview" not in record
    assert "backup" not in record
    assert [c[0] for c in fake_api.writes] == ["PATCH"]


@pytest.mark.asyncio
async def test_copy_questions_text_flags_keep_destination(handler, fake_api):
    result = await handler.execute({
        "operation": "copyQuestions",
        "sourceFormId": "form-1",
        "destFormId": "form-2",
        "sourceQuestionGroups": ["g1"],
        "copyAll": "false",
        "replaceContents": "false",
        "dryRun": "true",
    })

    record = result["output"][0]["json"]
    assert [b["uuid"] for b in record["proposedBlocks"]][:2] == ["d1", "d2"]
    assert [b["type"] for b in record["proposedBlocks"]] == ["INPUT_EMAIL", "TEXTAREA", "TITLE", "INPUT_TEXT"]
    assert fake_api.writes == []


def test_param_bool():
    assert param_bool({"a": "true"}, "a") is True
    assert param_bool({"a": " YES "}, "a") is True
    assert param_bool({"a": "1"}, "a") is True
    assert param_bool({"a": "false"}, "a") is False
    assert param_bool({"a": "0"}, "a") is False
    assert param_bool({"a": ""}, "a") is False
    assert param_bool({"a": True}, "a") is True
    assert param_bool({"a": 0}, "a") is False
    assert param_bool({}, "a") is False
    assert param_bool({"a": None}, "a", default=True) is True
    assert flags_from_params({"dryRun": "false", "backup": "true"}).dry_run is False


def test_register_tool_takes_only_a_name(monkeypatch):
    monkeypatch.setattr(factory, "_TOOL_REGISTRY", {})

    @register_tool("Tally.echo")
    class EchoHandler(TallyFormHandler):
        pass

    assert factory._TOOL_REGISTRY == {"Tally.echo": EchoHandler}
    assert not hasattr(EchoHandler, "usage_mode")
    with pytest.raises(TypeError):
        register_tool("Tally.echo", usage_mode="tool")
