# tallyflow/handlers/tally_form_handler.py

from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from tallyflow.connectors.factory import register_node, register_tool
from tallyflow.dtos.operation_dto import FieldSpec
from tallyflow.exceptions.api_exceptions import ValidationError
from tallyflow.services.form_editor_service import FormEditorService, pick_backup_candidate

from .base_tally_handler import (
    BaseTallyHandler,
    flags_from_params,
    param_bool,
    parse_json_param,
    position_from_params,
    require_param,
    selector_from_params,
)


@register_node("Tally.form")
@register_tool("Tally.form")
class TallyFormHandler(BaseTallyHandler):
    """
    Handler para formularios de Tally.so: lectura y edición de bloques.

    Operaciones (``operation``):
      - getAll, get (formId), listQuestions (formId), listSourceQuestionGroups (sourceFormId)
      - listFormOptions (includeCreateNew?): formularios como opciones {name, value}
      - addField (formId, fieldType, label, title?, placeholder?, required?, optionsJson?, payload?, positionMode...)
      - updateField (formId, targetSelectBy, targetFieldUuid|targetFieldLabel, payloadPatch, mergeStrategy)
      - deleteField (formId, targetSelectBy, targetFieldUuid(s)|targetFieldLabel(s))
      - syncSelectOptions (formId, selector, optionsJson, preserveExtras)
      - copyQuestions (sourceFormId, destFormId, sourceQuestionGroups|questionIds|copyAll, replaceContents, insertPositionMode...)
      - rollbackForm (rollbackFormId, backupFormJson | item entrante)

    Las escrituras aceptan ``dryRun``, ``backup`` y ``optimistic``.
    """

    operations = frozenset({
        "getAll",
        "get",
        "listQuestions",
        "listSourceQuestionGroups",
        "listFormOptions",
        "addField",
        "updateField",
        "deleteField",
        "syncSelectOptions",
        "copyQuestions",
        "rollbackForm",
    })

    async def run_item(
        self,
        service: FormEditorService,
        operation: str,
        params: Dict[str, Any],
        incoming: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        if operation == "getAll":
            return await service.get_all_forms()
        if operation == "get":
            return [await service.get_form(require_param(params, "formId"))]
        if operation == "listQuestions":
            return await service.list_questions(require_param(params, "formId"))
        if operation == "listSourceQuestionGroups":
            return await service.list_source_question_groups(require_param(params, "sourceFormId"))
        if operation == "listFormOptions":
            return await service.list_form_options(param_bool(params, "includeCreateNew"))

        flags = flags_from_params(params)

        if operation == "addField":
            try:
                field = FieldSpec(
                    field_type=require_param(params, "fieldType"),
                    custom_type=params.get("customFieldType"),
                    label=params.get("label") or "",
                    title=params.get("title") or "",
                    placeholder=params.get("placeholder") or "",
                    required=param_bool(params, "required"),
                    options=parse_json_param(params.get("optionsJson"), "optionsJson", list, []),
                    payload=parse_json_param(params.get("payload"), "payload", dict, {}),
                )
            except PydanticValidationError as exc:
                first = exc.errors()[0]
                where = ".".join(str(p) for p in first.get("loc", ()))
                raise ValidationError(f"Invalid field definition ({where}): {first.get('msg')}", parameter=where) from exc
            result = await service.add_field(
                require_param(params, "formId"), field, position_from_params(params), flags
            )
        elif operation == "updateField":
            result = await service.update_field(
                require_param(params, "formId"),
                selector_from_params(params),
                parse_json_param(params.get("payloadPatch"), "payloadPatch", dict, {}),
                params.get("mergeStrategy") or "merge",
                flags,
            )
        elif operation == "deleteField":
            result = await service.delete_fields(require_param(params, "formId"), selector_from_params(params), flags)
        elif operation == "syncSelectOptions":
            result = await service.sync_select_options(
                require_param(params, "formId"),
                selector_from_params(params),
                parse_json_param(params.get("optionsJson"), "optionsJson", list, []),
                param_bool(params, "preserveExtras"),
                flags,
            )
        elif operation == "copyQuestions":
            result = await service.copy_questions(
                require_param(params, "sourceFormId"),
                require_param(params, "destFormId"),
                group_uuids=params.get("sourceQuestionGroups") or [],
                question_uuids=params.get("questionIds") or [],
                copy_all=param_bool(params, "copyAll"),
                replace_contents=param_bool(params, "replaceContents"),
                position=position_from_params(params, prefix="insert"),
                flags=flags,
            )
        else:  # rollbackForm
            backup = pick_backup_candidate(params.get("backupFormJson"), incoming)
            result = await service.rollback_form(require_param(params, "rollbackFormId"), backup, flags)

        return [result]
