# tallyflow/services/form_editor_service.py

import json
import time
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from tallyflow.clients.tally_client import TallyClient
from tallyflow.core.service_urls import CREATE_NEW_FORM_SENTINEL, SUBMISSIONS_PATH_TEMPLATE
from tallyflow.dtos.block_dto import TallyForm, TallySelectOption
from tallyflow.dtos.operation_dto import FieldSelector, FieldSpec, InsertPosition, OperationFlags
from tallyflow.enums.field_kind import (
    default_payload_for,
    is_option_type,
    resolve_tally_type,
    supports_placeholder,
)
from tallyflow.exceptions.api_exceptions import ConflictError, ValidationError
from tallyflow.exceptions.logging_utils import get_tally_logger
from tallyflow.utils.block_diff import diff_blocks, diff_to_output
from tallyflow.utils.block_utils import (
    Block,
    clone_block_with_new_ids,
    clone_blocks,
    clone_group_blocks,
    ensure_unique_uuids,
    find_block_by_label,
    find_block_by_uuid,
    group_key,
    insert_blocks,
    is_question_title,
    new_block_template,
    new_option_group_blocks,
    new_title_block,
    remove_blocks,
    replace_block,
    resolve_group_uuid_by_block_uuid,
    schema_to_text,
    update_select_options,
)
from tallyflow.utils.submission_transforms import flatten_submission

logger = get_tally_logger(__name__)

FORM_CONFLICT_MESSAGE = "Form changed since read. Re-run to avoid conflicts."
DEST_CONFLICT_MESSAGE = "Destination form changed since read. Re-run to avoid conflicts."
NO_SUBMISSIONS_MESSAGE = "No submissions found for this form"


def pick_backup_candidate(explicit: Any, incoming: Optional[Dict[str, Any]] = None) -> Any:
    """
    Elige el JSON del formulario a restaurar: el parámetro explícito si trae
    algo; si no, ``backup`` o ``form`` del item entrante, o el item mismo.
    """
    if isinstance(explicit, str):
        if explicit.strip():
            try:
                explicit = json.loads(explicit)
            except json.JSONDecodeError as exc:
                raise ValidationError(f"Backup Form JSON is not valid JSON: {exc.msg}", parameter="backupFormJson")
        else:
            explicit = None
    if explicit:
        return explicit

    incoming = incoming or {}
    if isinstance(incoming.get("backup"), dict):
        return incoming["backup"]
    if isinstance(incoming.get("form"), dict):
        return incoming["form"]
    return incoming


def _normalize_options(options: Sequence[Union[str, Dict[str, Any]]]) -> List[Dict[str, Any]]:
    normalized = []
    for option in options:
        if isinstance(option, str):
            text = option.strip()
            if text:
                normalized.append({"label": text, "value": text})
            continue
        try:
            normalized.append(TallySelectOption.model_validate(option).model_dump())
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid select option {option!r}: each option needs a label and a value",
                parameter="options",
            ) from exc
    return normalized


class FormEditorService:
    """
    Orquesta las operaciones sobre formularios Tally.

    Las operaciones de escritura siguen el mismo protocolo:
      1. leer el formulario (``before``),
      2. calcular los bloques nuevos en memoria,
      3. con ``dry_run`` devolver el preview (bloques propuestos + diff) sin escribir,
      4. con ``optimistic`` releer y comparar ``updatedAt`` (``ConflictError`` si cambió),
      5. hacer el PATCH y, con ``backup``, devolver también ``before``.

    La verificación del paso 4 no es atómica: entre esa lectura y el PATCH
    queda una ventana en la que otro cliente puede escribir. La API de Tally
    no ofrece bloqueo, así que solo se detectan los cambios previos a la
    verificación.
    """

    def __init__(self, client: TallyClient):
        self.client = client

    # ------------------------------------------------------------------ lecturas

    async def get_all_forms(self) -> List[Dict[str, Any]]:
        return await self.client.list_forms()

    async def get_form(self, form_id: str) -> Dict[str, Any]:
        return await self.client.get_form(form_id)

    async def list_questions(self, form_id: str) -> List[Dict[str, Any]]:
        return await self.client.list_questions(form_id)

    async def list_form_options(self, include_create_new: bool = False) -> List[Dict[str, Any]]:
        """Formularios como opciones ``{name, value}`` para la UI del nodo."""
        forms = await self.client.list_forms()
        options = [{"name": f.get("name"), "value": f.get("id")} for f in forms]
        if include_create_new:
            options.insert(0, {
                "name": "— Create New —",
                "value": CREATE_NEW_FORM_SENTINEL,
                "description": "Create a new form from JSON",
            })
        return options

    async def list_source_question_groups(self, form_id: str) -> List[Dict[str, Any]]:
        """
        Agrupa los bloques del formulario por grupo y da a cada uno un nombre
        legible: el TITLE que lo precede, si no la primera etiqueta de un input,
        si no ``"<TIPO> (<n> blocks)"``. Ordenado por nombre.
        """
        form = await self.client.get_form(form_id)
        blocks = form.get("blocks") or []
        groups: Dict[str, List[Block]] = {}
        first_index: Dict[str, int] = {}
        for idx, block in enumerate(blocks):
            key = group_key(block)
            groups.setdefault(key, []).append(block)
            first_index.setdefault(key, idx)

        options = []
        for key, members in groups.items():
            labelled = [m for m in members if isinstance(m.get("label"), str) and m["label"].strip()]
            label_block = next(
                (m for m in labelled if str(m.get("type") or "").startswith(("INPUT_", "TEXTAREA", "RATING", "FILE_UPLOAD"))),
                labelled[0] if labelled else None,
            )
            group_type = members[0].get("groupType") or members[0].get("type") or "QUESTION"

            name = None
            idx = first_index[key]
            if idx > 0 and is_question_title(blocks[idx - 1]):
                name = schema_to_text((blocks[idx - 1].get("payload") or {}).get("safeHTMLSchema")) or None
            if not name and label_block is not None:
                name = str(label_block["label"])
            if not name:
                count = len(members)
                name = f"{group_type} ({count} block{'' if count == 1 else 's'})"
            options.append({"name": name, "value": key, "description": f"Type: {group_type}"})

        options.sort(key=lambda o: o["name"])
        return options

    async def get_all_submissions(self, form_id: str, flatten: bool = False) -> List[Dict[str, Any]]:
        """
        Submissions del formulario como lista de registros. Acepta array,
        ``{items}``, ``{data}`` o ``{submissions}``; cualquier otra respuesta
        se devuelve como registro de diagnóstico.
        """
        data = await self.client.list_submissions_raw(form_id)
        endpoint = SUBMISSIONS_PATH_TEMPLATE.format(form_id=form_id)

        submissions: List[Dict[str, Any]] = []
        if isinstance(data, list):
            submissions = data
        elif isinstance(data, dict) and any(isinstance(data.get(k), list) for k in ("items", "data", "submissions")):
            key = next(k for k in ("items", "data", "submissions") if isinstance(data.get(k), list))
            submissions = data[key]
        elif isinstance(data, dict) or data:
            # {} (cuerpo vacío) también se devuelve como respuesta cruda
            logger.warning("Non-array response from submissions API", form_id=form_id)
            return [{
                "rawResponse": data,
                "note": "Non-array response from submissions API",
                "endpoint": endpoint,
            }]

        if not submissions:
            return [{"message": NO_SUBMISSIONS_MESSAGE, "formId": form_id}]

        if flatten:
            questions = data.get("questions") if isinstance(data, dict) else None
            form = {"fields": [
                {"id": q.get("id"), "label": q.get("title") or q.get("label")}
                for q in questions or []
            ]}
            return [flatten_submission(s, form) for s in submissions]
        return list(submissions)

    # ---------------------------------------------------------------- escrituras

    async def add_field(
        self,
        form_id: str,
        field: FieldSpec,
        position: Optional[InsertPosition] = None,
        flags: Optional[OperationFlags] = None,
    ) -> Dict[str, Any]:
        """Agrega un campo (con TITLE opcional) en la posición indicada."""
        flags = flags or OperationFlags()
        tally_type = resolve_tally_type(field.field_type, field.custom_type)
        option_field = is_option_type(tally_type)

        option_labels = [str(o).strip() for o in field.options if str(o).strip()]
        if option_field and not option_labels:
            raise ValidationError(
                "Options (JSON) is required for this field type and must be a non-empty array of strings.",
                parameter="optionsJson",
            )
        if not option_field and not field.label.strip():
            raise ValidationError("Label is required to add a field.", parameter="label")

        logger.log_operation_start("add_field", form_id=form_id, type=tally_type, position=position)
        before = await self.client.get_form(form_id)

        new_blocks: List[Block] = []
        if field.title.strip():
            new_blocks.append(new_title_block(field.title.strip()))
        if option_field:
            new_blocks.extend(new_option_group_blocks(tally_type, option_labels, field.required))
        else:
            placeholder = ""
            if supports_placeholder(tally_type):
                placeholder = field.placeholder.strip() or field.label
            payload = {**default_payload_for(tally_type, field.required, placeholder), **field.payload}
            new_blocks.append(new_block_template(tally_type, field.label, payload))

        next_blocks = insert_blocks(before.get("blocks") or [], new_blocks, position)
        return await self._commit(form_id, before, next_blocks, flags)

    async def update_field(
        self,
        form_id: str,
        selector: FieldSelector,
        payload_patch: Optional[Dict[str, Any]] = None,
        merge_strategy: str = "merge",
        flags: Optional[OperationFlags] = None,
    ) -> Dict[str, Any]:
        """Fusiona (``merge``) o reemplaza (``replace``) el payload de un campo."""
        flags = flags or OperationFlags()
        if merge_strategy not in ("merge", "replace"):
            raise ValidationError(f"Unknown merge strategy '{merge_strategy}'. Use 'merge' or 'replace'.", parameter="mergeStrategy")

        before = await self.client.get_form(form_id)
        blocks = before.get("blocks") or []
        index, block = await self._resolve_single_block(form_id, blocks, selector)

        next_block = dict(block)
        if merge_strategy == "replace":
            next_block["payload"] = dict(payload_patch or {})
        else:
            next_block["payload"] = {**(block.get("payload") or {}), **(payload_patch or {})}

        next_blocks = replace_block(blocks, block["uuid"], next_block)
        return await self._commit(form_id, before, next_blocks, flags)

    async def delete_fields(
        self,
        form_id: str,
        selector: FieldSelector,
        flags: Optional[OperationFlags] = None,
    ) -> Dict[str, Any]:
        """Elimina uno o varios campos; falla si la selección no resuelve ninguno."""
        flags = flags or OperationFlags()
        before = await self.client.get_form(form_id)

        uuids: List[str] = []
        if selector.select_by == "uuid":
            uuids = list(selector.uuids)
        else:
            questions = await self.client.list_questions(form_id)
            for label in selector.labels:
                lookup = find_block_by_label(questions, label)
                if lookup.found:
                    uuids.append(lookup.block_uuid)
                else:
                    logger.debug("Label not found, skipping", form_id=form_id, label=label)
        if not uuids:
            raise ValidationError("No matching fields were found to delete", parameter="targetFieldUuids")

        next_blocks = remove_blocks(before.get("blocks") or [], uuids)
        return await self._commit(form_id, before, next_blocks, flags)

    async def sync_select_options(
        self,
        form_id: str,
        selector: FieldSelector,
        options: Sequence[Union[str, Dict[str, Any]]],
        preserve_extras: bool = False,
        flags: Optional[OperationFlags] = None,
    ) -> Dict[str, Any]:
        """Reescribe ``payload.options`` de un campo de selección."""
        flags = flags or OperationFlags()
        normalized = _normalize_options(options)
        if not normalized:
            raise ValidationError("Options are required to sync a select field.", parameter="options")

        before = await self.client.get_form(form_id)
        blocks = before.get("blocks") or []
        _, block = await self._resolve_single_block(form_id, blocks, selector)

        next_block = update_select_options(block, normalized, preserve_extras)
        next_blocks = replace_block(blocks, block["uuid"], next_block)
        return await self._commit(form_id, before, next_blocks, flags)

    async def copy_questions(
        self,
        source_form_id: str,
        dest_form_id: str,
        group_uuids: Optional[Sequence[str]] = None,
        question_uuids: Optional[Sequence[str]] = None,
        copy_all: bool = False,
        replace_contents: bool = False,
        position: Optional[InsertPosition] = None,
        flags: Optional[OperationFlags] = None,
    ) -> Dict[str, Any]:
        """
        Copia grupos de preguntas de un formulario a otro con ids nuevos.

        Los grupos salen de ``group_uuids``, de ``question_uuids`` (uuid de
        bloque -> grupo) o de todo el origen con ``copy_all``. Un TITLE que
        precede a un grupo se copia con él salvo que su propio grupo ya esté
        seleccionado. ``replace_contents`` (solo con ``copy_all``) vacía el
        destino antes de insertar.
        """
        flags = flags or OperationFlags()
        if replace_contents and not copy_all:
            raise ValidationError("Replace Destination Contents can only be used together with Copy All.", parameter="replaceContents")

        source = await self.client.get_form(source_form_id)
        dest_before = await self.client.get_form(dest_form_id)
        source_blocks = source.get("blocks") or []

        if copy_all:
            selected = list(dict.fromkeys(group_key(b) for b in source_blocks))
        else:
            selected = []
            if group_uuids:
                selected = list(dict.fromkeys(g for g in group_uuids if g))
            elif question_uuids:
                resolved = (resolve_group_uuid_by_block_uuid(source_blocks, q) for q in question_uuids)
                selected = list(dict.fromkeys(g for g in resolved if g))
            if not selected:
                raise ValidationError(
                    "No questions selected. Choose Source Questions, provide UUIDs, or enable Copy All.",
                    parameter="sourceQuestionGroups",
                )

        selected_set = set(selected)
        copied: List[Block] = []
        for group_uuid in selected:
            cloned = clone_group_blocks(source_blocks, group_uuid)
            if not cloned:
                raise ValidationError(f"Question group {group_uuid} not found in source form {source_form_id}", parameter="sourceQuestionGroups")
            first_idx = next(i for i, b in enumerate(source_blocks) if group_key(b) == group_uuid)
            if first_idx > 0:
                prev = source_blocks[first_idx - 1]
                if is_question_title(prev) and group_key(prev) not in selected_set:
                    cloned.insert(0, clone_block_with_new_ids(prev, regenerate_group=True))
            copied.extend(cloned)

        next_blocks = [] if (copy_all and replace_contents) else clone_blocks(dest_before.get("blocks") or [])
        next_blocks = insert_blocks(next_blocks, copied, position)
        # Red de seguridad ante colisiones residuales de ids
        next_blocks = ensure_unique_uuids(next_blocks)

        logger.info("Copying question groups", source=source_form_id, dest=dest_form_id,
                    groups=len(selected), blocks=len(copied))
        result = await self._commit(dest_form_id, dest_before, next_blocks, flags, conflict_message=DEST_CONFLICT_MESSAGE)
        result["sourceFormId"] = source_form_id
        return result

    async def rollback_form(
        self,
        form_id: str,
        backup: Any,
        flags: Optional[OperationFlags] = None,
    ) -> Dict[str, Any]:
        """
        Restaura un formulario desde un backup completo. Con el centinela
        ``__CREATE_NEW__`` crea un formulario nuevo con los bloques, nombre y
        settings del backup en lugar de parchear uno existente.
        """
        flags = flags or OperationFlags()
        if not isinstance(backup, dict) or not isinstance(backup.get("blocks"), list):
            raise ValidationError(
                "No valid form JSON found. Provide Backup Form JSON or pass it from previous node ($json.backup, $json.form, or $json).",
                parameter="backupFormJson",
            )
        try:
            snapshot = TallyForm.model_validate(backup)
        except PydanticValidationError as exc:
            raise ValidationError(f"Backup form JSON has invalid blocks: {exc.error_count()} error(s)", parameter="backupFormJson") from exc
        next_blocks = snapshot.blocks_as_dicts()

        if form_id == CREATE_NEW_FORM_SENTINEL:
            if flags.dry_run:
                return {
                    "preview": True,
                    "createNew": True,
                    "proposedBlocks": next_blocks,
                    "name": snapshot.name,
                    "settings": snapshot.settings,
                }
            created = await self.client.create_form(
                name=snapshot.name or "Untitled Form",
                settings=snapshot.settings or {},
                blocks=next_blocks,
            )
            logger.info("Form created from backup", blocks=len(next_blocks))
            return {"created": True, "form": created}

        before = await self.client.get_form(form_id)
        name = snapshot.name if snapshot.name is not None else before.get("name")
        settings = snapshot.settings if snapshot.settings is not None else before.get("settings")
        return await self._commit(form_id, before, next_blocks, flags, name=name, settings=settings)

    # ------------------------------------------------------------------ internos

    async def _resolve_single_block(self, form_id: str, blocks: Sequence[Block], selector: FieldSelector):
        if selector.select_by == "label":
            label = selector.labels[0] if selector.labels else ""
            if not label.strip():
                raise ValidationError("Field label is required", parameter="targetFieldLabel")
            questions = await self.client.list_questions(form_id)
            lookup = find_block_by_label(questions, label)
            if not lookup.found:
                raise ValidationError(f'Field with label "{label}" not found', parameter="targetFieldLabel")
            target_uuid = lookup.block_uuid
        else:
            target_uuid = selector.uuids[0] if selector.uuids else ""
            if not target_uuid:
                raise ValidationError("Field UUID is required", parameter="targetFieldUuid")

        lookup = find_block_by_uuid(blocks, target_uuid)
        if not lookup.found:
            raise ValidationError(f"Field with UUID {target_uuid} not found", parameter="targetFieldUuid")
        return lookup.index, lookup.block

    async def _verify_unchanged(self, form_id: str, before: Dict[str, Any], message: str) -> None:
        latest = await self.client.get_form(form_id)
        if latest.get("updatedAt") != before.get("updatedAt"):
            logger.warning("Optimistic concurrency check failed", form_id=form_id,
                           expected=before.get("updatedAt"), actual=latest.get("updatedAt"))
            raise ConflictError(form_id, before.get("updatedAt"), latest.get("updatedAt"), message)

    async def _commit(
        self,
        form_id: str,
        before: Dict[str, Any],
        next_blocks: List[Block],
        flags: OperationFlags,
        name: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
        conflict_message: str = FORM_CONFLICT_MESSAGE,
    ) -> Dict[str, Any]:
        start = time.perf_counter()
        if flags.dry_run:
            changes = diff_blocks(before.get("blocks") or [], next_blocks)
            logger.info("Dry run, no changes written", form_id=form_id, changes=len(changes))
            return {
                "preview": True,
                "formId": form_id,
                "proposedBlocks": next_blocks,
                "diff": diff_to_output(changes),
            }

        if flags.optimistic:
            await self._verify_unchanged(form_id, before, conflict_message)

        updated = await self.client.update_form(
            form_id,
            blocks=next_blocks,
            name=name if name is not None else before.get("name"),
            settings=settings if settings is not None else before.get("settings"),
        )
        logger.log_operation_end("update_form", duration_ms=int((time.perf_counter() - start) * 1000),
                                 form_id=form_id, blocks=len(next_blocks))
        result: Dict[str, Any] = {"updated": True, "form": updated}
        if flags.backup:
            result["backup"] = before
        return result
