# tallyflow/utils/block_utils.py
"""
Primitivas puras para editar la lista ``blocks`` de un formulario Tally.

Los bloques son dicts abiertos (registros JSON): las claves que no conocemos
viajan intactas. Ninguna función modifica sus entradas; todas devuelven
copias nuevas (deep copy de los payloads embebidos).

Las búsquedas devuelven resultados explícitos (``BlockLookup``,
``LabelLookup``) en vez de lanzar: decidir si "no encontrado" es un error
le corresponde al orquestador.
"""

import copy
import uuid as uuid_lib
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

from tallyflow.dtos.operation_dto import InsertPosition
from tallyflow.enums.field_kind import OPTION_GROUP_TYPES, TEXT_INPUT_TYPES

Block = Dict[str, Any]


class BlockLookup(NamedTuple):
    index: int
    block: Optional[Block]

    @property
    def found(self) -> bool:
        return self.index >= 0


class LabelLookup(NamedTuple):
    block_uuid: Optional[str]
    question: Optional[Dict[str, Any]]

    @property
    def found(self) -> bool:
        return bool(self.block_uuid)


def generate_uuid() -> str:
    """UUID v4 en formato canónico (36 caracteres con guiones)."""
    return str(uuid_lib.uuid4())


def group_key(block: Block) -> Optional[str]:
    """Clave de grupo: ``groupUuid`` o, si falta, el propio ``uuid``."""
    return block.get("groupUuid") or block.get("uuid")


def clone_blocks(blocks: Sequence[Block]) -> List[Block]:
    return copy.deepcopy(list(blocks))


def clone_form(form: Dict[str, Any]) -> Dict[str, Any]:
    return copy.deepcopy(form)


def find_block_by_uuid(blocks: Sequence[Block], uuid: str) -> BlockLookup:
    for index, block in enumerate(blocks):
        if block.get("uuid") == uuid:
            return BlockLookup(index, block)
    return BlockLookup(-1, None)


def question_uuid(question: Dict[str, Any]) -> Optional[str]:
    """UUID de bloque de una pregunta del listado ``/questions``."""
    return question.get("blockUuid") or question.get("id") or question.get("uuid")


def find_block_by_label(questions: Iterable[Dict[str, Any]], label: str) -> LabelLookup:
    """Primera pregunta cuyo ``label`` (o ``title``) coincide exactamente tras ``strip()``."""
    wanted = (label or "").strip()
    for question in questions:
        text = question.get("label") or question.get("title") or ""
        if str(text).strip() == wanted:
            return LabelLookup(question_uuid(question), question)
    return LabelLookup(None, None)


def insert_block(blocks: Sequence[Block], block: Block, position: Optional[InsertPosition] = None) -> List[Block]:
    """
    Inserta ``block`` según ``position``:
      - ``None`` / ``end``: al final.
      - ``index``: en ``index`` acotado a ``[0, len]``.
      - ``before`` / ``after``: relativo a ``ref_uuid``; si la referencia
        no existe se agrega al final.
    """
    next_blocks = clone_blocks(blocks)
    new_block = copy.deepcopy(block)
    if position is None or position.mode == "end":
        next_blocks.append(new_block)
        return next_blocks

    if position.mode == "index":
        idx = max(0, min(position.index, len(next_blocks)))
        next_blocks.insert(idx, new_block)
        return next_blocks

    ref = find_block_by_uuid(next_blocks, position.ref_uuid or "")
    if not ref.found:
        next_blocks.append(new_block)
        return next_blocks
    insert_idx = ref.index if position.mode == "before" else ref.index + 1
    next_blocks.insert(insert_idx, new_block)
    return next_blocks


def insert_blocks(blocks: Sequence[Block], new_blocks: Sequence[Block], position: Optional[InsertPosition] = None) -> List[Block]:
    """Inserta varios bloques conservando su orden relativo en todos los modos."""
    next_blocks = clone_blocks(blocks)
    if position is None or position.mode in ("end", "before"):
        for block in new_blocks:
            next_blocks = insert_block(next_blocks, block, position)
        return next_blocks

    if position.mode == "index":
        idx = position.index
        for block in new_blocks:
            next_blocks = insert_block(next_blocks, block, InsertPosition.at_index(idx))
            idx = max(0, min(idx, len(next_blocks) - 1)) + 1
        return next_blocks

    # after: cada bloque va detrás del último insertado
    ref_uuid = position.ref_uuid
    for block in new_blocks:
        next_blocks = insert_block(next_blocks, block, InsertPosition.after(ref_uuid or ""))
        ref_uuid = block.get("uuid")
    return next_blocks


def replace_block(blocks: Sequence[Block], uuid: str, new_block: Block) -> List[Block]:
    """Sustituye el bloque ``uuid``; si no existe devuelve una copia sin cambios."""
    next_blocks = clone_blocks(blocks)
    lookup = find_block_by_uuid(next_blocks, uuid)
    if lookup.found:
        next_blocks[lookup.index] = copy.deepcopy(new_block)
    return next_blocks


def remove_blocks(blocks: Sequence[Block], uuids: Iterable[str]) -> List[Block]:
    to_remove = set(uuids)
    return [copy.deepcopy(b) for b in blocks if b.get("uuid") not in to_remove]


def replace_group_blocks(blocks: Sequence[Block], group_uuid: str, replacement: Sequence[Block]) -> List[Block]:
    """
    Reemplaza todos los bloques del grupo por ``replacement``, en la posición
    del primer miembro. Si el grupo no existe no cambia nada.
    """
    out: List[Block] = []
    replaced = False
    for block in blocks:
        if group_key(block) == group_uuid:
            if not replaced:
                out.extend(copy.deepcopy(list(replacement)))
                replaced = True
            continue
        out.append(copy.deepcopy(block))
    return out


def clone_block_with_new_ids(block: Block, regenerate_group: bool = False) -> Block:
    clone = copy.deepcopy(block)
    clone["uuid"] = generate_uuid()
    if regenerate_group:
        clone["groupUuid"] = generate_uuid()
    return clone


def clone_group_blocks(blocks: Sequence[Block], group_uuid: str) -> List[Block]:
    """
    Clona los miembros del grupo con un ``groupUuid`` nuevo (compartido) y un
    ``uuid`` nuevo por bloque, en el mismo orden. Grupo vacío -> ``[]``.
    """
    members = [b for b in blocks if group_key(b) == group_uuid]
    if not members:
        return []
    new_group_uuid = generate_uuid()
    clones = []
    for member in members:
        clone = copy.deepcopy(member)
        clone["uuid"] = generate_uuid()
        clone["groupUuid"] = new_group_uuid
        clones.append(clone)
    return clones


def resolve_group_uuid_by_block_uuid(blocks: Sequence[Block], uuid: str) -> Optional[str]:
    lookup = find_block_by_uuid(blocks, uuid)
    if not lookup.found:
        return None
    return lookup.block.get("groupUuid")


def ensure_unique_uuids(blocks: Sequence[Block]) -> List[Block]:
    """
    Una pasada izquierda a derecha: la primera aparición de cada uuid se
    conserva y los duplicados posteriores reciben un uuid nuevo.
    """
    taken = {b.get("uuid") for b in blocks}
    seen = set()
    out: List[Block] = []
    for block in blocks:
        clone = copy.deepcopy(block)
        if clone.get("uuid") in seen:
            new_uuid = generate_uuid()
            while new_uuid in taken:
                new_uuid = generate_uuid()
            clone["uuid"] = new_uuid
            taken.add(new_uuid)
        seen.add(clone.get("uuid"))
        out.append(clone)
    return out


def update_select_options(block: Block, options: Sequence[Dict[str, Any]], preserve_extras: bool = False) -> Block:
    """
    Reescribe ``payload.options``.

    Con ``preserve_extras`` se fusiona por ``value``: las existentes que
    coinciden actualizan su ``label`` en su sitio, las que solo existen antes
    se conservan y las nuevas se agregan al final. Sin él, la lista se
    reemplaza completa en el orden recibido.
    """
    next_block = copy.deepcopy(block)
    payload = dict(next_block.get("payload") or {})
    existing = payload.get("options") if isinstance(payload.get("options"), list) else []

    if preserve_extras:
        merged = [copy.deepcopy(o) for o in existing]
        # primera posición de cada value; sin value o repetidas se conservan por posición
        by_value: Dict[Any, int] = {}
        for idx, option in enumerate(merged):
            value = option.get("value") if isinstance(option, dict) else None
            if value is not None and value not in by_value:
                by_value[value] = idx
        for option in options:
            value = option.get("value")
            if value is not None and value in by_value:
                merged[by_value[value]]["label"] = option.get("label")
                continue
            merged.append(copy.deepcopy(dict(option)))
            if value is not None:
                by_value[value] = len(merged) - 1
        payload["options"] = merged
    else:
        payload["options"] = [copy.deepcopy(dict(o)) for o in options]

    next_block["payload"] = payload
    return next_block


def new_block_template(block_type: str, label: str, payload: Optional[Dict[str, Any]] = None) -> Block:
    """
    Bloque nuevo con ``uuid`` y ``groupUuid`` frescos (``groupType`` = tipo).
    Los tipos de texto reciben ``isRequired``/``placeholder`` por defecto,
    sobrescribibles desde ``payload``.
    """
    merged: Dict[str, Any] = {}
    if block_type in TEXT_INPUT_TYPES:
        merged.update({"isRequired": False, "placeholder": ""})
    merged.update(copy.deepcopy(payload or {}))

    block: Block = {
        "uuid": generate_uuid(),
        "type": block_type,
        "label": label,
        "groupUuid": generate_uuid(),
        "groupType": block_type,
    }
    if merged:
        block["payload"] = merged
    return block


def new_title_block(title: str) -> Block:
    # groupType QUESTION: el título se asocia a la pregunta que le sigue
    block = new_block_template("TITLE", "", {"safeHTMLSchema": [[title]]})
    block["groupType"] = "QUESTION"
    return block


def new_option_group_blocks(block_type: str, labels: Sequence[str], is_required: bool = False) -> List[Block]:
    """Un bloque por opción, todos en un mismo grupo nuevo (SELECT, RADIO, ...)."""
    group_type, option_type = OPTION_GROUP_TYPES[block_type]
    group_uuid = generate_uuid()
    last = len(labels) - 1
    return [
        {
            "uuid": generate_uuid(),
            "type": option_type,
            "label": text,
            "groupUuid": group_uuid,
            "groupType": group_type,
            "payload": {
                "index": idx,
                "isRequired": bool(is_required),
                "isFirst": idx == 0,
                "isLast": idx == last,
                "text": text,
            },
        }
        for idx, text in enumerate(labels)
    ]


def is_question_title(block: Optional[Block]) -> bool:
    return bool(block) and block.get("type") == "TITLE" and block.get("groupType") == "QUESTION"


def schema_to_text(schema: Any) -> str:
    """Texto plano de un ``safeHTMLSchema`` (listas anidadas de strings)."""
    parts: List[str] = []

    def walk(node: Any) -> None:
        if isinstance(node, list):
            for child in node:
                walk(child)
        elif isinstance(node, str):
            parts.append(node)

    walk(schema)
    return " ".join(parts).strip()
