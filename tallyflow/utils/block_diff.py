# tallyflow/utils/block_diff.py

from typing import Any, Dict, List, Optional, Sequence

from tallyflow.core.config import settings
from tallyflow.dtos.block_dto import BlockChange, BlockChangeDetails, OptionsDelta

Block = Dict[str, Any]


def _shallow_equal(a: Dict[str, Any], b: Dict[str, Any]) -> bool:
    """Igualdad clave a clave en un solo nivel."""
    if a.keys() != b.keys():
        return False
    return all(a[k] == b[k] for k in a)


def _options_delta(before: Any, after: Any) -> OptionsDelta:
    b = before if isinstance(before, list) else []
    a = after if isinstance(after, list) else []
    before_values = {o.get("value") for o in b if isinstance(o, dict)}
    after_values = {o.get("value") for o in a if isinstance(o, dict)}
    return OptionsDelta(
        added=len(after_values - before_values),
        removed=len(before_values - after_values),
        beforeCount=len(b),
        afterCount=len(a),
    )


def _changed_paths(before: Any, after: Any, depth: int, prefix: str = "") -> List[str]:
    """Rutas (``a.b.c``) de entradas distintas, bajando hasta ``depth`` niveles."""
    paths: List[str] = []
    for key in list(before.keys()) + [k for k in after.keys() if k not in before]:
        path = f"{prefix}{key}"
        if key not in before or key not in after:
            paths.append(path)
            continue
        old, new = before[key], after[key]
        if old == new:
            continue
        if depth > 1 and isinstance(old, dict) and isinstance(new, dict):
            paths.extend(_changed_paths(old, new, depth - 1, f"{path}."))
        else:
            paths.append(path)
    return paths


def diff_blocks(
    before: Sequence[Block],
    after: Sequence[Block],
    payload_depth: Optional[int] = None,
) -> List[BlockChange]:
    """
    Diff estructural por uuid entre dos listas de bloques.

    Emite ``added`` (solo en ``after``), ``updated`` (en ambas, con cambios de
    ``type``/``label`` o de payload a un nivel) y ``removed`` (solo en
    ``before``). Si ambos payloads tienen ``options`` se añade
    ``optionsDelta``. Con ``payload_depth > 0`` también se listan las rutas
    cambiadas del payload en ``payloadPaths``.
    """
    depth = settings.TALLY_DIFF_PAYLOAD_DEPTH if payload_depth is None else payload_depth
    before_map = {b.get("uuid"): b for b in before}
    after_map = {a.get("uuid"): a for a in after}
    changes: List[BlockChange] = []

    for uuid, a in after_map.items():
        b = before_map.get(uuid)
        if b is None:
            details = BlockChangeDetails(payload=True) if a.get("payload") else None
            changes.append(BlockChange(uuid=uuid, type=a.get("type"), label=a.get("label"), change="added", details=details))
            continue

        before_payload = b.get("payload") or {}
        after_payload = a.get("payload") or {}
        payload_changed = not _shallow_equal(before_payload, after_payload)
        meta_changed = b.get("type") != a.get("type") or b.get("label") != a.get("label")
        if not (payload_changed or meta_changed):
            continue

        details = BlockChangeDetails()
        if payload_changed:
            details.payload = True
            if isinstance(before_payload.get("options"), list) and isinstance(after_payload.get("options"), list):
                details.optionsDelta = _options_delta(before_payload["options"], after_payload["options"])
            if depth > 0:
                details.payloadPaths = _changed_paths(before_payload, after_payload, depth)
        if meta_changed:
            details.meta = True
        changes.append(BlockChange(uuid=uuid, type=a.get("type"), label=a.get("label"), change="updated", details=details))

    for uuid, b in before_map.items():
        if uuid not in after_map:
            changes.append(BlockChange(uuid=uuid, type=b.get("type"), label=b.get("label"), change="removed"))

    return changes


def diff_to_output(changes: Sequence[BlockChange]) -> List[Dict[str, Any]]:
    return [c.to_output() for c in changes]
