"""
Base Tally Handler
Resuelve credenciales, recorre los items de entrada y arma el resultado del nodo
"""
import json
import time
from abc import abstractmethod
from typing import Any, Dict, List, Optional

from tallyflow.clients.tally_client import TallyClient, TallyRequest, make_tally_request
from tallyflow.core.config import settings
from tallyflow.dtos.operation_dto import FieldSelector, InsertPosition, OperationFlags
from tallyflow.exceptions.api_exceptions import HandlerError, ValidationError
from tallyflow.exceptions.logging_utils import get_tally_logger
from tallyflow.services.form_editor_service import FormEditorService

from .connector_handler import ActionHandler

logger = get_tally_logger(__name__)


def parse_json_param(value: Any, name: str, expected: type, default: Any = None) -> Any:
    """Acepta el valor ya parseado o un string JSON; lanza ValidationError si no encaja."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Parameter '{name}' is not valid JSON: {exc.msg}", parameter=name)
    if not isinstance(value, expected):
        raise ValidationError(f"Parameter '{name}' must be a JSON {expected.__name__}", parameter=name)
    return value


def param_bool(params: Dict[str, Any], name: str, default: bool = False) -> bool:
    """Booleano de un parámetro; los hosts pueden mandar ``"true"``/``"false"`` como texto."""
    value = params.get(name)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def flags_from_params(params: Dict[str, Any]) -> OperationFlags:
    flags = OperationFlags()
    for attr, key in (("dry_run", "dryRun"), ("backup", "backup"), ("optimistic", "optimistic")):
        if params.get(key) is not None:
            setattr(flags, attr, param_bool(params, key))
    return flags


def position_from_params(params: Dict[str, Any], prefix: str = "position") -> InsertPosition:
    """
    ``positionMode``/``positionIndex``/``positionRefUuid`` (o con prefijo
    ``insert``: ``insertPositionMode``/``insertIndex``/``insertRefUuid``).
    """
    mode_key = f"{prefix}Mode" if prefix == "position" else f"{prefix}PositionMode"
    mode = params.get(mode_key) or "end"
    if mode == "index":
        try:
            index = int(params.get(f"{prefix}Index") or 0)
        except (TypeError, ValueError):
            raise ValidationError(f"Parameter '{prefix}Index' must be an integer", parameter=f"{prefix}Index")
        return InsertPosition.at_index(index)
    if mode in ("before", "after"):
        ref_uuid = (params.get(f"{prefix}RefUuid") or "").strip()
        if not ref_uuid:
            raise ValidationError(f"A reference block UUID is required to insert {mode} a block", parameter=f"{prefix}RefUuid")
        return InsertPosition(mode=mode, ref_uuid=ref_uuid)
    if mode != "end":
        raise ValidationError(f"Unknown position mode '{mode}'", parameter=mode_key)
    return InsertPosition.end()


def selector_from_params(params: Dict[str, Any]) -> FieldSelector:
    """Selector por ``targetFieldUuid(s)`` o ``targetFieldLabel(s)`` según ``targetSelectBy``."""
    if (params.get("targetSelectBy") or "uuid") == "label":
        labels = list(params.get("targetFieldLabels") or [])
        if params.get("targetFieldLabel"):
            labels.insert(0, params["targetFieldLabel"])
        return FieldSelector.by_label(*labels)
    uuids = list(params.get("targetFieldUuids") or [])
    if params.get("targetFieldUuid"):
        uuids.insert(0, params["targetFieldUuid"])
    return FieldSelector.by_uuid(*uuids)


def require_param(params: Dict[str, Any], name: str) -> Any:
    value = params.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Parameter '{name}' is required", parameter=name)
    return value


class BaseTallyHandler(ActionHandler):
    """
    Base de los nodos Tally.

    ``params`` lleva los parámetros del nodo más:
      - ``operation`` (str)
      - ``items`` (list, opcional): items de entrada ``{"json": {...}, "params": {...}}``;
        los ``params`` de cada item pisan a los del nodo.
      - ``continueOnFail`` (bool): si un item falla se emite ``{"error": ...}`` y se sigue.
      - ``creds`` (dict): ``{"api_token": "..."}``.
    """

    operations: frozenset = frozenset()

    def __init__(self, request: Optional[TallyRequest] = None):
        # ``request`` permite inyectar el transporte (tests, otros hosts)
        self._request = request

    def _build_service(self, creds: Dict[str, Any]) -> FormEditorService:
        if self._request is not None:
            return FormEditorService(TallyClient(self._request))
        token = creds.get("api_token") or creds.get("apiToken") or settings.TALLY_API_TOKEN
        if not token:
            raise ValidationError("Tally API token is missing from the node credentials", parameter="creds")
        return FormEditorService(TallyClient(make_tally_request(token)))

    @abstractmethod
    async def run_item(
        self,
        service: FormEditorService,
        operation: str,
        params: Dict[str, Any],
        incoming: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """Ejecuta la operación para un item y devuelve sus registros de salida."""
        ...

    async def execute(
        self,
        params: Dict[str, Any],
        creds: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        start = time.perf_counter()
        creds = creds or params.get("creds") or {}
        operation = params.get("operation")
        continue_on_fail = param_bool(params, "continueOnFail")
        node_params = {k: v for k, v in params.items() if k not in ("creds", "items")}
        items = params.get("items") or [{}]

        if operation not in self.operations:
            return self._envelope(start, error=f"Unsupported operation '{operation}'. Available: {sorted(self.operations)}")

        try:
            service = self._build_service(creds)
        except HandlerError as exc:
            return self._envelope(start, error=str(exc))

        output: List[Dict[str, Any]] = []
        for i, item in enumerate(items):
            item_params = {**node_params, **(item.get("params") or {})}
            incoming = item.get("json") or {}
            try:
                records = await self.run_item(service, operation, item_params, incoming)
            except HandlerError as exc:
                if continue_on_fail:
                    output.append({"json": {"error": str(exc)}, "pairedItem": {"item": i}})
                    continue
                return self._envelope(start, error=str(exc))
            except Exception as exc:
                logger.error(f"Unexpected error running {operation}", error=exc, item=i)
                if continue_on_fail:
                    output.append({"json": {"error": str(exc) or type(exc).__name__}, "pairedItem": {"item": i}})
                    continue
                return self._envelope(start, error=str(exc) or type(exc).__name__)
            output.extend({"json": record, "pairedItem": {"item": i}} for record in records)

        logger.info(f"Operación {operation} completada", items=len(items), records=len(output))
        return self._envelope(start, output=output)

    @staticmethod
    def _envelope(start: float, output: Any = None, error: Optional[str] = None) -> Dict[str, Any]:
        return {
            "status": "error" if error else "success",
            "output": output,
            "error": error,
            "duration_ms": int((time.perf_counter() - start) * 1000),
        }
