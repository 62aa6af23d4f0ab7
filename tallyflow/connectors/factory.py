# tallyflow/connectors/factory.py

import importlib
import pkgutil
from typing import Any, Dict, Type

from tallyflow.handlers.connector_handler import ActionHandler
from tallyflow.exceptions.logging_utils import get_tally_logger

logger = get_tally_logger(__name__)

# Registro dinámico para "tools" (invocado desde el agente)
_TOOL_REGISTRY: Dict[str, Type[ActionHandler]] = {}

# Registro dinámico para "nodes" (workflows)
_NODE_REGISTRY: Dict[str, Type[ActionHandler]] = {}


def register_tool(name: str):
    """
    Decorador para registrar un handler invocable como tool.
    Example: @register_tool("Tally.form")
    """

    def decorator(cls: Type[ActionHandler]):
        _TOOL_REGISTRY[name] = cls
        logger.debug(f"Registered tool handler: {name} -> {cls.__name__}")
        return cls

    return decorator


def register_node(name: str):
    """
    Decorador para registrar un handler de nodo workflow.
    name debe coincidir con la clave del nodo: e.g. "Tally.form"
    """
    def decorator(cls: Type[ActionHandler]):
        _NODE_REGISTRY[name] = cls
        logger.debug(f"Registered node handler: {name} -> {cls.__name__}")
        return cls
    return decorator


def _get_handler_from_registry(
    registry: Dict[str, Type[ActionHandler]],
    key: str,
    handler_type: str
) -> ActionHandler:
    """
    Función unificada para obtener handlers de cualquier registry.
    """
    scan_handlers()
    HandlerCls = registry.get(key)
    if not HandlerCls:
        available_keys = list(registry.keys())
        logger.error(f"No {handler_type} handler found for '{key}'. Available: {available_keys}")
        raise ValueError(f"No existe {handler_type} handler para '{key}'. Disponibles: {available_keys}")
    # Los handlers reciben las credenciales en execute(), no en el constructor
    return HandlerCls()


def get_tool_handler(tool_name: str) -> ActionHandler:
    """
    Devuelve la instancia del handler registrado como tool `tool_name`.
    """
    return _get_handler_from_registry(_TOOL_REGISTRY, tool_name, "tool")


def get_node_handler(node_name: str, action_name: str | None = None) -> ActionHandler:
    """
    Devuelve la instancia del handler registrado como node. Prueba primero
    ``node.action`` y luego ``node`` a secas.
    """
    scan_handlers()
    if action_name:
        constructed_key = f"{node_name}.{action_name}"
        if constructed_key in _NODE_REGISTRY:
            return _get_handler_from_registry(_NODE_REGISTRY, constructed_key, "node")
    return _get_handler_from_registry(_NODE_REGISTRY, node_name, "node")


async def execute_tool(
    tool_name: str,
    params: Dict[str, Any],
    creds: Dict[str, Any]
) -> Dict[str, Any]:
    logger.debug(f"Ejecutando tool: {tool_name}", provided_params=list(params.keys()))
    handler = get_tool_handler(tool_name)
    return await handler.execute(params, creds)


async def execute_node(
    node_name: str,
    params: Dict[str, Any],
    creds: Dict[str, Any],
    action_name: str | None = None,
) -> Dict[str, Any]:
    """
    Ejecuta un nodo registrado.

    Args:
        node_name: Nombre del nodo (p. ej. "Tally.form")
        params: Parámetros del nodo (incluye ``operation``)
        creds: Credenciales del host
        action_name: Acción opcional si el nodo se registró como ``node.action``
    """
    logger.debug(f"Ejecutando nodo: {node_name}", operation=params.get("operation"))
    handler = get_node_handler(node_name, action_name)
    # Las credenciales viajan dentro de params
    params_with_creds = {**params, "creds": creds}
    return await handler.execute(params_with_creds)


_SCANNED = False


def scan_handlers() -> None:
    global _SCANNED
    if _SCANNED:
        return
    import tallyflow.handlers
    for _, module_name, _ in pkgutil.iter_modules(tallyflow.handlers.__path__):
        importlib.import_module(f"tallyflow.handlers.{module_name}")
    _SCANNED = True


def get_registry_status() -> Dict[str, Any]:
    """
    Función de debug para inspeccionar el estado de los registries.
    """
    return {
        "tools_registered": len(_TOOL_REGISTRY),
        "nodes_registered": len(_NODE_REGISTRY),
        "tool_keys": list(_TOOL_REGISTRY.keys()),
        "node_keys": list(_NODE_REGISTRY.keys()),
        "scanned": _SCANNED
    }
