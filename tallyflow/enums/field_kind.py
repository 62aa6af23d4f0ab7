# tallyflow/enums/field_kind.py

from enum import Enum
from typing import Any, Dict, Optional, Tuple


class FieldKind(str, Enum):
    """Tipos de campo que expone el nodo (valor = nombre en la UI)"""
    INPUT        = "input"
    TEXTAREA     = "textarea"
    EMAIL        = "email"
    URL          = "url"
    PHONE        = "phone"
    NUMBER       = "number"
    DATE         = "date"
    TIME         = "time"
    SELECT       = "select"
    RADIO        = "radio"
    CHECKBOXES   = "checkboxes"
    MULTI_SELECT = "multi_select"
    RATING       = "rating"
    FILE_UPLOAD  = "file_upload"
    CUSTOM       = "custom"


# FieldKind -> tipo crudo de bloque en Tally
TALLY_BLOCK_TYPES: Dict[FieldKind, str] = {
    FieldKind.INPUT:        "INPUT_TEXT",
    FieldKind.TEXTAREA:     "TEXTAREA",
    FieldKind.EMAIL:        "INPUT_EMAIL",
    FieldKind.URL:          "INPUT_LINK",
    FieldKind.PHONE:        "INPUT_PHONE_NUMBER",
    FieldKind.NUMBER:       "INPUT_NUMBER",
    FieldKind.DATE:         "INPUT_DATE",
    FieldKind.TIME:         "INPUT_TIME",
    FieldKind.SELECT:       "SELECT",
    FieldKind.RADIO:        "RADIO",
    FieldKind.CHECKBOXES:   "CHECKBOXES",
    FieldKind.MULTI_SELECT: "MULTI_SELECT",
    FieldKind.RATING:       "RATING",
    FieldKind.FILE_UPLOAD:  "FILE_UPLOAD",
}

# Tipos de entrada de texto: llevan isRequired/placeholder por defecto
TEXT_INPUT_TYPES = frozenset({
    "INPUT_TEXT",
    "INPUT_EMAIL",
    "TEXTAREA",
    "INPUT_PHONE_NUMBER",
    "INPUT_LINK",
    "INPUT_NUMBER",
    "INPUT_DATE",
    "INPUT_TIME",
})

# Campos de opciones: (groupType, tipo de cada bloque opción)
OPTION_GROUP_TYPES: Dict[str, Tuple[str, str]] = {
    "SELECT":       ("DROPDOWN", "DROPDOWN_OPTION"),
    "RADIO":        ("MULTIPLE_CHOICE", "MULTIPLE_CHOICE_OPTION"),
    "CHECKBOXES":   ("CHECKBOXES", "CHECKBOX"),
    "MULTI_SELECT": ("MULTI_SELECT", "MULTI_SELECT_OPTION"),
}


def resolve_tally_type(field_type: str, custom_type: Optional[str] = None) -> str:
    """
    Traduce el tipo elegido en el nodo al tipo crudo de Tally.

    Para ``custom`` se usa ``custom_type`` (por defecto ``TEXT``); cualquier
    nombre que no sea un FieldKind conocido se pasa en mayúsculas.
    """
    raw = (field_type or "").strip()
    if raw == FieldKind.CUSTOM.value:
        raw = (custom_type or "TEXT").strip()
    try:
        kind = FieldKind(raw)
    except ValueError:
        return raw.upper()
    return TALLY_BLOCK_TYPES.get(kind, raw.upper())


def is_option_type(tally_type: str) -> bool:
    return tally_type in OPTION_GROUP_TYPES


def supports_placeholder(tally_type: str) -> bool:
    return tally_type in TEXT_INPUT_TYPES


def default_payload_for(tally_type: str, is_required: bool = False, placeholder: str = "") -> Dict[str, Any]:
    """Payload por defecto de un bloque de campo (no opciones) según su tipo"""
    payload: Dict[str, Any] = {"isRequired": bool(is_required)}
    if tally_type == "INPUT_PHONE_NUMBER":
        payload["internationalFormat"] = False
    if supports_placeholder(tally_type):
        payload["placeholder"] = placeholder
    return payload
