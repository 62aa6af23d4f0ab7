# tallyflow/utils/submission_transforms.py

import re
from typing import Any, Dict, Optional


def sanitize_field_name(name: str) -> str:
    """Nombre de campo apto como clave: sin símbolos, espacios a ``_``, minúsculas."""
    cleaned = re.sub(r"[^a-zA-Z0-9_\s]", "", name)
    return re.sub(r"\s+", "_", cleaned).lower()


def flatten_submission(submission: Dict[str, Any], form: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Aplana una submission de Tally: las respuestas quedan en ``answers``
    indexadas por la etiqueta de la pregunta (saneada). ``_raw`` conserva
    la submission original.
    """
    flattened: Dict[str, Any] = {
        "submissionId": submission.get("id"),
        "createdAt": submission.get("createdAt"),
        "answers": {},
        "_raw": submission,
    }

    field_map = {
        field.get("id"): field.get("label") or field.get("id")
        for field in (form or {}).get("fields") or []
    }

    answers = flattened["answers"]
    for answer in submission.get("answers") or []:
        key = (
            field_map.get(answer.get("fieldId"))
            or answer.get("question")
            or answer.get("fieldId")
            or f"field_{len(answers)}"
        )
        answers[re.sub(r"[^a-zA-Z0-9_]", "_", str(key)).lower()] = answer.get("value")

    return flattened
