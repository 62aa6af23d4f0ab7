# tallyflow/handlers/tally_submission_handler.py

from typing import Any, Dict, List

from tallyflow.connectors.factory import register_node, register_tool
from tallyflow.services.form_editor_service import FormEditorService

from .base_tally_handler import BaseTallyHandler, param_bool, require_param


@register_node("Tally.submission")
@register_tool("Tally.submission")
class TallySubmissionHandler(BaseTallyHandler):
    """
    Handler para submissions de Tally.so.

    Parámetros en ``params``:
      - formId (str)
      - flatten (bool, opcional): respuestas aplanadas por etiqueta de pregunta
    """

    operations = frozenset({"getAll"})

    async def run_item(
        self,
        service: FormEditorService,
        operation: str,
        params: Dict[str, Any],
        incoming: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        return await service.get_all_submissions(
            require_param(params, "formId"),
            flatten=param_bool(params, "flatten"),
        )
