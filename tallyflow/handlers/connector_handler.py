# tallyflow/handlers/connector_handler.py

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class ActionHandler(ABC):
    @abstractmethod
    async def execute(
        self,
        params: Dict[str, Any],
        creds: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Ejecuta esta acción específica y devuelve el dict:
        {status, output, error?, duration_ms}
        """
        ...
