# tallyflow/exceptions/api_exceptions.py
from typing import Any, Dict, Optional
from .logging_utils import error_tracker


class HandlerError(Exception):
    """Error controlado dentro del handler para formateo uniforme."""

    def __init__(self, message: str, component: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.component = component
        self.context = context

        # Auto-log del error
        if component:
            error_tracker.track_error(
                error=self,
                component=component,
                operation="handler_execution",
                context=context
            )


class RemoteApiError(HandlerError):
    """Respuesta no exitosa (o error GraphQL) de la API de Tally"""

    def __init__(
        self,
        message: str,
        description: Optional[str] = None,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        response_body: Optional[str] = None,
    ):
        self.description = description
        self.status_code = status_code
        self.endpoint = endpoint
        self.response_body = response_body

        context = {
            "endpoint": endpoint,
            "status_code": status_code,
            "description": description,
            "response_preview": response_body[:200] if response_body else None,
        }
        super().__init__(message, component="TALLY_API", context=context)

    def __str__(self) -> str:
        if self.description:
            return f"{self.message} ({self.description})"
        return self.message


class ValidationError(HandlerError):
    """Parámetro faltante o mal formado, o selección que no resolvió nada"""

    def __init__(self, message: str, parameter: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        self.parameter = parameter
        ctx = dict(context or {})
        if parameter:
            ctx["parameter"] = parameter
        super().__init__(message, component="VALIDATION", context=ctx)


class ConflictError(HandlerError):
    """El formulario cambió (``updatedAt``) entre la lectura y la escritura"""

    def __init__(
        self,
        form_id: str,
        expected: Optional[str],
        actual: Optional[str],
        message: str = "Form changed since read. Re-run to avoid conflicts.",
    ):
        self.form_id = form_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            message,
            component="OPTIMISTIC_CONCURRENCY",
            context={"form_id": form_id, "expected_updated_at": expected, "actual_updated_at": actual},
        )
