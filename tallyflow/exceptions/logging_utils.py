"""
Utilidades centralizadas para logging y rastreo de errores del nodo Tally
"""

import logging
import traceback
from typing import Any, Dict, Optional
from datetime import datetime, timezone


class TallyLogger:
    """
    Logger estructurado: antepone el componente y añade el contexto como ``k=v``
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.component_name = name.split('.')[-1].upper()

    def _format_message(self, message: str, **kwargs) -> str:
        """Formatea el mensaje con información adicional"""
        prefix = f"{self.component_name}: {message}"
        if kwargs:
            additional_info = " | ".join([f"{k}={v}" for k, v in kwargs.items()])
            return f"{prefix} | {additional_info}"
        return prefix

    def info(self, message: str, **kwargs):
        self.logger.info(self._format_message(message, **kwargs))

    def debug(self, message: str, **kwargs):
        self.logger.debug(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs):
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, error: Optional[Exception] = None, **kwargs):
        """Log nivel ERROR con formato estructurado y stack trace opcional"""
        formatted_msg = self._format_message(message, **kwargs)
        if error:
            formatted_msg += f" | error_type={type(error).__name__} | error_msg={str(error)}"
        self.logger.error(formatted_msg)

        if error and error.__traceback__ is not None:
            trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
            self.logger.error(f"{self.component_name}: Stack trace: {trace}")

    def log_operation_start(self, operation: str, **params):
        """Log el inicio de una operación con sus parámetros (sanitizados)"""
        self.debug(f"Iniciando {operation}", **sanitize_sensitive_data(params))

    def log_operation_end(self, operation: str, duration_ms: Optional[int] = None, **result_info):
        """Log el final de una operación con información de resultado"""
        if duration_ms is not None:
            self.info(f"Completado {operation}", duration_ms=duration_ms, **result_info)
        else:
            self.info(f"Completado {operation}", **result_info)

    def log_api_request(self, method: str, path: str, **extra):
        self.debug(f"API Request: {method} {path}", **extra)

    def log_api_response(self, method: str, path: str, status_code: int, duration_ms: int):
        self.debug(f"API Response: {method} {path}", status_code=status_code, duration_ms=duration_ms)


def get_tally_logger(name: str) -> TallyLogger:
    """Factory para obtener un TallyLogger"""
    return TallyLogger(name)


_SENSITIVE_KEYS = {
    'password', 'token', 'secret', 'key', 'auth', 'credential',
    'api_key', 'access_token', 'refresh_token', 'creds',
}


def sanitize_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Remueve o enmascara datos sensibles antes de logging
    """
    sanitized = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive_key in key_lower for sensitive_key in _SENSITIVE_KEYS):
            sanitized[key] = "***REDACTED***"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_sensitive_data(value)
        elif isinstance(value, str) and len(value) > 200:
            # Truncar strings muy largos
            sanitized[key] = value[:200] + "...TRUNCATED"
        else:
            sanitized[key] = value

    return sanitized


class ErrorTracker:
    """
    Rastreador de errores para analytics y debugging
    """

    def __init__(self):
        self.logger = get_tally_logger(__name__)

    def track_error(self, error: Exception, component: str, operation: str, context: Optional[Dict[str, Any]] = None):
        """
        Rastrea un error con información estructurada
        """
        error_data = {
            "component": component,
            "operation": operation,
            "error_type": type(error).__name__,
            "error_message": str(error),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "context": sanitize_sensitive_data(context) if context else {}
        }

        self.logger.error("Error tracked", **error_data)


# Instancia global del error tracker
error_tracker = ErrorTracker()
