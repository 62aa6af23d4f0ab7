# Exportar todas las excepciones y utilidades
from .api_exceptions import (
    HandlerError,
    RemoteApiError,
    ValidationError,
    ConflictError,
)

from .logging_utils import (
    TallyLogger,
    get_tally_logger,
    sanitize_sensitive_data,
    ErrorTracker,
    error_tracker,
)
