"""
Service URLs Configuration
Centralized configuration for Tally.so API endpoints
"""

from tallyflow.core.config import settings

# Tally REST API
TALLY_API_BASE = settings.TALLY_API_BASE.rstrip("/")

# Tally GraphQL API (variante legacy)
TALLY_GRAPHQL_URL = settings.TALLY_GRAPHQL_URL

# Endpoints relativos
FORMS_PATH = "/forms"
FORM_PATH_TEMPLATE = "/forms/{form_id}"
QUESTIONS_PATH_TEMPLATE = "/forms/{form_id}/questions"
SUBMISSIONS_PATH_TEMPLATE = "/forms/{form_id}/submissions"

# Valor centinela para "crear un formulario nuevo" en rollback
CREATE_NEW_FORM_SENTINEL = "__CREATE_NEW__"
