# tallyflow/core/config.py

import os
from dotenv import load_dotenv

load_dotenv()  # Carga .env en os.environ


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    # ——————————————————————————————————————————————————————————————————————————————————
    # Configuración general
    DEBUG: bool = _env_bool("DEBUG", "false")

    # Tally API
    TALLY_API_BASE: str = os.getenv("TALLY_API_BASE", "https://api.tally.so")
    TALLY_GRAPHQL_URL: str = os.getenv("TALLY_GRAPHQL_URL", "https://api.tally.so/graphql")
    # Token por defecto; normalmente llega en las credenciales del nodo
    TALLY_API_TOKEN: str = os.getenv("TALLY_API_TOKEN", "")

    # HTTPX timeouts / concurrencia
    HTTPX_MAX_CONNECTIONS: int = int(os.getenv("HTTPX_MAX_CONNECTIONS", 100))
    HTTPX_MAX_KEEPALIVE: int = int(os.getenv("HTTPX_MAX_KEEPALIVE", 20))
    HTTPX_CONNECT_TIMEOUT: float = float(os.getenv("HTTPX_CONNECT_TIMEOUT", 5.0))
    HTTPX_READ_TIMEOUT: float = float(os.getenv("HTTPX_READ_TIMEOUT", 30.0))
    MAX_CONCURRENT_REQUESTS: int = int(os.getenv("MAX_CONCURRENT_REQUESTS", 10))

    # ——————————————————————————————————————————————————————————————————————————————————
    # Edición de formularios
    # Profundidad con la que el diff detalla cambios dentro de payload (0 = solo flag)
    TALLY_DIFF_PAYLOAD_DEPTH: int = int(os.getenv("TALLY_DIFF_PAYLOAD_DEPTH", 0))

    # Flags por defecto de las operaciones de escritura
    TALLY_DEFAULT_DRY_RUN: bool = _env_bool("TALLY_DEFAULT_DRY_RUN", "false")
    TALLY_DEFAULT_BACKUP: bool = _env_bool("TALLY_DEFAULT_BACKUP", "true")
    TALLY_DEFAULT_OPTIMISTIC: bool = _env_bool("TALLY_DEFAULT_OPTIMISTIC", "true")


# Instancia única que usarás en toda la app
settings = Settings()
