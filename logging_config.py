# logging_config.py - Configuración de logs del nodo Tally a archivos y consola

import logging
import logging.handlers
from pathlib import Path
from datetime import datetime

from tallyflow.core.config import settings


def setup_file_logging(logs_dir: str = "logs") -> bool:
    """
    Configuración de logging para el proceso que hospeda el nodo:
    - Archivo diario con todo (INFO+)
    - Archivo de errores
    - Archivo con rotación a medianoche (7 días)
    - Consola
    """
    logs_path = Path(logs_dir)
    logs_path.mkdir(exist_ok=True)

    detailed_format = logging.Formatter(
        fmt="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    today = datetime.now().strftime("%Y-%m-%d")
    main_handler = logging.FileHandler(logs_path / f"tallyflow_{today}.log", mode='a', encoding='utf-8')
    main_handler.setFormatter(detailed_format)
    main_handler.setLevel(logging.INFO)

    error_handler = logging.FileHandler(logs_path / f"errors_{today}.log", mode='a', encoding='utf-8')
    error_handler.setFormatter(detailed_format)
    error_handler.setLevel(logging.ERROR)

    rotating_handler = logging.handlers.TimedRotatingFileHandler(
        logs_path / "tallyflow_rotating.log",
        when='midnight',
        interval=1,
        backupCount=7,
        encoding='utf-8'
    )
    rotating_handler.setFormatter(detailed_format)
    rotating_handler.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    root_logger.addHandler(main_handler)
    root_logger.addHandler(error_handler)
    root_logger.addHandler(rotating_handler)
    root_logger.addHandler(console_handler)

    # httpx loguea cada request en INFO; basta con nuestros logs de API
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return True
