"""
Настройка логирования для сервисов
"""
import logging

from core.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # SQL-запросы не нужны в обычном логе
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
