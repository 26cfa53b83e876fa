"""
Настройка логирования.

Конфигурация:
- Консоль INFO+ с цветами
- Один файл со всеми уровнями начиная с log_level
- Ротация по 10 MB, хранение 7 дней, сжатие старых логов
- Асинхронная запись
"""

import sys
from pathlib import Path

from loguru import logger


def setup_logging(log_level: str = "DEBUG", log_dir: str = "logs") -> None:
    """
    Настройка единого полного лога.

    Args:
        log_level: Уровень логирования для файла (DEBUG по умолчанию)
        log_dir: Папка для файлов лога
    """
    logger.remove()

    # 1. КОНСОЛЬ (INFO+)
    logger.add(
        sys.stderr,
        level="INFO",
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan> | "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    # 2. ФАЙЛ - полный лог
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    logger.add(
        str(Path(log_dir) / "momentum_engine_{time:YYYY-MM-DD}.log"),
        level=log_level,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{name}:{function}:{line} | "
            "{message}"
        ),
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        encoding="utf-8",
    )

    logger.info(f"📝 Logging configured: console INFO+, file {log_level}+ ({log_dir}/)")
