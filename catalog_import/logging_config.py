"""
Logging Setup Module
Configures loguru sinks for the import scripts.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional
from loguru import logger

CONSOLE_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None) -> None:
    """
    Replace loguru's default sink with a console sink and an optional file sink.

    Args:
        level: Minimum level for the console
        log_file: Optional log file path; ``{date}`` is replaced with today's date
    """
    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level)

    if log_file:
        log_path = Path(log_file.replace('{date}', datetime.now().strftime('%Y%m%d')))
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path),
            format=FILE_FORMAT,
            level='DEBUG',
            rotation='10 MB',
            encoding='utf-8',
        )
        logger.info(f"Logging to file: {log_path}")
