"""
Logging configuration for the vSAN lab service.

Provides a consistent process log format for the control plane, the
workflow scheduler and the API layer.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(
    component_name: str,
    level=logging.INFO,
    log_file: Optional[str] = None,
    format_string: Optional[str] = None
):
    """
    Configure the root logger for a lab component.

    Args:
        component_name: Component identifier (e.g., 'vsanlab')
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        format_string: Custom format string (default provided)
    """
    if format_string is None:
        format_string = f'[%(asctime)s] [{component_name.upper()}] %(levelname)s %(name)s - %(message)s'

    logging.basicConfig(
        level=level,
        format=format_string,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(format_string, datefmt=DATE_FORMAT))
        logging.getLogger().addHandler(file_handler)

    # Per-request SQL echo drowns the event stream
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logger = logging.getLogger(component_name)
    logger.info(f"{component_name.upper()} logging initialized (level={logging.getLevelName(level)})")

    return logger
