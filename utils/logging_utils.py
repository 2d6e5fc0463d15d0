"""
Logging utilities.

Console (and optional file) logging shared by the CLI and the API process,
plus a JSONL event log for run records.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .datetime_utils import utc_now
from .json_utils import NumpyJSONEncoder

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("urllib3", "requests", "httpx", "uvicorn.access")


def setup_logging(
    verbose: bool = False,
    log_file: Optional[Union[str, Path]] = None
) -> logging.Logger:
    """
    Configure root logging for a pipeline process.

    Args:
        verbose: Use DEBUG instead of INFO
        log_file: Optional path for an additional file handler

    Returns:
        The configured root logger
    """
    level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates on repeated setup
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode='a')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Reduce noise from third-party libraries
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def append_jsonl(path: Union[str, Path], event_type: str, data: Dict[str, Any]) -> bool:
    """
    Append one event record to a JSONL log file.

    Args:
        path: JSONL file path (parent directories are created)
        event_type: Short event name, e.g. "pipeline_run"
        data: Event payload

    Returns:
        True if the record was written
    """
    record = {
        "timestamp": utc_now().isoformat(),
        "event_type": event_type,
        **data,
    }
    try:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(record, cls=NumpyJSONEncoder) + "\n")
        return True
    except OSError as e:
        logging.getLogger(__name__).error(f"Failed to append to {path}: {e}")
        return False
