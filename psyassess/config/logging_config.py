"""Logging setup shared by the Streamlit page and the session controller."""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from psyassess.config.settings import get_log_json, get_log_level


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        assessment_id = getattr(record, "assessment_id", None)
        if assessment_id is not None:
            payload["assessment_id"] = assessment_id
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def setup_logging(level: str | None = None, json_output: bool | None = None) -> logging.Logger:
    """Configure the package logger with a single stdout handler."""
    log_level = getattr(logging, (level or get_log_level()).upper(), logging.INFO)
    use_json = get_log_json() if json_output is None else json_output

    package_logger = logging.getLogger("psyassess")
    package_logger.setLevel(log_level)
    # Streamlit reruns the page script; avoid stacking handlers.
    package_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    package_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return package_logger
