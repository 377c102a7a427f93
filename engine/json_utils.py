"""JSON helpers for structured log payloads."""

from __future__ import annotations

import json
import logging
from typing import Any


def safe_json_dumps(payload: Any, **kwargs: Any) -> str:
    """Serialize ``payload`` without failing on paths, enums or other odd values."""
    kwargs.setdefault("default", str)
    kwargs.setdefault("ensure_ascii", False)
    return json.dumps(payload, **kwargs)


def log_event(level: int, message: str, **fields: Any) -> None:
    payload = {"message": message, **fields}
    try:
        logging.log(level, safe_json_dumps(payload, sort_keys=True))
    except Exception as exc:
        logging.log(level, f"log_event_serialization_failed: {exc} message={message}")
