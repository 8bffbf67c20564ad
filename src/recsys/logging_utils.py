from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Optional

# Keys copied from `extra={...}` into the JSON payload.
EXTRA_FIELDS = (
    "event",
    "user",
    "item_a",
    "num_records",
    "num_links",
    "step",
    "min_link_weight",
    "shape",
    "exception_type",
)


class JsonFormatter(logging.Formatter):
    """
    Structured JSON formatter for batch job logs.

    One JSON object per line so the host's log collector can index the
    per-group events emitted by the graph, link and refinement stages.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for attr in EXTRA_FIELDS:
            if hasattr(record, attr):
                log_payload[attr] = getattr(record, attr)

        if record.exc_info:
            log_payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_payload, ensure_ascii=False, default=str)


def configure_logger(name: str = "recsys", level: int = logging.INFO) -> logging.Logger:
    """
    Configure and return a logger with JSON formatting.

    Calling it twice for the same name does not stack handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)

    logger.propagate = False
    return logger


# Component names used under the root "recsys" logger.
COMPONENTS = ("graph_builder", "link_filter", "refiner", "pipeline")


def component_logger(component: str, logger: Optional[logging.Logger] = None) -> logging.Logger:
    """
    Resolve the logger a pipeline component writes to.

    An explicit `logger` wins; otherwise the component gets the child logger
    "recsys.<component>", so one `configure_logger("recsys")` covers all stages.

    Raises:
        ValueError: If `component` is not a known stage name.
    """
    if logger is not None:
        return logger
    if component not in COMPONENTS:
        raise ValueError(f"Unknown component {component!r}; expected one of {COMPONENTS}.")
    return logging.getLogger(f"recsys.{component}")
