import json
import logging
import sys
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredMessage:
    def __init__(self, message: str, extra: Optional[dict[str, Any]] = None):
        self.message = message
        self.extra = extra or {}

    def __str__(self):
        if not self.extra:
            return self.message
        return f"{self.message} | {json.dumps(self.extra, default=str)}"


_m = StructuredMessage


def get_extra_info(extra: dict[str, Any]) -> dict[str, Any]:
    from binauthz_demo.core.config import settings

    return {
        "project_name": settings.PROJECT_NAME,
        "env": settings.ENV,
        **extra,
    }


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
