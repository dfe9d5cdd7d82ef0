"""Loguru sinks and structured log helpers for Dinopedia.

Importing this module configures loguru once: a colorized stderr sink at
APP_LOG_LEVEL and a daily rotated file sink under logs/.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from dinopedia.config import settings

LOG_DIR = Path("logs")
LOG_DIR.mkdir(exist_ok=True)

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[kind]: <13} | {name}:{function}:{line} - {message}"

logger.remove()
logger.configure(extra={"kind": "app"})
logger.add(sys.stderr, format=CONSOLE_FORMAT, level=settings.app_log_level.upper(), colorize=True)
logger.add(
    LOG_DIR / "dinopedia_{time:YYYY-MM-DD}.log",
    format=FILE_FORMAT,
    level="DEBUG",
    rotation="00:00",
    retention="7 days",
    compression="zip",
)

NOISY_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "httpx",
    "httpcore",
    "hpack",
    "openai._base_client",
    "postgrest",
    "supabase",
    "asyncio",
)
for name in NOISY_LOGGERS:
    logging.getLogger(name).setLevel(settings.noisy_log_level.upper())


def _emit(kind: str, level: str, fields: dict[str, Any]) -> None:
    record = {"timestamp": datetime.now(timezone.utc).isoformat(), **fields}
    logger.bind(kind=kind).opt(depth=2).log(level, f"{kind.upper()}: {record}")


def log_llm_call(
    model: str,
    caller: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """One chat-completion request made by an extraction operation."""
    _emit(
        "llm_call",
        "ERROR" if error else "INFO",
        {
            "model": model,
            "caller": caller,
            "tokens": {"input": input_tokens, "output": output_tokens, "total": input_tokens + output_tokens},
            "duration_ms": duration_ms,
            "status": status,
            "error": error,
        },
    )


def log_research_step(subject: str, step_type: str, status: str, data: Optional[dict] = None) -> None:
    """Pipeline progress for one dinosaur; failed steps are logged as warnings."""
    _emit(
        "research_step",
        "WARNING" if status == "failed" else "INFO",
        {"dinosaur": subject, "step": step_type, "status": status, "data": data or {}},
    )


def log_db_operation(
    operation: str,
    table: str,
    status: str,
    details: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    _emit(
        "db_operation",
        "ERROR" if error else "DEBUG",
        {"operation": operation, "table": table, "status": status, "details": details, "error": error},
    )


def log_event(event_type: str, message: str, **fields: Any) -> None:
    _emit("event", "INFO", {"event": event_type, "message": message, **fields})
