"""Loguru setup for the poller: console, rotating file and Slack alerts."""

import logging
import sys
from pathlib import Path

import httpx
from loguru import logger

from eventpoll.core.config import settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[name]}:{function}:{line} | {message}"
LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}

_configured = False


class _StdlibToLoguru(logging.Handler):
    """Forward records from stdlib loggers (httpx, uvicorn) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        level = record.levelname if record.levelname in LEVELS else record.levelno
        logger.opt(depth=6, exception=record.exc_info).bind(name=record.name).log(level, record.getMessage())


class SlackAlertSink:
    """Posts ERROR records to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, env: str):
        self.webhook_url = webhook_url
        self.env = env
        self._client = httpx.Client(timeout=5.0)

    def __call__(self, message) -> None:
        record = message.record
        text = f"[{self.env}] {record['level'].name} {record['extra'].get('name', 'eventpoll')}: {record['message']}"
        try:
            self._client.post(self.webhook_url, json={"text": text})
        except httpx.HTTPError:
            # logging here would recurse into this sink
            pass


def resolve_level(raw: str | None) -> str:
    level = (raw or "INFO").strip().upper()
    level = {"WARN": "WARNING", "FATAL": "CRITICAL"}.get(level, level)
    return level if level in LEVELS else "INFO"


def configure_logging() -> None:
    global _configured
    if _configured:
        return
    _configured = True

    level = resolve_level(settings.effective_log_level)
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.configure(extra={"name": "eventpoll"})
    logger.add(sys.stdout, level=level, format=LOG_FORMAT, backtrace=False, diagnose=False)
    logger.add(
        log_dir / "eventpoll.log",
        level=level,
        format=LOG_FORMAT,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )
    if settings.SLACK_WEBHOOK_URL:
        logger.add(SlackAlertSink(settings.SLACK_WEBHOOK_URL, settings.ENV), level="ERROR", enqueue=True)

    logging.basicConfig(handlers=[_StdlibToLoguru()], level=0, force=True)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logger.__class__:
    return logger.bind(name=name)


configure_logging()
