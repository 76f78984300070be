"""Logging abstraction layer for the CDP Logger client.

Provides JSON and human-readable output with request correlation and structured
context. Output destinations are taken from the ``CDP_LOG_*`` environment
settings unless overridden per logger.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast, override

__all__ = [
    "CDPLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "get_logger",
]


class JSONFormatter(logging.Formatter):
    """Formatter that outputs structured JSON logs."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        from cdp_logger.correlation import get_correlation_id  # noqa: PLC0415

        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, Mapping) and extra_data:
            log_data["context"] = dict(cast("Mapping[str, object]", extra_data))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Formatter that outputs human-readable logs with correlation IDs."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable text."""
        from cdp_logger.correlation import get_correlation_id  # noqa: PLC0415

        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:12]}]" if correlation_id else "[------------]"

        formatted = super().format(record)

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, Mapping) and extra_data:
            context_map = cast("Mapping[str, object]", extra_data)
            formatted = f"{formatted} | " + " | ".join(f"{k}={v}" for k, v in context_map.items())

        return formatted


class CDPLogger:
    """Logger wrapper with structured ``extra`` context and dual-format output."""

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stderr",
    ) -> None:
        """Initialize CDPLogger.

        Args:
            name: Logger name (typically module name)
            log_format: Output format - "json", "human", "both" or "none"
            json_file: Path for JSON output file (None to disable file output)
            human_output: "stdout", "stderr", or file path for human-readable output

        """
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)
        self.log_format: str = log_format

        from cdp_logger.const import CDP_DEBUG  # noqa: PLC0415

        if CDP_DEBUG:
            self.logger.setLevel(logging.DEBUG)

        if not self.logger.handlers:
            self._configure_handlers(json_file, human_output)

    def _configure_handlers(self, json_file: str | Path | None, human_output: str | None) -> None:
        """Configure log handlers based on format settings."""
        if self.log_format in ("json", "both") and json_file:
            try:
                json_path = Path(json_file)
                json_path.parent.mkdir(parents=True, exist_ok=True)
                json_handler = logging.FileHandler(json_path, mode="a")
                json_handler.setFormatter(JSONFormatter())
                self.logger.addHandler(json_handler)
            except OSError as e:
                print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)

        if self.log_format in ("human", "both"):
            normalized_output = human_output or "stderr"
            if normalized_output == "stdout":
                human_handler: logging.Handler = logging.StreamHandler(sys.stdout)
            elif normalized_output == "stderr":
                human_handler = logging.StreamHandler(sys.stderr)
            else:
                try:
                    human_path = Path(normalized_output)
                    human_path.parent.mkdir(parents=True, exist_ok=True)
                    human_handler = logging.FileHandler(human_path, mode="a")
                except OSError as e:
                    print(f"Warning: Failed to create human log file {human_output}: {e}", file=sys.stderr)
                    human_handler = logging.StreamHandler(sys.stderr)

            human_handler.setFormatter(HumanReadableFormatter())
            self.logger.addHandler(human_handler)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        extra_payload = {"extra_data": dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=extra_payload)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log exception with traceback and optional structured context."""
        log_extra = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=log_extra)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> CDPLogger:
    """Get or create a CDPLogger instance.

    Args:
        name: Logger name
        log_format: Override default format ("json", "human", "both" or "none")
        json_file: Override default JSON output file
        human_output: Override default human-readable output

    Returns:
        CDPLogger instance

    """
    from cdp_logger.const import (  # noqa: PLC0415
        CDP_LOG_FORMAT,
        CDP_LOG_HUMAN_OUTPUT,
        CDP_LOG_JSON_FILE,
    )

    return CDPLogger(
        name=name,
        log_format=log_format or CDP_LOG_FORMAT,
        json_file=json_file or CDP_LOG_JSON_FILE,
        human_output=human_output or CDP_LOG_HUMAN_OUTPUT,
    )
