"""
Structured logging configuration.

Emits both human-readable and JSON logs for debugging.
JSON logs include:
- Timestamp
- Level
- Subsystem
- Agent ID
- Behavior state and action
- Decision cycle ID
- Event type
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

STRUCTURED_FIELDS = ("subsystem", "agent_id", "state", "action", "cycle_id", "event_type")


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data["event" if name == "event_type" else name] = value
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """Human-readable format with colors."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        level = record.levelname[:4]

        prefix_parts = [f"{timestamp} {level}"]

        subsystem = getattr(record, "subsystem", None)
        if subsystem and subsystem != "general":
            prefix_parts.append(f"[{subsystem}]")
        if getattr(record, "agent_id", None):
            prefix_parts.append(f"agent={record.agent_id}")
        if getattr(record, "state", None):
            prefix_parts.append(f"state={record.state}")
        if getattr(record, "cycle_id", None) is not None:
            prefix_parts.append(f"cycle={record.cycle_id}")

        prefix = " ".join(prefix_parts)
        line = f"{prefix}: {record.getMessage()}"

        if self.use_colors and sys.stderr.isatty():
            color = self.COLORS.get(record.levelname, "")
            line = f"{color}{line}{self.RESET}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class StructuredLogger(logging.Logger):
    """Logger with structured logging methods."""

    def _log_structured(
        self,
        level: int,
        msg: str,
        subsystem: str = "general",
        agent_id: Optional[str] = None,
        state: Optional[str] = None,
        action: Optional[str] = None,
        cycle_id: Optional[int] = None,
        event_type: Optional[str] = None,
        **extra,
    ) -> None:
        if not self.isEnabledFor(level):
            return
        record = self.makeRecord(self.name, level, "", 0, msg, (), None)
        record.subsystem = subsystem
        record.agent_id = agent_id
        record.state = state
        record.action = action
        record.cycle_id = cycle_id
        record.event_type = event_type
        record.extra_data = extra
        self.handle(record)

    def event(self, event_type: str, msg: str, **kwargs) -> None:
        """Log a domain event."""
        self._log_structured(logging.INFO, msg, event_type=event_type, **kwargs)

    def decision(self, msg: str, cycle_id: int, **kwargs) -> None:
        """Log a decision-loop outcome."""
        self._log_structured(
            logging.INFO, msg, subsystem="decision", cycle_id=cycle_id, **kwargs
        )


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    json_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files
        json_file: Path for JSON logs (in log_dir if relative)
        max_bytes: Max size per log file
        backup_count: Number of backup files to keep
    """
    logging.setLoggerClass(StructuredLogger)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = []

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(HumanFormatter())
    root_logger.addHandler(console)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

        human_handler = RotatingFileHandler(
            os.path.join(log_dir, "mindloop.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        human_handler.setFormatter(HumanFormatter(use_colors=False))
        root_logger.addHandler(human_handler)

        json_path = json_file or os.path.join(log_dir, "mindloop.json.log")
        if not os.path.isabs(json_path):
            json_path = os.path.join(log_dir, json_path)

        json_handler = RotatingFileHandler(
            json_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        json_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(json_handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger, creating it with the structured class if needed."""
    previous = logging.getLoggerClass()
    logging.setLoggerClass(StructuredLogger)
    try:
        logger = logging.getLogger(name)
    finally:
        logging.setLoggerClass(previous)
    return logger  # type: ignore[return-value]
