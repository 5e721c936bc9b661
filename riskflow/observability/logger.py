"""
Structured JSON logging for riskflow

This module provides consistent structured logging across the pipeline
using python-json-logger for easy parsing and analysis.
"""
import logging
import os
import sys
import time

from pythonjsonlogger import jsonlogger

DEFAULT_LOGGER_NAME = "riskflow"

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that adds timestamp, level, logger, module, function,
    process and thread fields to every record
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)

        if log_record.get("level"):
            log_record["level"] = log_record["level"].upper()
        else:
            log_record["level"] = record.levelname

        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["process_id"] = record.process
        log_record["thread_id"] = record.thread


def setup_logger(
    name: str = DEFAULT_LOGGER_NAME,
    level: str | None = None,
    format_type: str | None = None,
) -> logging.Logger:
    """
    Setup and configure a logger

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "json" or "text" (defaults to env var LOG_FORMAT, then json)

    Returns:
        Configured logger instance
    """
    log_level_str = level or os.getenv("LOG_LEVEL", "INFO")
    log_level = LOG_LEVELS.get(log_level_str.upper(), logging.INFO)
    format_type = format_type or os.getenv("LOG_FORMAT", "json")

    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if format_type == "json":
        formatter = CustomJsonFormatter(
            fmt="%(timestamp)s %(level)s %(logger)s %(module)s %(function)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger instance, configuring it on first use

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        return setup_logger(name)

    return logger


_default_logger: logging.Logger | None = None


def get_default_logger() -> logging.Logger:
    """Get the default application logger"""
    global _default_logger
    if _default_logger is None:
        _default_logger = setup_logger(DEFAULT_LOGGER_NAME)
    return _default_logger


class log_operation:
    """
    Context manager logging the start, end and duration of a pipeline stage

    Every line carries the batch id and stage name so one batch can be
    followed through the log.

    Usage:
        with log_operation("Validating batch", logger=logger, batch_id="batch_001", stage="validating"):
            # do work
            pass
    """

    def __init__(
        self,
        operation_name: str,
        logger: logging.Logger | None = None,
        batch_id: str | None = None,
        stage: str | None = None,
        **extra_fields,
    ):
        """
        Initialize operation logger

        Args:
            operation_name: Human-readable name of the operation
            logger: Logger instance (uses default if None)
            batch_id: Batch the operation belongs to
            stage: Pipeline stage (validating, deriving, scoring, committing)
            **extra_fields: Additional fields such as record counts
        """
        self.operation_name = operation_name
        self.logger = logger or get_default_logger()
        self.batch_id = batch_id
        self.stage = stage
        self.extra_fields = extra_fields
        self.start_time: float | None = None

    def _fields(self, **fields) -> dict:
        context = {"operation": self.operation_name, "batch_id": self.batch_id, "stage": self.stage}
        return {**{k: v for k, v in context.items() if v is not None}, **self.extra_fields, **fields}

    @property
    def duration(self) -> float:
        return 0.0 if self.start_time is None else time.monotonic() - self.start_time

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.info(f"Starting: {self.operation_name}", extra=self._fields())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = self.duration

        if exc_type is None:
            self.logger.info(
                f"Completed: {self.operation_name}",
                extra=self._fields(duration_seconds=round(duration, 3), status="success"),
            )
        else:
            self.logger.error(
                f"Failed: {self.operation_name}",
                extra=self._fields(
                    duration_seconds=round(duration, 3),
                    status="error",
                    error_type=exc_type.__name__,
                    error_message=str(exc_val),
                ),
            )
        return False  # Don't suppress exceptions
