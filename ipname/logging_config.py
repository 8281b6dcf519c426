"""
Logging configuration for ipname.

Provides structured JSON logging for record audit trails and debugging.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for tracking one publish/resolve operation across modules
operation_id_var: ContextVar[str] = ContextVar('operation_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, suitable for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        operation_id = operation_id_var.get()
        if operation_id:
            log_data["operation_id"] = operation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


class RecordAuditLogger:
    """
    Specialized logger for record lifecycle events.

    Covers validation outcomes, publish requests and completions,
    sequence races, and security-relevant rejections.
    """

    def __init__(self, name: str = "ipname.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        """Internal logging method with extra fields."""
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            "operation_id": operation_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def record_validated(
        self,
        outcome: str,
        sequence: int,
        scheme: Optional[str] = None,
        reason: Optional[str] = None
    ) -> None:
        """Log the outcome of validating a record."""
        level = logging.DEBUG if outcome in ("VALID", "VALID_LEGACY_ONLY") else logging.WARNING
        self._log(
            level,
            "RECORD_VALIDATED",
            outcome=outcome,
            sequence=sequence,
            scheme=scheme,
            reason=reason,
            message=f"Record sequence {sequence} validated: {outcome}"
        )

    def publish_request(self, name: str, sequence: int) -> None:
        """Log an outgoing publish."""
        self._log(
            logging.INFO,
            "PUBLISH_REQUEST",
            name=name,
            sequence=sequence,
            message=f"Publishing sequence {sequence} for {name}"
        )

    def publish_complete(self, name: str, sequence: int, outcome: str) -> None:
        """Log the store's answer to a publish."""
        level = logging.INFO if outcome == "OK" else logging.ERROR
        self._log(
            level,
            "PUBLISH_COMPLETE",
            name=name,
            sequence=sequence,
            outcome=outcome,
            message=f"Publish {outcome} for {name} at sequence {sequence}"
        )

    def sequence_conflict(self, name: str, sequence: int) -> None:
        """Log a lost concurrent write."""
        self._log(
            logging.WARNING,
            "SEQUENCE_CONFLICT",
            name=name,
            sequence=sequence,
            message=f"Sequence {sequence} for {name} lost a concurrent write"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Console output goes to stderr so command output on stdout stays clean.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_operation_id(operation_id: Optional[str] = None) -> str:
    """
    Set the operation ID for the current context.

    Args:
        operation_id: ID to set, or None to generate one

    Returns:
        The operation ID that was set
    """
    if operation_id is None:
        operation_id = str(uuid.uuid4())
    operation_id_var.set(operation_id)
    return operation_id


# Global audit logger instance
audit_log = RecordAuditLogger()
