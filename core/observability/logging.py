"""
Structured logging correlated to an audit run.

Every record carries the identifiers of the audit it belongs to:
- audit_id: one run of the reconciliation pipeline
- bill_id: invoice number of the clinical bill
- finding_id: finding being reconstructed or netted
- stage: rules, reconstruction, normalization or balance

Usage:
    from core.observability.logging import get_logger, with_correlation, log_stage

    logger = get_logger(__name__)

    with with_correlation(audit_id="AUD-001", bill_id="CTA-560488"):
        with log_stage("balance"):
            logger.info("Balance resolved", extra_fields={"state": "SIN_COPAGO"})
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Dict, Optional


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """Identifiers attached to every log record of an audit."""
    audit_id: Optional[str] = None
    bill_id: Optional[str] = None
    finding_id: Optional[str] = None
    stage: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        """Only the identifiers that are set."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


_context: ContextVar[CorrelationContext] = ContextVar("audit_correlation", default=CorrelationContext())


def get_correlation_context() -> CorrelationContext:
    return _context.get()


@contextmanager
def with_correlation(**ids):
    """Set correlation identifiers for the enclosed block. None values are ignored."""
    updates = {k: str(v) for k, v in ids.items() if v is not None}
    token = _context.set(replace(_context.get(), **updates))
    try:
        yield _context.get()
    finally:
        _context.reset(token)


# =============================================================================
# Formatters
# =============================================================================

def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.utcfromtimestamp(record.created)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message, correlation ids, extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(timespec="milliseconds") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **get_correlation_context().to_dict(),
            **getattr(record, "extra_fields", {}),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


class HumanReadableFormatter(logging.Formatter):
    """
    Console format:
    2026-01-09 12:00:00 [WARNING] reconciliation.balance [AUD-001/bill:CTA-1/balance]: ALERTA_BALANCE ... total=100000
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_correlation_context()
        ids = [
            ctx.audit_id,
            f"bill:{ctx.bill_id}" if ctx.bill_id else None,
            ctx.stage,
            f"f:{ctx.finding_id}" if ctx.finding_id else None,
        ]
        correlation = "/".join(part for part in ids if part) or "-"

        line = (
            f"{_timestamp(record):%Y-%m-%d %H:%M:%S} [{record.levelname}] "
            f"{record.name} [{correlation}]: {record.getMessage()}"
        )
        extra = getattr(record, "extra_fields", None)
        if extra:
            line += " " + " ".join(f"{key}={value}" for key, value in extra.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Correlated Logger
# =============================================================================

class CorrelatedLogger:
    """Thin wrapper over a stdlib logger that accepts `extra_fields=` on every call."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def log(self, level: int, msg: str, *args, extra_fields: Optional[Dict[str, Any]] = None, exc_info=None):
        if not self._logger.isEnabledFor(level):
            return
        if exc_info is True:
            exc_info = sys.exc_info()
        record = self._logger.makeRecord(self._logger.name, level, "(audit)", 0, msg, args, exc_info)
        record.extra_fields = dict(extra_fields or {})
        self._logger.handle(record)

    def debug(self, msg: str, *args, **kwargs):
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.log(logging.ERROR, msg, *args, **kwargs)


# =============================================================================
# Setup
# =============================================================================

_HANDLER_NAME = "audit-console"
_loggers: Dict[str, CorrelatedLogger] = {}
_configured = False


def configure_logging(level: int = logging.INFO, json_format: bool = False, force: bool = False):
    """Install the console handler on the root logger.

    Args:
        level: Logging level for the root and engine loggers
        json_format: JSON lines instead of the human-readable format
        force: Replace a handler installed by an earlier call
    """
    global _configured

    if _configured and not force:
        return

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root.addHandler(handler)
    root.setLevel(level)
    for package in ("core", "models", "reconciliation", "forensic_rules", "storage"):
        logging.getLogger(package).setLevel(level)

    _configured = True


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for `name`. Configures logging from settings on first use."""
    if not _configured:
        from core.config import get_settings

        settings = get_settings()
        configure_logging(level=settings.log_level_value, json_format=settings.log_json)

    if name not in _loggers:
        _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return _loggers[name]


@contextmanager
def log_stage(stage: str, **fields_):
    """Run a pipeline stage under `stage` correlation, logging start and duration."""
    logger = get_logger(f"reconciliation.{stage}")
    with with_correlation(stage=stage):
        started = time.perf_counter()
        logger.info(f"Stage started: {stage}", extra_fields=fields_)
        yield
        logger.info(
            f"Stage completed: {stage}",
            extra_fields={"duration_ms": round((time.perf_counter() - started) * 1000, 2)},
        )
