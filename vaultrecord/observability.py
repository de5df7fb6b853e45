"""
Observability - Logging, Metrics, and Health

Provides:
- Structured logging; every line of one decrypt carries its operation id
  and the record's data hash
- Request logging middleware for the HTTP surface
- Decrypt metrics (outcomes per error kind, denials, latency)
- Health check with ledger reachability

Configuration:
- VAULTRECORD_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- VAULTRECORD_LOG_FORMAT: json, text (default: json in production)
- VAULTRECORD_PRODUCTION: Enable production mode

Private keys and plaintext are NEVER logged. Fingerprints are logged as hex.

Usage:
    from vaultrecord.observability import get_logger

    logger = get_logger(__name__)
    logger.info("Record decrypted", viewer=viewer)
"""

import json
import logging
import os
import sys
import time
import uuid
from collections import deque
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

operation_id_var: ContextVar[str] = ContextVar("operation_id", default="")
data_hash_var: ContextVar[str] = ContextVar("data_hash", default="")


# ============================================================
# CONFIGURATION
# ============================================================

_TRUTHY = ("1", "true", "yes")


def _is_production() -> bool:
    return os.environ.get("VAULTRECORD_PRODUCTION", "").lower() in _TRUTHY


def _get_log_level() -> int:
    name = os.environ.get("VAULTRECORD_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _use_json_logging() -> bool:
    fmt = os.environ.get("VAULTRECORD_LOG_FORMAT", "").lower()
    if fmt in ("json", "text"):
        return fmt == "json"
    return _is_production()


# ============================================================
# STRUCTURED LOGGING
# ============================================================

# Attributes every LogRecord has; anything else arrived through `extra`
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def _context_fields() -> Dict[str, str]:
    fields = {}
    if operation_id_var.get():
        fields["operation_id"] = operation_id_var.get()
    if data_hash_var.get():
        fields["data_hash"] = data_hash_var.get()
    return fields


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED and not key.startswith("_")
    }


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

        {"timestamp": "...", "level": "WARNING",
         "logger": "vaultrecord.core.record",
         "message": "decrypt_permissioned failed",
         "operation_id": "1f0c9a2e", "data_hash": "0x38d1...",
         "error_kind": "PermissionDeniedError", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context_fields(),
            **_extra_fields(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Single-line human-readable output for development."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%H:%M:%S")
        op = operation_id_var.get()
        tag = f"[{op}] " if op else ""
        extras = " ".join(f"{k}={v}" for k, v in _extra_fields(record).items())

        line = f"{stamp} {record.levelname:<7} {tag}{record.name}: {record.getMessage()}"
        if extras:
            line = f"{line} | {extras}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class ContextLogger(logging.LoggerAdapter):
    """
    Adapter that turns keyword arguments into structured fields.

    Usage:
        logger = get_logger(__name__)
        logger.warning("Ledger call failed", call="sigExists", error=str(e))
    """

    _PASSTHROUGH = ("exc_info", "stack_info", "stacklevel", "extra")

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in self._PASSTHROUGH}
        kwargs["extra"] = {**kwargs.get("extra", {}), **fields}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """Structured logger for a module (pass __name__)."""
    return ContextLogger(logging.getLogger(name), {})


def setup_logging() -> None:
    """
    Install the vaultrecord handler on the root logger.

    Call once at process start. The API factory does unless built with
    configure_logging=False; hosts that configure logging themselves
    should not call it.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if _use_json_logging() else TextFormatter())
    logging.basicConfig(level=_get_log_level(), handlers=[handler], force=True)

    for noisy in ("web3", "urllib3", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def new_operation_id() -> str:
    """Short random id stamped on every log line of one operation."""
    return uuid.uuid4().hex[:8]


# ============================================================
# REQUEST CONTEXT MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Runs each request under one operation id.

    The id comes from the X-Request-ID header when the caller sends one
    and is echoed back on the response. Every request is logged once
    with its status and duration.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or new_operation_id()
        token = operation_id_var.set(request_id)
        logger = get_logger("vaultrecord.request")
        route = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        def elapsed() -> float:
            return round((time.perf_counter() - started) * 1000, 2)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(f"{route} crashed", status_code=500, duration_ms=elapsed(), error=str(e))
            raise
        else:
            level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                level,
                f"{route} {response.status_code}",
                status_code=response.status_code,
                duration_ms=elapsed(),
            )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            operation_id_var.reset(token)


# ============================================================
# METRICS
# ============================================================

_LATENCY_SAMPLES = 1000


@dataclass
class MetricsCollector:
    """
    In-process decrypt metrics.

    Counts every decrypt_data / decrypt_permissioned call by outcome.
    Good enough for /metrics on a single process; export to a real
    metrics backend for anything larger.
    """

    decrypt_attempts: int = 0
    decrypt_successes: int = 0
    permission_denials: int = 0
    failures_by_kind: Dict[str, int] = field(default_factory=dict)
    decrypt_latencies_ms: Deque[float] = field(
        default_factory=lambda: deque(maxlen=_LATENCY_SAMPLES)
    )

    def record_decrypt(self, latency_ms: float, error: Optional[BaseException] = None) -> None:
        """Record the outcome of one decrypt operation."""
        self.decrypt_attempts += 1
        self.decrypt_latencies_ms.append(latency_ms)

        if error is None:
            self.decrypt_successes += 1
            return

        kind = type(error).__name__
        self.failures_by_kind[kind] = self.failures_by_kind.get(kind, 0) + 1
        if kind == "PermissionDeniedError":
            self.permission_denials += 1

    def reset(self) -> None:
        """Zero every counter (for testing only)."""
        self.decrypt_attempts = 0
        self.decrypt_successes = 0
        self.permission_denials = 0
        self.failures_by_kind = {}
        self.decrypt_latencies_ms.clear()

    @staticmethod
    def _percentile(samples: list, p: float) -> Optional[float]:
        if not samples:
            return None
        return samples[min(int(len(samples) * p), len(samples) - 1)]

    def get_summary(self) -> Dict[str, Any]:
        ordered = sorted(self.decrypt_latencies_ms)
        return {
            "decrypt_attempts": self.decrypt_attempts,
            "decrypt_successes": self.decrypt_successes,
            "permission_denials": self.permission_denials,
            "failures_by_kind": dict(self.failures_by_kind),
            "decrypt_latency_p50_ms": self._percentile(ordered, 0.50),
            "decrypt_latency_p95_ms": self._percentile(ordered, 0.95),
        }


_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Process-wide metrics collector."""
    return _metrics


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


def _ledger_check(gateway) -> Dict[str, Any]:
    try:
        available = gateway.is_available()
    except Exception as e:
        return {"status": "unhealthy", "gateway": type(gateway).__name__, "error": str(e)}
    return {
        "status": "healthy" if available else "unhealthy",
        "gateway": type(gateway).__name__,
    }


def check_health(gateway=None) -> HealthStatus:
    """
    Liveness plus, when a gateway is given, ledger reachability.

    An unreachable ledger makes the whole status unhealthy.
    """
    started = time.perf_counter()
    checks = {"liveness": {"status": "healthy"}}
    if gateway is not None:
        checks["ledger"] = _ledger_check(gateway)

    return HealthStatus(
        healthy=all(check["status"] == "healthy" for check in checks.values()),
        checks=checks,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
