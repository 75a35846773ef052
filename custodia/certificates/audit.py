"""Audit events for certificate lifecycle changes and signing attempts."""

from __future__ import annotations

import datetime
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

from django.conf import settings
from django.utils.module_loading import import_string

from custodia.logger import LoggerMixin

__all__ = ['AuditAction', 'AuditEvent', 'AuditSink', 'LoggingAuditSink', 'SafeAuditSink', 'get_audit_sink']

AUDIT_LOGGER_NAME = 'custodia.audit'


class AuditAction:
    """Actions that produce audit events."""

    REGISTER = 'register'
    ACTIVATE = 'activate'
    DEACTIVATE = 'deactivate'
    REMOVE = 'remove'
    SIGN_ATTEMPT = 'sign_attempt'


@dataclass(frozen=True)
class AuditEvent:
    """A single audited action. It never contains secret material."""

    actor: int | None
    action: str
    certificate_id: int | None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    ip: str | None = None
    user_agent: str | None = None
    timestamp: datetime.datetime = field(default_factory=lambda: datetime.datetime.now(datetime.UTC))

    def as_dict(self) -> dict[str, Any]:
        """Returns the event as a JSON friendly dict."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data


class AuditSink(Protocol):
    """Write-only receiver of audit events."""

    def emit(self, event: AuditEvent) -> None:
        """Receives a single event."""


class LoggingAuditSink:
    """Writes audit events to the custodia.audit logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        """Initializes the sink, optionally with a custom logger."""
        self._logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    def emit(self, event: AuditEvent) -> None:
        """Logs the event."""
        self._logger.info(
            'action=%s certificate=%s actor=%s ip=%s before=%s after=%s',
            event.action,
            event.certificate_id,
            event.actor,
            event.ip,
            event.before,
            event.after,
        )


class SafeAuditSink(LoggerMixin):
    """Wraps another sink, failures of the wrapped sink never reach the audited operation."""

    def __init__(self, sink: AuditSink) -> None:
        """Initializes the wrapper."""
        self._sink = sink

    def emit(self, event: AuditEvent) -> None:
        """Forwards the event and logs any failure."""
        try:
            self._sink.emit(event)
        except Exception:
            self.logger.exception(
                'Failed to emit audit event %s for certificate %s.', event.action, event.certificate_id
            )


def get_audit_sink() -> SafeAuditSink:
    """Instantiates the sink configured by CUSTODIA_AUDIT_SINK."""
    sink_class = import_string(getattr(settings, 'CUSTODIA_AUDIT_SINK', 'certificates.audit.LoggingAuditSink'))
    return SafeAuditSink(sink_class())
