"""Records usage attempts of certificates."""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from certificates.audit import AuditAction, AuditEvent, SafeAuditSink, get_audit_sink
from certificates.exceptions import CertificateNotFoundError
from certificates.models import MAX_RECORDED_ATTEMPTS, DigitalCertificateModel
from custodia.logger import LoggerMixin

if TYPE_CHECKING:
    from certificates.audit import AuditSink

MAX_ERROR_SUMMARY_LENGTH = 500


class UsageAuditor(LoggerMixin):
    """Appends attempts to the bounded usage history of a certificate."""

    def __init__(self, audit_sink: AuditSink | None = None) -> None:
        """Initializes the UsageAuditor with the sink that receives sign_attempt events."""
        self._audit_sink = SafeAuditSink(audit_sink) if audit_sink is not None else get_audit_sink()

    def record_attempt(
        self,
        certificate_id: int,
        *,
        success: bool,
        originator_ip: str | None = None,
        error_summary: str | None = None,
        actor: int | None = None,
        user_agent: str = '',
    ) -> None:
        """Records a single usage attempt.

        Only the most recent attempts are kept, oldest first. Successful attempts also count as signatures.
        Every attempt updates last_used_at. The emitted sign_attempt event carries the usage counters before
        and after the attempt.

        Raises:
            CertificateNotFoundError: If the certificate does not exist.
        """
        now = timezone.now()
        if error_summary is not None:
            error_summary = error_summary[:MAX_ERROR_SUMMARY_LENGTH]

        entry = {
            'timestamp': now.isoformat(),
            'success': success,
            'originator_ip': originator_ip,
            'error_summary': error_summary,
        }

        with transaction.atomic():
            try:
                certificate = DigitalCertificateModel.objects.select_for_update().get(pk=certificate_id)
            except DigitalCertificateModel.DoesNotExist as exception:
                err_msg = f'Certificate {certificate_id} not found.'
                raise CertificateNotFoundError(err_msg) from exception

            before = {
                'total_signatures': certificate.total_signatures,
                'last_used_at': certificate.last_used_at.isoformat() if certificate.last_used_at else None,
            }
            total_signatures = certificate.total_signatures + (1 if success else 0)

            attempts = [*(certificate.attempts or []), entry]
            certificate.attempts = attempts[-MAX_RECORDED_ATTEMPTS:]
            certificate.last_used_at = now
            update_fields = ['attempts', 'last_used_at', 'updated_at']
            if success:
                certificate.total_signatures = F('total_signatures') + 1
                update_fields.append('total_signatures')
            certificate.save(update_fields=update_fields)

        outcome = 'successful' if success else 'failed'
        self.logger.info('Recorded %s usage attempt for certificate %s.', outcome, certificate_id)
        self._audit_sink.emit(
            AuditEvent(
                actor=actor,
                action=AuditAction.SIGN_ATTEMPT,
                certificate_id=certificate_id,
                before=before,
                after={
                    'success': success,
                    'error_summary': error_summary,
                    'total_signatures': total_signatures,
                    'last_used_at': now.isoformat(),
                },
                ip=originator_ip,
                user_agent=user_agent,
            )
        )
