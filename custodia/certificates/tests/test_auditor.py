"""Tests for the UsageAuditor."""

import pytest

from certificates.audit import AuditAction
from certificates.exceptions import CertificateNotFoundError
from certificates.models import MAX_RECORDED_ATTEMPTS, DigitalCertificateModel
from certificates.services.auditor import MAX_ERROR_SUMMARY_LENGTH, UsageAuditor
from certificates.tests.test_models import create_certificate


@pytest.fixture
def auditor(audit_sink) -> UsageAuditor:
    """An auditor writing to the in-memory sink."""
    return UsageAuditor(audit_sink)


class TestUsageAuditor:
    """Tests for UsageAuditor.record_attempt."""

    def test_success_counts_signature(self, auditor, owner, audit_sink) -> None:
        """Test that successful attempts increment the signature counter."""
        certificate = create_certificate(owner)

        auditor.record_attempt(certificate.pk, success=True, originator_ip='192.0.2.1')

        certificate.refresh_from_db()
        assert certificate.total_signatures == 1
        assert certificate.last_used_at is not None
        assert certificate.attempts[0]['success'] is True
        assert certificate.attempts[0]['originator_ip'] == '192.0.2.1'
        assert certificate.attempts[0]['error_summary'] is None
        assert audit_sink.actions() == [AuditAction.SIGN_ATTEMPT]

    def test_failure_does_not_count_signature(self, auditor, owner) -> None:
        """Test that failures are recorded but not counted, and still stamp last_used_at."""
        certificate = create_certificate(owner)

        auditor.record_attempt(certificate.pk, success=False, error_summary='bad password')

        certificate.refresh_from_db()
        assert certificate.total_signatures == 0
        assert certificate.last_used_at is not None
        assert certificate.attempts == [
            {
                'timestamp': certificate.attempts[0]['timestamp'],
                'success': False,
                'originator_ip': None,
                'error_summary': 'bad password',
            }
        ]

    @pytest.mark.parametrize('count', [1, MAX_RECORDED_ATTEMPTS, MAX_RECORDED_ATTEMPTS + 7])
    def test_attempts_are_bounded(self, auditor, owner, count) -> None:
        """Test that only the most recent attempts are kept, oldest first."""
        certificate = create_certificate(owner)

        for index in range(count):
            auditor.record_attempt(certificate.pk, success=index % 2 == 0, error_summary=f'attempt {index}')

        certificate.refresh_from_db()
        kept = min(count, MAX_RECORDED_ATTEMPTS)
        assert len(certificate.attempts) == kept
        assert [attempt['error_summary'] for attempt in certificate.attempts] == [
            f'attempt {index}' for index in range(count - kept, count)
        ]
        assert certificate.total_signatures == (count + 1) // 2

    def test_error_summary_is_truncated(self, auditor, owner) -> None:
        """Test that long error summaries are cut."""
        certificate = create_certificate(owner)
        auditor.record_attempt(certificate.pk, success=False, error_summary='x' * 2000)
        certificate.refresh_from_db()
        assert len(certificate.attempts[0]['error_summary']) == MAX_ERROR_SUMMARY_LENGTH

    def test_unknown_certificate(self, auditor) -> None:
        """Test that attempts for unknown certificates raise CertificateNotFoundError."""
        with pytest.raises(CertificateNotFoundError):
            auditor.record_attempt(999999, success=True)

    def test_failing_sink_does_not_break_recording(self, owner) -> None:
        """Test that audit sink failures are logged and swallowed."""

        class BrokenSink:
            def emit(self, event) -> None:
                raise RuntimeError('sink down')

        certificate = create_certificate(owner)
        UsageAuditor(BrokenSink()).record_attempt(certificate.pk, success=True)
        assert DigitalCertificateModel.objects.get(pk=certificate.pk).total_signatures == 1

    def test_event_carries_counters_and_request_details(self, auditor, owner, audit_sink) -> None:
        """Test that the emitted event holds the user agent and the counters before and after the attempt."""
        certificate = create_certificate(owner)

        auditor.record_attempt(
            certificate.pk, success=True, originator_ip='192.0.2.1', actor=owner.pk, user_agent='pytest-agent'
        )

        event = audit_sink.events[-1]
        assert event.action == AuditAction.SIGN_ATTEMPT
        assert event.certificate_id == certificate.pk
        assert event.actor == owner.pk
        assert event.ip == '192.0.2.1'
        assert event.user_agent == 'pytest-agent'
        assert event.before == {'total_signatures': 0, 'last_used_at': None}
        assert event.after['success'] is True
        assert event.after['total_signatures'] == 1

    def test_event_before_reflects_previous_attempt(self, auditor, owner, audit_sink) -> None:
        """Test that the counters before an attempt are the ones left by the previous attempt."""
        certificate = create_certificate(owner)
        auditor.record_attempt(certificate.pk, success=True)
        first = audit_sink.events[-1]

        auditor.record_attempt(certificate.pk, success=False, error_summary='bad password')

        second = audit_sink.events[-1]
        assert second.before == {'total_signatures': 1, 'last_used_at': first.after['last_used_at']}
        assert second.after['total_signatures'] == 1
        assert second.after['error_summary'] == 'bad password'
