"""Serializers for Certificate-related API endpoints."""

from __future__ import annotations

from pathlib import PurePath
from typing import Any

from rest_framework import serializers

ALLOWED_EXTENSIONS = ('.pfx', '.p12')
MAX_UPLOAD_SIZE = 5 * 1024 * 1024


class CertificateSummarySerializer(serializers.Serializer[Any]):
    """Serializer for the public metadata of a certificate."""

    id = serializers.IntegerField(read_only=True)
    name = serializers.CharField(read_only=True)
    serial_number = serializers.CharField(read_only=True)
    issuer = serializers.CharField(read_only=True)
    issued_at = serializers.DateTimeField(read_only=True)
    expires_at = serializers.DateTimeField(read_only=True)
    status = serializers.CharField(read_only=True)
    days_to_expiry = serializers.IntegerField(read_only=True)
    total_signatures = serializers.IntegerField(read_only=True)
    last_used_at = serializers.DateTimeField(read_only=True, allow_null=True)
    is_active = serializers.BooleanField(read_only=True)
    storage_backend = serializers.CharField(read_only=True)


class CertificateUploadSerializer(serializers.Serializer[Any]):
    """Serializer for certificate uploads."""

    file = serializers.FileField(required=True, help_text='The PKCS#12 container (.pfx or .p12)')
    password = serializers.CharField(
        required=True,
        allow_blank=True,
        trim_whitespace=False,
        write_only=True,
        help_text='The password of the container',
    )

    def validate_file(self, value: Any) -> Any:
        """Validate the extension and size of the uploaded container."""
        extension = PurePath(value.name or '').suffix.lower()
        if extension not in ALLOWED_EXTENSIONS:
            msg = 'Only .pfx and .p12 files are accepted.'
            raise serializers.ValidationError(msg)
        if value.size > MAX_UPLOAD_SIZE:
            msg = 'The file must not be larger than 5 MB.'
            raise serializers.ValidationError(msg)
        return value


class CertificateStatusSerializer(serializers.Serializer[Any]):
    """Serializer for activation and deactivation requests."""

    is_active = serializers.BooleanField(required=True, help_text='Whether the certificate shall be active')


class PasswordVerificationSerializer(serializers.Serializer[Any]):
    """Serializer for password confirmation requests."""

    password = serializers.CharField(required=True, allow_blank=True, trim_whitespace=False, write_only=True)


class CertificateStatisticsSerializer(serializers.Serializer[Any]):
    """Serializer for the usage totals of an owner."""

    total = serializers.IntegerField(read_only=True)
    active = serializers.IntegerField(read_only=True)
    expired = serializers.IntegerField(read_only=True)
    total_signatures = serializers.IntegerField(read_only=True)
    last_used_at = serializers.DateTimeField(read_only=True, allow_null=True)
    expiring_soon = CertificateSummarySerializer(many=True, read_only=True)
