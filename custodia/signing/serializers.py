"""Serializers for Signing-related API endpoints."""

from __future__ import annotations

from typing import Any

from rest_framework import serializers

MAX_DOCUMENT_SIZE = 50 * 1024 * 1024
PDF_MAGIC = b'%PDF-'


class SignDocumentRequestSerializer(serializers.Serializer[Any]):
    """Serializer for sign document requests."""

    document = serializers.FileField(required=True, help_text='The PDF document to sign')
    display_name = serializers.CharField(
        required=False, allow_blank=True, max_length=256, help_text='Name of the signer embedded in the signature'
    )
    license_id = serializers.CharField(
        required=False, allow_blank=True, max_length=64, help_text='Professional license id of the signer'
    )

    def validate_document(self, value: Any) -> Any:
        """Validate that the document is a PDF of acceptable size."""
        if value.size > MAX_DOCUMENT_SIZE:
            msg = 'The document must not be larger than 50 MB.'
            raise serializers.ValidationError(msg)
        header = value.read(len(PDF_MAGIC))
        value.seek(0)
        if header != PDF_MAGIC:
            msg = 'The document must be a PDF.'
            raise serializers.ValidationError(msg)
        return value
