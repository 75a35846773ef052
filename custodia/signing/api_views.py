"""API Views for Signing-related endpoints."""

from __future__ import annotations

from typing import Any, ClassVar

from django.http import HttpResponse
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from certificates.api_views import custody_error_response
from certificates.exceptions import CertificateCustodyError
from certificates.services.types import RequestMeta
from custodia.logger import LoggerMixin
from signing.coordinator import SigningCoordinator
from signing.pdf_signer import SignerIdentity
from signing.serializers import SignDocumentRequestSerializer


class SigningViewSet(LoggerMixin, viewsets.ViewSet):
    """ViewSet for signing documents with the active certificate of the authenticated owner."""

    permission_classes: ClassVar[list[Any]] = [IsAuthenticated]
    parser_classes: ClassVar[list[Any]] = [MultiPartParser]

    def get_coordinator(self) -> SigningCoordinator:
        """Returns the coordinator serving this request."""
        return SigningCoordinator.from_settings()

    @action(detail=False, methods=['post'], url_path='sign', url_name='sign')
    def sign(self, request: Request) -> HttpResponse | Response:
        """Sign a PDF document and return the signed PDF."""
        serializer = SignDocumentRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        display_name = serializer.validated_data.get('display_name')
        signer_identity = None
        if display_name:
            signer_identity = SignerIdentity(
                display_name=display_name, license_id=serializer.validated_data.get('license_id') or None
            )

        document = serializer.validated_data['document']
        try:
            signed_document = self.get_coordinator().sign(
                owner_id=request.user.pk,
                document_bytes=document.read(),
                request_meta=RequestMeta.from_request(request),
                signer_identity=signer_identity,
            )
        except CertificateCustodyError as exception:
            self.logger.warning('Signing for owner %s failed: %s', request.user.pk, exception.code)
            return custody_error_response(exception)

        response = HttpResponse(signed_document.signed_bytes, content_type='application/pdf')
        response['Content-Disposition'] = 'attachment; filename="signed.pdf"'
        response['X-Certificate-Id'] = str(signed_document.certificate_id)
        return response
