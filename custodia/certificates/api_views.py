"""API Views for Certificate-related endpoints.

The authenticated user is always the owner, certificates of other owners are reported as not found.
"""

from __future__ import annotations

from typing import Any, ClassVar

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from certificates.exceptions import (
    CertificateConflictError,
    CertificateCustodyError,
    CertificateExpiredError,
    CertificateNotFoundError,
    CertificateStorageError,
    CertificateValidationError,
    SigningError,
)
from certificates.serializers import (
    CertificateStatisticsSerializer,
    CertificateStatusSerializer,
    CertificateSummarySerializer,
    CertificateUploadSerializer,
    PasswordVerificationSerializer,
)
from certificates.services.registry import CertificateRegistry
from certificates.services.types import RequestMeta
from custodia.logger import LoggerMixin

ERROR_STATUS_CODES: tuple[tuple[type[CertificateCustodyError], int], ...] = (
    (CertificateValidationError, status.HTTP_400_BAD_REQUEST),
    (CertificateNotFoundError, status.HTTP_404_NOT_FOUND),
    (CertificateConflictError, status.HTTP_409_CONFLICT),
    (CertificateExpiredError, status.HTTP_410_GONE),
    (CertificateStorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (SigningError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def custody_error_response(exception: CertificateCustodyError) -> Response:
    """Maps a custody error to a response with the matching status code."""
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(exception, error_class):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return Response({'error': exception.message, 'code': exception.code}, status=status_code)


class CertificateViewSet(LoggerMixin, viewsets.ViewSet):
    """ViewSet for the certificates of the authenticated owner."""

    permission_classes: ClassVar[list[Any]] = [IsAuthenticated]
    parser_classes: ClassVar[list[Any]] = [MultiPartParser, FormParser, JSONParser]
    lookup_value_regex = r'\d+'

    def get_registry(self) -> CertificateRegistry:
        """Returns the registry serving this request."""
        return CertificateRegistry.from_settings()

    def list(self, request: Request) -> Response:
        """List the certificates of the owner, newest first. Inactive ones only with ?include_inactive=true."""
        include_inactive = request.query_params.get('include_inactive', '').lower() in ('1', 'true', 'yes')
        certificates = self.get_registry().list_for_owner(request.user.pk, include_inactive=include_inactive)
        return Response(CertificateSummarySerializer(certificates, many=True).data, status=status.HTTP_200_OK)

    def create(self, request: Request) -> Response:
        """Upload a certificate container and make it the active certificate."""
        serializer = CertificateUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        upload = serializer.validated_data['file']
        try:
            summary = self.get_registry().register(
                owner_id=request.user.pk,
                blob=upload.read(),
                original_name=upload.name,
                password=serializer.validated_data['password'],
                request_meta=RequestMeta.from_request(request),
            )
        except CertificateCustodyError as exception:
            self.logger.warning('Certificate upload by owner %s rejected: %s', request.user.pk, exception.code)
            return custody_error_response(exception)

        self.logger.info('Certificate %s uploaded by owner %s.', summary.id, request.user.pk)
        return Response(CertificateSummarySerializer(summary).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """Retrieve a single certificate of the owner."""
        try:
            summary = self.get_registry().get_for_owner(int(pk or 0), request.user.pk)
        except CertificateCustodyError as exception:
            return custody_error_response(exception)
        return Response(CertificateSummarySerializer(summary).data, status=status.HTTP_200_OK)

    def destroy(self, request: Request, pk: str | None = None) -> Response:
        """Remove a certificate of the owner. The record is kept inactive.

        Removing a recently used certificate answers 200 with a warning instead of 204.
        """
        try:
            warning = self.get_registry().remove(int(pk or 0), request.user.pk, RequestMeta.from_request(request))
        except CertificateCustodyError as exception:
            return custody_error_response(exception)
        if warning:
            return Response({'removed': True, 'warning': warning}, status=status.HTTP_200_OK)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'], url_path='status', url_name='status')
    def set_status(self, request: Request, pk: str | None = None) -> Response:
        """Activate or deactivate a certificate of the owner."""
        serializer = CertificateStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            summary = self.get_registry().set_active(
                int(pk or 0),
                request.user.pk,
                serializer.validated_data['is_active'],
                RequestMeta.from_request(request),
            )
        except CertificateCustodyError as exception:
            self.logger.warning('Status change of certificate %s rejected: %s', pk, exception.code)
            return custody_error_response(exception)
        return Response(CertificateSummarySerializer(summary).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'], url_path='verify-password', url_name='verify-password')
    def verify_password(self, request: Request, pk: str | None = None) -> Response:
        """Confirm the password of a certificate of the owner."""
        serializer = PasswordVerificationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            valid = self.get_registry().verify_password(
                int(pk or 0),
                request.user.pk,
                serializer.validated_data['password'],
                RequestMeta.from_request(request),
            )
        except CertificateCustodyError as exception:
            return custody_error_response(exception)
        return Response({'valid': valid}, status=status.HTTP_200_OK)

    @action(detail=False, methods=['get'], url_path='statistics', url_name='statistics')
    def statistics(self, request: Request) -> Response:
        """Usage totals of the owner's certificates."""
        statistics = self.get_registry().statistics(request.user.pk)
        return Response(CertificateStatisticsSerializer(statistics).data, status=status.HTTP_200_OK)
