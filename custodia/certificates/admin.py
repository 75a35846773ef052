"""Admin configuration for the Certificates app."""

from __future__ import annotations

from typing import Any

from django.contrib import admin
from django.http import HttpRequest

from certificates.models import DigitalCertificateModel

SECRET_FIELDS = ('blob_locator', 'encrypted_password', 'password_hash')


class DigitalCertificateAdmin(admin.ModelAdmin):
    """Read-only admin interface for DigitalCertificateModel. Secret fields are never shown."""

    list_display = ('name', 'owner', 'issuer', 'expires_at', 'is_active', 'storage_backend', 'total_signatures')
    list_filter = ('is_active', 'storage_backend', 'deactivation_reason')
    search_fields = ('name', 'issuer', 'serial_number', 'fingerprint', 'owner__username')
    exclude = SECRET_FIELDS

    def get_readonly_fields(self, request: HttpRequest, obj: Any = None) -> list[str]:
        """Sets all fields as read-only."""
        del request, obj
        return [f.name for f in DigitalCertificateModel._meta.fields if f.name not in SECRET_FIELDS]  # noqa: SLF001

    def has_add_permission(self, request: HttpRequest) -> bool:
        """Certificates are only registered through the API."""
        del request
        return False

    def has_delete_permission(self, request: HttpRequest, obj: Any = None) -> bool:
        """Certificate records are retained."""
        del request, obj
        return False


admin.site.register(DigitalCertificateModel, DigitalCertificateAdmin)
