"""URL configuration for Certificate API endpoints.

Defines routes that map API requests to their corresponding viewsets.
"""

from rest_framework.routers import DefaultRouter

from certificates.api_views import CertificateViewSet

router = DefaultRouter()
router.register(r'certificates', CertificateViewSet, basename='certificate')

urlpatterns = router.urls
