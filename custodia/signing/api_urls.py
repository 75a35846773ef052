"""URL configuration for Signing API endpoints."""

from rest_framework.routers import SimpleRouter

from signing.api_views import SigningViewSet

router = SimpleRouter()
router.register(r'signing', SigningViewSet, basename='signing')

urlpatterns = router.urls
