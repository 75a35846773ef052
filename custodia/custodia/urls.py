"""URL configuration for the custodia project."""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    # API URLs
    path('api/', include('certificates.api_urls')),
    path('api/', include('signing.api_urls')),
]
