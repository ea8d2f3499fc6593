"""
URL configuration for the promotions platform
"""

from django.conf import settings
from django.urls import include, path

urlpatterns = [
    # API endpoints
    path("api/promotions/", include("apps.api.promotions.urls")),
]

if settings.DEBUG and "debug_toolbar" in settings.INSTALLED_APPS:
    urlpatterns += [path("__debug__/", include("debug_toolbar.urls"))]
