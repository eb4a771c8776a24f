"""URL configuration for the vault project."""

from django.urls import include, path

from drf_spectacular.views import SpectacularAPIView

urlpatterns = [
    path("api/", include("resources.urls")),
    path("api/schema/", SpectacularAPIView.as_view(), name="api-schema"),
]
