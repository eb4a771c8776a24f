from django.urls import path

from .views import (
    AssetDetailView,
    AssetListView,
    ResourceDetailView,
    ResourceHistoryView,
    ResourceListView,
    SeedAssetView,
)

app_name = "resources"

urlpatterns = [
    path("apps/<int:app_id>/assets", AssetListView.as_view(), name="asset-list"),
    path(
        "apps/<int:app_id>/assets/<str:id_or_name>",
        AssetDetailView.as_view(),
        name="asset-detail",
    ),
    path("apps/<int:app_id>/seed-assets", SeedAssetView.as_view(), name="seed-assets"),
    path(
        "apps/<int:app_id>/resources/<str:resource_type>",
        ResourceListView.as_view(),
        name="resource-list",
    ),
    path(
        "apps/<int:app_id>/resources/<str:resource_type>/<int:resource_id>",
        ResourceDetailView.as_view(),
        name="resource-detail",
    ),
    path(
        "apps/<int:app_id>/resources/<str:resource_type>/<int:resource_id>/history",
        ResourceHistoryView.as_view(),
        name="resource-history",
    ),
]
