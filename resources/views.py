"""REST views for app assets and resources."""

from __future__ import annotations

import json
from typing import Any

from django.http import HttpResponse, HttpResponseRedirect
from django.urls import reverse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import BaseParser, FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from common.logging import bind_log_context, get_logger
from common.object_store import ObjectNotFound

from .asset_store import AssetStore
from .context import DEFAULT_MIME, AssetPayload, RequestContext
from .errors import Forbidden, NotFound, ValidationError
from .models import App, AppMember
from .mutation import ResourceMutationCoordinator
from .serializers import (
    AssetListSerializer,
    AssetSerializer,
    AssetUploadSerializer,
    ResourceVersionSerializer,
)

logger = get_logger(__name__)

MULTIPART = "multipart/form-data"


class RawBodyParser(BaseParser):
    """Accept any body as raw bytes."""

    media_type = "*/*"

    def parse(self, stream, media_type=None, parser_context=None):
        return stream.read() if stream is not None else b""


def _get_app(app_id: int) -> App:
    try:
        return App.objects.get(pk=app_id)
    except App.DoesNotExist as exc:
        raise NotFound("App not found") from exc


def _member_for(request: Request, app: App) -> AppMember | None:
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return None
    return AppMember.objects.filter(app=app, user=user).first()


def _scope(request: Request, app_id: int) -> tuple[App, AppMember | None]:
    app = _get_app(app_id)
    member = _member_for(request, app)
    bind_log_context(app_id=app.pk, member_id=member.id if member else None)
    return app, member


def _require_member(member: AppMember | None) -> AppMember:
    if member is None:
        raise Forbidden("User is not a member of this app")
    return member


def _is_multipart(request: Request) -> bool:
    return (request.content_type or "").startswith(MULTIPART)


def _asset_payload(request: Request) -> AssetPayload:
    if _is_multipart(request):
        serializer = AssetUploadSerializer(data=request.data)
        if not serializer.is_valid():
            raise ValidationError("Asset upload is invalid", details=serializer.errors)
        return AssetPayload.from_upload(
            serializer.validated_data["file"],
            name=serializer.validated_data.get("name"),
        )

    body = request.data if isinstance(request.data, (bytes, bytearray)) else b""
    mime = (request.content_type or "").split(";", 1)[0].strip() or DEFAULT_MIME
    return AssetPayload(
        data=bytes(body), mime=mime, name=request.query_params.get("name") or None
    )


def _select(request: Request) -> list[str] | None:
    raw = request.query_params.get("$select")
    if not raw:
        return None
    return [field.strip() for field in raw.split(",") if field.strip()]


def _mutation_context(request: Request, member: AppMember | None) -> RequestContext:
    if not _is_multipart(request):
        return RequestContext(member=member, body=request.data)

    raw = request.data.get("resource")
    if raw is None:
        raise ValidationError("Multipart resource bodies need a 'resource' field")
    try:
        body: Any = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ValidationError("The 'resource' field is not valid JSON") from exc
    files = tuple(
        AssetPayload.from_upload(upload) for upload in request.FILES.getlist("assets")
    )
    return RequestContext(member=member, body=body, files=files)


class AssetListView(APIView):
    permission_classes = [AllowAny]
    parser_classes = [MultiPartParser, FormParser, RawBodyParser]

    @extend_schema(tags=["assets"], responses=AssetListSerializer(many=True))
    def get(self, request: Request, app_id: int) -> Response:
        app, _ = _scope(request, app_id)
        assets = AssetStore().query(app)
        return Response(AssetListSerializer(assets, many=True).data)

    @extend_schema(
        tags=["assets"],
        request={MULTIPART: AssetUploadSerializer, "*/*": OpenApiTypes.BINARY},
        responses={201: AssetSerializer, 409: OpenApiResponse(description="Name taken")},
    )
    def post(self, request: Request, app_id: int) -> Response:
        app, member = _scope(request, app_id)
        asset = AssetStore().create(app, _asset_payload(request), owner=member)
        return Response(AssetSerializer(asset).data, status=status.HTTP_201_CREATED)


class AssetDetailView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(
        tags=["assets"],
        responses={
            (200, "application/octet-stream"): OpenApiTypes.BINARY,
            302: OpenApiResponse(description="Asset resolved by name"),
        },
    )
    def get(self, request: Request, app_id: int, id_or_name: str) -> HttpResponse:
        app, _ = _scope(request, app_id)
        store = AssetStore()
        asset, by_name = store.resolve(app, id_or_name)
        if by_name:
            return HttpResponseRedirect(
                reverse(
                    "resources:asset-detail",
                    kwargs={"app_id": app.pk, "id_or_name": str(asset.id)},
                )
            )

        try:
            data = store.read(asset)
        except ObjectNotFound as exc:
            logger.warning("assets.serve.missing_bytes", asset_id=str(asset.id))
            raise NotFound("Asset not found") from exc

        response = HttpResponse(data, content_type=asset.mime or DEFAULT_MIME)
        if asset.filename:
            response["Content-Disposition"] = f'inline; filename="{asset.filename}"'
        response["Cache-Control"] = "max-age=31536000,immutable"
        return response

    @extend_schema(tags=["assets"], responses={204: None})
    def delete(self, request: Request, app_id: int, id_or_name: str) -> Response:
        app, member = _scope(request, app_id)
        _require_member(member)
        store = AssetStore()
        asset, _ = store.resolve(app, id_or_name)
        store.destroy(asset)
        return Response(status=status.HTTP_204_NO_CONTENT)


class SeedAssetView(APIView):
    permission_classes = [AllowAny]
    parser_classes = [MultiPartParser, FormParser, RawBodyParser]

    @extend_schema(tags=["assets"], request={MULTIPART: AssetUploadSerializer}, responses={201: AssetSerializer})
    def post(self, request: Request, app_id: int) -> Response:
        app, member = _scope(request, app_id)
        _require_member(member)
        asset = AssetStore().create_seed(app, _asset_payload(request), member)
        return Response(AssetSerializer(asset).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["assets"], responses={204: None})
    def delete(self, request: Request, app_id: int) -> Response:
        app, member = _scope(request, app_id)
        _require_member(member)
        AssetStore().delete_seed(app)
        return Response(status=status.HTTP_204_NO_CONTENT)


_SELECT_PARAMETER = OpenApiParameter(
    name="$select",
    type=str,
    location=OpenApiParameter.QUERY,
    required=False,
    description="Comma separated allow-list of representation keys.",
)


class ResourceListView(APIView):
    permission_classes = [AllowAny]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    @extend_schema(tags=["resources"], parameters=[_SELECT_PARAMETER], responses=OpenApiTypes.OBJECT)
    def get(self, request: Request, app_id: int, resource_type: str) -> Response:
        app, member = _scope(request, app_id)
        coordinator = ResourceMutationCoordinator()
        resources = coordinator.query(app, resource_type, RequestContext(member=member))
        include = _select(request)
        return Response(
            [
                coordinator.resource_store.to_representation(resource, include=include)
                for resource in resources
            ]
        )

    @extend_schema(tags=["resources"], request=OpenApiTypes.OBJECT, responses={201: OpenApiTypes.OBJECT})
    def post(self, request: Request, app_id: int, resource_type: str) -> Response:
        app, member = _scope(request, app_id)
        coordinator = ResourceMutationCoordinator()
        resource = coordinator.create(
            app, resource_type, _mutation_context(request, member)
        )
        return Response(
            coordinator.resource_store.to_representation(resource),
            status=status.HTTP_201_CREATED,
        )


class ResourceDetailView(APIView):
    permission_classes = [AllowAny]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    @extend_schema(tags=["resources"], parameters=[_SELECT_PARAMETER], responses=OpenApiTypes.OBJECT)
    def get(
        self, request: Request, app_id: int, resource_type: str, resource_id: int
    ) -> Response:
        app, member = _scope(request, app_id)
        coordinator = ResourceMutationCoordinator()
        resource = coordinator.get(
            app, resource_type, resource_id, RequestContext(member=member)
        )
        return Response(
            coordinator.resource_store.to_representation(
                resource, include=_select(request)
            )
        )

    @extend_schema(tags=["resources"], request=OpenApiTypes.OBJECT, responses=OpenApiTypes.OBJECT)
    def patch(
        self, request: Request, app_id: int, resource_type: str, resource_id: int
    ) -> Response:
        app, member = _scope(request, app_id)
        coordinator = ResourceMutationCoordinator()
        resource = coordinator.patch(
            app, resource_type, resource_id, _mutation_context(request, member)
        )
        return Response(coordinator.resource_store.to_representation(resource))

    @extend_schema(tags=["resources"], request=OpenApiTypes.OBJECT, responses=OpenApiTypes.OBJECT)
    def put(
        self, request: Request, app_id: int, resource_type: str, resource_id: int
    ) -> Response:
        app, member = _scope(request, app_id)
        coordinator = ResourceMutationCoordinator()
        resource = coordinator.update(
            app, resource_type, resource_id, _mutation_context(request, member)
        )
        return Response(coordinator.resource_store.to_representation(resource))

    @extend_schema(tags=["resources"], responses={204: None})
    def delete(
        self, request: Request, app_id: int, resource_type: str, resource_id: int
    ) -> Response:
        app, member = _scope(request, app_id)
        ResourceMutationCoordinator().delete(
            app, resource_type, resource_id, RequestContext(member=member)
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


class ResourceHistoryView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["resources"], responses=ResourceVersionSerializer(many=True))
    def get(
        self, request: Request, app_id: int, resource_type: str, resource_id: int
    ) -> Response:
        app, member = _scope(request, app_id)
        coordinator = ResourceMutationCoordinator()
        resource = coordinator.get(
            app, resource_type, resource_id, RequestContext(member=member)
        )
        versions = coordinator.resource_store.versions(resource)
        return Response(ResourceVersionSerializer(versions, many=True).data)
