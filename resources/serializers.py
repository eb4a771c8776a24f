"""Serializers for asset and resource API payloads."""

from __future__ import annotations

from rest_framework import serializers

from resources.models import Asset, ResourceVersion


class AssetSerializer(serializers.ModelSerializer):
    class Meta:
        model = Asset
        fields = ["id", "mime", "filename", "name"]


class AssetListSerializer(AssetSerializer):
    resource_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta(AssetSerializer.Meta):
        fields = AssetSerializer.Meta.fields + [
            "resource_id",
            "size",
            "clonable",
            "ephemeral",
            "created_at",
        ]


class AssetUploadSerializer(serializers.Serializer):
    file = serializers.FileField(allow_empty_file=True)
    name = serializers.CharField(required=False, allow_blank=True, max_length=255)


class ResourceVersionSerializer(serializers.ModelSerializer):
    created = serializers.DateTimeField(source="created_at", read_only=True)
    author = serializers.SerializerMethodField()

    class Meta:
        model = ResourceVersion
        fields = ["created", "author", "data"]

    def get_author(self, obj):
        member = getattr(obj, "previous_editor", None)
        if member is None:
            return None
        return {"id": str(member.id), "name": member.name}
