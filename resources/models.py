from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from common.models import LiveQuerySet, SoftDeleteModel, TimestampedModel


class App(TimestampedModel):
    """An application owning resource types, members and assets."""

    path = models.SlugField(max_length=255, unique=True)
    definition = models.JSONField(default=dict, blank=True)
    demo_mode = models.BooleanField(default=False)

    def __str__(self) -> str:
        return self.path


class AppMember(TimestampedModel):
    class Role(models.TextChoices):
        MEMBER = "Member", "Member"
        OWNER = "Owner", "Owner"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    app = models.ForeignKey(App, on_delete=models.CASCADE, related_name="members")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="app_memberships",
    )
    name = models.CharField(max_length=255, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    role = models.CharField(max_length=64, default=Role.MEMBER)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=("app", "user"),
                condition=Q(user__isnull=False),
                name="app_member_unique_user",
            )
        ]

    def __str__(self) -> str:
        return self.name or str(self.id)


class Group(TimestampedModel):
    app = models.ForeignKey(App, on_delete=models.CASCADE, related_name="groups")
    name = models.CharField(max_length=255)

    def __str__(self) -> str:
        return self.name


class Resource(SoftDeleteModel):
    """A JSON record of one app resource type.

    ``data`` only ever holds asset identifiers in place of binary values.
    """

    app = models.ForeignKey(App, on_delete=models.CASCADE, related_name="resources")
    type = models.CharField(max_length=255)
    data = models.JSONField(default=dict)
    author = models.ForeignKey(
        AppMember,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="authored_resources",
    )
    editor = models.ForeignKey(
        AppMember,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="edited_resources",
    )
    clonable = models.BooleanField(default=False)
    seed = models.BooleanField(default=False)
    ephemeral = models.BooleanField(default=False)
    expires = models.DateTimeField(null=True, blank=True)

    class Meta(SoftDeleteModel.Meta):
        indexes = [
            models.Index(fields=("app", "type"), name="resource_app_type_idx"),
            models.Index(fields=("expires",), name="resource_expires_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.type}#{self.pk}"


class AssetQuerySet(LiveQuerySet):
    def destroy(self) -> int:
        """Destroy every row: ephemeral rows are purged, others soft-deleted."""

        purged, _ = self.filter(ephemeral=True).delete()
        hidden = self.filter(ephemeral=False, soft_deleted_at__isnull=True).update(
            soft_deleted_at=timezone.now(), updated_at=timezone.now()
        )
        return purged + hidden


class LiveAssetManager(models.Manager.from_queryset(AssetQuerySet)):
    def get_queryset(self):
        return super().get_queryset().live()


class Asset(SoftDeleteModel):
    """Metadata row of a binary attachment; the bytes live in the object store."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    app = models.ForeignKey(App, on_delete=models.CASCADE, related_name="assets")
    name = models.CharField(max_length=255, null=True, blank=True)
    filename = models.CharField(max_length=255, null=True, blank=True)
    mime = models.CharField(max_length=255, null=True, blank=True)
    size = models.PositiveBigIntegerField(default=0)
    clonable = models.BooleanField(default=False)
    seed = models.BooleanField(default=False)
    ephemeral = models.BooleanField(default=False)
    resource = models.ForeignKey(
        Resource,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="assets",
    )
    group = models.ForeignKey(
        Group, on_delete=models.CASCADE, null=True, blank=True, related_name="assets"
    )
    app_member = models.ForeignKey(
        AppMember,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="assets",
    )

    objects = LiveAssetManager()
    all_objects = models.Manager.from_queryset(AssetQuerySet)()

    class Meta(SoftDeleteModel.Meta):
        constraints = [
            models.UniqueConstraint(
                fields=("app", "name", "ephemeral"),
                condition=Q(name__isnull=False, soft_deleted_at__isnull=True),
                name="asset_unique_live_name",
            ),
            models.CheckConstraint(
                condition=(
                    Q(resource__isnull=True, group__isnull=True)
                    | Q(resource__isnull=True, app_member__isnull=True)
                    | Q(group__isnull=True, app_member__isnull=True)
                ),
                name="asset_single_owner",
            ),
        ]

    def __str__(self) -> str:
        return self.name or str(self.id)

    @property
    def object_key(self) -> str:
        return f"{self.app_id}/{self.id}"

    @property
    def owner(self):
        return self.resource or self.group or self.app_member

    def destroy(self) -> None:
        if self.ephemeral:
            self.delete()
        else:
            self.soft_delete()


class ResourceVersion(models.Model):
    """Append-only snapshot of a resource before a mutation."""

    resource = models.ForeignKey(
        Resource, on_delete=models.CASCADE, related_name="versions"
    )
    previous_editor = models.ForeignKey(
        AppMember,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    data = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at", "-id")

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("resource_version_immutable")
        super().save(*args, **kwargs)
