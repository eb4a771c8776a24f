from django.db import models
from django.utils import timezone


class TimestampedModel(models.Model):
    """Abstract base model with self-updating ``created_at`` and ``updated_at``.

    ``created_at`` is set when the object is created and ``updated_at`` is
    refreshed on each save.
    """

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class LiveQuerySet(models.QuerySet):
    def live(self):
        return self.filter(soft_deleted_at__isnull=True)

    def soft_deleted(self):
        return self.filter(soft_deleted_at__isnull=False)


class LiveManager(models.Manager.from_queryset(LiveQuerySet)):
    """Manager hiding soft-deleted rows."""

    def get_queryset(self):
        return super().get_queryset().live()


class SoftDeleteModel(TimestampedModel):
    """Abstract model whose rows are hidden rather than removed on delete.

    ``objects`` only yields live rows; ``all_objects`` includes soft-deleted
    ones.
    """

    soft_deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)

    objects = LiveManager()
    all_objects = models.Manager.from_queryset(LiveQuerySet)()

    class Meta:
        abstract = True
        base_manager_name = "all_objects"

    @property
    def is_soft_deleted(self) -> bool:
        return self.soft_deleted_at is not None

    def soft_delete(self, *, at=None) -> None:
        self.soft_deleted_at = at or timezone.now()
        self.save(update_fields=["soft_deleted_at", "updated_at"])
