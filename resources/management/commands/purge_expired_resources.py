"""Destroy resources whose expiry date has passed."""

from __future__ import annotations

from django.core.management.base import BaseCommand
from django.utils import timezone

from common.logging import get_logger
from resources.models import Resource
from resources.resource_store import ResourceStore

logger = get_logger(__name__)


class Command(BaseCommand):
    """Run the expiry sweep once."""

    help = "Destroy resources whose expiry date has passed"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report how many resources expired without destroying them",
        )

    def handle(self, *args, **options):
        now = timezone.now()
        if options.get("dry_run", False):
            expired = Resource.objects.filter(expires__lte=now).count()
            self.stdout.write(f"{expired} expired resource(s) would be destroyed")
            return

        purged = ResourceStore().purge_expired(now)
        logger.info("resources.expiry_sweep.completed", count=purged)
        self.stdout.write(self.style.SUCCESS(f"Destroyed {purged} expired resource(s)"))
