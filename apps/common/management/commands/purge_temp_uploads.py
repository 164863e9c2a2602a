from django.conf import settings
from django.core.management.base import BaseCommand

from apps.common.utils import purge_stale_temps


class Command(BaseCommand):
    help = "Delete staged images left behind by forms that were never submitted or cancelled."

    def add_arguments(self, parser):
        parser.add_argument(
            "--hours",
            type=int,
            default=settings.TEMP_UPLOAD_MAX_AGE_HOURS,
            help="Delete staged images older than this many hours.",
        )

    def handle(self, *args, **options):
        count = purge_stale_temps(options["hours"])
        self.stdout.write(self.style.SUCCESS(f"Deleted {count} staged image(s)."))
