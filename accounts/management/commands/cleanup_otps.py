from django.core.management.base import BaseCommand

from accounts.services import cleanup_stale_otps


class Command(BaseCommand):
    help = "Delete expired and already verified OTP records."

    def handle(self, *args, **options):
        deleted = cleanup_stale_otps()
        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} stale OTP record(s)."))
