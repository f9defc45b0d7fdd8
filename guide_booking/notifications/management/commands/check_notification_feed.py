from django.core.management.base import BaseCommand, CommandError

from guide_booking.notifications.services import get_gateway


class Command(BaseCommand):
    help = 'Checks the notification feed by writing and removing a probe record'

    def handle(self, *args, **options):
        result = get_gateway().check_connection()
        if not result.success:
            raise CommandError(f"Notification feed is unreachable: {result.error}")

        self.stdout.write(self.style.SUCCESS("Notification feed connection OK"))
