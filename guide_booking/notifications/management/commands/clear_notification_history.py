from django.core.management.base import BaseCommand, CommandError

from guide_booking.notifications.services import get_new_booking_tracker, get_status_tracker


class Command(BaseCommand):
    help = 'Resets notification history so a user is alerted about past events again'

    def add_arguments(self, parser):
        parser.add_argument('user_id', help='Tourist or guide uid')
        parser.add_argument(
            '--tracker',
            choices=['status', 'new', 'all'],
            default='all',
            help='status: tourist status changes, new: guide booking requests',
        )

    def handle(self, *args, **options):
        user_id = options['user_id']
        tracker = options['tracker']

        trackers = []
        if tracker in ('status', 'all'):
            trackers.append(('status', get_status_tracker()))
        if tracker in ('new', 'all'):
            trackers.append(('new', get_new_booking_tracker()))

        failed = []
        for name, instance in trackers:
            if instance.clear_notification_history(user_id):
                self.stdout.write(f"Cleared {name} history for {user_id}")
            else:
                failed.append(name)

        if failed:
            raise CommandError(f"Could not clear {', '.join(failed)} history for {user_id}")

        self.stdout.write(self.style.SUCCESS("Done"))
