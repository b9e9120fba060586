"""
Create notifications for upcoming and overdue installments.

Meant to run once a day from cron:
    python manage.py send_payment_notifications
"""
from datetime import date

from django.core.management.base import BaseCommand, CommandError

from apps.notifications.services import generate_payment_notifications


class Command(BaseCommand):
    help = 'Creates due-soon, due-today and overdue notifications for scheduled installments'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be created without making changes',
        )
        parser.add_argument(
            '--date',
            help='Run as if today were this date (YYYY-MM-DD)',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        today = None
        if options['date']:
            try:
                today = date.fromisoformat(options['date'])
            except ValueError:
                raise CommandError(f"Invalid date: {options['date']}")

        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No changes will be made'))

        run = generate_payment_notifications(today=today, dry_run=dry_run)

        self.stdout.write(f'Installments checked: {run.checked}')
        self.stdout.write(f'Marked overdue: {run.marked_overdue}')
        self.stdout.write(self.style.SUCCESS(f'Notifications created: {run.created}'))
