# apps/core/management/commands/compact_positions.py

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from apps.board import services
from apps.core.models import Project


class Command(BaseCommand):
    help = 'Rewrites the positions of every active list, card, checklist and item as 0..n-1'

    def add_arguments(self, parser):
        parser.add_argument('--project', type=int, help='Only compact this project id')
        parser.add_argument('--dry-run', action='store_true', help='Report the rows that would change')

    def handle(self, *args, **options):
        projects = Project.objects.order_by('id')
        if options['project'] is not None:
            projects = projects.filter(pk=options['project'])
            if not projects.exists():
                raise CommandError(f"Project {options['project']} does not exist")

        total = 0
        with transaction.atomic():
            for project in projects:
                changed = services.compact_project(project.id)
                if changed:
                    self.stdout.write(f'  🔧 Project #{project.id} ({project.title}): {changed} position(s)')
                total += changed

            if options['dry_run']:
                transaction.set_rollback(True)

        if options['dry_run']:
            self.stdout.write(self.style.WARNING(f'Dry run: {total} position(s) would change'))
        else:
            self.stdout.write(self.style.SUCCESS(f'✅ {total} position(s) rewritten'))
