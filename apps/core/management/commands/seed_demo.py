# apps/core/management/commands/seed_demo.py

from django.core.management.base import BaseCommand
from django.db import transaction

from apps.board import services
from apps.core.models import Project, ProjectLabel, ProjectMember, User

DEMO_LISTS = {
    'To Do': ['Write the onboarding guide', 'Pick a colour palette', 'Plan the launch post'],
    'In Progress': ['Drag and drop polish', 'Presence avatars'],
    'Done': ['Project skeleton'],
}


class Command(BaseCommand):
    help = 'Creates two demo users and a demo board (idempotent)'

    def add_arguments(self, parser):
        parser.add_argument('--password', default='demo1234', help='Password for the demo users')

    def handle(self, *args, **options):
        self.stdout.write('🌱 Seeding demo data...')

        with transaction.atomic():
            alice = self._user('alice', 'Alice', 'Martins', options['password'])
            bob = self._user('bob', 'Bob', 'Ferreira', options['password'])

            project = Project.objects.filter(title='Demo board', owner=alice).first()
            if project is not None:
                self.stdout.write(self.style.WARNING('⚠️  Demo board already exists, nothing to do'))
                return

            project = Project.objects.create(
                title='Demo board',
                description='Board created by seed_demo',
                owner=alice,
                visibility=Project.VISIBILITY_TEAM,
            )
            ProjectMember.objects.get_or_create(
                project=project, user=bob, defaults={'role': ProjectMember.ROLE_MEMBER}
            )
            urgent = ProjectLabel.objects.create(project=project, name='urgent', color='#EF4444')

            lists = {board_list.title: board_list for board_list in project.lists.filter(archived=False)}
            for title, card_titles in DEMO_LISTS.items():
                board_list = lists.get(title) or services.create_list(project.id, title, user=alice)
                for card_title in card_titles:
                    services.create_card(board_list.id, card_title, user=alice)

            first_card = project.lists.get(title='To Do').cards.order_by('position').first()
            services.update_card(first_card.id, {'assignee_ids': [bob.id], 'label_ids': [urgent.id]}, user=alice)
            checklist = services.create_checklist(first_card.id, 'Sections')
            for text in ('Install', 'First board', 'Inviting people'):
                services.create_checklist_item(checklist.id, text)

        self.stdout.write(self.style.SUCCESS(
            f'✅ Demo board #{project.id} created\n'
            f'🔑 Log in as alice or bob with password "{options["password"]}"'
        ))

    def _user(self, username, first_name, last_name, password):
        user, created = User.objects.get_or_create(
            username=username,
            defaults={
                'first_name': first_name,
                'last_name': last_name,
                'email': f'{username}@example.com',
            }
        )
        if created:
            user.set_password(password)
            user.save(update_fields=['password'])
            self.stdout.write(f'  👤 User {username} created')
        return user
