# apps/board/tests/helpers.py

"""Shared fixtures for the board tests"""

from apps.board import services
from apps.core.models import Project, ProjectCard, ProjectList, User


class BoardFixtureMixin:
    """Owner, member and outsider users plus a private project"""

    def create_users(self):
        self.owner = User.objects.create_user('owner', 'owner@example.com', 'password')
        self.member = User.objects.create_user('member', 'member@example.com', 'password')
        self.outsider = User.objects.create_user('outsider', 'outsider@example.com', 'password')

    def create_project(self, title='Roadmap', visibility=Project.VISIBILITY_PRIVATE, owner=None):
        project = Project.objects.create(title=title, owner=owner or self.owner, visibility=visibility)
        project.members.create(user=self.member)
        return project

    def create_list(self, project, title, *card_titles):
        board_list = services.create_list(project.id, title)
        for card_title in card_titles:
            services.create_card(board_list.id, card_title)
        return board_list

    def card(self, title):
        return ProjectCard.objects.get(title=title)

    def layout(self, board_list):
        """Titles of the active cards of a list in position order"""
        return list(
            ProjectCard.objects.filter(list_id=board_list.pk, archived=False)
            .order_by('position').values_list('title', flat=True)
        )

    def positions_of(self, board_list):
        return list(
            ProjectCard.objects.filter(list_id=board_list.pk, archived=False)
            .order_by('position').values_list('position', flat=True)
        )

    def snapshot(self, project):
        """(list id, card title, position) of every active card of a project"""
        return sorted(
            ProjectCard.objects.filter(list__project=project, archived=False)
            .values_list('list_id', 'title', 'position')
        )

    def list_layout(self, project):
        return list(
            ProjectList.objects.filter(project=project, archived=False)
            .order_by('position').values_list('title', flat=True)
        )
