# apps/core/tests/test_permissions.py

from django.test import TestCase

from apps.core.exceptions import AccessDenied
from apps.core.models import Project, User
from apps.core.permissions import BoardPermissions


class BoardPermissionsTests(TestCase):

    def setUp(self):
        self.owner = User.objects.create_user('owner', password='password')
        self.member = User.objects.create_user('member', password='password')
        self.outsider = User.objects.create_user('outsider', password='password')
        self.admin = User.objects.create_superuser('root', 'root@example.com', 'password')
        self.project = Project.objects.create(title='Roadmap', owner=self.owner)
        self.project.members.create(user=self.member)

    def test_owner_and_member_can_edit(self):
        self.assertTrue(BoardPermissions.can_edit_project(self.owner, self.project))
        self.assertTrue(BoardPermissions.can_edit_project(self.member, self.project))

    def test_outsider_cannot_see_private_project(self):
        self.assertFalse(BoardPermissions.can_view_project(self.outsider, self.project))
        with self.assertRaises(AccessDenied):
            BoardPermissions.check_view(self.outsider, self.project)

    def test_public_project_is_readable_but_not_writable(self):
        self.project.visibility = Project.VISIBILITY_PUBLIC
        self.assertTrue(BoardPermissions.can_view_project(self.outsider, self.project))
        with self.assertRaises(AccessDenied):
            BoardPermissions.check_edit(self.outsider, self.project)

    def test_superuser_passes(self):
        BoardPermissions.check_edit(self.admin, self.project)

    def test_anonymous(self):
        from django.contrib.auth.models import AnonymousUser
        self.assertFalse(BoardPermissions.can_view_project(AnonymousUser(), self.project))
        self.assertFalse(BoardPermissions.can_view_project(None, self.project))

    def test_room_join_has_no_superuser_bypass(self):
        self.assertTrue(BoardPermissions.can_join_room(self.owner, self.project))
        self.assertTrue(BoardPermissions.can_join_room(self.member, self.project))
        self.assertFalse(BoardPermissions.can_join_room(self.outsider, self.project))
        self.assertFalse(BoardPermissions.can_join_room(self.admin, self.project))

        self.project.visibility = Project.VISIBILITY_PUBLIC
        self.assertTrue(BoardPermissions.can_join_room(self.admin, self.project))
        self.assertTrue(BoardPermissions.can_join_room(self.outsider, self.project))
