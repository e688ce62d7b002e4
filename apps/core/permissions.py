# apps/core/permissions.py

from .exceptions import AccessDenied


class BoardPermissions:
    """
    Access rules of the board

    - read: owner, member, or any authenticated user when the project is public
    - write: owner or member
    Superusers pass every HTTP check. Collaboration rooms have their own
    gate (can_join_room) with no superuser bypass.
    """

    @staticmethod
    def is_member(user, project):
        """Owner or explicit member of the project"""
        if not user or not user.is_authenticated:
            return False
        if user.is_superuser:
            return True
        return project.is_member(user)

    @staticmethod
    def can_view_project(user, project):
        """Checks read access to a project"""
        if not user or not user.is_authenticated:
            return False
        if project.is_public:
            return True
        return BoardPermissions.is_member(user, project)

    @staticmethod
    def can_join_room(user, project):
        """Owner, member, or anyone authenticated when the project is public"""
        if not user or not user.is_authenticated:
            return False
        return project.is_public or project.is_member(user)

    @staticmethod
    def can_edit_project(user, project):
        """Checks write access (lists, cards, checklists)"""
        return BoardPermissions.is_member(user, project)

    @staticmethod
    def check_view(user, project):
        if not BoardPermissions.can_view_project(user, project):
            raise AccessDenied()

    @staticmethod
    def check_edit(user, project):
        if not BoardPermissions.can_edit_project(user, project):
            raise AccessDenied()
