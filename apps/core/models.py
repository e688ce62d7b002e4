# apps/core/models.py

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """
    Custom user model

    Board membership and ownership hang off this model; authentication
    itself is plain django.contrib.auth.
    """

    avatar_url = models.URLField(blank=True)

    class Meta:
        db_table = 'user'

    @property
    def display_name(self):
        return self.get_full_name() or self.username

    def __str__(self):
        return self.display_name


class Project(models.Model):
    """Top-level container of a board"""

    VISIBILITY_PRIVATE = 'PRIVATE'
    VISIBILITY_TEAM = 'TEAM'
    VISIBILITY_PUBLIC = 'PUBLIC'

    VISIBILITY_CHOICES = [
        (VISIBILITY_PRIVATE, 'Private'),
        (VISIBILITY_TEAM, 'Team'),
        (VISIBILITY_PUBLIC, 'Public'),
    ]

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    color = models.CharField(max_length=20, default='blue')
    owner = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='owned_projects'
    )
    visibility = models.CharField(
        max_length=10,
        choices=VISIBILITY_CHOICES,
        default=VISIBILITY_PRIVATE
    )
    archived = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'project'
        ordering = ['-created_at']

    def __str__(self):
        return self.title

    @property
    def is_public(self):
        return self.visibility == self.VISIBILITY_PUBLIC

    def is_member(self, user):
        """Owner or explicit member"""
        if not user or not user.is_authenticated:
            return False
        if self.owner_id == user.id:
            return True
        return self.members.filter(user_id=user.id).exists()

    def create_default_lists(self, titles):
        """Creates the initial lists of a new project, positions 0..n-1"""
        ProjectList.objects.bulk_create([
            ProjectList(project=self, title=title, position=idx)
            for idx, title in enumerate(titles)
        ])


class ProjectMember(models.Model):
    """Membership of a user in a project"""

    ROLE_OWNER = 'OWNER'
    ROLE_ADMIN = 'ADMIN'
    ROLE_MEMBER = 'MEMBER'
    ROLE_VIEWER = 'VIEWER'

    ROLE_CHOICES = [
        (ROLE_OWNER, 'Owner'),
        (ROLE_ADMIN, 'Admin'),
        (ROLE_MEMBER, 'Member'),
        (ROLE_VIEWER, 'Viewer'),
    ]

    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name='members'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='project_memberships'
    )
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_MEMBER)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'project_member'
        unique_together = ['project', 'user']

    def __str__(self):
        return f"{self.user} @ {self.project} ({self.role})"


class ProjectLabel(models.Model):
    """Label available to the cards of a project"""

    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name='labels'
    )
    name = models.CharField(max_length=50)
    color = models.CharField(max_length=7, default='#6B7280')

    class Meta:
        db_table = 'project_label'
        ordering = ['name']

    def __str__(self):
        return self.name


class PositionedModel(models.Model):
    """
    Abstract base for everything ordered inside a container

    ``position`` is dense among the active siblings of a container
    (0..n-1). There is no unique constraint on it: bulk shifts pass
    through transient duplicates and archived rows keep their last value.
    """

    position = models.IntegerField(default=0)

    class Meta:
        abstract = True


class ProjectList(PositionedModel):
    """Column of a board"""

    title = models.CharField(max_length=100)
    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name='lists'
    )
    archived = models.BooleanField(default=False)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'project_list'
        ordering = ['position', 'id']
        indexes = [
            models.Index(fields=['project', 'archived', 'position'], name='project_list_active_pos_idx'),
        ]

    def __str__(self):
        return f"{self.title} - {self.project.title}"


class ProjectCard(PositionedModel):
    """Unit of work inside a list"""

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    list = models.ForeignKey(
        ProjectList,
        on_delete=models.CASCADE,
        related_name='cards'
    )
    archived = models.BooleanField(default=False)
    completed = models.BooleanField(default=False)
    due_date = models.DateTimeField(null=True, blank=True)
    content_ref = models.CharField(
        max_length=100,
        blank=True,
        null=True,
        help_text="Identifier of the linked content item, if any"
    )
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_cards'
    )
    assignees = models.ManyToManyField(
        User,
        blank=True,
        related_name='assigned_cards'
    )
    labels = models.ManyToManyField(
        ProjectLabel,
        blank=True,
        related_name='cards'
    )
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'project_card'
        ordering = ['position', 'id']
        indexes = [
            models.Index(fields=['list', 'archived', 'position'], name='project_card_active_pos_idx'),
        ]

    def __str__(self):
        return self.title


class CardAttachment(models.Model):
    """File attached to a card (storage is external, only the URL is kept)"""

    card = models.ForeignKey(
        ProjectCard,
        on_delete=models.CASCADE,
        related_name='attachments'
    )
    name = models.CharField(max_length=255)
    url = models.URLField(max_length=500)
    size = models.PositiveIntegerField(default=0)
    uploaded_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='attachments'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'card_attachment'
        ordering = ['-created_at']

    def __str__(self):
        return self.name


class Checklist(PositionedModel):
    """Checklist of a card, positioned per card"""

    card = models.ForeignKey(
        ProjectCard,
        on_delete=models.CASCADE,
        related_name='checklists'
    )
    title = models.CharField(max_length=200)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'project_checklist'
        ordering = ['position', 'id']

    def __str__(self):
        return self.title


class ChecklistItem(PositionedModel):
    """Item of a checklist, positioned per checklist"""

    checklist = models.ForeignKey(
        Checklist,
        on_delete=models.CASCADE,
        related_name='items'
    )
    text = models.CharField(max_length=500)
    completed = models.BooleanField(default=False)
    assignee = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='checklist_items'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'project_checklist_item'
        ordering = ['position', 'id']

    def __str__(self):
        return self.text


class ProjectActivity(models.Model):
    """Audit trail of board changes"""

    CARD_CREATED = 'CARD_CREATED'
    CARD_MOVED = 'CARD_MOVED'
    CARD_UPDATED = 'CARD_UPDATED'
    CARD_ARCHIVED = 'CARD_ARCHIVED'
    LIST_CREATED = 'LIST_CREATED'
    LIST_ARCHIVED = 'LIST_ARCHIVED'
    LISTS_REORDERED = 'LISTS_REORDERED'
    CHECKLIST_ITEM_COMPLETED = 'CHECKLIST_ITEM_COMPLETED'
    CHECKLIST_ITEM_UNCOMPLETED = 'CHECKLIST_ITEM_UNCOMPLETED'

    ACTION_CHOICES = [
        (CARD_CREATED, 'Card created'),
        (CARD_MOVED, 'Card moved'),
        (CARD_UPDATED, 'Card updated'),
        (CARD_ARCHIVED, 'Card archived'),
        (LIST_CREATED, 'List created'),
        (LIST_ARCHIVED, 'List archived'),
        (LISTS_REORDERED, 'Lists reordered'),
        (CHECKLIST_ITEM_COMPLETED, 'Checklist item completed'),
        (CHECKLIST_ITEM_UNCOMPLETED, 'Checklist item uncompleted'),
    ]

    action = models.CharField(max_length=40, choices=ACTION_CHOICES)
    data = models.JSONField(default=dict, blank=True)
    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name='activities'
    )
    card = models.ForeignKey(
        ProjectCard,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='activities'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='activities'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'project_activity'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.action} ({self.project_id})"
