# apps/core/admin.py

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.db.models import Count, Q

from .models import (
    CardAttachment, Checklist, ChecklistItem, Project, ProjectActivity,
    ProjectCard, ProjectLabel, ProjectList, ProjectMember, User
)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin for the custom user model"""

    list_display = ['username', 'email', 'get_full_name', 'is_staff', 'is_active', 'date_joined']
    list_filter = ['is_staff', 'is_active', 'date_joined']
    search_fields = ['username', 'first_name', 'last_name', 'email']
    ordering = ['-date_joined']

    fieldsets = BaseUserAdmin.fieldsets + (
        ('Profile', {
            'fields': ('avatar_url',)
        }),
    )


class ProjectMemberInline(admin.TabularInline):
    model = ProjectMember
    extra = 0
    autocomplete_fields = ['user']


class ProjectLabelInline(admin.TabularInline):
    model = ProjectLabel
    extra = 0


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    """Projects with their members and labels"""

    list_display = ['title', 'owner', 'visibility', 'lists_count', 'archived', 'created_at']
    list_filter = ['visibility', 'archived', 'created_at']
    search_fields = ['title', 'description', 'owner__username']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [ProjectMemberInline, ProjectLabelInline]

    fieldsets = (
        ('Basic information', {
            'fields': ('title', 'description', 'color', 'visibility', 'archived')
        }),
        ('Ownership', {
            'fields': ('owner',)
        }),
        ('Dates', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('owner').annotate(
            active_lists=Count('lists', filter=Q(lists__archived=False))
        )

    def lists_count(self, obj):
        return obj.active_lists

    lists_count.short_description = 'Lists'
    lists_count.admin_order_field = 'active_lists'


@admin.register(ProjectList)
class ProjectListAdmin(admin.ModelAdmin):
    """
    Lists are edited here for repair only; positions should normally be
    changed through the API so siblings are shifted with them.
    """

    list_display = ['title', 'project', 'position', 'archived', 'version', 'updated_at']
    list_filter = ['archived', 'project']
    search_fields = ['title', 'project__title']
    readonly_fields = ['version', 'created_at', 'updated_at']
    ordering = ['project', 'position']


class ChecklistInline(admin.TabularInline):
    model = Checklist
    extra = 0


@admin.register(ProjectCard)
class ProjectCardAdmin(admin.ModelAdmin):
    list_display = ['title', 'list', 'position', 'completed', 'archived', 'due_date', 'version']
    list_filter = ['archived', 'completed', 'list__project']
    search_fields = ['title', 'description', 'content_ref']
    readonly_fields = ['version', 'created_at', 'updated_at']
    filter_horizontal = ['assignees', 'labels']
    inlines = [ChecklistInline]
    list_select_related = ['list']
    ordering = ['list', 'position']


class ChecklistItemInline(admin.TabularInline):
    model = ChecklistItem
    extra = 0


@admin.register(Checklist)
class ChecklistAdmin(admin.ModelAdmin):
    list_display = ['title', 'card', 'position', 'created_at']
    search_fields = ['title', 'card__title']
    inlines = [ChecklistItemInline]


@admin.register(CardAttachment)
class CardAttachmentAdmin(admin.ModelAdmin):
    list_display = ['name', 'card', 'size', 'uploaded_by', 'created_at']
    search_fields = ['name', 'card__title']


@admin.register(ProjectActivity)
class ProjectActivityAdmin(admin.ModelAdmin):
    """Read-only audit trail"""

    list_display = ['action', 'project', 'card', 'user', 'created_at']
    list_filter = ['action', 'created_at']
    search_fields = ['project__title', 'card__title', 'user__username']
    readonly_fields = ['action', 'data', 'project', 'card', 'user', 'created_at']

    def has_add_permission(self, request):
        return False
