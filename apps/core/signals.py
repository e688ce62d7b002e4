# apps/core/signals.py

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Project, ProjectMember

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Project)
def setup_new_project(sender, instance, created, raw=False, **kwargs):
    """
    Gives a new project its owner membership and the default lists

    Skipped for fixture loading and for projects that already have lists.
    """
    if not created or raw:
        return

    ProjectMember.objects.get_or_create(
        project=instance,
        user=instance.owner,
        defaults={'role': ProjectMember.ROLE_OWNER},
    )

    titles = getattr(settings, 'LANES_DEFAULT_LISTS', [])
    if titles and not instance.lists.exists():
        instance.create_default_lists(titles)
        logger.info(f"📋 Default lists created for project {instance.id}: {', '.join(titles)}")
