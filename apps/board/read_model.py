# apps/board/read_model.py

"""
Board Read Model

Read-only snapshots of a board for the client: lists and cards ordered
by position, archived rows left out. Called for the first page load and
whenever a client needs to resync after a failed or missed update.
"""

from django.db.models import Prefetch

from apps.core.exceptions import NotFound
from apps.core.models import (
    CardAttachment, Checklist, ChecklistItem, Project, ProjectActivity,
    ProjectCard, ProjectList
)

from .serializers import (
    serialize_activity, serialize_card, serialize_label, serialize_list,
    serialize_user
)


def _card_prefetches():
    return [
        'assignees',
        'labels',
        Prefetch(
            'checklists',
            queryset=Checklist.objects.order_by('position', 'id').prefetch_related(
                Prefetch('items', queryset=ChecklistItem.objects.select_related('assignee').order_by('position', 'id'))
            )
        ),
        Prefetch('attachments', queryset=CardAttachment.objects.select_related('uploaded_by')),
    ]


def checklist_progress(checklists):
    """
    Completion of every item across a card's checklists

    ``checklists`` is a sequence of dicts holding an ``items`` list.
    """
    items = [item for checklist in checklists for item in checklist.get('items', [])]
    completed = sum(1 for item in items if item['completed'])
    total = len(items)
    percentage = round(completed / total * 100) if total else 0
    return {'completed': completed, 'total': total, 'percentage': percentage}


def _card_with_progress(card):
    data = serialize_card(card, detail=True)
    data['checklistProgress'] = checklist_progress(data['checklists'])
    return data


def get_board_data(project_id):
    """
    Assembles project -> lists -> cards -> checklists/items

    Raises NotFound when the project does not exist.
    """
    try:
        project = Project.objects.select_related('owner').prefetch_related(
            'labels',
            'members__user',
        ).get(pk=project_id)
    except Project.DoesNotExist:
        raise NotFound('Project', project_id, code='PROJECT_NOT_FOUND')

    cards = ProjectCard.objects.filter(archived=False).order_by('position', 'id').prefetch_related(
        *_card_prefetches()
    )
    lists = ProjectList.objects.filter(project=project, archived=False).order_by('position', 'id').prefetch_related(
        Prefetch('cards', queryset=cards, to_attr='active_cards')
    )

    return {
        'id': project.id,
        'title': project.title,
        'description': project.description,
        'color': project.color,
        'visibility': project.visibility,
        'archived': project.archived,
        'owner': serialize_user(project.owner),
        'members': [
            dict(serialize_user(member.user), role=member.role)
            for member in project.members.all()
        ],
        'labels': [serialize_label(label) for label in project.labels.all()],
        'lists': [
            serialize_list(board_list, [_card_with_progress(card) for card in board_list.active_cards])
            for board_list in lists
        ],
    }


def get_card_details(card_id, activity_limit=10):
    """One card with its list, project, checklists and latest activity"""
    try:
        card = ProjectCard.objects.select_related('list__project', 'created_by').prefetch_related(
            *_card_prefetches()
        ).get(pk=card_id)
    except ProjectCard.DoesNotExist:
        raise NotFound('Card', card_id, code='TASK_NOT_FOUND')

    data = _card_with_progress(card)
    data.update({
        'list': {'id': card.list.id, 'title': card.list.title, 'position': card.list.position},
        'project': {'id': card.list.project.id, 'title': card.list.project.title},
        'createdBy': serialize_user(card.created_by),
        'activities': [
            serialize_activity(activity)
            for activity in ProjectActivity.objects.filter(card=card).select_related('user')[:activity_limit]
        ],
    })
    return data
