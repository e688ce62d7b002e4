# apps/board/positions.py

"""
Position allocation and shift primitives

Every ordered container (project -> lists, list -> cards, card ->
checklists, checklist -> items) keeps the positions of its active
children dense: 0..n-1, no duplicates. The helpers here only build
querysets and bulk updates; callers wrap them in transaction.atomic().
"""

from django.db.models import F, Max

from apps.core.models import Checklist, ChecklistItem, ProjectCard, ProjectList


# === CONTAINERS ===

def active_lists(project_id):
    return ProjectList.objects.filter(project_id=project_id, archived=False)


def active_cards(list_id):
    return ProjectCard.objects.filter(list_id=list_id, archived=False)


def card_checklists(card_id):
    return Checklist.objects.filter(card_id=card_id)


def checklist_items(checklist_id):
    return ChecklistItem.objects.filter(checklist_id=checklist_id)


# === ALLOCATOR ===

def next_position(queryset):
    """max(position) + 1 among the queryset, 0 when it is empty"""
    top = queryset.aggregate(top=Max('position'))['top']
    return 0 if top is None else top + 1


def next_list_position(project_id):
    return next_position(active_lists(project_id))


def next_card_position(list_id):
    return next_position(active_cards(list_id))


def next_checklist_position(card_id):
    return next_position(card_checklists(card_id))


def next_item_position(checklist_id):
    return next_position(checklist_items(checklist_id))


# === SHIFTS ===

def _has_version(model):
    return any(field.name == 'version' for field in model._meta.concrete_fields)


def shift(queryset, delta):
    """Adds ``delta`` to every position of the queryset; returns the row count"""
    updates = {'position': F('position') + delta}
    if _has_version(queryset.model):
        updates['version'] = F('version') + 1
    return queryset.update(**updates)


def close_gap(queryset, after):
    """Pulls back every sibling after a removed position"""
    return shift(queryset.filter(position__gt=after), -1)


def open_slot(queryset, at):
    """Pushes forward every sibling at or after ``at``"""
    return shift(queryset.filter(position__gte=at), 1)


def shift_range(queryset, lower, upper, delta):
    """Shifts siblings with lower <= position <= upper"""
    return shift(queryset.filter(position__gte=lower, position__lte=upper), delta)


def reorder_within(queryset, current, target):
    """
    Shifts the siblings between two positions of the same container

    The moved row itself must be excluded from ``queryset``. Moving
    forward pulls (current, target] back by one; moving backward pushes
    [target, current) forward by one. Equal positions touch nothing.
    """
    if target > current:
        return shift_range(queryset, current + 1, target, -1)
    if target < current:
        return shift_range(queryset, target, current - 1, 1)
    return 0


# === REPAIR ===

def is_dense(queryset):
    positions = list(queryset.order_by('position').values_list('position', flat=True))
    return positions == list(range(len(positions)))


def normalize(queryset):
    """
    Rewrites positions as 0..n-1 keeping the current (position, id) order

    Returns the number of rows changed.
    """
    changed = 0
    for idx, (pk, position) in enumerate(queryset.order_by('position', 'id').values_list('pk', 'position')):
        if position != idx:
            shift(queryset.model.objects.filter(pk=pk), idx - position)
            changed += 1
    return changed
