# apps/board/services.py

"""
Board mutations: creation, moves, reordering, archive and compaction

Every function that writes positions runs inside a single
transaction.atomic() block, so a failure at any step leaves every
position untouched. Domain failures are raised as apps.core.exceptions.
"""

import logging
from functools import reduce
from operator import or_

from django.conf import settings
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from apps.core.exceptions import ConflictError, NotFound, ValidationError
from apps.core.models import (
    Checklist, ChecklistItem, Project, ProjectActivity, ProjectCard,
    ProjectLabel, ProjectList, User
)

from . import positions

logger = logging.getLogger(__name__)


# === LOOKUPS ===

def get_project(project_id):
    try:
        return Project.objects.select_related('owner').get(pk=project_id)
    except Project.DoesNotExist:
        raise NotFound('Project', project_id, code='PROJECT_NOT_FOUND')


def get_list(list_id):
    try:
        return ProjectList.objects.select_related('project').get(pk=list_id)
    except ProjectList.DoesNotExist:
        raise NotFound('List', list_id, code='COLUMN_NOT_FOUND')


def get_card(card_id):
    try:
        return ProjectCard.objects.select_related('list__project').get(pk=card_id)
    except ProjectCard.DoesNotExist:
        raise NotFound('Card', card_id, code='TASK_NOT_FOUND')


def get_checklist(checklist_id):
    try:
        return Checklist.objects.select_related('card__list__project').get(pk=checklist_id)
    except Checklist.DoesNotExist:
        raise NotFound('Checklist', checklist_id)


def get_checklist_item(item_id):
    try:
        return ChecklistItem.objects.select_related('checklist__card__list__project').get(pk=item_id)
    except ChecklistItem.DoesNotExist:
        raise NotFound('Checklist item', item_id)


def _locked(model, pk, resource):
    obj = model.objects.select_for_update().filter(pk=pk).first()
    if obj is None:
        raise NotFound(resource, pk)
    return obj


def _locked_card(card_id, *list_ids):
    """
    Locks the card's list (plus ``list_ids``), lowest id first, then the card

    Lists are always locked before their cards, so appends, moves and
    archives touching the same list queue in one order. Returns the card
    and a {pk: list} dict of the locked lists; ids that do not exist are
    missing from it.
    """
    list_id = ProjectCard.objects.filter(pk=card_id).values_list('list_id', flat=True).first()
    if list_id is None:
        raise NotFound('Card', card_id, code='TASK_NOT_FOUND')

    lists = {
        board_list.pk: board_list
        for board_list in ProjectList.objects.select_for_update()
        .filter(pk__in={list_id, *list_ids}).order_by('pk')
    }
    card = ProjectCard.objects.select_for_update().filter(pk=card_id).first()
    if card is None:
        raise NotFound('Card', card_id, code='TASK_NOT_FOUND')
    if card.list_id != list_id:
        # moved to another list between the read and the lock
        raise ConflictError()
    return card, lists


def record_activity(action, project_id, user=None, card=None, **data):
    return ProjectActivity.objects.create(
        action=action,
        project_id=project_id,
        card=card,
        user=user if user is not None and user.is_authenticated else None,
        data=data,
    )


def _validate_insert_position(position, sibling_count):
    if position < 0:
        raise ValidationError('Position must be non-negative', code='INVALID_POSITION')
    if position > sibling_count:
        raise ValidationError(
            f'Position {position} exceeds list length ({sibling_count})',
            code='INVALID_POSITION'
        )


def _insert_at(queryset, position):
    """Validates an explicit insert position and opens the slot for it"""
    _validate_insert_position(position, queryset.count())
    positions.open_slot(queryset, position)
    return position


# === LISTS ===

def create_list(project_id, title, user=None, position=None):
    """Creates a list at the end of the board, or at ``position``"""
    with transaction.atomic():
        project = _locked(Project, project_id, 'Project')
        if project.archived:
            raise ValidationError('Cannot add lists to an archived project')

        siblings = positions.active_lists(project.id)
        if position is None:
            position = positions.next_position(siblings)
        else:
            _insert_at(siblings, position)

        board_list = ProjectList.objects.create(project=project, title=title, position=position)
        record_activity(ProjectActivity.LIST_CREATED, project.id, user,
                        listId=board_list.id, listTitle=title, position=position)

    logger.info(f"📋 List '{title}' created in project {project.id} at {position}")
    return board_list


def update_list(list_id, title):
    with transaction.atomic():
        board_list = _locked(ProjectList, list_id, 'List')
        board_list.title = title
        board_list.save(update_fields=['title', 'updated_at'])
    return board_list


def move_lists(project_id, list_orders, user=None):
    """
    Writes the caller's {id, position} assignment for the lists of a project

    Every id must be an active list of the project. The assignment itself
    is trusted: no permutation check is made.
    """
    if not list_orders:
        raise ValidationError('At least one list order is required')

    list_ids = [order['id'] for order in list_orders]

    with transaction.atomic():
        _locked(Project, project_id, 'Project')
        found = set(
            positions.active_lists(project_id)
            .filter(pk__in=list_ids)
            .select_for_update()
            .values_list('pk', flat=True)
        )
        if len(found) != len(set(list_ids)):
            raise ValidationError('One or more lists not found or do not belong to this project')

        for order in list_orders:
            ProjectList.objects.filter(pk=order['id']).update(
                position=order['position'],
                version=F('version') + 1,
            )

        record_activity(ProjectActivity.LISTS_REORDERED, project_id, user,
                        listOrders=[{'id': o['id'], 'position': o['position']} for o in list_orders])

    logger.info(f"↔️  {len(list_orders)} lists reordered in project {project_id}")
    return list(positions.active_lists(project_id).order_by('position', 'id'))


def archive_list(list_id, user=None):
    """
    Archives a list and every card in it, then compacts the sibling lists

    Cards inside the archived list keep their positions.
    """
    project_id = ProjectList.objects.filter(pk=list_id).values_list('project_id', flat=True).first()
    if project_id is None:
        raise NotFound('List', list_id, code='COLUMN_NOT_FOUND')

    with transaction.atomic():
        # project before list, the order create_list and move_lists use
        _locked(Project, project_id, 'Project')
        board_list = _locked(ProjectList, list_id, 'List')
        if board_list.archived:
            return board_list

        ProjectCard.objects.filter(list_id=board_list.id).update(archived=True)
        ProjectList.objects.filter(pk=board_list.id).update(archived=True, version=F('version') + 1)
        positions.close_gap(positions.active_lists(board_list.project_id), board_list.position)

        record_activity(ProjectActivity.LIST_ARCHIVED, board_list.project_id, user,
                        listId=board_list.id, listTitle=board_list.title)

    board_list.refresh_from_db()
    logger.info(f"🗄️  List {board_list.id} archived in project {board_list.project_id}")
    return board_list


# === CARDS ===

def _project_users(project_id, user_ids):
    """Users among ``user_ids`` that are the owner or members of the project"""
    users = list(
        User.objects.filter(pk__in=user_ids).filter(
            Q(owned_projects__id=project_id) | Q(project_memberships__project_id=project_id)
        ).distinct()
    )
    if len(users) != len(set(user_ids)):
        raise ValidationError('Assignees must be members of the project')
    return users


def _project_labels(project_id, label_ids):
    labels = list(ProjectLabel.objects.filter(project_id=project_id, pk__in=label_ids))
    if len(labels) != len(set(label_ids)):
        raise ValidationError('Labels must belong to the project')
    return labels


def create_card(list_id, title, user=None, description=None, due_date=None,
                content_ref=None, assignee_ids=None, label_ids=None, position=None):
    """
    Creates a card, appended to the list unless ``position`` is given

    The list row is locked for the duration of the insert, so concurrent
    appends to the same list queue behind each other instead of reading
    the same max(position).
    """
    with transaction.atomic():
        board_list = _locked(ProjectList, list_id, 'List')
        if board_list.archived:
            raise ValidationError('Cannot add cards to archived list')

        siblings = positions.active_cards(board_list.id)
        if position is None:
            position = positions.next_position(siblings)
        else:
            _insert_at(siblings, position)

        card = ProjectCard.objects.create(
            list=board_list,
            title=title,
            description=description,
            due_date=due_date,
            content_ref=content_ref,
            created_by=user if user is not None and user.is_authenticated else None,
            position=position,
        )
        if assignee_ids:
            card.assignees.set(_project_users(board_list.project_id, assignee_ids))
        if label_ids:
            card.labels.set(_project_labels(board_list.project_id, label_ids))

        record_activity(ProjectActivity.CARD_CREATED, board_list.project_id, user, card=card,
                        cardTitle=title, listId=board_list.id, position=position)

    logger.info(f"🃏 Card {card.id} created in list {board_list.id} at {position}")
    return card


def update_card(card_id, changes, user=None):
    """
    Generic card update (title, description, completion, due date,
    content link, assignees, labels). ``archived`` is routed to
    archive_card / restore_card; positions are never touched here.
    """
    changes = dict(changes)
    archived = changes.pop('archived', None)

    with transaction.atomic():
        card, lists = _locked_card(card_id)
        project_id = lists[card.list_id].project_id

        fields = []
        for field in ('title', 'description', 'completed', 'due_date', 'content_ref'):
            if field in changes:
                setattr(card, field, changes[field])
                fields.append(field)
        if fields:
            card.save(update_fields=fields + ['updated_at'])

        if 'assignee_ids' in changes:
            card.assignees.set(_project_users(project_id, changes['assignee_ids']))
        if 'label_ids' in changes:
            card.labels.set(_project_labels(project_id, changes['label_ids']))

        if archived is True:
            card = archive_card(card.id, user=user)
        elif archived is False:
            card = restore_card(card.id, user=user)
        elif fields:
            record_activity(ProjectActivity.CARD_UPDATED, project_id, user, card=card, fields=fields)

    return card


def move_card(card_id, destination_list_id, new_position, user=None, expected_version=None):
    """
    Moves a card to ``new_position`` of ``destination_list_id``

    Runs as one transaction, retried on a version conflict up to
    LANES_MOVE_MAX_RETRIES times. When the caller passes
    ``expected_version`` a conflict is reported instead of retried.
    """
    if new_position < 0:
        raise ValidationError('Position must be non-negative', code='INVALID_POSITION')

    max_retries = getattr(settings, 'LANES_MOVE_MAX_RETRIES', 3)
    attempt = 0
    while True:
        try:
            return _move_card_once(card_id, destination_list_id, new_position, user, expected_version)
        except ConflictError:
            if expected_version is not None or attempt >= max_retries:
                logger.warning(f"⚠️  Move of card {card_id} gave up after {attempt + 1} attempt(s)")
                raise
            attempt += 1
            logger.info(f"🔁 Retrying move of card {card_id} (attempt {attempt + 1})")


def _seen_versions(queryset):
    """{pk: (position, version)} of the siblings a move is about to shift"""
    return {pk: (position, version) for pk, position, version in queryset.values_list('pk', 'position', 'version')}


def _guarded_shift(queryset, seen, delta, lower, upper=None):
    """
    Shifts the siblings with lower <= position <= upper by ``delta``

    Only rows still carrying the version read into ``seen`` are written.
    Raises ConflictError when a sibling was added, removed or rewritten
    since then.
    """
    rows = queryset.filter(position__gte=lower)
    if upper is not None:
        rows = rows.filter(position__lte=upper)
    expected = {
        pk: version for pk, (position, version) in seen.items()
        if position >= lower and (upper is None or position <= upper)
    }
    if set(rows.values_list('pk', flat=True)) != set(expected):
        raise ConflictError()
    if not expected:
        return 0

    guard = reduce(or_, (Q(pk=pk, version=version) for pk, version in expected.items()))
    updated = positions.shift(rows.filter(guard), delta)
    if updated != len(expected):
        raise ConflictError()
    return updated


def _move_card_once(card_id, destination_list_id, new_position, user, expected_version):
    with transaction.atomic():
        card, lists = _locked_card(card_id, destination_list_id)
        if card.archived:
            raise ValidationError('Cannot move archived card')
        if expected_version is not None and card.version != expected_version:
            raise ConflictError(details={'currentVersion': card.version})

        source = lists[card.list_id]
        destination = lists.get(destination_list_id)
        if destination is None:
            raise NotFound('List', destination_list_id, code='COLUMN_NOT_FOUND')
        if destination.archived:
            raise ValidationError('Cannot move card to archived list')
        if destination.project_id != source.project_id:
            raise ValidationError('Cannot move card between different projects')

        destination_siblings = positions.active_cards(destination.id).exclude(pk=card.pk)
        destination_seen = _seen_versions(destination_siblings)
        _validate_insert_position(new_position, len(destination_seen))

        current = card.position
        if destination.id != source.id:
            source_siblings = positions.active_cards(source.id).exclude(pk=card.pk)
            source_seen = _seen_versions(source_siblings)
            _guarded_shift(source_siblings, source_seen, -1, current + 1)
            _guarded_shift(destination_siblings, destination_seen, 1, new_position)
        elif new_position == current:
            return card
        elif new_position > current:
            _guarded_shift(destination_siblings, destination_seen, -1, current + 1, new_position)
        else:
            _guarded_shift(destination_siblings, destination_seen, 1, new_position, current - 1)

        updated = ProjectCard.objects.filter(pk=card.pk, version=card.version).update(
            list_id=destination.id,
            position=new_position,
            version=F('version') + 1,
            updated_at=timezone.now(),
        )
        if not updated:
            raise ConflictError()

        record_activity(ProjectActivity.CARD_MOVED, source.project_id, user, card=card,
                        cardTitle=card.title, fromListId=source.id, toListId=destination.id,
                        fromPosition=current, newPosition=new_position)

    card.refresh_from_db()
    logger.info(f"🔀 Card {card.id} moved {source.id}:{current} -> {destination.id}:{new_position}")
    return card


def archive_card(card_id, user=None):
    """Archives a card and compacts the positions of its active siblings"""
    with transaction.atomic():
        card, lists = _locked_card(card_id)
        if card.archived:
            return card

        ProjectCard.objects.filter(pk=card.pk).update(archived=True, version=F('version') + 1)
        positions.close_gap(positions.active_cards(card.list_id), card.position)

        record_activity(ProjectActivity.CARD_ARCHIVED, lists[card.list_id].project_id, user, card=card,
                        cardTitle=card.title, listId=card.list_id, position=card.position)

    card.refresh_from_db()
    logger.info(f"🗄️  Card {card.id} archived from list {card.list_id}")
    return card


def restore_card(card_id, user=None):
    """Brings an archived card back at the end of its list"""
    with transaction.atomic():
        card, lists = _locked_card(card_id)
        if not card.archived:
            return card

        board_list = lists[card.list_id]
        if board_list.archived:
            raise ValidationError('Cannot restore a card into an archived list')

        ProjectCard.objects.filter(pk=card.pk).update(
            archived=False,
            position=positions.next_card_position(board_list.id),
            version=F('version') + 1,
        )
        record_activity(ProjectActivity.CARD_UPDATED, board_list.project_id, user, card=card,
                        fields=['archived'])

    card.refresh_from_db()
    return card


# === CHECKLISTS ===

def _move_within(queryset, obj, new_position):
    """Same-container move for checklists and checklist items"""
    siblings = queryset.exclude(pk=obj.pk)
    _validate_insert_position(new_position, siblings.count())
    if new_position == obj.position:
        return False
    positions.reorder_within(siblings, obj.position, new_position)
    type(obj).objects.filter(pk=obj.pk).update(position=new_position)
    obj.position = new_position
    return True


def create_checklist(card_id, title, position=None):
    with transaction.atomic():
        card = _locked(ProjectCard, card_id, 'Card')
        if card.archived:
            raise ValidationError('Cannot add checklists to archived card')

        siblings = positions.card_checklists(card.id)
        if position is None:
            position = positions.next_position(siblings)
        else:
            _insert_at(siblings, position)
        return Checklist.objects.create(card=card, title=title, position=position)


def update_checklist(checklist_id, title=None, position=None):
    with transaction.atomic():
        checklist = _locked(Checklist, checklist_id, 'Checklist')
        if title is not None:
            checklist.title = title
            checklist.save(update_fields=['title'])
        if position is not None:
            _move_within(positions.card_checklists(checklist.card_id), checklist, position)
    return checklist


def delete_checklist(checklist_id):
    """Deletes a checklist with its items and compacts the card's checklists"""
    with transaction.atomic():
        checklist = _locked(Checklist, checklist_id, 'Checklist')
        card_id, position = checklist.card_id, checklist.position
        checklist.delete()
        positions.close_gap(positions.card_checklists(card_id), position)
    return card_id


def create_checklist_item(checklist_id, text, position=None, assignee_id=None):
    with transaction.atomic():
        checklist = _locked(Checklist, checklist_id, 'Checklist')

        siblings = positions.checklist_items(checklist.id)
        if position is None:
            position = positions.next_position(siblings)
        else:
            _insert_at(siblings, position)

        assignee = None
        if assignee_id is not None:
            project_id = ProjectCard.objects.values_list('list__project_id', flat=True).get(pk=checklist.card_id)
            assignee = _project_users(project_id, [assignee_id])[0]

        return ChecklistItem.objects.create(
            checklist=checklist, text=text, position=position, assignee=assignee
        )


def move_checklist_item(item_id, new_position):
    with transaction.atomic():
        item = _locked(ChecklistItem, item_id, 'Checklist item')
        _move_within(positions.checklist_items(item.checklist_id), item, new_position)
    return item


def update_checklist_item(item_id, changes, user=None):
    with transaction.atomic():
        item = get_checklist_item(item_id)
        fields = []
        if 'text' in changes:
            item.text = changes['text']
            fields.append('text')
        if 'completed' in changes and changes['completed'] != item.completed:
            item.completed = changes['completed']
            fields.append('completed')
            card = item.checklist.card
            record_activity(
                ProjectActivity.CHECKLIST_ITEM_COMPLETED if item.completed
                else ProjectActivity.CHECKLIST_ITEM_UNCOMPLETED,
                card.list.project_id, user, card=card, itemId=item.id, itemText=item.text,
            )
        if 'assignee_id' in changes:
            assignee_id = changes['assignee_id']
            project_id = item.checklist.card.list.project_id
            item.assignee = _project_users(project_id, [assignee_id])[0] if assignee_id is not None else None
            fields.append('assignee')
        if fields:
            item.save(update_fields=fields)
        if changes.get('position') is not None:
            move_checklist_item(item.id, changes['position'])
            item.refresh_from_db()
    return item


def reorder_checklist_items(checklist_id, item_orders):
    """Writes an {id, position} assignment for the items of one checklist"""
    if not item_orders:
        raise ValidationError('At least one item order is required')

    item_ids = [order['id'] for order in item_orders]
    with transaction.atomic():
        _locked(Checklist, checklist_id, 'Checklist')
        found = positions.checklist_items(checklist_id).filter(pk__in=item_ids).count()
        if found != len(set(item_ids)):
            raise ValidationError('One or more items not found or do not belong to this checklist')
        for order in item_orders:
            ChecklistItem.objects.filter(pk=order['id']).update(position=order['position'])
    return list(positions.checklist_items(checklist_id).order_by('position', 'id'))


def delete_checklist_item(item_id):
    with transaction.atomic():
        item = _locked(ChecklistItem, item_id, 'Checklist item')
        checklist_id, position = item.checklist_id, item.position
        item.delete()
        positions.close_gap(positions.checklist_items(checklist_id), position)
    return checklist_id


# === REPAIR ===

def compact_project(project_id):
    """
    Re-normalises every active container of a project to 0..n-1

    Returns the number of rows whose position changed.
    """
    changed = 0
    with transaction.atomic():
        changed += positions.normalize(positions.active_lists(project_id).select_for_update())
        for list_id in positions.active_lists(project_id).values_list('pk', flat=True):
            changed += positions.normalize(positions.active_cards(list_id))
            for card_id in positions.active_cards(list_id).values_list('pk', flat=True):
                changed += positions.normalize(positions.card_checklists(card_id))
                for checklist_id in positions.card_checklists(card_id).values_list('pk', flat=True):
                    changed += positions.normalize(positions.checklist_items(checklist_id))
    return changed
