# apps/board/views.py

"""
JSON API of the board

Every view goes through @api_view: session auth, method check and the
standard success/error envelopes. Mutations call apps.board.services and
then publish the matching room event once the transaction commits.
"""

from django.utils.dateparse import parse_datetime

from apps.core.exceptions import ValidationError
from apps.core.models import ProjectCard
from apps.core.permissions import BoardPermissions
from apps.core.utils import (
    api_view, parse_json_body, require_int, require_text, success_response
)

from . import positions, read_model, services
from .broadcast import publish_on_commit
from .serializers import (
    serialize_card, serialize_checklist, serialize_checklist_item,
    serialize_list
)

CONTENT_REF_MAX_LENGTH = ProjectCard._meta.get_field('content_ref').max_length


# === INPUT HELPERS ===

def _optional_text(data, field, max_length=None):
    if field not in data or data[field] is None:
        return None
    if not isinstance(data[field], str):
        raise ValidationError(f"{field} must be a string")
    if max_length is not None and len(data[field]) > max_length:
        raise ValidationError(f"{field} is too long (max {max_length})")
    return data[field]


def _optional_bool(data, field):
    value = data[field]
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean")
    return value


def _due_date(data):
    value = data.get('dueDate')
    if value in (None, ''):
        return None
    parsed = parse_datetime(value) if isinstance(value, str) else None
    if parsed is None:
        raise ValidationError('dueDate must be an ISO 8601 datetime')
    return parsed


def _id_list(data, field):
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of ids")
    return [require_int({'id': item}, 'id') for item in value]


def _orders(data, field):
    """Decodes [{id, position}, ...] assignments"""
    orders = data.get(field)
    if not isinstance(orders, list) or not orders:
        raise ValidationError(f"{field} must be a non-empty list")
    decoded = []
    for order in orders:
        if not isinstance(order, dict):
            raise ValidationError(f"Each entry of {field} needs an id and a position")
        decoded.append({
            'id': require_int(order, 'id'),
            'position': require_int(order, 'position', minimum=0),
        })
    return decoded


def _card_changes(data):
    """Maps a camelCase PATCH body to update_card changes"""
    changes = {}
    if 'title' in data:
        changes['title'] = require_text(data, 'title', 200)
    if 'description' in data:
        changes['description'] = _optional_text(data, 'description')
    if 'completed' in data:
        changes['completed'] = _optional_bool(data, 'completed')
    if 'archived' in data:
        changes['archived'] = _optional_bool(data, 'archived')
    if 'dueDate' in data:
        changes['due_date'] = _due_date(data)
    if 'contentRef' in data:
        changes['content_ref'] = _optional_text(data, 'contentRef', CONTENT_REF_MAX_LENGTH)
    if 'assigneeIds' in data:
        changes['assignee_ids'] = _id_list(data, 'assigneeIds') or []
    if 'labelIds' in data:
        changes['label_ids'] = _id_list(data, 'labelIds') or []
    if not changes:
        raise ValidationError('No updatable fields given')
    return changes


# === BOARD ===

@api_view(['GET'])
def board_data(request, project_id):
    """Full board snapshot: lists, cards, checklists"""
    project = services.get_project(project_id)
    BoardPermissions.check_view(request.user, project)
    return success_response(read_model.get_board_data(project.id))


# === LISTS ===

@api_view(['GET', 'POST'])
def project_lists(request, project_id):
    project = services.get_project(project_id)

    if request.method == 'GET':
        BoardPermissions.check_view(request.user, project)
        lists = positions.active_lists(project.id).order_by('position', 'id')
        return success_response([serialize_list(board_list) for board_list in lists])

    BoardPermissions.check_edit(request.user, project)
    data = parse_json_body(request)
    board_list = services.create_list(
        project.id,
        require_text(data, 'title', 100),
        user=request.user,
        position=require_int(data, 'position', minimum=0, required=False),
    )
    payload = serialize_list(board_list)
    publish_on_commit(project.id, 'list:updated', {
        'listId': board_list.id, 'action': 'created', 'list': payload,
    }, request.user)
    return success_response(payload, message='List created', status=201)


@api_view(['PATCH'])
def reorder_lists(request, project_id):
    """Applies a {listOrders: [{id, position}]} assignment"""
    project = services.get_project(project_id)
    BoardPermissions.check_edit(request.user, project)

    list_orders = _orders(parse_json_body(request), 'listOrders')
    lists = services.move_lists(project.id, list_orders, user=request.user)

    publish_on_commit(project.id, 'list:updated', {
        'action': 'reordered', 'listOrders': list_orders,
    }, request.user)
    return success_response([serialize_list(board_list) for board_list in lists], message='Lists reordered')


@api_view(['PATCH', 'DELETE'])
def list_detail(request, list_id):
    board_list = services.get_list(list_id)
    project_id = board_list.project_id
    BoardPermissions.check_edit(request.user, board_list.project)

    if request.method == 'DELETE':
        board_list = services.archive_list(board_list.id, user=request.user)
        publish_on_commit(project_id, 'list:updated', {
            'listId': board_list.id, 'action': 'archived',
        }, request.user)
        return success_response(serialize_list(board_list), message='List archived')

    data = parse_json_body(request)
    board_list = services.update_list(board_list.id, require_text(data, 'title', 100))
    publish_on_commit(project_id, 'list:updated', {
        'listId': board_list.id, 'updates': {'title': board_list.title},
    }, request.user)
    return success_response(serialize_list(board_list))


# === CARDS ===

@api_view(['GET', 'POST'])
def list_cards(request, list_id):
    board_list = services.get_list(list_id)
    project = board_list.project

    if request.method == 'GET':
        BoardPermissions.check_view(request.user, project)
        cards = positions.active_cards(board_list.id).order_by('position', 'id')
        return success_response([serialize_card(card) for card in cards])

    BoardPermissions.check_edit(request.user, project)
    data = parse_json_body(request)
    card = services.create_card(
        board_list.id,
        require_text(data, 'title', 200),
        user=request.user,
        description=_optional_text(data, 'description'),
        due_date=_due_date(data),
        content_ref=_optional_text(data, 'contentRef', CONTENT_REF_MAX_LENGTH),
        assignee_ids=_id_list(data, 'assigneeIds'),
        label_ids=_id_list(data, 'labelIds'),
        position=require_int(data, 'position', minimum=0, required=False),
    )
    payload = serialize_card(card)
    publish_on_commit(project.id, 'card:updated', {
        'cardId': card.id, 'action': 'created', 'card': payload,
    }, request.user)
    return success_response(payload, message='Card created', status=201)


@api_view(['GET', 'PATCH', 'DELETE'])
def card_detail(request, card_id):
    card = services.get_card(card_id)
    project = card.list.project

    if request.method == 'GET':
        BoardPermissions.check_view(request.user, project)
        return success_response(read_model.get_card_details(card.id))

    BoardPermissions.check_edit(request.user, project)

    if request.method == 'DELETE':
        card = services.archive_card(card.id, user=request.user)
        publish_on_commit(project.id, 'card:updated', {
            'cardId': card.id, 'listId': card.list_id, 'action': 'archived',
        }, request.user)
        return success_response(serialize_card(card), message='Card archived')

    data = parse_json_body(request)
    card = services.update_card(card.id, _card_changes(data), user=request.user)
    publish_on_commit(project.id, 'card:updated', {
        'cardId': card.id, 'listId': card.list_id, 'updates': data,
    }, request.user)
    return success_response(serialize_card(card))


@api_view(['POST', 'PATCH'])
def move_card(request, card_id):
    """
    Moves a card to {destinationListId, position}

    An optional ``version`` makes the move fail with 409 when the card
    changed since the client read it.
    """
    card = services.get_card(card_id)
    project = card.list.project
    BoardPermissions.check_edit(request.user, project)

    data = parse_json_body(request)
    destination_list_id = require_int(data, 'destinationListId')
    new_position = require_int(data, 'position', minimum=0)
    expected_version = require_int(data, 'version', required=False)

    source_list_id = card.list_id
    card = services.move_card(
        card.id, destination_list_id, new_position,
        user=request.user, expected_version=expected_version,
    )

    publish_on_commit(project.id, 'card:moved', {
        'cardId': card.id,
        'sourceListId': source_list_id,
        'destinationListId': card.list_id,
        'position': card.position,
        'version': card.version,
    }, request.user)
    return success_response(serialize_card(card), message='Card moved')


# === CHECKLISTS ===

def _checklist_event(project_id, checklist_id, card_id, user, **data):
    publish_on_commit(project_id, 'checklist:updated', dict(
        data, checklistId=checklist_id, cardId=card_id
    ), user)


@api_view(['POST'])
def card_checklists(request, card_id):
    card = services.get_card(card_id)
    project = card.list.project
    BoardPermissions.check_edit(request.user, project)

    data = parse_json_body(request)
    checklist = services.create_checklist(
        card.id,
        require_text(data, 'title', 200),
        position=require_int(data, 'position', minimum=0, required=False),
    )
    _checklist_event(project.id, checklist.id, card.id, request.user, action='created')
    return success_response(serialize_checklist(checklist, []), message='Checklist created', status=201)


@api_view(['PATCH', 'DELETE'])
def checklist_detail(request, checklist_id):
    checklist = services.get_checklist(checklist_id)
    project = checklist.card.list.project
    BoardPermissions.check_edit(request.user, project)

    if request.method == 'DELETE':
        card_id = services.delete_checklist(checklist.id)
        _checklist_event(project.id, checklist.id, card_id, request.user, action='deleted')
        return success_response(message='Checklist deleted')

    data = parse_json_body(request)
    checklist = services.update_checklist(
        checklist.id,
        title=require_text(data, 'title', 200, required=False),
        position=require_int(data, 'position', minimum=0, required=False),
    )
    _checklist_event(project.id, checklist.id, checklist.card_id, request.user, updates=data)
    return success_response(serialize_checklist(checklist))


@api_view(['POST'])
def checklist_items(request, checklist_id):
    checklist = services.get_checklist(checklist_id)
    project = checklist.card.list.project
    BoardPermissions.check_edit(request.user, project)

    data = parse_json_body(request)
    item = services.create_checklist_item(
        checklist.id,
        require_text(data, 'text', 500),
        position=require_int(data, 'position', minimum=0, required=False),
        assignee_id=require_int(data, 'assigneeId', required=False),
    )
    _checklist_event(project.id, checklist.id, checklist.card_id, request.user,
                     action='item_created', itemId=item.id)
    return success_response(serialize_checklist_item(item), message='Item created', status=201)


@api_view(['PATCH'])
def reorder_checklist_items(request, checklist_id):
    checklist = services.get_checklist(checklist_id)
    project = checklist.card.list.project
    BoardPermissions.check_edit(request.user, project)

    item_orders = _orders(parse_json_body(request), 'itemOrders')
    items = services.reorder_checklist_items(checklist.id, item_orders)
    _checklist_event(project.id, checklist.id, checklist.card_id, request.user,
                     action='items_reordered', itemOrders=item_orders)
    return success_response([serialize_checklist_item(item) for item in items])


@api_view(['PATCH', 'DELETE'])
def checklist_item_detail(request, item_id):
    item = services.get_checklist_item(item_id)
    checklist = item.checklist
    project = checklist.card.list.project
    BoardPermissions.check_edit(request.user, project)

    if request.method == 'DELETE':
        services.delete_checklist_item(item.id)
        _checklist_event(project.id, checklist.id, checklist.card_id, request.user,
                         action='item_deleted', itemId=item.id)
        return success_response(message='Item deleted')

    data = parse_json_body(request)
    changes = {}
    if 'text' in data:
        changes['text'] = require_text(data, 'text', 500)
    if 'completed' in data:
        changes['completed'] = _optional_bool(data, 'completed')
    if 'assigneeId' in data:
        changes['assignee_id'] = require_int(data, 'assigneeId', required=False)
    if 'position' in data:
        changes['position'] = require_int(data, 'position', minimum=0)
    if not changes:
        raise ValidationError('No updatable fields given')

    item = services.update_checklist_item(item.id, changes, user=request.user)
    _checklist_event(project.id, checklist.id, checklist.card_id, request.user,
                     itemId=item.id, updates=data)
    return success_response(serialize_checklist_item(item))
