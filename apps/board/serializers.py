# apps/board/serializers.py

"""
Dict renderings of the board models for the JSON API and the realtime
payloads. Keys are camelCase, the way the browser client reads them.
"""


def _iso(value):
    return value.isoformat() if value else None


def serialize_user(user):
    if user is None:
        return None
    return {
        'id': user.id,
        'name': user.display_name,
        'email': user.email,
    }


def serialize_label(label):
    return {
        'id': label.id,
        'name': label.name,
        'color': label.color,
    }


def serialize_checklist_item(item):
    return {
        'id': item.id,
        'checklistId': item.checklist_id,
        'text': item.text,
        'completed': item.completed,
        'position': item.position,
        'assignee': serialize_user(item.assignee),
    }


def serialize_checklist(checklist, items=None):
    data = {
        'id': checklist.id,
        'cardId': checklist.card_id,
        'title': checklist.title,
        'position': checklist.position,
    }
    if items is not None:
        data['items'] = [serialize_checklist_item(item) for item in items]
    return data


def serialize_attachment(attachment):
    return {
        'id': attachment.id,
        'name': attachment.name,
        'url': attachment.url,
        'size': attachment.size,
        'uploadedBy': serialize_user(attachment.uploaded_by),
        'createdAt': _iso(attachment.created_at),
    }


def serialize_card(card, detail=False):
    """
    Card row. With ``detail`` the prefetched assignees, labels, checklists
    and attachments are included as well.
    """
    data = {
        'id': card.id,
        'listId': card.list_id,
        'title': card.title,
        'description': card.description,
        'position': card.position,
        'archived': card.archived,
        'completed': card.completed,
        'dueDate': _iso(card.due_date),
        'contentRef': card.content_ref,
        'version': card.version,
        'createdAt': _iso(card.created_at),
        'updatedAt': _iso(card.updated_at),
    }
    if detail:
        checklists = list(card.checklists.all())
        data.update({
            'assignees': [serialize_user(user) for user in card.assignees.all()],
            'labels': [serialize_label(label) for label in card.labels.all()],
            'checklists': [serialize_checklist(c, c.items.all()) for c in checklists],
            'attachments': [serialize_attachment(a) for a in card.attachments.all()],
        })
    return data


def serialize_list(board_list, cards=None):
    data = {
        'id': board_list.id,
        'projectId': board_list.project_id,
        'title': board_list.title,
        'position': board_list.position,
        'archived': board_list.archived,
        'version': board_list.version,
    }
    if cards is not None:
        data['cards'] = cards
    return data


def serialize_activity(activity):
    return {
        'id': activity.id,
        'action': activity.action,
        'data': activity.data,
        'user': serialize_user(activity.user),
        'createdAt': _iso(activity.created_at),
    }
