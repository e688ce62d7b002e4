# apps/board/broadcast.py

"""
Room fan-out helpers shared by the consumer and the HTTP views

Every event reaches a project room as one channel-layer message
``{'type': 'room.event', 'event', 'data', 'sender'}``. The consumer's
room_event handler forwards it to its socket unless the socket is the
sender.
"""

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db import transaction
from django.utils import timezone

logger = logging.getLogger(__name__)

# Events whose actor is reported as movedBy instead of updatedBy
ACTOR_KEYS = {
    'card:moved': 'movedBy',
}


def group_name(project_id):
    return f'project_{project_id}'


def timestamp():
    return timezone.now().isoformat()


def actor_key(event):
    return ACTOR_KEYS.get(event, 'updatedBy')


def actor(user_id, user_name):
    return {'userId': user_id, 'userName': user_name}


def room_message(event, data, sender=None):
    return {
        'type': 'room.event',
        'event': event,
        'data': data,
        'sender': sender,
    }


def tag(event, data, user_id, user_name):
    """Copy of ``data`` tagged with the actor and the current time"""
    tagged = dict(data)
    tagged[actor_key(event)] = actor(user_id, user_name)
    tagged['timestamp'] = timestamp()
    return tagged


async def send_to_room(channel_layer, project_id, event, data, sender=None):
    await channel_layer.group_send(group_name(project_id), room_message(event, data, sender))


# === SERVER-SIDE PUBLISH ===

def publish(project_id, event, data, user=None):
    """
    Sends an event to every connection of a project room

    Fire-and-forget: a channel layer failure is logged and never reaches
    the HTTP response.
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    if user is not None and user.is_authenticated:
        data = tag(event, data, user.id, user.display_name)
    else:
        data = dict(data, timestamp=timestamp())
    data['source'] = 'api'

    try:
        async_to_sync(channel_layer.group_send)(group_name(project_id), room_message(event, data))
    except Exception as e:
        logger.error(f"❌ Broadcast of {event} to project {project_id} failed: {str(e)}")
        return False
    return True


def publish_on_commit(project_id, event, data, user=None):
    """Publishes once the surrounding transaction commits, if enabled"""
    if not getattr(settings, 'LANES_BROADCAST_HTTP_MUTATIONS', True):
        return
    transaction.on_commit(lambda: publish(project_id, event, data, user))
