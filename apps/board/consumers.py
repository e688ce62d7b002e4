# apps/board/consumers.py

import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from apps.core.exceptions import AccessDenied, LanesError, NotFound, ValidationError
from apps.core.models import Project
from apps.core.permissions import BoardPermissions

from .broadcast import group_name, send_to_room, tag, timestamp
from .presence import PresenceSession

logger = logging.getLogger(__name__)


class CollaborationConsumer(AsyncWebsocketConsumer):
    """
    WebSocket consumer for realtime collaboration on project boards

    One socket can join several project rooms. Features:
    - Presence: who is in the room and what they are doing
    - Relay of card, list and checklist changes to the other members
    - Heartbeat (ping/pong)

    Frames in both directions are JSON ``{"event": ..., "data": {...}}``.
    The presence store (and optionally the sweeper) are injected through
    ``as_asgi(presence=..., sweeper=...)``.
    """

    # client event -> (server event, id fields the payload must carry)
    RELAYED_EVENTS = {
        'card:move': ('card:moved', ('cardId',)),
        'card:update': ('card:updated', ('cardId',)),
        'list:update': ('list:updated', ('listId',)),
        'checklist:update': ('checklist:updated', ('checklistId',)),
    }

    def __init__(self, *args, presence=None, sweeper=None, **kwargs):
        super().__init__(*args, **kwargs)
        if presence is None:
            raise ValueError('CollaborationConsumer needs a presence store')
        self.presence = presence
        self.sweeper = sweeper
        self.joined_projects = set()

    async def connect(self):
        """Accepts authenticated users only; rooms are joined afterwards"""
        self.user = self.scope.get('user')

        if self.user is None or not self.user.is_authenticated:
            logger.warning("❌ WebSocket connection rejected - user not authenticated")
            await self.close()
            return

        await self.accept()

        if self.sweeper is not None:
            self.sweeper.start()

        logger.info(f"✅ WebSocket connected - {self.user.username} ({self.channel_name})")

    async def disconnect(self, close_code):
        """Leaves every joined room and tells the rooms about it"""
        sessions = await self.presence.leave_all(self.channel_name)
        for session in sessions:
            await self._announce_leave(session)
        for project_id in self.joined_projects:
            await self.channel_layer.group_discard(group_name(project_id), self.channel_name)
        self.joined_projects.clear()

        username = getattr(getattr(self, 'user', None), 'username', 'anonymous')
        logger.info(f"🔌 WebSocket disconnected - {username}")

    async def receive(self, text_data=None, bytes_data=None):
        """Decodes a frame and dispatches it by event name"""
        try:
            frame = json.loads(text_data or '')
        except json.JSONDecodeError:
            logger.error(f"❌ Invalid JSON received via WebSocket from {self.user.username}")
            await self.send_error('Invalid JSON')
            return

        if not isinstance(frame, dict):
            await self.send_error('Invalid frame')
            return

        event = frame.get('event')
        payload = frame.get('data') or {}

        try:
            if event == 'ping':
                await self.send_event('pong', {'timestamp': timestamp()})
            elif event == 'join:project':
                await self.join_project(payload)
            elif event == 'leave:project':
                await self.leave_project(payload)
            elif event == 'presence:update':
                await self.update_presence(payload)
            elif event in self.RELAYED_EVENTS:
                await self.relay(event, payload)
            else:
                await self.send_error(f'Unknown event: {event}')
        except LanesError as e:
            await self.send_error(e.message)
        except Exception as e:
            logger.error(f"❌ WebSocket error handling {event}: {str(e)}")
            await self.send_error(f'Failed to process {event}')

    # === ROOM MEMBERSHIP ===

    async def join_project(self, payload):
        project_id = self._project_id(payload)

        user_id = payload.get('userId')
        if user_id is not None and str(user_id) != str(self.user.id):
            raise AccessDenied('User does not match the authenticated session')

        if not await self.check_project_access(project_id):
            logger.warning(f"❌ {self.user.username} denied access to project {project_id}")
            raise AccessDenied('Access denied to project')

        session = PresenceSession(
            connection_id=self.channel_name,
            project_id=project_id,
            user_id=self.user.id,
            user_name=payload.get('userName') or self.user.display_name,
        )

        await self.channel_layer.group_add(group_name(project_id), self.channel_name)
        await self.presence.join(session)
        self.joined_projects.add(project_id)

        await send_to_room(self.channel_layer, project_id, 'user:joined', dict(
            session.public(), timestamp=timestamp()
        ), sender=self.channel_name)

        users = await self.presence.room_users(project_id)
        await self.send_event('room:users', [s.public() for s in users])
        await self.send_event('join:success', {'projectId': project_id})

        logger.info(f"👋 {session.user_name} joined project {project_id}")

    async def leave_project(self, payload):
        project_id = self._project_id(payload)
        session = await self.presence.leave(project_id, self.channel_name)
        await self.channel_layer.group_discard(group_name(project_id), self.channel_name)
        self.joined_projects.discard(project_id)
        if session is not None:
            await self._announce_leave(session)

    async def _announce_leave(self, session):
        await send_to_room(self.channel_layer, session.project_id, 'user:left', {
            'userId': session.user_id,
            'userName': session.user_name,
            'timestamp': timestamp(),
        }, sender=self.channel_name)
        logger.info(f"🚪 {session.user_name} left project {session.project_id}")

    # === RELAY ===

    async def update_presence(self, payload):
        project_id = self._project_id(payload)
        session = await self.presence.touch(
            project_id, self.channel_name,
            presence=payload.get('presence') or 'viewing',
            editing_card=payload.get('editingCard'),
        )
        if session is None:
            return

        await send_to_room(self.channel_layer, project_id, 'user:presence', dict(
            session.public(), timestamp=timestamp()
        ), sender=self.channel_name)

    async def relay(self, event, payload):
        """
        Re-emits a client change to the other members of the room, tagged
        with the sender and the current time. Ignored when the socket has
        not joined the room.
        """
        outgoing, required = self.RELAYED_EVENTS[event]
        project_id = self._project_id(payload)

        missing = [name for name in required if payload.get(name) in (None, '')]
        if missing:
            raise ValidationError(f"Missing required data for {event}: {', '.join(missing)}")

        session = await self.presence.touch(project_id, self.channel_name)
        if session is None:
            logger.debug(f"{event} from {self.channel_name} ignored - not in project {project_id}")
            return

        data = {key: value for key, value in payload.items() if key != 'projectId'}
        await send_to_room(
            self.channel_layer, project_id, outgoing,
            tag(outgoing, data, session.user_id, session.user_name),
            sender=self.channel_name,
        )

    # === CHANNEL LAYER HANDLERS ===

    async def room_event(self, message):
        """Forwards a room event to this socket unless it sent it"""
        if message.get('sender') == self.channel_name:
            return
        await self.send_event(message['event'], message['data'])

    # === HELPERS ===

    def _project_id(self, payload):
        project_id = payload.get('projectId')
        if project_id in (None, ''):
            raise ValidationError('Missing required data: projectId')
        try:
            return int(project_id)
        except (TypeError, ValueError):
            raise ValidationError('projectId must be an integer')

    async def send_event(self, event, data):
        await self.send(text_data=json.dumps({'event': event, 'data': data}))

    async def send_error(self, message):
        await self.send_event('error', {'message': message})

    @database_sync_to_async
    def check_project_access(self, project_id):
        try:
            project = Project.objects.select_related('owner').get(pk=project_id)
        except Project.DoesNotExist:
            raise NotFound('Project', project_id, code='PROJECT_NOT_FOUND')
        return BoardPermissions.can_join_room(self.user, project)
