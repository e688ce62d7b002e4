# apps/board/presence.py

"""
Presence stores for the realtime rooms

A store tracks which connection (channel name) has joined which
project room, as whom, and when it last sent anything. One store is
created per process in BoardConfig.ready() and handed to the consumer
through as_asgi(presence=...).

- InMemoryPresenceStore: process-local dict, lost on restart
- CachePresenceStore: kept in a Django cache (django-redis in
  production) so every ASGI worker sees the same rooms
"""

import time
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from django.conf import settings
from django.core.cache import caches


@dataclass
class PresenceSession:
    """One connection inside one project room"""

    connection_id: str
    project_id: int
    user_id: int
    user_name: str
    presence: str = 'viewing'
    editing_card: Optional[int] = None
    last_activity: float = field(default_factory=time.time)

    def public(self) -> Dict:
        """Fields sent to the other members of the room"""
        return {
            'userId': self.user_id,
            'userName': self.user_name,
            'presence': self.presence,
            'editingCard': self.editing_card,
        }


class PresenceStore:
    """Interface of a presence store. Every method is a coroutine."""

    async def join(self, session: PresenceSession) -> None:
        raise NotImplementedError

    async def get(self, project_id: int, connection_id: str) -> Optional[PresenceSession]:
        raise NotImplementedError

    async def touch(self, project_id: int, connection_id: str, now: Optional[float] = None,
                    **changes) -> Optional[PresenceSession]:
        """
        Refreshes last_activity (and applies ``changes``) of a joined
        connection. Returns None when the connection is not in the room.
        """
        raise NotImplementedError

    async def leave(self, project_id: int, connection_id: str) -> Optional[PresenceSession]:
        raise NotImplementedError

    async def leave_all(self, connection_id: str) -> List[PresenceSession]:
        raise NotImplementedError

    async def room_users(self, project_id: int) -> List[PresenceSession]:
        raise NotImplementedError

    async def rooms(self) -> List[int]:
        raise NotImplementedError

    async def sweep(self, timeout: float, now: Optional[float] = None) -> List[PresenceSession]:
        """Evicts sessions idle for more than ``timeout`` seconds and returns them"""
        raise NotImplementedError

    async def clear(self) -> None:
        raise NotImplementedError


class InMemoryPresenceStore(PresenceStore):
    """
    Rooms kept in a dict of dicts: {project_id: {connection_id: session}}

    Only touched from the event loop thread, so no locking is needed.
    """

    def __init__(self):
        self._rooms: Dict[int, Dict[str, PresenceSession]] = {}

    async def join(self, session):
        self._rooms.setdefault(session.project_id, {})[session.connection_id] = session

    async def get(self, project_id, connection_id):
        return self._rooms.get(project_id, {}).get(connection_id)

    async def touch(self, project_id, connection_id, now=None, **changes):
        session = await self.get(project_id, connection_id)
        if session is None:
            return None
        for name, value in changes.items():
            setattr(session, name, value)
        session.last_activity = now if now is not None else time.time()
        return session

    async def leave(self, project_id, connection_id):
        room = self._rooms.get(project_id)
        if room is None:
            return None
        session = room.pop(connection_id, None)
        if not room:
            del self._rooms[project_id]
        return session

    async def leave_all(self, connection_id):
        left = []
        for project_id in list(self._rooms):
            session = await self.leave(project_id, connection_id)
            if session is not None:
                left.append(session)
        return left

    async def room_users(self, project_id):
        return list(self._rooms.get(project_id, {}).values())

    async def rooms(self):
        return list(self._rooms)

    async def sweep(self, timeout, now=None):
        now = now if now is not None else time.time()
        evicted = []
        for project_id in list(self._rooms):
            for session in list(self._rooms[project_id].values()):
                if now - session.last_activity > timeout:
                    await self.leave(project_id, session.connection_id)
                    evicted.append(session)
        return evicted

    async def clear(self):
        self._rooms.clear()


class CachePresenceStore(PresenceStore):
    """
    Rooms kept in a Django cache

    Layout: ``<prefix>:rooms`` holds the list of project ids with members,
    ``<prefix>:room:<project_id>`` holds {connection_id: session dict}.
    Entries expire after twice the presence timeout so rooms left behind
    by a dead worker disappear on their own. Updates are read-modify-write:
    two workers writing the same room at the same instant keep the last
    write, which only affects the advisory presence list.
    """

    def __init__(self, alias='default', prefix='lanes:presence', ttl=None):
        self.cache = caches[alias]
        self.prefix = prefix
        self.ttl = ttl if ttl is not None else getattr(settings, 'LANES_PRESENCE_TIMEOUT', 300) * 2

    def _room_key(self, project_id):
        return f'{self.prefix}:room:{project_id}'

    @property
    def _rooms_key(self):
        return f'{self.prefix}:rooms'

    async def _load(self, project_id) -> Dict[str, PresenceSession]:
        raw = await self.cache.aget(self._room_key(project_id)) or {}
        return {conn: PresenceSession(**data) for conn, data in raw.items()}

    async def _save(self, project_id, room: Dict[str, PresenceSession]):
        project_ids = set(await self.cache.aget(self._rooms_key) or [])
        if room:
            await self.cache.aset(
                self._room_key(project_id),
                {conn: asdict(session) for conn, session in room.items()},
                self.ttl,
            )
            project_ids.add(project_id)
        else:
            await self.cache.adelete(self._room_key(project_id))
            project_ids.discard(project_id)
        await self.cache.aset(self._rooms_key, sorted(project_ids), self.ttl)

    async def join(self, session):
        room = await self._load(session.project_id)
        room[session.connection_id] = session
        await self._save(session.project_id, room)

    async def get(self, project_id, connection_id):
        return (await self._load(project_id)).get(connection_id)

    async def touch(self, project_id, connection_id, now=None, **changes):
        room = await self._load(project_id)
        session = room.get(connection_id)
        if session is None:
            return None
        for name, value in changes.items():
            setattr(session, name, value)
        session.last_activity = now if now is not None else time.time()
        await self._save(project_id, room)
        return session

    async def leave(self, project_id, connection_id):
        room = await self._load(project_id)
        session = room.pop(connection_id, None)
        if session is not None:
            await self._save(project_id, room)
        return session

    async def leave_all(self, connection_id):
        left = []
        for project_id in await self.rooms():
            session = await self.leave(project_id, connection_id)
            if session is not None:
                left.append(session)
        return left

    async def room_users(self, project_id):
        return list((await self._load(project_id)).values())

    async def rooms(self):
        return list(await self.cache.aget(self._rooms_key) or [])

    async def sweep(self, timeout, now=None):
        now = now if now is not None else time.time()
        evicted = []
        for project_id in await self.rooms():
            room = await self._load(project_id)
            stale = [s for s in room.values() if now - s.last_activity > timeout]
            if not stale and room:
                continue
            for session in stale:
                del room[session.connection_id]
            await self._save(project_id, room)
            evicted.extend(stale)
        return evicted

    async def clear(self):
        for project_id in await self.rooms():
            await self.cache.adelete(self._room_key(project_id))
        await self.cache.adelete(self._rooms_key)


def build_presence_store(backend=None) -> PresenceStore:
    """Store selected by LANES_PRESENCE_BACKEND ('memory' or 'cache')"""
    backend = backend or getattr(settings, 'LANES_PRESENCE_BACKEND', 'memory')
    if backend == 'memory':
        return InMemoryPresenceStore()
    if backend == 'cache':
        return CachePresenceStore()
    raise ValueError(f"Unknown LANES_PRESENCE_BACKEND: {backend!r}")
