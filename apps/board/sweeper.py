# apps/board/sweeper.py

"""
Inactivity sweep for the presence store, plus the ASGI lifespan app
that starts and stops it with the server process.
"""

import asyncio
import logging

from channels.layers import get_channel_layer
from django.conf import settings

from .broadcast import group_name, room_message, timestamp

logger = logging.getLogger(__name__)


class PresenceSweeper:
    """
    Evicts sessions idle for longer than ``timeout`` every ``interval``
    seconds, removes them from the room group and tells the rest of the
    room with ``user:left``.
    """

    def __init__(self, presence, interval=None, timeout=None, channel_layer=None):
        self.presence = presence
        self.interval = interval if interval is not None else getattr(settings, 'LANES_PRESENCE_SWEEP_INTERVAL', 60)
        self.timeout = timeout if timeout is not None else getattr(settings, 'LANES_PRESENCE_TIMEOUT', 300)
        self._channel_layer = channel_layer
        self._task = None

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    @property
    def running(self):
        return self._task is not None and not self._task.done()

    def start(self):
        """Schedules the sweep loop on the running event loop; no-op when already running"""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"🧹 Presence sweeper started (every {self.interval}s, timeout {self.timeout}s)")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("🧹 Presence sweeper stopped")

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"❌ Presence sweep failed: {str(e)}")

    async def sweep_once(self, now=None):
        """One eviction pass; returns the evicted sessions"""
        evicted = await self.presence.sweep(self.timeout, now=now)
        for session in evicted:
            group = group_name(session.project_id)
            await self.channel_layer.group_discard(group, session.connection_id)
            await self.channel_layer.group_send(group, room_message('user:left', {
                'userId': session.user_id,
                'userName': session.user_name,
                'reason': 'inactive',
                'timestamp': timestamp(),
            }))
            logger.info(f"💤 {session.user_name} evicted from project {session.project_id} for inactivity")
        return evicted


class LifespanApp:
    """
    Handles the ASGI ``lifespan`` scope: starts the sweeper on startup,
    stops it and clears the presence store on shutdown.
    """

    def __init__(self, presence, sweeper):
        self.presence = presence
        self.sweeper = sweeper

    async def __call__(self, scope, receive, send):
        while True:
            message = await receive()
            if message['type'] == 'lifespan.startup':
                self.sweeper.start()
                await send({'type': 'lifespan.startup.complete'})
            elif message['type'] == 'lifespan.shutdown':
                await self.sweeper.stop()
                await self.presence.clear()
                await send({'type': 'lifespan.shutdown.complete'})
                return
