# apps/board/tests/test_presence.py

import time

from django.core.cache import cache
from django.test import SimpleTestCase, override_settings

from apps.board.presence import (
    CachePresenceStore, InMemoryPresenceStore, PresenceSession,
    build_presence_store
)


def session(connection_id, project_id=1, user_id=1, user_name='Ana', last_activity=None):
    return PresenceSession(
        connection_id=connection_id,
        project_id=project_id,
        user_id=user_id,
        user_name=user_name,
        last_activity=last_activity if last_activity is not None else time.time(),
    )


class PresenceStoreContract:
    """Behaviour every presence store must share"""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        cache.clear()
        self.store = self.make_store()

    async def test_join_and_room_users(self):
        await self.store.join(session('c1', user_id=1, user_name='Ana'))
        await self.store.join(session('c2', user_id=2, user_name='Bo'))
        await self.store.join(session('c3', project_id=2, user_id=3))

        users = await self.store.room_users(1)
        self.assertEqual(sorted(s.user_name for s in users), ['Ana', 'Bo'])
        self.assertEqual(sorted(await self.store.rooms()), [1, 2])

    async def test_leave_drops_empty_room(self):
        await self.store.join(session('c1'))
        left = await self.store.leave(1, 'c1')
        self.assertEqual(left.connection_id, 'c1')
        self.assertEqual(await self.store.room_users(1), [])
        self.assertEqual(await self.store.rooms(), [])

    async def test_leave_unknown_connection(self):
        self.assertIsNone(await self.store.leave(1, 'missing'))

    async def test_leave_all(self):
        await self.store.join(session('c1', project_id=1))
        await self.store.join(session('c1', project_id=2))
        await self.store.join(session('c2', project_id=2, user_id=2))

        left = await self.store.leave_all('c1')

        self.assertEqual(sorted(s.project_id for s in left), [1, 2])
        self.assertEqual([s.connection_id for s in await self.store.room_users(2)], ['c2'])

    async def test_touch_updates_presence(self):
        await self.store.join(session('c1', last_activity=100.0))
        touched = await self.store.touch(1, 'c1', now=200.0, presence='editing', editing_card=7)

        self.assertEqual(touched.last_activity, 200.0)
        stored = await self.store.get(1, 'c1')
        self.assertEqual((stored.presence, stored.editing_card, stored.last_activity), ('editing', 7, 200.0))

    async def test_touch_outside_room(self):
        self.assertIsNone(await self.store.touch(1, 'c1'))

    async def test_sweep_evicts_only_stale_sessions(self):
        await self.store.join(session('old', user_id=1, last_activity=1000.0))
        await self.store.join(session('new', user_id=2, last_activity=1250.0))
        await self.store.join(session('gone', project_id=2, user_id=3, last_activity=900.0))

        evicted = await self.store.sweep(300, now=1301.0)

        self.assertEqual(sorted(s.connection_id for s in evicted), ['gone', 'old'])
        self.assertEqual([s.connection_id for s in await self.store.room_users(1)], ['new'])
        self.assertEqual(await self.store.rooms(), [1])

    async def test_clear(self):
        await self.store.join(session('c1'))
        await self.store.clear()
        self.assertEqual(await self.store.rooms(), [])
        self.assertEqual(await self.store.room_users(1), [])

    def test_public_fields(self):
        self.assertEqual(
            session('c1', user_id=5, user_name='Ana').public(),
            {'userId': 5, 'userName': 'Ana', 'presence': 'viewing', 'editingCard': None}
        )


class InMemoryPresenceStoreTests(PresenceStoreContract, SimpleTestCase):

    def make_store(self):
        return InMemoryPresenceStore()


class CachePresenceStoreTests(PresenceStoreContract, SimpleTestCase):

    def make_store(self):
        return CachePresenceStore(prefix='test:presence')

    async def test_shared_between_instances(self):
        await self.store.join(session('c1'))
        other = CachePresenceStore(prefix='test:presence')
        self.assertEqual([s.connection_id for s in await other.room_users(1)], ['c1'])


class BuildPresenceStoreTests(SimpleTestCase):

    def test_default_is_memory(self):
        self.assertIsInstance(build_presence_store(), InMemoryPresenceStore)

    @override_settings(LANES_PRESENCE_BACKEND='cache')
    def test_cache_backend(self):
        self.assertIsInstance(build_presence_store(), CachePresenceStore)

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            build_presence_store('zookeeper')
