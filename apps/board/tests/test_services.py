# apps/board/tests/test_services.py

import random
from unittest import mock

from django.db.models import F, QuerySet
from django.test import TestCase, override_settings

from apps.board import positions, services
from apps.core.exceptions import ConflictError, NotFound, ValidationError
from apps.core.models import (
    Checklist, ChecklistItem, Project, ProjectActivity, ProjectCard,
    ProjectLabel, ProjectList
)

from .helpers import BoardFixtureMixin


class CreateTests(BoardFixtureMixin, TestCase):

    def setUp(self):
        self.create_users()
        self.project = self.create_project()

    def test_lists_append_in_order(self):
        for title in ('To Do', 'Doing', 'Done'):
            services.create_list(self.project.id, title, user=self.owner)
        self.assertEqual(self.list_layout(self.project), ['To Do', 'Doing', 'Done'])
        self.assertEqual(
            list(positions.active_lists(self.project.id).order_by('position').values_list('position', flat=True)),
            [0, 1, 2]
        )
        self.assertEqual(
            ProjectActivity.objects.filter(action=ProjectActivity.LIST_CREATED).count(), 3
        )

    def test_card_at_explicit_position_opens_a_slot(self):
        board_list = self.create_list(self.project, 'To Do', 'A', 'B')
        services.create_card(board_list.id, 'X', position=1)
        self.assertEqual(self.layout(board_list), ['A', 'X', 'B'])
        self.assertEqual(self.positions_of(board_list), [0, 1, 2])

    def test_card_position_past_the_end_is_rejected(self):
        board_list = self.create_list(self.project, 'To Do', 'A')
        with self.assertRaises(ValidationError):
            services.create_card(board_list.id, 'X', position=5)
        self.assertEqual(self.layout(board_list), ['A'])

    def test_card_in_archived_list_is_rejected(self):
        board_list = self.create_list(self.project, 'To Do')
        services.archive_list(board_list.id)
        with self.assertRaises(ValidationError):
            services.create_card(board_list.id, 'X')

    def test_card_in_unknown_list(self):
        with self.assertRaises(NotFound):
            services.create_card(999999, 'X')

    def test_assignees_must_belong_to_the_project(self):
        board_list = self.create_list(self.project, 'To Do')
        card = services.create_card(board_list.id, 'X', assignee_ids=[self.member.id, self.owner.id])
        self.assertEqual(set(card.assignees.values_list('id', flat=True)), {self.member.id, self.owner.id})

        with self.assertRaises(ValidationError):
            services.create_card(board_list.id, 'Y', assignee_ids=[self.outsider.id])
        self.assertFalse(ProjectCard.objects.filter(title='Y').exists())

    def test_labels_must_belong_to_the_project(self):
        other = Project.objects.create(title='Other', owner=self.owner)
        foreign = ProjectLabel.objects.create(project=other, name='foreign')
        board_list = self.create_list(self.project, 'To Do')
        with self.assertRaises(ValidationError):
            services.create_card(board_list.id, 'X', label_ids=[foreign.id])


class MoveCardTests(BoardFixtureMixin, TestCase):

    def setUp(self):
        self.create_users()
        self.project = self.create_project()
        self.l1 = self.create_list(self.project, 'L1', 'A', 'B', 'C')
        self.l2 = self.create_list(self.project, 'L2', 'D')

    def test_forward_move_within_list(self):
        services.move_card(self.card('A').id, self.l1.id, 2)
        self.assertEqual(self.layout(self.l1), ['B', 'C', 'A'])
        self.assertEqual(self.positions_of(self.l1), [0, 1, 2])

    def test_backward_move_within_list(self):
        services.move_card(self.card('C').id, self.l1.id, 0)
        self.assertEqual(self.layout(self.l1), ['C', 'A', 'B'])

    def test_move_to_other_list(self):
        services.move_card(self.card('A').id, self.l2.id, 0)
        self.assertEqual(self.layout(self.l1), ['B', 'C'])
        self.assertEqual(self.layout(self.l2), ['A', 'D'])
        self.assertEqual(self.positions_of(self.l1), [0, 1])
        self.assertEqual(self.positions_of(self.l2), [0, 1])

    def test_two_list_scenario(self):
        l1 = self.create_list(self.project, 'P1', 'p-A', 'p-B')
        l2 = self.create_list(self.project, 'P2', 'p-C')
        services.move_card(self.card('p-A').id, l2.id, 0)
        self.assertEqual(self.layout(l1), ['p-B'])
        self.assertEqual(self.layout(l2), ['p-A', 'p-C'])
        self.assertEqual(self.positions_of(l2), [0, 1])

    def test_move_to_end_of_other_list(self):
        services.move_card(self.card('B').id, self.l2.id, 1)
        self.assertEqual(self.layout(self.l2), ['D', 'B'])

    def test_move_to_empty_list(self):
        empty = self.create_list(self.project, 'Empty')
        services.move_card(self.card('B').id, empty.id, 0)
        self.assertEqual(self.layout(empty), ['B'])
        self.assertEqual(self.layout(self.l1), ['A', 'C'])

    def test_noop_move_writes_nothing(self):
        before = self.snapshot(self.project)
        versions = list(ProjectCard.objects.order_by('id').values_list('version', flat=True))

        card = services.move_card(self.card('B').id, self.l1.id, 1)

        self.assertEqual(card.position, 1)
        self.assertEqual(self.snapshot(self.project), before)
        self.assertEqual(list(ProjectCard.objects.order_by('id').values_list('version', flat=True)), versions)
        self.assertFalse(ProjectActivity.objects.filter(action=ProjectActivity.CARD_MOVED).exists())

    def test_round_trip_restores_the_board(self):
        before = self.snapshot(self.project)
        card = self.card('B')
        original = card.position

        services.move_card(card.id, self.l2.id, 1)
        services.move_card(card.id, self.l1.id, original)

        self.assertEqual(self.snapshot(self.project), before)

    def test_unknown_card_changes_nothing(self):
        before = self.snapshot(self.project)
        with self.assertRaises(NotFound):
            services.move_card(999999, self.l2.id, 0)
        self.assertEqual(self.snapshot(self.project), before)

    def test_unknown_destination(self):
        before = self.snapshot(self.project)
        with self.assertRaises(NotFound):
            services.move_card(self.card('A').id, 999999, 0)
        self.assertEqual(self.snapshot(self.project), before)

    def test_archived_card_cannot_move(self):
        services.archive_card(self.card('A').id)
        with self.assertRaisesMessage(ValidationError, 'Cannot move archived card'):
            services.move_card(self.card('A').id, self.l2.id, 0)

    def test_archived_destination_is_rejected(self):
        services.archive_list(self.l2.id)
        with self.assertRaisesMessage(ValidationError, 'Cannot move card to archived list'):
            services.move_card(self.card('A').id, self.l2.id, 0)

    def test_other_project_is_rejected(self):
        other = Project.objects.create(title='Other', owner=self.owner)
        foreign = ProjectList.objects.create(project=other, title='Foreign', position=0)
        before = self.snapshot(self.project)
        with self.assertRaisesMessage(ValidationError, 'different projects'):
            services.move_card(self.card('A').id, foreign.id, 0)
        self.assertEqual(self.snapshot(self.project), before)

    def test_position_past_the_end(self):
        with self.assertRaisesMessage(ValidationError, 'Position 2 exceeds list length (1)'):
            services.move_card(self.card('A').id, self.l2.id, 2)
        with self.assertRaisesMessage(ValidationError, 'Position 3 exceeds list length (2)'):
            services.move_card(self.card('A').id, self.l1.id, 3)

    def test_negative_position(self):
        with self.assertRaises(ValidationError):
            services.move_card(self.card('A').id, self.l1.id, -1)

    def test_move_bumps_version_and_records_activity(self):
        card = self.card('A')
        moved = services.move_card(card.id, self.l2.id, 0, user=self.member)
        self.assertEqual(moved.version, card.version + 1)

        activity = ProjectActivity.objects.get(action=ProjectActivity.CARD_MOVED)
        self.assertEqual(activity.user, self.member)
        self.assertEqual(activity.data['fromListId'], self.l1.id)
        self.assertEqual(activity.data['toListId'], self.l2.id)
        self.assertEqual(activity.data['newPosition'], 0)

    def test_stale_expected_version_is_a_conflict(self):
        card = self.card('A')
        before = self.snapshot(self.project)
        with self.assertRaises(ConflictError) as ctx:
            services.move_card(card.id, self.l2.id, 0, expected_version=card.version + 5)
        self.assertEqual(ctx.exception.details, {'currentVersion': card.version})
        self.assertEqual(self.snapshot(self.project), before)

    def test_matching_expected_version_moves(self):
        card = self.card('A')
        services.move_card(card.id, self.l2.id, 0, expected_version=card.version)
        self.assertEqual(self.layout(self.l2), ['A', 'D'])

    def bump_sibling_while_moving(self, sibling, times):
        """
        Wraps the sibling snapshot of the move engine so that another writer
        rewrites ``sibling`` right after it is read, ``times`` times
        """
        real = services._seen_versions
        calls = []

        def concurrent_write(queryset):
            seen = real(queryset)
            calls.append(seen)
            if len(calls) <= times:
                ProjectCard.objects.filter(pk=sibling.pk).update(version=F('version') + 1)
            return seen

        return mock.patch.object(services, '_seen_versions', side_effect=concurrent_write), calls

    @override_settings(LANES_MOVE_MAX_RETRIES=2)
    def test_sibling_rewritten_mid_move_is_retried(self):
        patcher, calls = self.bump_sibling_while_moving(self.card('B'), times=1)
        with patcher:
            services.move_card(self.card('A').id, self.l1.id, 2)

        self.assertEqual(len(calls), 2)
        self.assertEqual(self.layout(self.l1), ['B', 'C', 'A'])
        self.assertEqual(self.positions_of(self.l1), [0, 1, 2])
        self.assertEqual(ProjectActivity.objects.filter(action=ProjectActivity.CARD_MOVED).count(), 1)

    @override_settings(LANES_MOVE_MAX_RETRIES=1)
    def test_retries_give_up_and_roll_back(self):
        before = self.snapshot(self.project)
        patcher, calls = self.bump_sibling_while_moving(self.card('B'), times=10)
        with patcher:
            with self.assertRaises(ConflictError):
                services.move_card(self.card('A').id, self.l1.id, 2)

        self.assertEqual(len(calls), 2)
        self.assertEqual(self.snapshot(self.project), before)
        self.assertFalse(ProjectActivity.objects.filter(action=ProjectActivity.CARD_MOVED).exists())

    def test_conflict_with_expected_version_is_not_retried(self):
        card = self.card('A')
        patcher, calls = self.bump_sibling_while_moving(self.card('D'), times=10)
        with patcher:
            with self.assertRaises(ConflictError):
                services.move_card(card.id, self.l2.id, 0, expected_version=card.version)
        # a single attempt reads the destination then the source
        self.assertEqual(len(calls), 2)
        self.assertEqual(self.layout(self.l2), ['D'])

    def test_sibling_added_mid_move_is_a_conflict(self):
        real = services._seen_versions

        def late_insert(queryset):
            seen = real(queryset)
            ProjectCard.objects.create(list=self.l1, title='late', position=1)
            return seen

        with override_settings(LANES_MOVE_MAX_RETRIES=0):
            with mock.patch.object(services, '_seen_versions', side_effect=late_insert):
                with self.assertRaises(ConflictError):
                    services.move_card(self.card('A').id, self.l1.id, 2)
        self.assertEqual(self.layout(self.l1), ['A', 'B', 'C'])

    def test_density_holds_for_random_operations(self):
        rng = random.Random(7)
        lists = [self.l1, self.l2, self.create_list(self.project, 'L3', 'E', 'F')]

        for step in range(60):
            active = list(ProjectCard.objects.filter(list__project=self.project, archived=False))
            action = rng.random()
            if action < 0.2 or not active:
                services.create_card(rng.choice(lists).id, f'card-{step}')
            elif action < 0.3:
                services.archive_card(rng.choice(active).id)
            else:
                card = rng.choice(active)
                destination = rng.choice(lists)
                size = positions.active_cards(destination.id).exclude(pk=card.pk).count()
                services.move_card(card.id, destination.id, rng.randint(0, size))

            for board_list in lists:
                self.assertEqual(
                    self.positions_of(board_list),
                    list(range(len(self.positions_of(board_list)))),
                    f'list {board_list.title} not dense after step {step}'
                )


class MoveListsTests(BoardFixtureMixin, TestCase):

    def setUp(self):
        self.create_users()
        self.project = self.create_project()
        self.lists = [self.create_list(self.project, title) for title in ('To Do', 'Doing', 'Done')]

    def test_assignment_is_written(self):
        todo, doing, done = self.lists
        result = services.move_lists(self.project.id, [
            {'id': done.id, 'position': 0},
            {'id': todo.id, 'position': 1},
            {'id': doing.id, 'position': 2},
        ], user=self.owner)

        self.assertEqual([board_list.title for board_list in result], ['Done', 'To Do', 'Doing'])
        self.assertTrue(ProjectActivity.objects.filter(action=ProjectActivity.LISTS_REORDERED).exists())

    def test_foreign_list_rejects_everything(self):
        other = Project.objects.create(title='Other', owner=self.owner)
        foreign = ProjectList.objects.create(project=other, title='Foreign', position=0)
        todo = self.lists[0]

        with self.assertRaises(ValidationError):
            services.move_lists(self.project.id, [
                {'id': todo.id, 'position': 2},
                {'id': foreign.id, 'position': 0},
            ])

        self.assertEqual(self.list_layout(self.project), ['To Do', 'Doing', 'Done'])

    def test_archived_list_is_rejected(self):
        services.archive_list(self.lists[2].id)
        with self.assertRaises(ValidationError):
            services.move_lists(self.project.id, [{'id': self.lists[2].id, 'position': 0}])

    def test_empty_assignment(self):
        with self.assertRaises(ValidationError):
            services.move_lists(self.project.id, [])


class ArchiveTests(BoardFixtureMixin, TestCase):

    def setUp(self):
        self.create_users()
        self.project = self.create_project()
        self.board_list = self.create_list(self.project, 'To Do', 'A', 'B', 'C', 'D')

    def test_archive_card_compacts_siblings(self):
        services.archive_card(self.card('B').id, user=self.owner)
        self.assertEqual(self.layout(self.board_list), ['A', 'C', 'D'])
        self.assertEqual(self.positions_of(self.board_list), [0, 1, 2])
        self.assertTrue(self.card('B').archived)

    def test_archive_card_twice_is_harmless(self):
        services.archive_card(self.card('B').id)
        services.archive_card(self.card('B').id)
        self.assertEqual(self.positions_of(self.board_list), [0, 1, 2])

    def test_archive_unknown_card(self):
        with self.assertRaises(NotFound):
            services.archive_card(999999)

    def test_restore_card_appends_at_the_end(self):
        services.archive_card(self.card('A').id)
        services.restore_card(self.card('A').id)
        self.assertEqual(self.layout(self.board_list), ['B', 'C', 'D', 'A'])
        self.assertEqual(self.positions_of(self.board_list), [0, 1, 2, 3])

    def test_update_card_routes_archived_flag(self):
        services.update_card(self.card('C').id, {'archived': True, 'title': 'C2'})
        self.assertEqual(self.layout(self.board_list), ['A', 'B', 'D'])
        self.assertEqual(self.card('C2').archived, True)

        services.update_card(self.card('C2').id, {'archived': False})
        self.assertEqual(self.layout(self.board_list), ['A', 'B', 'D', 'C2'])

    def test_archive_list_archives_cards_and_compacts_lists(self):
        second = self.create_list(self.project, 'Doing', 'E')
        third = self.create_list(self.project, 'Done')

        services.archive_list(self.board_list.id, user=self.owner)

        self.assertEqual(self.list_layout(self.project), ['Doing', 'Done'])
        second.refresh_from_db()
        third.refresh_from_db()
        self.assertEqual((second.position, third.position), (0, 1))
        self.assertFalse(ProjectCard.objects.filter(list=self.board_list, archived=False).exists())
        # cards of the archived list keep their positions
        self.assertEqual(
            list(ProjectCard.objects.filter(list=self.board_list).order_by('position').values_list('position', flat=True)),
            [0, 1, 2, 3]
        )


class ChecklistTests(BoardFixtureMixin, TestCase):

    def setUp(self):
        self.create_users()
        self.project = self.create_project()
        board_list = self.create_list(self.project, 'To Do', 'A')
        self.card_obj = self.card('A')
        self.checklist = services.create_checklist(self.card_obj.id, 'Steps')
        for text in ('one', 'two', 'three'):
            services.create_checklist_item(self.checklist.id, text)
        self.board_list = board_list

    def items(self):
        return list(
            ChecklistItem.objects.filter(checklist=self.checklist)
            .order_by('position').values_list('text', 'position')
        )

    def test_items_append(self):
        self.assertEqual(self.items(), [('one', 0), ('two', 1), ('three', 2)])

    def test_move_item(self):
        item = ChecklistItem.objects.get(text='one')
        services.move_checklist_item(item.id, 2)
        self.assertEqual(self.items(), [('two', 0), ('three', 1), ('one', 2)])

    def test_reorder_items(self):
        one, two, three = ChecklistItem.objects.order_by('position')
        services.reorder_checklist_items(self.checklist.id, [
            {'id': three.id, 'position': 0},
            {'id': one.id, 'position': 1},
            {'id': two.id, 'position': 2},
        ])
        self.assertEqual(self.items(), [('three', 0), ('one', 1), ('two', 2)])

    def test_reorder_items_of_other_checklist_is_rejected(self):
        other = services.create_checklist(self.card_obj.id, 'Other')
        stray = services.create_checklist_item(other.id, 'stray')
        with self.assertRaises(ValidationError):
            services.reorder_checklist_items(self.checklist.id, [{'id': stray.id, 'position': 0}])

    def test_delete_item_compacts(self):
        services.delete_checklist_item(ChecklistItem.objects.get(text='two').id)
        self.assertEqual(self.items(), [('one', 0), ('three', 1)])

    def test_delete_checklist_compacts_siblings(self):
        second = services.create_checklist(self.card_obj.id, 'Second')
        third = services.create_checklist(self.card_obj.id, 'Third')

        services.delete_checklist(self.checklist.id)

        self.assertFalse(ChecklistItem.objects.filter(checklist_id=self.checklist.id).exists())
        self.assertEqual(
            list(Checklist.objects.filter(card=self.card_obj).order_by('position').values_list('id', 'position')),
            [(second.id, 0), (third.id, 1)]
        )

    def test_complete_item_records_activity(self):
        item = ChecklistItem.objects.get(text='one')
        services.update_checklist_item(item.id, {'completed': True}, user=self.member)
        self.assertTrue(ProjectActivity.objects.filter(
            action=ProjectActivity.CHECKLIST_ITEM_COMPLETED, card=self.card_obj
        ).exists())

    def test_update_item_position(self):
        item = ChecklistItem.objects.get(text='three')
        item = services.update_checklist_item(item.id, {'text': 'third', 'position': 0})
        self.assertEqual(item.position, 0)
        self.assertEqual(self.items(), [('third', 0), ('one', 1), ('two', 2)])

    def test_no_checklists_on_archived_cards(self):
        services.archive_card(self.card_obj.id)
        with self.assertRaises(ValidationError):
            services.create_checklist(self.card_obj.id, 'Late')


class CompactProjectTests(BoardFixtureMixin, TestCase):

    def test_compaction_repairs_every_container(self):
        self.create_users()
        project = self.create_project()
        board_list = self.create_list(project, 'To Do', 'A', 'B')
        ProjectCard.objects.filter(title='A').update(position=4)
        ProjectCard.objects.filter(title='B').update(position=9)
        ProjectList.objects.filter(pk=board_list.pk).update(position=3)

        changed = services.compact_project(project.id)

        self.assertEqual(changed, 3)
        self.assertEqual(self.positions_of(board_list), [0, 1])
        self.assertEqual(services.compact_project(project.id), 0)


class LockOrderTests(BoardFixtureMixin, TestCase):
    """Writers lock project, then lists, then cards"""

    def setUp(self):
        self.create_users()
        self.project = self.create_project()
        self.l1 = self.create_list(self.project, 'L1', 'A', 'B')
        self.l2 = self.create_list(self.project, 'L2', 'C')

    def locks_taken(self, action, *args, **kwargs):
        real = QuerySet.select_for_update
        locked = []

        def record(queryset, *a, **kw):
            locked.append(queryset.model)
            return real(queryset, *a, **kw)

        with mock.patch.object(QuerySet, 'select_for_update', autospec=True, side_effect=record):
            action(*args, **kwargs)
        return locked

    def test_move_card_locks_both_lists_first(self):
        locked = self.locks_taken(services.move_card, self.card('A').id, self.l2.id, 0)
        self.assertEqual(locked, [ProjectList, ProjectCard])

    def test_archive_card_locks_its_list(self):
        locked = self.locks_taken(services.archive_card, self.card('A').id)
        self.assertEqual(locked, [ProjectList, ProjectCard])

    def test_restore_card_locks_its_list(self):
        services.archive_card(self.card('A').id)
        locked = self.locks_taken(services.restore_card, self.card('A').id)
        self.assertEqual(locked, [ProjectList, ProjectCard])

    def test_move_lists_locks_the_project(self):
        locked = self.locks_taken(services.move_lists, self.project.id, [
            {'id': self.l1.id, 'position': 1},
            {'id': self.l2.id, 'position': 0},
        ])
        self.assertEqual(locked, [Project, ProjectList])

    def test_archive_list_locks_the_project(self):
        locked = self.locks_taken(services.archive_list, self.l2.id)
        self.assertEqual(locked, [Project, ProjectList])

    def test_card_changing_list_before_the_lock_is_a_conflict(self):
        card = self.card('A')
        real = QuerySet.select_for_update

        def move_elsewhere(queryset, *a, **kw):
            if queryset.model is ProjectList:
                ProjectCard.objects.filter(pk=card.pk).update(list=self.l2)
            return real(queryset, *a, **kw)

        with mock.patch.object(QuerySet, 'select_for_update', autospec=True, side_effect=move_elsewhere):
            with self.assertRaises(ConflictError):
                services.archive_card(card.id)
