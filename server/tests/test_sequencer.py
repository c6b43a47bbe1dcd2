"""Tests for next_task."""

from launchpad_gateway.models.jobs import TaskTodo
from launchpad_gateway.services.sequencer import next_task


def _slots(*orders):
    return [TaskTodo(task_order=o, application_id=f"app-{o}") for o in orders]


def test_empty_list_has_no_next():
    assert next_task([], 0) is None


def test_unset_cursor_picks_lowest_order():
    slot = next_task(_slots(3, 1, 2), 0)
    assert slot.task_order == 1
    assert next_task(_slots(3, 1, 2), None).task_order == 1


def test_advances_to_following_order():
    assert next_task(_slots(1, 2, 3), 1).task_order == 2
    assert next_task(_slots(1, 5, 9), 5).task_order == 9


def test_last_slot_exhausts():
    assert next_task(_slots(1, 2), 2) is None


def test_unknown_cursor_exhausts():
    assert next_task(_slots(1, 2), 7) is None


def test_input_is_not_reordered():
    slots = _slots(2, 1)
    next_task(slots, 0)
    assert [s.task_order for s in slots] == [2, 1]


def test_unsorted_orders_follow_numeric_order():
    slots = _slots(2, 1, 3)
    assert next_task(slots, 1).task_order == 2
    assert next_task(slots, 3) is None
    assert next_task(slots, 0).task_order == 1
