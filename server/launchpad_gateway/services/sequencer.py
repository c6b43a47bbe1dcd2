"""Resolve which task of a job runs next."""

from __future__ import annotations

from typing import Optional, Sequence

from ..models.jobs import TaskTodo


def next_task(tasks_todo: Sequence[TaskTodo], current_task_order: Optional[int]) -> Optional[TaskTodo]:
    """Return the task slot after ``current_task_order``, or None when the job is exhausted.

    An unset or zero cursor means nothing has run yet, so the lowest
    ``task_order`` wins. A cursor that matches no slot is treated as exhausted.
    The input sequence is not modified.
    """
    ordered = sorted(tasks_todo, key=lambda t: t.task_order)
    if not ordered:
        return None

    if not current_task_order:
        return ordered[0]

    for index, slot in enumerate(ordered):
        if slot.task_order == current_task_order:
            if index == len(ordered) - 1:
                return None
            return ordered[index + 1]
    return None
