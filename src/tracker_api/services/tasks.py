from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends

from ..core.ranges import DateRange, current_month_range, current_week_range, day_range
from ..core.recurrence import TaskDueSpec, get_next_due, is_due_in_range, is_due_on_day, occurrences_in_range
from ..core.task_order import (
    ALL,
    apply_saved_order,
    children_key,
    parse_view_key,
    rekey_view_key,
    root_day_key,
    root_month_key,
    root_week_key,
)
from ..core.tzcalendar import DAY_MS, TimeZoneCalendar
from ..errors import InvalidOperationError, NotFoundError
from ..models import CategoryEntity, CompletionEntity, TaskEntity, TaskOrderEntity
from ..repositories import ListQuery, Repository, get_repository
from ..schemas import CategoryCreate, CategoryUpdate, TaskCreate, TaskUpdate
from ..settings import get_task_calendar

logger = logging.getLogger(__name__)

_NOON_MS = 12 * 60 * 60 * 1000

# Root-level and child listings share this order: manual position, then newest.
_TASK_ORDER = ("sort_order", "-created_at")


def _is_instant(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# PUBLIC_INTERFACE
class TaskService:
    """
    Categories, tasks and the completion log.

    Due-ness is delegated to the recurrence core; every method that depends on
    "today" takes the current instant as an argument.
    """

    def __init__(self, repo: Repository, calendar: TimeZoneCalendar) -> None:
        self._repo = repo
        self._cal = calendar

    # -- categories -------------------------------------------------------

    def _category_or_raise(self, category_id: int) -> CategoryEntity:
        category = self._repo.get("categories", category_id)
        if category is None:
            raise NotFoundError("Category")
        return category  # type: ignore[return-value]

    def create_category(self, data: CategoryCreate) -> CategoryEntity:
        if data.parent_category_id is not None:
            self._category_or_raise(data.parent_category_id)
        created = self._repo.insert(
            "categories",
            {"name": data.name, "parent_category_id": data.parent_category_id, "color": data.color},
        )
        logger.info("Created category %s", created["id"])
        return created  # type: ignore[return-value]

    def list_categories(self) -> List[CategoryEntity]:
        items, _ = self._repo.list("categories", ListQuery(sort=("-created_at",)))
        return items  # type: ignore[return-value]

    def get_category(self, category_id: int) -> CategoryEntity:
        return self._category_or_raise(category_id)

    def update_category(self, category_id: int, data: CategoryUpdate) -> CategoryEntity:
        self._category_or_raise(category_id)
        fields: Dict[str, Any] = {}
        if data.name is not None:
            fields["name"] = data.name
        if "color" in data.model_fields_set:
            fields["color"] = data.color
        if "parent_category_id" in data.model_fields_set:
            parent_id = data.parent_category_id
            if parent_id is not None:
                self._check_category_parent(category_id, parent_id)
            fields["parent_category_id"] = parent_id
        updated = self._repo.patch("categories", category_id, fields)
        assert updated is not None
        return updated  # type: ignore[return-value]

    def _check_category_parent(self, category_id: int, parent_id: int) -> None:
        seen = {category_id}
        current: Optional[int] = parent_id
        while current is not None:
            if current in seen:
                raise InvalidOperationError("A category cannot be nested inside itself")
            seen.add(current)
            current = self._category_or_raise(current).get("parent_category_id")

    def delete_category(self, category_id: int) -> None:
        """Delete a category, detaching its tasks and child categories."""
        self._category_or_raise(category_id)
        tasks, _ = self._repo.list("tasks", ListQuery(where={"parent_category_id": category_id}))
        for task in tasks:
            self._repo.patch("tasks", task["id"], {"parent_category_id": None})
        children, _ = self._repo.list("categories", ListQuery(where={"parent_category_id": category_id}))
        for child in children:
            self._repo.patch("categories", child["id"], {"parent_category_id": None})
        self._repo.delete("categories", category_id)
        logger.info("Deleted category %s (detached %d tasks)", category_id, len(tasks))

    # -- tasks ------------------------------------------------------------

    def _task_or_raise(self, task_id: int) -> TaskEntity:
        task = self._repo.get("tasks", task_id)
        if task is None:
            raise NotFoundError("Task")
        return task  # type: ignore[return-value]

    def _children(self, task_id: Optional[int]) -> List[TaskEntity]:
        items, _ = self._repo.list("tasks", ListQuery(where={"parent_task_id": task_id}, sort=_TASK_ORDER))
        return items  # type: ignore[return-value]

    def _descendants(self, task_id: int) -> List[TaskEntity]:
        out: List[TaskEntity] = []
        seen = {task_id}
        stack = [task_id]
        while stack:
            for child in self._children(stack.pop()):
                if child["id"] not in seen:
                    seen.add(child["id"])
                    out.append(child)
                    stack.append(child["id"])
        return out

    def _next_sort_order(self, parent_task_id: Optional[int]) -> int:
        last = self._repo.first("tasks", ListQuery(where={"parent_task_id": parent_task_id}, sort=("-sort_order",)))
        if last is None or last.get("sort_order") is None:
            return 0
        return last["sort_order"] + 1

    def create_task(self, data: TaskCreate) -> TaskEntity:
        if data.parent_task_id is not None:
            self._task_or_raise(data.parent_task_id)
        if data.parent_category_id is not None:
            self._category_or_raise(data.parent_category_id)
        sort_order = data.sort_order
        if sort_order is None:
            sort_order = self._next_sort_order(data.parent_task_id)
        created = self._repo.insert(
            "tasks",
            {
                "title": data.title,
                "parent_task_id": data.parent_task_id,
                "parent_category_id": data.parent_category_id,
                "due_date": self._cal.start_of_day(data.due_date) if data.due_date is not None else None,
                "frequency": data.frequency.value if data.frequency is not None else None,
                "sort_order": sort_order,
            },
        )
        logger.info("Created task %s (frequency=%s)", created["id"], created["frequency"])
        return created  # type: ignore[return-value]

    def get_task(self, task_id: int) -> TaskEntity:
        return self._task_or_raise(task_id)

    def update_task(self, task_id: int, data: TaskUpdate) -> TaskEntity:
        self._task_or_raise(task_id)
        provided = data.model_fields_set
        fields: Dict[str, Any] = {}
        if data.title is not None:
            fields["title"] = data.title
        if data.sort_order is not None:
            fields["sort_order"] = data.sort_order
        if "due_date" in provided:
            fields["due_date"] = self._cal.start_of_day(data.due_date) if data.due_date is not None else None
        if "frequency" in provided:
            fields["frequency"] = data.frequency.value if data.frequency is not None else None
        if "parent_category_id" in provided:
            if data.parent_category_id is not None:
                self._category_or_raise(data.parent_category_id)
            fields["parent_category_id"] = data.parent_category_id
        if "parent_task_id" in provided:
            parent_id = data.parent_task_id
            if parent_id is not None:
                self._task_or_raise(parent_id)
                if parent_id == task_id or parent_id in {t["id"] for t in self._descendants(task_id)}:
                    raise InvalidOperationError("A task cannot be moved under itself or its subtasks")
            fields["parent_task_id"] = parent_id
        updated = self._repo.patch("tasks", task_id, fields)
        assert updated is not None
        return updated  # type: ignore[return-value]

    def delete_task(self, task_id: int) -> int:
        """Delete a task with all its subtasks and their completions. Returns the number of tasks removed."""
        self._task_or_raise(task_id)
        doomed = [task_id] + [t["id"] for t in self._descendants(task_id)]
        for tid in doomed:
            completions, _ = self._repo.list("completions", ListQuery(where={"task_id": tid}))
            for completion in completions:
                self._repo.delete("completions", completion["id"])
            self._repo.delete("tasks", tid)
        logger.info("Deleted task %s and %d subtasks", task_id, len(doomed) - 1)
        return len(doomed)

    def list_tasks(
        self, category_id: Optional[int] = None, limit: int = 50, offset: int = 0
    ) -> Tuple[List[TaskEntity], int]:
        """Page through all tasks in the saved "all" order, else by sort_order."""
        where = {"parent_category_id": category_id} if category_id is not None else {}
        items, total = self._repo.list("tasks", ListQuery(where=where, sort=_TASK_ORDER))
        ordered = self._apply_view_order(ALL, items)
        return ordered[offset:offset + limit], total  # type: ignore[return-value]

    def list_task_children(self, task_id: int, day: int) -> List[TaskEntity]:
        """Direct subtasks, in the order saved for this parent on the given day."""
        self._task_or_raise(task_id)
        view_key = children_key(task_id, self._cal.start_of_day(day))
        return self._apply_view_order(view_key, self._children(task_id))

    def list_task_ancestors(self, task_id: int) -> List[TaskEntity]:
        """Ancestors of a task, root first."""
        task = self._task_or_raise(task_id)
        chain: List[TaskEntity] = []
        seen = {task_id}
        parent_id = task.get("parent_task_id")
        while parent_id is not None and parent_id not in seen:
            parent = self._repo.get("tasks", parent_id)
            if parent is None:
                logger.warning("Task %s references missing parent %s", task_id, parent_id)
                break
            seen.add(parent_id)
            chain.append(parent)  # type: ignore[arg-type]
            parent_id = parent.get("parent_task_id")
        chain.reverse()
        return chain

    def reorder_tasks(self, task_ids: List[int]) -> List[TaskEntity]:
        for tid in task_ids:
            self._task_or_raise(tid)
        out = []
        for position, tid in enumerate(task_ids):
            out.append(self._repo.patch("tasks", tid, {"sort_order": position}))
        return out  # type: ignore[return-value]

    # -- saved view orders --------------------------------------------------

    def _view_order(self, view_key: str) -> Optional[TaskOrderEntity]:
        return self._repo.first("task_orders", ListQuery(where={"view_key": view_key}))  # type: ignore[return-value]

    def _apply_view_order(self, view_key: str, items: List[TaskEntity]) -> List[TaskEntity]:
        saved = self._view_order(view_key)
        if saved is None:
            return items
        return apply_saved_order(items, saved["task_ids"])

    def get_task_order(self, view_key: str) -> TaskOrderEntity:
        if parse_view_key(view_key) is None:
            raise InvalidOperationError(f"Unknown view key: {view_key!r}")
        saved = self._view_order(view_key)
        if saved is None:
            raise NotFoundError("Task order")
        return saved

    def set_task_order(self, view_key: str, task_ids: List[int]) -> TaskOrderEntity:
        """Save the manual order of one view, replacing any earlier order of that view."""
        if parse_view_key(view_key) is None:
            raise InvalidOperationError(f"Unknown view key: {view_key!r}")
        ids = list(dict.fromkeys(task_ids))
        saved = self._view_order(view_key)
        if saved is None:
            created = self._repo.insert("task_orders", {"view_key": view_key, "task_ids": ids})
            return created  # type: ignore[return-value]
        updated = self._repo.patch("task_orders", saved["id"], {"task_ids": ids})
        assert updated is not None
        return updated  # type: ignore[return-value]

    def migrate_day_keys(self, dry_run: bool = False) -> Dict[str, Any]:
        """
        Re-key stored UTC-midnight DayKeys to the same civil dates in the task calendar.

        Covers task due dates and the days embedded in saved view keys. Only
        values that sit exactly on a UTC midnight are converted, so running
        the migration again leaves already converted keys alone. Completions
        store instants, not DayKeys, and are left untouched.
        """
        def convert(day: int) -> int:
            return self._cal.from_utc_day_start(day) if day % DAY_MS == 0 else day

        updated_tasks = 0
        tasks, _ = self._repo.list("tasks")
        for task in tasks:
            due = task.get("due_date")
            if not _is_instant(due):
                continue
            new_due = convert(due)
            if new_due == due:
                continue
            updated_tasks += 1
            if not dry_run:
                self._repo.patch("tasks", task["id"], {"due_date": new_due})

        updated_orders = 0
        orders, _ = self._repo.list("task_orders")
        for order in orders:
            new_key = rekey_view_key(order["view_key"], convert)
            if new_key is None or new_key == order["view_key"]:
                continue
            updated_orders += 1
            if not dry_run:
                self._repo.patch("task_orders", order["id"], {"view_key": new_key})

        logger.info(
            "Day key migration to %s (dry_run=%s): %d tasks, %d view orders",
            self._cal.zone_id, dry_run, updated_tasks, updated_orders,
        )
        return {"dry_run": dry_run, "updated_tasks": updated_tasks, "updated_task_orders": updated_orders}

    # -- completions ------------------------------------------------------

    def latest_completion(self, task_id: int) -> Optional[int]:
        latest = self._repo.first(
            "completions", ListQuery(where={"task_id": task_id}, sort=("-completed_at",))
        )
        return None if latest is None else latest["completed_at"]

    def _completions_within(self, task_id: int, window: DateRange) -> List[CompletionEntity]:
        items, _ = self._repo.list(
            "completions",
            ListQuery(where={"task_id": task_id}, between={"completed_at": (window.start, window.end)}),
        )
        return items  # type: ignore[return-value]

    def _record_completion(self, task_id: int, at: int) -> CompletionEntity:
        created = self._repo.insert("completions", {"task_id": task_id, "completed_at": at})
        logger.info("Completed task %s at %s", task_id, at)
        return created  # type: ignore[return-value]

    def set_task_completion(
        self, task_id: int, completed: bool, completed_date_ms: Optional[int], now: int
    ) -> Optional[CompletionEntity]:
        """
        Record or remove a completion.

        Completing stamps "now" when the selected day is today (or no day is
        given) and noon of the selected day otherwise. Un-completing removes
        the completions of the selected day, or the latest one.
        """
        self._task_or_raise(task_id)
        today = self._cal.start_of_day(now)
        if completed:
            if completed_date_ms is None or self._cal.start_of_day(completed_date_ms) == today:
                return self._record_completion(task_id, now)
            return self._record_completion(task_id, self._cal.start_of_day(completed_date_ms) + _NOON_MS)

        if completed_date_ms is None:
            latest = self._repo.first(
                "completions", ListQuery(where={"task_id": task_id}, sort=("-completed_at",))
            )
            removed = [latest] if latest is not None else []
        else:
            removed = self._completions_within(task_id, day_range(completed_date_ms, self._cal))
        for completion in removed:
            self._repo.delete("completions", completion["id"])
        logger.info("Removed %d completion(s) of task %s", len(removed), task_id)
        return None

    def complete_task_and_subtasks(self, task_id: int, now: int) -> int:
        """Complete a task and every descendant at `now`. Returns the number completed."""
        self._task_or_raise(task_id)
        ids = [task_id] + [t["id"] for t in self._descendants(task_id)]
        for tid in ids:
            self._record_completion(tid, now)
        return len(ids)

    def get_task_completion(self, task_id: int, day_ms: Optional[int], now: int) -> Dict[str, int]:
        """Count direct children completed within the day (today by default)."""
        self._task_or_raise(task_id)
        window = day_range(day_ms if day_ms is not None else now, self._cal)
        children = self._children(task_id)
        done = sum(1 for child in children if self._completions_within(child["id"], window))
        return {"completed": done, "total": len(children)}

    # -- due views --------------------------------------------------------

    def _due_spec(self, task: TaskEntity) -> Optional[TaskDueSpec]:
        due = task.get("due_date")
        if due is not None and not _is_instant(due):
            logger.warning("Skipping task %s with invalid due_date %r", task.get("id"), due)
            return None
        return TaskDueSpec(due_date=due, frequency=task.get("frequency"))

    def _due_item(self, task: TaskEntity, spec: TaskDueSpec, latest: Optional[int], now: int, day: int) -> Dict[str, Any]:
        item: Dict[str, Any] = dict(task)
        item["latest_completion"] = latest
        item["is_completed"] = latest is not None and bool(
            self._completions_within(task["id"], day_range(day, self._cal))
        )
        item["next_due"] = get_next_due(spec, now, latest, self._cal) if spec.is_recurring else None
        return item

    def list_root_tasks_due_on_date(self, day_ms: int, now: int) -> Tuple[DateRange, List[Dict[str, Any]]]:
        """Root tasks due on the day, plus those completed on it, in the order saved for that day."""
        window = day_range(day_ms, self._cal)
        out = []
        for task in self._apply_view_order(root_day_key(window.start), self._children(None)):
            spec = self._due_spec(task)
            if spec is None:
                continue
            latest = self.latest_completion(task["id"])
            item = self._due_item(task, spec, latest, now, window.start)
            if item["is_completed"] or is_due_on_day(spec, window.start, now, latest, self._cal):
                out.append(item)
        return window, out

    def list_root_tasks_due_in_range(
        self, window: DateRange, now: int, view_key: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        roots = self._children(None)
        if view_key is not None:
            roots = self._apply_view_order(view_key, roots)
        out = []
        for task in roots:
            spec = self._due_spec(task)
            if spec is None:
                continue
            latest = self.latest_completion(task["id"])
            if is_due_in_range(spec, window.start, window.end, now, latest, self._cal):
                out.append(self._due_item(task, spec, latest, now, self._cal.start_of_day(now)))
        return out

    def list_root_tasks_due_in_week(self, now: int) -> Tuple[DateRange, List[Dict[str, Any]]]:
        window = current_week_range(now, self._cal)
        return window, self.list_root_tasks_due_in_range(window, now, root_week_key(window.start))

    def list_root_tasks_due_in_month(self, now: int) -> Tuple[DateRange, List[Dict[str, Any]]]:
        window = current_month_range(now, self._cal)
        return window, self.list_root_tasks_due_in_range(window, now, root_month_key(window.start))

    def list_task_occurrences(self, start: int, end: int, now: int) -> List[Tuple[TaskEntity, List[int]]]:
        """Every due day of every task that falls inside [start, end]."""
        if start > end:
            raise InvalidOperationError("start must not be after end")
        items, _ = self._repo.list("tasks", ListQuery(sort=_TASK_ORDER))
        out = []
        for task in items:
            spec = self._due_spec(task)  # type: ignore[arg-type]
            if spec is None:
                continue
            latest = self.latest_completion(task["id"])
            days = occurrences_in_range(spec, start, end, now, latest, self._cal)
            if days:
                out.append((task, days))
        return out  # type: ignore[return-value]


# PUBLIC_INTERFACE
def get_task_service(
    repo: Repository = Depends(get_repository),
    calendar: TimeZoneCalendar = Depends(get_task_calendar),
) -> TaskService:
    """FastAPI dependency building the task service from the configured repository and calendar."""
    return TaskService(repo, calendar)
