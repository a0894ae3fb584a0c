from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..core.ranges import DateRange
from ..core.tzcalendar import MAX_INSTANT_MS, MIN_INSTANT_MS
from ..schemas import (
    CompletionOut,
    DateRangeOut,
    DayKeyMigrationOut,
    DueTasksOut,
    PaginationEnvelope,
    ReorderRequest,
    TaskCompletionSet,
    TaskCompletionSummary,
    TaskCreate,
    TaskDueOut,
    TaskOccurrencesOut,
    TaskOrderOut,
    TaskOrderSet,
    TaskOut,
    TaskUpdate,
)
from ..services.tasks import TaskService, get_task_service
from ..utils import get_now_ms, pagination_envelope

router = APIRouter(
    prefix="/api/v1/tasks",
    tags=["tasks"],
)


def _due_response(window: DateRange, items: List[Dict[str, Any]]) -> DueTasksOut:
    return DueTasksOut(
        range=DateRangeOut(start=window.start, end=window.end),
        items=[TaskDueOut(**it) for it in items],
    )


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a task or subtask. Supplying a frequency makes it recurring.",
    responses={
        201: {"description": "Task created successfully"},
        404: {"description": "Parent task or category not found"},
    },
)
def create_task(payload: TaskCreate, service: TaskService = Depends(get_task_service)) -> TaskOut:
    """
    Create a new Task.
    """
    return TaskOut(**service.create_task(payload))


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=PaginationEnvelope,
    summary="List Tasks",
    description=(
        "List all tasks (roots and subtasks) in manual order.\n\n"
        "Query parameters:\n"
        "- limit: max number of items to return (0..1000)\n"
        "- offset: number of items to skip (>=0)\n"
        "- category_id: only tasks in this category"
    ),
)
def list_tasks(
    limit: int = Query(50, ge=0, le=1000, description="Maximum number of items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    category_id: Optional[int] = Query(None, description="Filter by category"),
    service: TaskService = Depends(get_task_service),
) -> PaginationEnvelope:
    items, total = service.list_tasks(category_id=category_id, limit=limit, offset=offset)
    envelope = pagination_envelope(
        items=[TaskOut(**it) for it in items],
        total=total,
        limit=limit,
        offset=offset,
    )
    return PaginationEnvelope(**envelope)


# PUBLIC_INTERFACE
@router.get(
    "/due/day",
    response_model=DueTasksOut,
    summary="Root Tasks Due On Day",
    description=(
        "Root tasks due on the given day, plus any completed on it. "
        "day_ms may be any instant within the day and defaults to today."
    ),
)
def list_root_tasks_due_on_date(
    day_ms: Optional[int] = Query(
        None, ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Any instant within the day (epoch ms)"
    ),
    now: int = Depends(get_now_ms),
    service: TaskService = Depends(get_task_service),
) -> DueTasksOut:
    window, items = service.list_root_tasks_due_on_date(day_ms if day_ms is not None else now, now)
    return _due_response(window, items)


# PUBLIC_INTERFACE
@router.get(
    "/due/week",
    response_model=DueTasksOut,
    summary="Root Tasks Due This Week",
    description="Root tasks whose next due day falls in the current Sunday-Saturday week.",
)
def list_root_tasks_due_in_week(
    now: int = Depends(get_now_ms), service: TaskService = Depends(get_task_service)
) -> DueTasksOut:
    window, items = service.list_root_tasks_due_in_week(now)
    return _due_response(window, items)


# PUBLIC_INTERFACE
@router.get(
    "/due/month",
    response_model=DueTasksOut,
    summary="Root Tasks Due This Month",
    description="Root tasks whose next due day falls in the current calendar month.",
)
def list_root_tasks_due_in_month(
    now: int = Depends(get_now_ms), service: TaskService = Depends(get_task_service)
) -> DueTasksOut:
    window, items = service.list_root_tasks_due_in_month(now)
    return _due_response(window, items)


# PUBLIC_INTERFACE
@router.get(
    "/occurrences",
    response_model=List[TaskOccurrencesOut],
    summary="Task Occurrences In Range",
    description="Every due day of every task inside the inclusive [start, end] range.",
    responses={400: {"description": "start is after end"}},
)
def list_task_occurrences(
    start: int = Query(
        ..., ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Range start (epoch ms, inclusive)"
    ),
    end: int = Query(
        ..., ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Range end (epoch ms, inclusive)"
    ),
    now: int = Depends(get_now_ms),
    service: TaskService = Depends(get_task_service),
) -> List[TaskOccurrencesOut]:
    return [
        TaskOccurrencesOut(task=TaskOut(**task), due_dates=days)
        for task, days in service.list_task_occurrences(start, end, now)
    ]


# PUBLIC_INTERFACE
@router.post(
    "/reorder",
    response_model=List[TaskOut],
    summary="Reorder Tasks",
    description="Assign sort positions following the order of task_ids.",
    responses={404: {"description": "Task not found"}},
)
def reorder_tasks(payload: ReorderRequest, service: TaskService = Depends(get_task_service)) -> List[TaskOut]:
    return [TaskOut(**t) for t in service.reorder_tasks(payload.task_ids)]


# PUBLIC_INTERFACE
@router.get(
    "/orders/{view_key}",
    response_model=TaskOrderOut,
    summary="Get View Order",
    description=(
        "Saved manual order of one view. View keys: root-day:<day>, root-week:<week start>, "
        "root-month:<month start>, children:<parent id>:<day>, all."
    ),
    responses={400: {"description": "Malformed view key"}, 404: {"description": "No order saved for the view"}},
)
def get_task_order(view_key: str, service: TaskService = Depends(get_task_service)) -> TaskOrderOut:
    return TaskOrderOut(**service.get_task_order(view_key))


# PUBLIC_INTERFACE
@router.put(
    "/orders/{view_key}",
    response_model=TaskOrderOut,
    summary="Save View Order",
    description=(
        "Save the manual order of one view without touching other views. "
        "Tasks missing from the list are shown after the listed ones."
    ),
    responses={400: {"description": "Malformed view key"}},
)
def set_task_order(
    view_key: str, payload: TaskOrderSet, service: TaskService = Depends(get_task_service)
) -> TaskOrderOut:
    return TaskOrderOut(**service.set_task_order(view_key, payload.task_ids))


# PUBLIC_INTERFACE
@router.post(
    "/migrate-day-keys",
    response_model=DayKeyMigrationOut,
    summary="Migrate Day Keys",
    description=(
        "Re-key stored UTC-midnight due dates and view-order keys to the same civil dates "
        "in the configured task time zone. Use dry_run to only count what would change."
    ),
)
def migrate_day_keys(
    dry_run: bool = Query(False, description="Count changes without writing them"),
    service: TaskService = Depends(get_task_service),
) -> DayKeyMigrationOut:
    return DayKeyMigrationOut(**service.migrate_day_keys(dry_run))


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    responses={
        200: {"description": "Task found"},
        404: {"description": "Task not found"},
    },
)
def get_task(task_id: int, service: TaskService = Depends(get_task_service)) -> TaskOut:
    """
    Retrieve a single Task by its ID.
    """
    return TaskOut(**service.get_task(task_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description="Partially update a task. An explicit null clears due_date, frequency or a parent.",
    responses={
        200: {"description": "Task updated"},
        400: {"description": "Task would become its own ancestor"},
        404: {"description": "Task not found"},
    },
)
def patch_task(task_id: int, payload: TaskUpdate, service: TaskService = Depends(get_task_service)) -> TaskOut:
    return TaskOut(**service.update_task(task_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Task",
    description="Delete a task together with its subtasks and completion history.",
    responses={
        204: {"description": "Task deleted"},
        404: {"description": "Task not found"},
    },
)
def delete_task(task_id: int, service: TaskService = Depends(get_task_service)) -> None:
    service.delete_task(task_id)
    return None


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}/children",
    response_model=List[TaskOut],
    summary="List Subtasks",
    description="Direct subtasks in the order saved for this parent on the day (today by default).",
)
def list_task_children(
    task_id: int,
    day_ms: Optional[int] = Query(
        None, ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Any instant within the day (epoch ms)"
    ),
    now: int = Depends(get_now_ms),
    service: TaskService = Depends(get_task_service),
) -> List[TaskOut]:
    day = day_ms if day_ms is not None else now
    return [TaskOut(**t) for t in service.list_task_children(task_id, day)]


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}/ancestors",
    response_model=List[TaskOut],
    summary="List Ancestors",
    description="Parent chain of a task, root first.",
)
def list_task_ancestors(task_id: int, service: TaskService = Depends(get_task_service)) -> List[TaskOut]:
    return [TaskOut(**t) for t in service.list_task_ancestors(task_id)]


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/completion",
    response_model=Optional[CompletionOut],
    summary="Set Task Completion",
    description=(
        "Complete or un-complete a task for a day. Returns the recorded completion, "
        "or null when completions were removed."
    ),
    responses={404: {"description": "Task not found"}},
)
def set_task_completion(
    task_id: int,
    payload: TaskCompletionSet,
    now: int = Depends(get_now_ms),
    service: TaskService = Depends(get_task_service),
) -> Optional[CompletionOut]:
    completion = service.set_task_completion(task_id, payload.completed, payload.completed_date_ms, now)
    return CompletionOut(**completion) if completion is not None else None


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/complete-all",
    summary="Complete Task And Subtasks",
    responses={404: {"description": "Task not found"}},
)
def complete_task_and_subtasks(
    task_id: int, now: int = Depends(get_now_ms), service: TaskService = Depends(get_task_service)
) -> Dict[str, int]:
    return {"completed": service.complete_task_and_subtasks(task_id, now)}


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}/completion",
    response_model=TaskCompletionSummary,
    summary="Subtask Completion",
    description="How many direct subtasks were completed within the day (today by default).",
    responses={404: {"description": "Task not found"}},
)
def get_task_completion(
    task_id: int,
    day_ms: Optional[int] = Query(
        None, ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Any instant within the day (epoch ms)"
    ),
    now: int = Depends(get_now_ms),
    service: TaskService = Depends(get_task_service),
) -> TaskCompletionSummary:
    return TaskCompletionSummary(**service.get_task_completion(task_id, day_ms, now))
