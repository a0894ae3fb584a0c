from __future__ import annotations

from typing import List, Optional, TypedDict

# Every stored document carries `id` and `created_at` (epoch ms), assigned by
# the repository on insert. All other timestamps are epoch milliseconds too.


# PUBLIC_INTERFACE
class CategoryEntity(TypedDict):
    """A grouping for tasks. Categories may nest via parent_category_id."""

    id: int
    created_at: int
    name: str
    parent_category_id: Optional[int]
    color: Optional[str]


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A task, optionally recurring.

    Fields:
    - title: Short title
    - parent_task_id: Parent task for subtasks; None for root tasks
    - parent_category_id: Optional owning category
    - due_date: Optional DayKey in the task calendar
    - frequency: Optional recurrence interval name; None for one-off tasks
    - sort_order: Manual ordering within a list (ascending)
    """

    id: int
    created_at: int
    title: str
    parent_task_id: Optional[int]
    parent_category_id: Optional[int]
    due_date: Optional[int]
    frequency: Optional[str]
    sort_order: int


class CompletionEntity(TypedDict):
    id: int
    created_at: int
    task_id: int
    completed_at: int


class CalorieEntryEntity(TypedDict):
    id: int
    created_at: int
    day_start_ms: int
    timestamp_ms: int
    label: str
    calories: float
    grams: Optional[float]
    servings: Optional[float]


class CalorieSettingsEntity(TypedDict):
    id: int
    created_at: int
    kind: str
    normal_goal: float
    maintenance_goal: float
    reset_week_start_ms: Optional[int]
    reset_week_end_ms: Optional[int]


class WeightEntryEntity(TypedDict):
    id: int
    created_at: int
    day_start_ms: int
    kg: float


class RecipeEntity(TypedDict):
    id: int
    created_at: int
    name: str
    description: Optional[str]
    ingredients: Optional[str]
    default_serving_grams: Optional[float]
    calories_per_serving: Optional[float]
    usage_count: int


class TaskOrderEntity(TypedDict):
    id: int
    created_at: int
    view_key: str
    task_ids: List[int]
