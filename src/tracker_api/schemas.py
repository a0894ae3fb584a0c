from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .core.recurrence import Frequency
from .core.tzcalendar import MAX_INSTANT_MS, MIN_INSTANT_MS, datetime_to_ms
from .settings import get_task_calendar

# Incoming day values may be epoch milliseconds, a date, or an ISO8601 string
DayInput = Union[int, date, datetime, str]


def _parse_iso(s: str) -> Union[date, datetime]:
    if len(s) <= 10:
        return date.fromisoformat(s)
    if s[-1] in "Zz":
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s)


def _parse_day(value: Optional[DayInput]) -> Optional[int]:
    """
    Internal helper to normalize a task due_date into epoch milliseconds.
    - int values are taken as epoch ms and passed through (normalized to a DayKey by the service).
    - timezone-aware datetimes (and ISO8601 strings with an offset) are taken
      as the instant they name; the service keys it to its day in the task calendar.
    - dates, naive datetimes and plain ISO8601 dates are mapped to the civil
      date's midnight in the task calendar.
    """
    if value is None or isinstance(value, bool):
        return value  # type: ignore[return-value]

    if isinstance(value, int):
        return value

    if isinstance(value, str):
        s = value.strip()
        if s.lstrip("-").isdigit():
            return int(s)
        try:
            value = _parse_iso(s)
        except ValueError as e:
            raise ValueError(
                "Invalid due_date format. Use epoch milliseconds or an ISO8601 date (e.g., '2025-01-31')."
            ) from e

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return datetime_to_ms(value)
        return get_task_calendar().from_date(value.date())

    if isinstance(value, date):
        return get_task_calendar().from_date(value)

    return value  # type: ignore[return-value]


def _strip_title(v: Optional[str], max_len: int = 200) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not (1 <= len(s) <= max_len):
        raise ValueError(f"length must be between 1 and {max_len} characters")
    return s


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

# PUBLIC_INTERFACE
class CategoryCreate(BaseModel):
    """Schema for creating a category."""

    model_config = ConfigDict(json_schema_extra={"example": {"name": "Home", "color": "#4f46e5"}})

    name: str = Field(..., description="Category name", min_length=1, max_length=100)
    parent_category_id: Optional[int] = Field(default=None, description="Optional parent category")
    color: Optional[str] = Field(default=None, description="Optional display colour", max_length=32)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_title(v, 100)  # type: ignore[return-value]


# PUBLIC_INTERFACE
class CategoryUpdate(BaseModel):
    """Partial update of a category; explicit nulls clear optional fields."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    parent_category_id: Optional[int] = None
    color: Optional[str] = Field(default=None, max_length=32)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _strip_title(v, 100)


class CategoryOut(BaseModel):
    id: int
    created_at: int
    name: str
    parent_category_id: Optional[int] = None
    color: Optional[str] = None


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a task.

    A task with a frequency is recurring: its due_date becomes the first due
    day rather than a fixed deadline.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Water the plants",
                "due_date": "2025-02-01",
                "frequency": "weekly",
            }
        }
    )

    title: str = Field(..., description="Short title for the task", min_length=1, max_length=200)
    parent_task_id: Optional[int] = Field(default=None, description="Parent task for subtasks")
    parent_category_id: Optional[int] = Field(default=None, description="Owning category")
    due_date: Optional[int] = Field(
        default=None,
        ge=MIN_INSTANT_MS,
        le=MAX_INSTANT_MS,
        description="Due day as epoch ms or ISO8601 date; normalized to midnight in the task time zone",
    )
    frequency: Optional[Frequency] = Field(default=None, description="Recurrence interval; omit for one-off tasks")
    sort_order: Optional[int] = Field(default=None, description="Manual position; appended last when omitted")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _strip_title(v)  # type: ignore[return-value]

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DayInput]) -> Optional[int]:
        return _parse_day(v)


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for updating an existing task.
    All fields are optional; only provided fields are updated and an explicit
    null clears an optional field.
    """

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    parent_task_id: Optional[int] = None
    parent_category_id: Optional[int] = None
    due_date: Optional[int] = Field(default=None, ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS)
    frequency: Optional[Frequency] = None
    sort_order: Optional[int] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return _strip_title(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DayInput]) -> Optional[int]:
        return _parse_day(v)


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """Schema returned by the API for a task."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 7,
                "created_at": 1738368000000,
                "title": "Water the plants",
                "parent_task_id": None,
                "parent_category_id": 2,
                "due_date": 1738368000000,
                "frequency": "weekly",
                "sort_order": 0,
            }
        }
    )

    id: int = Field(..., description="Unique identifier of the task")
    created_at: int = Field(..., description="Creation instant (epoch ms)")
    title: str
    parent_task_id: Optional[int] = None
    parent_category_id: Optional[int] = None
    due_date: Optional[int] = Field(default=None, description="Due DayKey (epoch ms)")
    frequency: Optional[str] = None
    sort_order: int = 0


class TaskDueOut(TaskOut):
    """A task as listed in a due view, with its completion state for that view."""

    is_completed: bool = Field(..., description="Completed within the viewed day")
    latest_completion: Optional[int] = Field(default=None, description="Latest completion instant")
    next_due: Optional[int] = Field(default=None, description="Next due DayKey for recurring tasks")


class DateRangeOut(BaseModel):
    start: int
    end: int


class DueTasksOut(BaseModel):
    range: DateRangeOut
    items: List[TaskDueOut]


class TaskOccurrencesOut(BaseModel):
    task: TaskOut
    due_dates: List[int]


class PaginationEnvelope(BaseModel):
    """
    Envelope for paginated list responses.
    """
    items: List[TaskOut] = Field(..., description="List of tasks")
    total: int = Field(..., description="Total number of items matching the query")
    limit: int = Field(..., description="Limit applied to the query")
    offset: int = Field(..., description="Offset applied to the query")


# PUBLIC_INTERFACE
class TaskCompletionSet(BaseModel):
    """
    Mark a task complete or incomplete.

    completed_date_ms selects the day being toggled; when omitted, completing
    uses "now" and un-completing removes the latest completion.
    """

    completed: bool = Field(..., description="Target completion state")
    completed_date_ms: Optional[int] = Field(
        default=None, ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Day (epoch ms) being toggled"
    )


class CompletionOut(BaseModel):
    id: int
    created_at: int
    task_id: int
    completed_at: int


class TaskCompletionSummary(BaseModel):
    completed: int = Field(..., description="Direct children completed within the day")
    total: int = Field(..., description="Number of direct children")


class ReorderRequest(BaseModel):
    task_ids: List[int] = Field(..., min_length=1, description="Task ids in their new order")


# PUBLIC_INTERFACE
class TaskOrderSet(BaseModel):
    """
    Saved manual order of one view.

    Tasks the list leaves out are shown after the listed ones; an empty list
    resets the view to its default order.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"task_ids": [4, 1, 7]}})

    task_ids: List[int] = Field(..., description="Task ids in display order")


class TaskOrderOut(BaseModel):
    view_key: str
    task_ids: List[int]


class DayKeyMigrationOut(BaseModel):
    dry_run: bool
    updated_tasks: int = Field(..., description="Tasks whose due_date was re-keyed")
    updated_task_orders: int = Field(..., description="Saved view orders whose key was re-keyed")


# ---------------------------------------------------------------------------
# Calories
# ---------------------------------------------------------------------------

# PUBLIC_INTERFACE
class CalorieEntryCreate(BaseModel):
    """
    Schema for logging food against a day.

    The day is normalized to midnight in the app time zone. When
    timestamp_ms is omitted it defaults to "now" for today, or noon of the
    given day otherwise.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"day_start_ms": 1738332000000, "label": "Porridge", "calories": 320, "grams": 250}
        }
    )

    day_start_ms: int = Field(
        ..., ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Any instant within the day (epoch ms)"
    )
    timestamp_ms: Optional[int] = Field(
        default=None, ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="When it was eaten (epoch ms)"
    )
    label: str = Field(..., min_length=1, max_length=200)
    calories: float = Field(..., ge=0)
    grams: Optional[float] = Field(default=None, ge=0)
    servings: Optional[float] = Field(default=None, ge=0)

    @field_validator("label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        return _strip_title(v)  # type: ignore[return-value]


class CalorieEntryUpdate(BaseModel):
    day_start_ms: Optional[int] = Field(default=None, ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS)
    timestamp_ms: Optional[int] = Field(default=None, ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS)
    label: Optional[str] = Field(default=None, min_length=1, max_length=200)
    calories: Optional[float] = Field(default=None, ge=0)
    grams: Optional[float] = Field(default=None, ge=0)
    servings: Optional[float] = Field(default=None, ge=0)

    @field_validator("label")
    @classmethod
    def validate_label(cls, v: Optional[str]) -> Optional[str]:
        return _strip_title(v)


class CalorieEntryOut(BaseModel):
    id: int
    created_at: int
    day_start_ms: int
    timestamp_ms: int
    label: str
    calories: float
    grams: Optional[float] = None
    servings: Optional[float] = None


class DayTotalsOut(BaseModel):
    consumed: float
    goal: float
    remaining: float
    reset_week_active: bool


class CalorieSettingsOut(BaseModel):
    normal_goal: float
    maintenance_goal: float
    reset_week_start_ms: Optional[int] = None
    reset_week_end_ms: Optional[int] = None


# PUBLIC_INTERFACE
class CalorieSettingsUpdate(BaseModel):
    """
    Partial update of the calorie goals.

    Goals ignore nulls. An explicit null for a reset-week bound clears it.
    """

    normal_goal: Optional[float] = Field(default=None, gt=0)
    maintenance_goal: Optional[float] = Field(default=None, gt=0)
    reset_week_start_ms: Optional[int] = Field(default=None, ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS)
    reset_week_end_ms: Optional[int] = Field(default=None, ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS)


class GoalOut(BaseModel):
    goal: float
    mode: Literal["normal", "maintenance"]
    reset_week_active: bool


class WeightEntryCreate(BaseModel):
    day_start_ms: int = Field(
        ..., ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Any instant within the day (epoch ms)"
    )
    kg: float = Field(..., gt=0)


class WeightEntryOut(BaseModel):
    id: int
    created_at: int
    day_start_ms: int
    kg: float


# PUBLIC_INTERFACE
class RecipeUpsert(BaseModel):
    """Create a recipe, or bump the usage of an existing one with the same name."""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    ingredients: Optional[str] = None
    default_serving_grams: Optional[float] = Field(default=None, ge=0)
    calories_per_serving: Optional[float] = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_title(v)  # type: ignore[return-value]


class RecipeOut(BaseModel):
    id: int
    created_at: int
    name: str
    description: Optional[str] = None
    ingredients: Optional[str] = None
    default_serving_grams: Optional[float] = None
    calories_per_serving: Optional[float] = None
    usage_count: int = 0


class PortionCaloriesOut(BaseModel):
    grams: float
    calories: float
