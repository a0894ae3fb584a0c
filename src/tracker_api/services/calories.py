from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends

from ..core.tzcalendar import TimeZoneCalendar
from ..errors import NotFoundError
from ..models import CalorieEntryEntity, CalorieSettingsEntity, RecipeEntity, WeightEntryEntity
from ..repositories import ListQuery, Repository, get_repository
from ..schemas import CalorieEntryCreate, CalorieEntryUpdate, CalorieSettingsUpdate, RecipeUpsert
from ..settings import get_app_calendar

logger = logging.getLogger(__name__)

SETTINGS_KIND = "global"
DEFAULT_NORMAL_GOAL = 1800
DEFAULT_MAINTENANCE_GOAL = 2000

_NOON_MS = 12 * 60 * 60 * 1000


# PUBLIC_INTERFACE
def calories_for_grams(
    grams: float,
    default_serving_grams: Optional[float],
    calories_per_serving: Optional[float],
) -> float:
    """
    Scale a recipe's per-serving calories to a portion weight.

    Returns 0 when either reference value is missing or not positive.
    """
    if not default_serving_grams or default_serving_grams <= 0:
        return 0
    if not calories_per_serving or calories_per_serving <= 0:
        return 0
    return (calories_per_serving / default_serving_grams) * grams


def is_reset_week_for_date(day_start_ms: int, settings: Dict[str, Any]) -> bool:
    start = settings.get("reset_week_start_ms")
    if start is None:
        return False
    end = settings.get("reset_week_end_ms")
    if end is None:
        return day_start_ms >= start
    return start <= day_start_ms <= end


# PUBLIC_INTERFACE
class CalorieService:
    """
    Calorie entries, goal settings, weight log and saved recipes.

    Day keys are civil midnights in the app time zone; any instant within a
    day is accepted and normalized.
    """

    def __init__(self, repo: Repository, calendar: TimeZoneCalendar) -> None:
        self._repo = repo
        self._cal = calendar

    # -- entries ----------------------------------------------------------

    def _default_timestamp(self, day_start_ms: int, now: int) -> int:
        if day_start_ms == self._cal.start_of_day(now):
            return now
        return day_start_ms + _NOON_MS

    def create_calorie_entry(self, data: CalorieEntryCreate, now: int) -> CalorieEntryEntity:
        day = self._cal.start_of_day(data.day_start_ms)
        created = self._repo.insert(
            "calorie_entries",
            {
                "day_start_ms": day,
                "timestamp_ms": data.timestamp_ms if data.timestamp_ms is not None else self._default_timestamp(day, now),
                "label": data.label,
                "calories": data.calories,
                "grams": data.grams,
                "servings": data.servings,
            },
        )
        logger.info("Logged %s kcal on day %s", data.calories, day)
        return created  # type: ignore[return-value]

    def update_calorie_entry(self, entry_id: int, data: CalorieEntryUpdate) -> CalorieEntryEntity:
        if self._repo.get("calorie_entries", entry_id) is None:
            raise NotFoundError("Calorie entry")
        fields: Dict[str, Any] = {}
        for name in ("timestamp_ms", "label", "calories", "grams", "servings"):
            value = getattr(data, name)
            if value is not None:
                fields[name] = value
        if data.day_start_ms is not None:
            fields["day_start_ms"] = self._cal.start_of_day(data.day_start_ms)
        updated = self._repo.patch("calorie_entries", entry_id, fields)
        assert updated is not None
        return updated  # type: ignore[return-value]

    def delete_calorie_entry(self, entry_id: int) -> None:
        if not self._repo.delete("calorie_entries", entry_id):
            raise NotFoundError("Calorie entry")

    def list_entries_for_day(self, day_ms: int, order: str = "desc") -> List[CalorieEntryEntity]:
        day = self._cal.start_of_day(day_ms)
        sort = "-timestamp_ms" if order == "desc" else "timestamp_ms"
        items, _ = self._repo.list("calorie_entries", ListQuery(where={"day_start_ms": day}, sort=(sort,)))
        return items  # type: ignore[return-value]

    def get_day_totals(self, day_ms: int) -> Dict[str, Any]:
        day = self._cal.start_of_day(day_ms)
        entries, _ = self._repo.list("calorie_entries", ListQuery(where={"day_start_ms": day}))
        consumed = sum(entry["calories"] for entry in entries)
        goal = self.get_goal_for_date(day)
        return {
            "consumed": consumed,
            "goal": goal["goal"],
            "remaining": goal["goal"] - consumed,
            "reset_week_active": goal["reset_week_active"],
        }

    # -- settings ---------------------------------------------------------

    def _stored_settings(self) -> Optional[CalorieSettingsEntity]:
        return self._repo.first("calorie_settings", ListQuery(where={"kind": SETTINGS_KIND}))  # type: ignore[return-value]

    def get_calorie_settings(self) -> Dict[str, Any]:
        existing = self._stored_settings()
        if existing is None:
            return {
                "normal_goal": DEFAULT_NORMAL_GOAL,
                "maintenance_goal": DEFAULT_MAINTENANCE_GOAL,
                "reset_week_start_ms": None,
                "reset_week_end_ms": None,
            }
        return {
            "normal_goal": existing["normal_goal"],
            "maintenance_goal": existing["maintenance_goal"],
            "reset_week_start_ms": existing.get("reset_week_start_ms"),
            "reset_week_end_ms": existing.get("reset_week_end_ms"),
        }

    def update_calorie_settings(self, data: CalorieSettingsUpdate) -> Dict[str, Any]:
        existing = self._stored_settings()
        if existing is None:
            existing = self._repo.insert(  # type: ignore[assignment]
                "calorie_settings",
                {
                    "kind": SETTINGS_KIND,
                    "normal_goal": DEFAULT_NORMAL_GOAL,
                    "maintenance_goal": DEFAULT_MAINTENANCE_GOAL,
                    "reset_week_start_ms": None,
                    "reset_week_end_ms": None,
                },
            )
        assert existing is not None
        fields: Dict[str, Any] = {}
        if data.normal_goal is not None:
            fields["normal_goal"] = data.normal_goal
        if data.maintenance_goal is not None:
            fields["maintenance_goal"] = data.maintenance_goal
        for name in ("reset_week_start_ms", "reset_week_end_ms"):
            if name in data.model_fields_set:
                value = getattr(data, name)
                fields[name] = self._cal.start_of_day(value) if value is not None else None
        self._repo.patch("calorie_settings", existing["id"], fields)
        logger.info("Updated calorie settings: %s", sorted(fields))
        return self.get_calorie_settings()

    def get_goal_for_date(self, day_ms: int) -> Dict[str, Any]:
        settings = self.get_calorie_settings()
        active = is_reset_week_for_date(self._cal.start_of_day(day_ms), settings)
        return {
            "goal": settings["maintenance_goal"] if active else settings["normal_goal"],
            "mode": "maintenance" if active else "normal",
            "reset_week_active": active,
        }

    # -- weight -----------------------------------------------------------

    def record_weight(self, day_ms: int, kg: float) -> WeightEntryEntity:
        """Store the weight for a day, replacing an earlier reading of the same day."""
        day = self._cal.start_of_day(day_ms)
        existing = self._repo.first("weight_entries", ListQuery(where={"day_start_ms": day}))
        if existing is not None:
            return self._repo.patch("weight_entries", existing["id"], {"kg": kg})  # type: ignore[return-value]
        return self._repo.insert("weight_entries", {"day_start_ms": day, "kg": kg})  # type: ignore[return-value]

    def list_weight_entries_for_range(self, start_day_ms: int, end_day_ms: int) -> List[WeightEntryEntity]:
        start = self._cal.start_of_day(start_day_ms)
        end = self._cal.start_of_day(end_day_ms)
        lower, upper = min(start, end), max(start, end)
        items, _ = self._repo.list(
            "weight_entries",
            ListQuery(between={"day_start_ms": (lower, upper)}, sort=("day_start_ms",)),
        )
        return items  # type: ignore[return-value]

    # -- recipes ----------------------------------------------------------

    def list_recipes(self) -> List[RecipeEntity]:
        items, _ = self._repo.list("recipes", ListQuery(sort=("-usage_count",)))
        return items  # type: ignore[return-value]

    def get_recipe(self, recipe_id: int) -> RecipeEntity:
        recipe = self._repo.get("recipes", recipe_id)
        if recipe is None:
            raise NotFoundError("Recipe")
        return recipe  # type: ignore[return-value]

    def upsert_recipe(self, data: RecipeUpsert) -> RecipeEntity:
        existing = self._repo.first("recipes", ListQuery(where={"name": data.name}))
        if existing is not None:
            fields: Dict[str, Any] = {"usage_count": (existing.get("usage_count") or 0) + 1}
            for name in ("description", "ingredients", "default_serving_grams", "calories_per_serving"):
                if name in data.model_fields_set:
                    fields[name] = getattr(data, name)
            return self._repo.patch("recipes", existing["id"], fields)  # type: ignore[return-value]

        created = self._repo.insert(
            "recipes",
            {
                "name": data.name,
                "description": data.description,
                "ingredients": data.ingredients,
                "default_serving_grams": data.default_serving_grams,
                "calories_per_serving": data.calories_per_serving,
                "usage_count": 1,
            },
        )
        logger.info("Saved recipe %r", data.name)
        return created  # type: ignore[return-value]

    def portion_calories(self, recipe_id: int, grams: float) -> float:
        recipe = self.get_recipe(recipe_id)
        return calories_for_grams(grams, recipe.get("default_serving_grams"), recipe.get("calories_per_serving"))


# PUBLIC_INTERFACE
def get_calorie_service(
    repo: Repository = Depends(get_repository),
    calendar: TimeZoneCalendar = Depends(get_app_calendar),
) -> CalorieService:
    """FastAPI dependency building the calorie service."""
    return CalorieService(repo, calendar)
