from __future__ import annotations

from typing import List, Literal

from fastapi import APIRouter, Depends, Query, status

from ..core.tzcalendar import MAX_INSTANT_MS, MIN_INSTANT_MS
from ..schemas import (
    CalorieEntryCreate,
    CalorieEntryOut,
    CalorieEntryUpdate,
    CalorieSettingsOut,
    CalorieSettingsUpdate,
    DayTotalsOut,
    GoalOut,
    PortionCaloriesOut,
    RecipeOut,
    RecipeUpsert,
    WeightEntryCreate,
    WeightEntryOut,
)
from ..services.calories import CalorieService, get_calorie_service
from ..utils import get_now_ms

router = APIRouter(
    prefix="/api/v1/calories",
    tags=["calories"],
)


# PUBLIC_INTERFACE
@router.post(
    "/entries",
    response_model=CalorieEntryOut,
    status_code=status.HTTP_201_CREATED,
    summary="Log Calorie Entry",
    description="Log food against a day. The timestamp defaults to now for today, otherwise noon of that day.",
)
def create_calorie_entry(
    payload: CalorieEntryCreate,
    now: int = Depends(get_now_ms),
    service: CalorieService = Depends(get_calorie_service),
) -> CalorieEntryOut:
    return CalorieEntryOut(**service.create_calorie_entry(payload, now))


# PUBLIC_INTERFACE
@router.get("/entries", response_model=List[CalorieEntryOut], summary="List Entries For Day")
def list_entries_for_day(
    day_ms: int = Query(
        ..., ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Any instant within the day (epoch ms)"
    ),
    order: Literal["asc", "desc"] = Query("desc", description="Order by timestamp"),
    service: CalorieService = Depends(get_calorie_service),
) -> List[CalorieEntryOut]:
    return [CalorieEntryOut(**e) for e in service.list_entries_for_day(day_ms, order)]


# PUBLIC_INTERFACE
@router.patch(
    "/entries/{entry_id}",
    response_model=CalorieEntryOut,
    summary="Update Calorie Entry",
    responses={404: {"description": "Calorie entry not found"}},
)
def update_calorie_entry(
    entry_id: int, payload: CalorieEntryUpdate, service: CalorieService = Depends(get_calorie_service)
) -> CalorieEntryOut:
    return CalorieEntryOut(**service.update_calorie_entry(entry_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/entries/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Calorie Entry",
    responses={404: {"description": "Calorie entry not found"}},
)
def delete_calorie_entry(entry_id: int, service: CalorieService = Depends(get_calorie_service)) -> None:
    service.delete_calorie_entry(entry_id)
    return None


# PUBLIC_INTERFACE
@router.get("/totals", response_model=DayTotalsOut, summary="Day Totals")
def get_day_totals(
    day_ms: int = Query(
        ..., ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Any instant within the day (epoch ms)"
    ),
    service: CalorieService = Depends(get_calorie_service),
) -> DayTotalsOut:
    """Calories consumed on the day against that day's goal."""
    return DayTotalsOut(**service.get_day_totals(day_ms))


# PUBLIC_INTERFACE
@router.get("/settings", response_model=CalorieSettingsOut, summary="Get Calorie Settings")
def get_calorie_settings(service: CalorieService = Depends(get_calorie_service)) -> CalorieSettingsOut:
    return CalorieSettingsOut(**service.get_calorie_settings())


# PUBLIC_INTERFACE
@router.patch(
    "/settings",
    response_model=CalorieSettingsOut,
    summary="Update Calorie Settings",
    description="Partially update goals; an explicit null clears a reset-week bound.",
)
def update_calorie_settings(
    payload: CalorieSettingsUpdate, service: CalorieService = Depends(get_calorie_service)
) -> CalorieSettingsOut:
    return CalorieSettingsOut(**service.update_calorie_settings(payload))


# PUBLIC_INTERFACE
@router.get("/goal", response_model=GoalOut, summary="Goal For Date")
def get_goal_for_date(
    day_ms: int = Query(
        ..., ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Any instant within the day (epoch ms)"
    ),
    service: CalorieService = Depends(get_calorie_service),
) -> GoalOut:
    return GoalOut(**service.get_goal_for_date(day_ms))


# PUBLIC_INTERFACE
@router.put("/weights", response_model=WeightEntryOut, summary="Record Weight")
def record_weight(payload: WeightEntryCreate, service: CalorieService = Depends(get_calorie_service)) -> WeightEntryOut:
    """Record the weight for a day, replacing an earlier reading of that day."""
    return WeightEntryOut(**service.record_weight(payload.day_start_ms, payload.kg))


# PUBLIC_INTERFACE
@router.get(
    "/weights",
    response_model=List[WeightEntryOut],
    summary="List Weights For Range",
    description="Weight entries between two days inclusive, oldest first. Reversed bounds are swapped.",
)
def list_weight_entries_for_range(
    start_day_ms: int = Query(
        ..., ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="First day (epoch ms)"
    ),
    end_day_ms: int = Query(
        ..., ge=MIN_INSTANT_MS, le=MAX_INSTANT_MS, description="Last day (epoch ms)"
    ),
    service: CalorieService = Depends(get_calorie_service),
) -> List[WeightEntryOut]:
    return [WeightEntryOut(**w) for w in service.list_weight_entries_for_range(start_day_ms, end_day_ms)]


# PUBLIC_INTERFACE
@router.get("/recipes", response_model=List[RecipeOut], summary="List Recipes", description="Most used first.")
def list_recipes(service: CalorieService = Depends(get_calorie_service)) -> List[RecipeOut]:
    return [RecipeOut(**r) for r in service.list_recipes()]


# PUBLIC_INTERFACE
@router.post(
    "/recipes",
    response_model=RecipeOut,
    summary="Upsert Recipe",
    description="Create a recipe, or bump usage and update fields of the recipe with the same name.",
)
def upsert_recipe(payload: RecipeUpsert, service: CalorieService = Depends(get_calorie_service)) -> RecipeOut:
    return RecipeOut(**service.upsert_recipe(payload))


# PUBLIC_INTERFACE
@router.get(
    "/recipes/{recipe_id}/portion",
    response_model=PortionCaloriesOut,
    summary="Portion Calories",
    responses={404: {"description": "Recipe not found"}},
)
def get_portion_calories(
    recipe_id: int,
    grams: float = Query(..., ge=0, description="Portion weight in grams"),
    service: CalorieService = Depends(get_calorie_service),
) -> PortionCaloriesOut:
    return PortionCaloriesOut(grams=grams, calories=service.portion_calories(recipe_id, grams))
