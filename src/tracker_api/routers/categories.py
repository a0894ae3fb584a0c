from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from ..schemas import CategoryCreate, CategoryOut, CategoryUpdate, TaskOut
from ..services.tasks import TaskService, get_task_service

router = APIRouter(
    prefix="/api/v1/categories",
    tags=["categories"],
)


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=CategoryOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Category",
    responses={404: {"description": "Parent category not found"}},
)
def create_category(payload: CategoryCreate, service: TaskService = Depends(get_task_service)) -> CategoryOut:
    """Create a new category."""
    return CategoryOut(**service.create_category(payload))


# PUBLIC_INTERFACE
@router.get("/", response_model=List[CategoryOut], summary="List Categories", description="All categories, newest first.")
def list_categories(service: TaskService = Depends(get_task_service)) -> List[CategoryOut]:
    return [CategoryOut(**c) for c in service.list_categories()]


# PUBLIC_INTERFACE
@router.get(
    "/{category_id}",
    response_model=CategoryOut,
    summary="Get Category",
    responses={404: {"description": "Category not found"}},
)
def get_category(category_id: int, service: TaskService = Depends(get_task_service)) -> CategoryOut:
    return CategoryOut(**service.get_category(category_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{category_id}",
    response_model=CategoryOut,
    summary="Update Category",
    description="Partially update a category. An explicit null clears color or parent.",
    responses={
        400: {"description": "Category would become its own ancestor"},
        404: {"description": "Category not found"},
    },
)
def update_category(
    category_id: int, payload: CategoryUpdate, service: TaskService = Depends(get_task_service)
) -> CategoryOut:
    return CategoryOut(**service.update_category(category_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Category",
    description="Delete a category. Its tasks and child categories are detached, not deleted.",
    responses={404: {"description": "Category not found"}},
)
def delete_category(category_id: int, service: TaskService = Depends(get_task_service)) -> None:
    service.delete_category(category_id)
    return None


# PUBLIC_INTERFACE
@router.get(
    "/{category_id}/tasks",
    response_model=List[TaskOut],
    summary="List Category Tasks",
    responses={404: {"description": "Category not found"}},
)
def list_category_tasks(category_id: int, service: TaskService = Depends(get_task_service)) -> List[TaskOut]:
    service.get_category(category_id)
    items, _ = service.list_tasks(category_id=category_id, limit=1000)
    return [TaskOut(**t) for t in items]
