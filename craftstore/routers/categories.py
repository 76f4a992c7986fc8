from typing import List

from fastapi import APIRouter, Depends

from craftstore.core.errors import NotFoundError
from craftstore.dependencies import get_categories
from craftstore.repositories.categories import CategoryRepository
from craftstore.schemas import CategoryOut

router = APIRouter(prefix="/api/categories", tags=["Categories"])


@router.get("", response_model=List[CategoryOut])
def list_categories(categories: CategoryRepository = Depends(get_categories)):
    return categories.list_categories()


@router.get("/{category_id}", response_model=CategoryOut)
def get_category(category_id: str, categories: CategoryRepository = Depends(get_categories)):
    category = categories.get_category(category_id)
    if category is None:
        raise NotFoundError("Category", category_id)
    return category
