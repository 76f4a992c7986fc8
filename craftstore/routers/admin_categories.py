import logging

from fastapi import APIRouter, Depends, status

from craftstore.core.errors import ValidationError
from craftstore.dependencies import get_categories, get_products, require_admin
from craftstore.repositories.categories import CategoryRepository
from craftstore.repositories.products import ProductRepository
from craftstore.schemas import CategoryCreate, CategoryOut, CategoryUpdate, Message, UserOut

router = APIRouter(prefix="/api/admin/categories", tags=["Admin"], dependencies=[Depends(require_admin)])

logger = logging.getLogger("craftstore.admin")


@router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
def create_category(payload: CategoryCreate, categories: CategoryRepository = Depends(get_categories)):
    return categories.create(payload)


@router.delete("/clear-all", response_model=Message)
def clear_catalog(
    admin: UserOut = Depends(require_admin),
    products: ProductRepository = Depends(get_products),
    categories: CategoryRepository = Depends(get_categories),
):
    """Remove every product, then every category."""
    removed_products = products.clear_all_products()
    removed_categories = categories.clear_all()
    logger.warning(
        "catalog_cleared",
        extra={"admin_id": admin.id, "products": removed_products, "categories": removed_categories},
    )
    return Message(message="All categories and products cleared successfully")


@router.put("/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: str,
    payload: CategoryUpdate,
    categories: CategoryRepository = Depends(get_categories),
):
    return categories.update(category_id, payload)


@router.delete("/{category_id}", response_model=Message)
def delete_category(
    category_id: str,
    admin: UserOut = Depends(require_admin),
    categories: CategoryRepository = Depends(get_categories),
):
    if not categories.delete(category_id):
        raise ValidationError(
            "Cannot delete category that has products. Move products to another category first.",
            context={"category_id": category_id},
        )
    logger.info("admin_category_deleted", extra={"category_id": category_id, "admin_id": admin.id})
    return Message(message="Category deleted successfully")
