from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query

from craftstore.core.errors import NotFoundError
from craftstore.db.models import Lifecycle
from craftstore.dependencies import get_products
from craftstore.repositories.products import ProductRepository
from craftstore.schemas import ProductFilters, ProductOut, ProductPage, SortKey

router = APIRouter(prefix="/api/products", tags=["Products"])


@router.get("", response_model=Union[ProductPage, List[ProductOut]])
def list_products(
    category: Optional[str] = Query(None, max_length=160),
    in_stock: bool = Query(False, alias="inStock"),
    search: Optional[str] = Query(None, max_length=200),
    sort_by: Optional[SortKey] = Query(None, alias="sortBy"),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    products: ProductRepository = Depends(get_products),
):
    """List active products. Passing ``page`` or ``limit`` switches to the paginated envelope."""
    filters = ProductFilters(category=category, in_stock=in_stock, search=search, sort_by=sort_by)
    if page is not None or limit is not None:
        return products.list_products_page(filters, page, limit)
    return products.list_products(filters)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, products: ProductRepository = Depends(get_products)):
    product = products.get_product(product_id)
    if product is None or product.lifecycle != Lifecycle.ACTIVE:
        raise NotFoundError("Product", product_id)
    return product
