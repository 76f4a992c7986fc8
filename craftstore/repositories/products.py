import math
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import case, delete, exists, func, insert, or_, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from craftstore.core.cache import CacheKeys
from craftstore.core.errors import NotFoundError, ValidationError
from craftstore.db.models import Category, Lifecycle, OrderItem, Product, Wishlist, new_id, utcnow
from craftstore.repositories.base import Repository
from craftstore.schemas import ProductCreate, ProductFilters, ProductOut, ProductPage, ProductStats, ProductUpdate

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100
LOW_STOCK_THRESHOLD = 5

_SORTS = {
    "newest": (Product.created_at.desc(), Product.id),
    "oldest": (Product.created_at.asc(), Product.id),
    "price-low-high": (Product.price.asc(), Product.id),
    "price-high-low": (Product.price.desc(), Product.id),
}
_REQUIRED_FIELDS = {"name", "description", "price", "image", "stock", "lifecycle"}


def clamp_page(page: Optional[int], limit: Optional[int]) -> tuple:
    page = max(1, page or 1)
    limit = min(MAX_PAGE_SIZE, max(1, limit or DEFAULT_PAGE_SIZE))
    return page, limit


class ProductRepository(Repository):
    # --- reads ---
    def list_products(self, filters: ProductFilters) -> List[ProductOut]:
        def load() -> List[ProductOut]:
            with self.transaction("list_products") as session:
                stmt = self._filtered(session, filters)
                if stmt is None:
                    return []
                rows = session.scalars(stmt.order_by(*_SORTS[filters.sort_by or "newest"])).all()
                return [ProductOut.model_validate(row) for row in rows]

        key = CacheKeys.products(filters.cache_params())
        return self.cache.get_or_set(key, load, self.cache.ttl_for("products"))

    def list_products_page(self, filters: ProductFilters, page: Optional[int], limit: Optional[int]) -> ProductPage:
        page, limit = clamp_page(page, limit)

        def load() -> ProductPage:
            with self.transaction("list_products_page") as session:
                stmt = self._filtered(session, filters)
                if stmt is None:
                    return ProductPage(items=[], total=0, page=page, limit=limit, total_pages=0)
                total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
                rows = session.scalars(
                    stmt.order_by(*_SORTS[filters.sort_by or "newest"]).offset((page - 1) * limit).limit(limit)
                ).all()
                return ProductPage(
                    items=[ProductOut.model_validate(row) for row in rows],
                    total=total,
                    page=page,
                    limit=limit,
                    total_pages=math.ceil(total / limit),
                )

        key = CacheKeys.products_page(filters.cache_params(), page, limit)
        return self.cache.get_or_set(key, load, self.cache.ttl_for("products"))

    def get_product(self, product_id: str) -> Optional[ProductOut]:
        def load() -> Optional[ProductOut]:
            with self.transaction("get_product") as session:
                row = session.get(Product, product_id)
                return ProductOut.model_validate(row) if row else None

        return self.cache.get_or_set(CacheKeys.product(product_id), load, self.cache.ttl_for("products"))

    def resolve_category_slug(self, session: Session, slug: str) -> Optional[str]:
        """Map a category slug to its id, consulting the in-process memo and cached categories first."""
        category_id = self.cache.lookup_slug(slug)
        if category_id:
            return category_id
        cached = self.cache.get(CacheKeys.category_by_slug(slug))
        if cached is not None:
            category_id = cached.id
        else:
            category_id = session.scalar(select(Category.id).where(Category.slug == slug))
        if category_id:
            self.cache.remember_slug(slug, category_id)
        return category_id

    def _filtered(self, session: Session, filters: ProductFilters) -> Optional[Select]:
        stmt = select(Product).where(Product.lifecycle == Lifecycle.ACTIVE)
        if filters.category:
            category_id = self.resolve_category_slug(session, filters.category)
            if category_id is None:
                return None
            stmt = stmt.where(Product.category_id == category_id)
        if filters.in_stock:
            stmt = stmt.where(Product.stock > 0)
        if filters.search and filters.search.strip():
            pattern = f"%{filters.search.strip().lower()}%"
            stmt = stmt.where(
                or_(func.lower(Product.name).like(pattern), func.lower(Product.description).like(pattern))
            )
        return stmt

    def product_stats(self) -> ProductStats:
        def load() -> ProductStats:
            with self.transaction("product_stats") as session:
                active = Product.lifecycle == Lifecycle.ACTIVE
                total, low_stock, value = session.execute(
                    select(
                        func.count(Product.id),
                        func.coalesce(func.sum(case((Product.stock < LOW_STOCK_THRESHOLD, 1), else_=0)), 0),
                        func.coalesce(func.sum(Product.price * Product.stock), 0),
                    ).where(active)
                ).one()
                categories = session.scalar(
                    select(func.count(Category.id)).where(Category.lifecycle == Lifecycle.ACTIVE)
                )
                return ProductStats(
                    total_products=total,
                    low_stock=low_stock,
                    categories=categories or 0,
                    total_value=Decimal(str(value)).quantize(Decimal("0.01")),
                )

        return self.cache.get_or_set(CacheKeys.product_stats(), load, self.cache.ttl_for("stats"))

    # --- writes ---
    def create_product(self, data: ProductCreate) -> ProductOut:
        with self.transaction("create_product") as session:
            self._check_category(session, data.category_id)
            product = Product(**data.model_dump())
            session.add(product)
            session.flush()
            created = ProductOut.model_validate(product)

        self.cache.invalidate_product(created.id)
        self.logger.info("product_created", extra={"product_id": created.id, "product_name": created.name})
        return created

    def update_product(self, product_id: str, data: ProductUpdate) -> ProductOut:
        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key not in _REQUIRED_FIELDS
        }
        with self.transaction("update_product") as session:
            product = session.get(Product, product_id)
            if product is None:
                raise NotFoundError("Product", product_id)
            if "category_id" in changes:
                self._check_category(session, changes["category_id"])
            for key, value in changes.items():
                setattr(product, key, value)
            session.flush()
            updated = ProductOut.model_validate(product)

        self.cache.invalidate_product(product_id)
        self.logger.info("product_updated", extra={"product_id": product_id, "fields": sorted(changes)})
        return updated

    def delete_product(self, product_id: str) -> bool:
        """Soft delete: the row stays for order history but leaves every listing."""
        with self.transaction("delete_product") as session:
            product = session.get(Product, product_id)
            if product is None:
                raise NotFoundError("Product", product_id)
            product.lifecycle = Lifecycle.INACTIVE

        self.cache.invalidate_product(product_id)
        self.logger.info("product_deleted", extra={"product_id": product_id})
        return True

    def bulk_create_products(self, rows: Iterable[ProductCreate]) -> int:
        now = utcnow()
        values = [
            {**row.model_dump(), "id": new_id(), "lifecycle": Lifecycle.ACTIVE, "created_at": now, "updated_at": now}
            for row in rows
        ]
        if not values:
            return 0
        with self.transaction("bulk_create_products") as session:
            session.execute(insert(Product), values)

        self.cache.invalidate_products()
        self.logger.info("products_bulk_created", extra={"count": len(values)})
        return len(values)

    def clear_all_products(self) -> int:
        """Remove the catalog. Products that appear in orders are deactivated and detached instead."""
        with self.transaction("clear_all_products") as session:
            ordered = exists().where(OrderItem.product_id == Product.id).correlate(Product)
            session.execute(delete(Wishlist))
            detached = session.execute(
                update(Product)
                .where(ordered)
                .values(lifecycle=Lifecycle.INACTIVE, category_id=None, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            ).rowcount
            deleted = session.execute(
                delete(Product).where(~ordered).execution_options(synchronize_session=False)
            ).rowcount

        self.cache.invalidate_products()
        self.logger.info("products_cleared", extra={"deleted": deleted, "deactivated": detached})
        return deleted + detached

    def _check_category(self, session: Session, category_id: Optional[str]) -> None:
        if category_id and session.get(Category, category_id) is None:
            raise ValidationError("Unknown category", context={"category_id": category_id})
