from typing import List, Optional

from sqlalchemy import delete, func, select

from craftstore.core.cache import CacheKeys
from craftstore.core.errors import NotFoundError
from craftstore.db.models import Category, Lifecycle, Product
from craftstore.repositories.base import Repository
from craftstore.schemas import CategoryCreate, CategoryOut, CategoryUpdate

_REQUIRED_FIELDS = {"name", "slug", "lifecycle"}


class CategoryRepository(Repository):
    conflict_message = "A category with this slug already exists"

    def list_categories(self) -> List[CategoryOut]:
        def load() -> List[CategoryOut]:
            with self.transaction("list_categories") as session:
                rows = session.scalars(
                    select(Category).where(Category.lifecycle == Lifecycle.ACTIVE).order_by(Category.name)
                ).all()
                return [CategoryOut.model_validate(row) for row in rows]

        return self.cache.get_or_set(CacheKeys.categories(), load, self.cache.ttl_for("categories"))

    def get_category(self, category_id: str) -> Optional[CategoryOut]:
        def load() -> Optional[CategoryOut]:
            with self.transaction("get_category") as session:
                row = session.get(Category, category_id)
                return CategoryOut.model_validate(row) if row else None

        return self.cache.get_or_set(CacheKeys.category(category_id), load, self.cache.ttl_for("categories"))

    def get_by_slug(self, slug: str) -> Optional[CategoryOut]:
        def load() -> Optional[CategoryOut]:
            with self.transaction("get_category_by_slug") as session:
                row = session.scalar(select(Category).where(Category.slug == slug))
                return CategoryOut.model_validate(row) if row else None

        return self.cache.get_or_set(CacheKeys.category_by_slug(slug), load, self.cache.ttl_for("categories"))

    def create(self, data: CategoryCreate) -> CategoryOut:
        with self.transaction("create_category") as session:
            category = Category(
                name=data.name,
                slug=data.resolved_slug(),
                description=data.description,
                icon=data.icon,
            )
            session.add(category)
            session.flush()
            created = CategoryOut.model_validate(category)

        self.cache.invalidate_category(created.id)
        self.logger.info("category_created", extra={"category_id": created.id, "slug": created.slug})
        return created

    def update(self, category_id: str, data: CategoryUpdate) -> CategoryOut:
        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key not in _REQUIRED_FIELDS
        }
        with self.transaction("update_category") as session:
            category = session.get(Category, category_id)
            if category is None:
                raise NotFoundError("Category", category_id)
            for key, value in changes.items():
                setattr(category, key, value)
            session.flush()
            updated = CategoryOut.model_validate(category)

        self.cache.invalidate_category(category_id)
        self.logger.info("category_updated", extra={"category_id": category_id, "fields": sorted(changes)})
        return updated

    def delete(self, category_id: str) -> bool:
        """Delete an unused category. Returns False, changing nothing, while any product references it."""
        with self.transaction("delete_category") as session:
            category = session.get(Category, category_id)
            if category is None:
                raise NotFoundError("Category", category_id)
            product_count = session.scalar(
                select(func.count(Product.id)).where(Product.category_id == category_id)
            )
            if product_count:
                self.logger.info(
                    "category_delete_blocked",
                    extra={"category_id": category_id, "product_count": product_count},
                )
                return False
            session.delete(category)

        self.cache.invalidate_category(category_id)
        self.logger.info("category_deleted", extra={"category_id": category_id})
        return True

    def clear_all(self) -> int:
        with self.transaction("clear_all_categories") as session:
            deleted = session.execute(delete(Category)).rowcount

        self.cache.invalidate_category()
        self.logger.info("categories_cleared", extra={"deleted": deleted})
        return deleted
