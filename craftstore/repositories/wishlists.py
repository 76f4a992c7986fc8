from typing import List

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from craftstore.core.cache import CacheKeys
from craftstore.core.errors import NotFoundError
from craftstore.db.models import Lifecycle, Product, Wishlist, new_id, utcnow
from craftstore.repositories.base import Repository
from craftstore.schemas import WishlistEntryOut

_UPSERT_DIALECTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class WishlistRepository(Repository):
    def list_for_user(self, user_id: str) -> List[WishlistEntryOut]:
        def load() -> List[WishlistEntryOut]:
            with self.transaction("list_wishlist") as session:
                rows = session.scalars(
                    select(Wishlist)
                    .join(Product, Wishlist.product_id == Product.id)
                    .where(Wishlist.user_id == user_id, Product.lifecycle == Lifecycle.ACTIVE)
                    .options(joinedload(Wishlist.product))
                    .order_by(Wishlist.created_at.desc(), Wishlist.id)
                ).all()
                return [WishlistEntryOut.model_validate(row) for row in rows]

        return self.cache.get_or_set(CacheKeys.wishlist(user_id), load, self.cache.ttl_for("wishlist"))

    def add(self, user_id: str, product_id: str) -> WishlistEntryOut:
        """Add a product to the wishlist. Adding it twice returns the existing entry."""
        with self.transaction("add_to_wishlist") as session:
            product = session.get(Product, product_id)
            if product is None or product.lifecycle != Lifecycle.ACTIVE:
                raise NotFoundError("Product", product_id)

            values = {"id": new_id(), "user_id": user_id, "product_id": product_id, "created_at": utcnow()}
            dialect_insert = _UPSERT_DIALECTS.get(session.get_bind().dialect.name)
            if dialect_insert is not None:
                session.execute(
                    dialect_insert(Wishlist).values(**values).on_conflict_do_nothing(
                        index_elements=["user_id", "product_id"]
                    )
                )
            else:
                self._insert_ignoring_duplicate(session, values)

            entry = session.scalar(
                select(Wishlist)
                .where(Wishlist.user_id == user_id, Wishlist.product_id == product_id)
                .options(joinedload(Wishlist.product))
            )
            added = WishlistEntryOut.model_validate(entry)

        self.cache.invalidate_wishlist(user_id)
        self.logger.info("wishlist_item_added", extra={"user_id": user_id, "product_id": product_id})
        return added

    def remove(self, user_id: str, product_id: str) -> bool:
        with self.transaction("remove_from_wishlist") as session:
            removed = session.execute(
                delete(Wishlist).where(Wishlist.user_id == user_id, Wishlist.product_id == product_id)
            ).rowcount

        if removed:
            self.cache.invalidate_wishlist(user_id)
            self.logger.info("wishlist_item_removed", extra={"user_id": user_id, "product_id": product_id})
        return bool(removed)

    @staticmethod
    def _insert_ignoring_duplicate(session: Session, values: dict) -> None:
        savepoint = session.begin_nested()
        try:
            session.execute(insert(Wishlist).values(**values))
        except IntegrityError:
            savepoint.rollback()
        else:
            savepoint.commit()
