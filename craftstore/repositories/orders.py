from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from craftstore.core.cache import CacheKeys
from craftstore.core.errors import InvalidStatusTransition, NotFoundError, OrderRejected
from craftstore.db.models import Lifecycle, Order, OrderItem, OrderStatus, Product, utcnow
from craftstore.repositories.base import Repository
from craftstore.schemas import OrderCreate, OrderItemIn, OrderOut

CENT = Decimal("0.01")


def merge_quantities(items: Iterable[OrderItemIn]) -> Dict[str, int]:
    """Sum quantities per product id, keeping first-seen order."""
    merged: Dict[str, int] = OrderedDict()
    for item in items:
        merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
    return merged


def insufficient_stock(name: str, available: int, requested: int) -> str:
    return f"Insufficient stock for {name}. Available: {available}, Requested: {requested}"


class OrderRepository(Repository):
    def place_order(self, order: OrderCreate, user_id: Optional[str] = None) -> OrderOut:
        """Validate, decrement stock and record an order in a single transaction.

        Stock is read first so every offending item can be reported at once, but the
        decrement itself is a conditional ``UPDATE ... WHERE stock >= :quantity``. A
        concurrent order that took the stock between the read and the update leaves
        that statement matching no row, which rolls the whole order back.
        """
        quantities = merge_quantities(order.items)

        with self.transaction("place_order") as session:
            products: Dict[str, Product] = {}
            reasons: List[str] = []
            for product_id, quantity in quantities.items():
                product = session.get(Product, product_id)
                if product is None or product.lifecycle != Lifecycle.ACTIVE:
                    reasons.append(f"Product not found: {product_id}")
                elif product.stock < quantity:
                    reasons.append(insufficient_stock(product.name, product.stock, quantity))
                else:
                    products[product_id] = product
            if reasons:
                raise OrderRejected(reasons)

            total = sum(
                (products[product_id].price * quantity for product_id, quantity in quantities.items()),
                Decimal("0"),
            ).quantize(CENT)

            for product_id, quantity in quantities.items():
                result = session.execute(
                    update(Product)
                    .where(Product.id == product_id, Product.stock >= quantity)
                    .values(stock=Product.stock - quantity, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    available = session.scalar(select(Product.stock).where(Product.id == product_id)) or 0
                    self.logger.warning(
                        "order_stock_race_lost",
                        extra={"product_id": product_id, "requested": quantity, "available": available},
                    )
                    raise OrderRejected([insufficient_stock(products[product_id].name, available, quantity)])

            record = Order(
                user_id=user_id,
                customer_name=order.customer_name,
                customer_phone=order.customer_phone,
                customer_email=order.customer_email,
                district=order.district,
                road=order.road,
                additional_landmark=order.additional_landmark,
                special_instructions=order.special_instructions,
                total=total,
                status=OrderStatus.PENDING,
            )
            record.items = [
                OrderItem(
                    product_id=product_id,
                    product_name=products[product_id].name,
                    product_price=products[product_id].price,
                    quantity=quantity,
                )
                for product_id, quantity in quantities.items()
            ]
            session.add(record)
            session.flush()
            placed = OrderOut.model_validate(record)

        self.cache.invalidate_orders()
        self.cache.invalidate_products()
        self.logger.info(
            "order_placed",
            extra={"order_id": placed.id, "total": str(placed.total), "items": len(placed.items), "user_id": user_id},
        )
        return placed

    def list_orders(self) -> List[OrderOut]:
        return self._cached_list(CacheKeys.orders(), "list_orders")

    def orders_for_customer(self, phone: str) -> List[OrderOut]:
        return self._cached_list(
            CacheKeys.orders_by_customer(phone), "orders_for_customer", Order.customer_phone == phone
        )

    def orders_for_user(self, user_id: str) -> List[OrderOut]:
        return self._cached_list(CacheKeys.orders_by_user(user_id), "orders_for_user", Order.user_id == user_id)

    def get_order(self, order_id: str) -> Optional[OrderOut]:
        def load() -> Optional[OrderOut]:
            with self.transaction("get_order") as session:
                record = self._load(session, order_id)
                return OrderOut.model_validate(record) if record else None

        return self.cache.get_or_set(CacheKeys.order(order_id), load, self.cache.ttl_for("orders"))

    def update_status(self, order_id: str, status: OrderStatus) -> OrderOut:
        with self.transaction("update_order_status") as session:
            record = self._load(session, order_id)
            if record is None:
                raise NotFoundError("Order", order_id)
            current = record.status
            if current == status:
                return OrderOut.model_validate(record)
            if not current.can_become(status):
                raise InvalidStatusTransition(current.value, status.value)
            record.status = status
            session.flush()
            updated = OrderOut.model_validate(record)

        self.cache.invalidate_orders()
        self.logger.info(
            "order_status_updated",
            extra={"order_id": order_id, "from_status": current.value, "to_status": status.value},
        )
        return updated

    def _cached_list(self, key: str, operation: str, *criteria) -> List[OrderOut]:
        def load() -> List[OrderOut]:
            with self.transaction(operation) as session:
                rows = session.scalars(
                    select(Order)
                    .where(*criteria)
                    .options(selectinload(Order.items))
                    .order_by(Order.created_at.desc(), Order.id)
                ).all()
                return [OrderOut.model_validate(row) for row in rows]

        return self.cache.get_or_set(key, load, self.cache.ttl_for("orders"))

    @staticmethod
    def _load(session: Session, order_id: str) -> Optional[Order]:
        return session.scalar(select(Order).where(Order.id == order_id).options(selectinload(Order.items)))
