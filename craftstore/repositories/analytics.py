from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, distinct, func, select
from sqlalchemy.orm import Session

from craftstore.core.cache import CacheKeys
from craftstore.db.models import Lifecycle, Order, OrderItem, OrderStatus, Product, utcnow
from craftstore.repositories.base import Repository
from craftstore.repositories.products import LOW_STOCK_THRESHOLD
from craftstore.schemas import (
    CustomerReport,
    InventoryReport,
    Interval,
    LowStockItem,
    ProductPerformanceRow,
    RevenuePoint,
    RevenueReport,
    SalesPoint,
    SalesReport,
    SalesTotals,
    TopCustomer,
)

CENT = Decimal("0.01")
DEFAULT_RANGE = timedelta(days=365)


def _money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_range(start: Optional[datetime], end: Optional[datetime]) -> Tuple[datetime, datetime]:
    end = as_utc(end) if end else utcnow()
    start = as_utc(start) if start else end - DEFAULT_RANGE
    return start, end


def period_bucket(dialect: str, column, interval: Interval):
    """SQL expression yielding the ``YYYY-MM-DD`` start of the bucket a timestamp falls in."""
    if dialect == "postgresql":
        return func.to_char(func.date_trunc(interval, column), "YYYY-MM-DD")
    if interval == "week":
        # jump to the coming Sunday, then back to that week's Monday
        return func.date(column, "weekday 0", "-6 days")
    if interval == "month":
        return func.strftime("%Y-%m-01", column)
    return func.strftime("%Y-%m-%d", column)


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class AnalyticsRepository(Repository):
    def sales(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None, interval: Interval = "day"
    ) -> SalesReport:
        params = {"from": start, "to": end, "interval": interval}

        def load() -> SalesReport:
            window = resolve_range(start, end)
            with self.transaction("analytics_sales") as session:
                bucket = period_bucket(self._dialect(session), Order.created_at, interval).label("bucket")
                rows = session.execute(
                    select(bucket, func.count(Order.id), func.coalesce(func.sum(Order.total), 0))
                    .where(self._counted_orders(window))
                    .group_by(bucket)
                    .order_by(bucket)
                ).all()
                items = session.scalar(
                    select(func.coalesce(func.sum(OrderItem.quantity), 0))
                    .join(Order, OrderItem.order_id == Order.id)
                    .where(self._counted_orders(window))
                )
            series = [
                SalesPoint(period_start=_as_date(key), orders=count, revenue=_money(revenue))
                for key, count, revenue in rows
            ]
            return SalesReport(
                series=series,
                totals=SalesTotals(
                    orders=sum(point.orders for point in series),
                    revenue=_money(sum((point.revenue for point in series), Decimal("0"))),
                    items=int(items or 0),
                ),
            )

        return self._cached("sales", params, load)

    def revenue(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None, group_by: Interval = "month"
    ) -> RevenueReport:
        params = {"from": start, "to": end, "groupBy": group_by}

        def load() -> RevenueReport:
            window = resolve_range(start, end)
            with self.transaction("analytics_revenue") as session:
                bucket = period_bucket(self._dialect(session), Order.created_at, group_by).label("bucket")
                rows = session.execute(
                    select(bucket, func.coalesce(func.sum(Order.total), 0))
                    .where(self._counted_orders(window))
                    .group_by(bucket)
                    .order_by(bucket)
                ).all()
            series = [RevenuePoint(period_start=_as_date(key), revenue=_money(revenue)) for key, revenue in rows]
            return RevenueReport(
                series=series,
                total_revenue=_money(sum((point.revenue for point in series), Decimal("0"))),
            )

        return self._cached("revenue", params, load)

    def product_performance(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None, limit: int = 10
    ) -> List[ProductPerformanceRow]:
        params = {"from": start, "to": end, "limit": limit}

        def load() -> List[ProductPerformanceRow]:
            window = resolve_range(start, end)
            sold = func.sum(OrderItem.quantity).label("total_sold")
            with self.transaction("analytics_products") as session:
                rows = session.execute(
                    select(
                        OrderItem.product_id,
                        Product.name,
                        sold,
                        func.sum(OrderItem.product_price * OrderItem.quantity),
                        Product.stock,
                    )
                    .join(Order, OrderItem.order_id == Order.id)
                    .join(Product, OrderItem.product_id == Product.id)
                    .where(self._counted_orders(window))
                    .group_by(OrderItem.product_id, Product.name, Product.stock)
                    .order_by(sold.desc(), Product.name)
                    .limit(limit)
                ).all()
            return [
                ProductPerformanceRow(
                    product_id=product_id, name=name, total_sold=int(total_sold), revenue=_money(revenue), stock=stock
                )
                for product_id, name, total_sold, revenue, stock in rows
            ]

        return self._cached("products", params, load)

    def inventory(self) -> InventoryReport:
        def load() -> InventoryReport:
            with self.transaction("analytics_inventory") as session:
                active = Product.lifecycle == Lifecycle.ACTIVE
                total = session.scalar(select(func.count(Product.id)).where(active)) or 0
                out_of_stock = session.scalar(select(func.count(Product.id)).where(active, Product.stock == 0)) or 0
                low = session.execute(
                    select(Product.id, Product.name, Product.stock)
                    .where(active, Product.stock > 0, Product.stock < LOW_STOCK_THRESHOLD)
                    .order_by(Product.stock, Product.name)
                ).all()
            return InventoryReport(
                total_products=total,
                low_stock_count=len(low),
                out_of_stock_count=out_of_stock,
                low_stock_items=[LowStockItem(id=pid, name=name, stock=stock) for pid, name, stock in low],
            )

        return self._cached("inventory", {}, load)

    def customers(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None, limit: int = 10
    ) -> CustomerReport:
        params = {"from": start, "to": end, "limit": limit}

        def load() -> CustomerReport:
            window = resolve_range(start, end)
            with self.transaction("analytics_customers") as session:
                in_range = self._counted_orders(window)
                phones = set(session.scalars(select(distinct(Order.customer_phone)).where(in_range)).all())
                returning = set()
                if phones:
                    returning = set(
                        session.scalars(
                            select(distinct(Order.customer_phone)).where(
                                Order.customer_phone.in_(phones),
                                Order.created_at < window[0],
                                Order.status != OrderStatus.CANCELLED,
                            )
                        ).all()
                    )
                spend = func.sum(Order.total).label("spend")
                top = session.execute(
                    select(
                        Order.customer_phone,
                        func.max(Order.user_id),
                        func.max(Order.customer_name),
                        func.count(Order.id),
                        spend,
                    )
                    .where(in_range)
                    .group_by(Order.customer_phone)
                    .order_by(spend.desc(), Order.customer_phone)
                    .limit(limit)
                ).all()
            return CustomerReport(
                total_customers=len(phones),
                new_customers=len(phones - returning),
                returning_customers=len(returning),
                top_customers=[
                    TopCustomer(user_id=user_id, name=name, phone=phone, orders=count, spend=_money(total))
                    for phone, user_id, name, count, total in top
                ],
            )

        return self._cached("customers", params, load)

    def _cached(self, report: str, params: Dict[str, Any], loader):
        key_params = {
            name: value.isoformat() if isinstance(value, datetime) else value for name, value in params.items()
        }
        return self.cache.get_or_set(CacheKeys.analytics(report, key_params), loader, self.cache.ttl_for("analytics"))

    @staticmethod
    def _counted_orders(window: Tuple[datetime, datetime]):
        return and_(
            Order.status != OrderStatus.CANCELLED,
            Order.created_at >= window[0],
            Order.created_at <= window[1],
        )

    @staticmethod
    def _dialect(session: Session) -> str:
        return session.get_bind().dialect.name
