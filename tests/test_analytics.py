from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from craftstore.db.models import Order, OrderStatus

RANGE = {"start": datetime(2026, 1, 1, tzinfo=timezone.utc), "end": datetime(2026, 12, 31, tzinfo=timezone.utc)}


@pytest.fixture
def place_at(repos, cache, session_factory, order_for):
    def _place(when, *items, **overrides):
        order = repos.orders.place_order(order_for(*items, **overrides))
        with session_factory.begin() as session:
            session.execute(update(Order).where(Order.id == order.id).values(created_at=when))
        cache.invalidate_orders()
        return order

    return _place


def test_sales_by_day_excludes_cancelled_orders(repos, make_product, place_at):
    basket = make_product(stock=20, price=Decimal("100.00"))
    place_at(datetime(2026, 3, 2, 9, tzinfo=timezone.utc), (basket.id, 2))
    place_at(datetime(2026, 3, 2, 18, tzinfo=timezone.utc), (basket.id, 1))
    place_at(datetime(2026, 3, 5, 12, tzinfo=timezone.utc), (basket.id, 1))
    cancelled = place_at(datetime(2026, 3, 5, 13, tzinfo=timezone.utc), (basket.id, 5))
    repos.orders.update_status(cancelled.id, OrderStatus.CANCELLED)

    report = repos.analytics.sales(**RANGE, interval="day")

    assert [(point.period_start.isoformat(), point.orders, point.revenue) for point in report.series] == [
        ("2026-03-02", 2, Decimal("300.00")),
        ("2026-03-05", 1, Decimal("100.00")),
    ]
    assert report.totals.orders == 3
    assert report.totals.revenue == Decimal("400.00")
    assert report.totals.items == 4


def test_weeks_start_on_monday(repos, make_product, place_at):
    basket = make_product(stock=20, price=Decimal("10.00"))
    place_at(datetime(2026, 10, 15, 10, tzinfo=timezone.utc), (basket.id, 1))  # Thursday
    place_at(datetime(2026, 10, 18, 10, tzinfo=timezone.utc), (basket.id, 1))  # Sunday
    place_at(datetime(2026, 10, 19, 10, tzinfo=timezone.utc), (basket.id, 1))  # Monday

    report = repos.analytics.sales(**RANGE, interval="week")

    assert [(point.period_start.isoformat(), point.orders) for point in report.series] == [
        ("2026-10-12", 2),
        ("2026-10-19", 1),
    ]


def test_revenue_by_month(repos, make_product, place_at):
    basket = make_product(stock=20, price=Decimal("250.00"))
    place_at(datetime(2026, 1, 31, tzinfo=timezone.utc), (basket.id, 1))
    place_at(datetime(2026, 2, 1, tzinfo=timezone.utc), (basket.id, 2))

    report = repos.analytics.revenue(**RANGE, group_by="month")

    assert [(point.period_start.isoformat(), point.revenue) for point in report.series] == [
        ("2026-01-01", Decimal("250.00")),
        ("2026-02-01", Decimal("500.00")),
    ]
    assert report.total_revenue == Decimal("750.00")


def test_orders_outside_the_range_are_ignored(repos, make_product, place_at):
    basket = make_product(stock=20)
    place_at(datetime(2025, 12, 31, tzinfo=timezone.utc), (basket.id, 1))

    assert repos.analytics.sales(**RANGE).series == []


def test_product_performance_uses_snapshot_prices(repos, make_product, place_at):
    basket = make_product(name="Basket", stock=20, price=Decimal("100.00"))
    bowl = make_product(name="Bowl", stock=20, price=Decimal("300.00"))
    place_at(datetime(2026, 5, 1, tzinfo=timezone.utc), (basket.id, 3), (bowl.id, 1))
    place_at(datetime(2026, 5, 2, tzinfo=timezone.utc), (basket.id, 1))

    rows = repos.analytics.product_performance(**RANGE, limit=5)

    assert [(row.name, row.total_sold, row.revenue, row.stock) for row in rows] == [
        ("Basket", 4, Decimal("400.00"), 16),
        ("Bowl", 1, Decimal("300.00"), 19),
    ]


def test_inventory_report(repos, make_product):
    make_product(name="Plenty", stock=10)
    make_product(name="Few", stock=2)
    make_product(name="None left", stock=0)

    report = repos.analytics.inventory()

    assert report.total_products == 3
    assert report.low_stock_count == 1
    assert report.out_of_stock_count == 1
    assert [item.name for item in report.low_stock_items] == ["Few"]


def test_customer_report_splits_new_and_returning(repos, make_product, place_at):
    basket = make_product(stock=50, price=Decimal("100.00"))
    place_at(datetime(2025, 6, 1, tzinfo=timezone.utc), (basket.id, 1), customer_phone="9800000001")
    place_at(datetime(2026, 6, 1, tzinfo=timezone.utc), (basket.id, 2), customer_phone="9800000001")
    place_at(datetime(2026, 6, 2, tzinfo=timezone.utc), (basket.id, 5), customer_phone="9800000002")

    report = repos.analytics.customers(**RANGE)

    assert report.total_customers == 2
    assert report.returning_customers == 1
    assert report.new_customers == 1
    assert [(customer.phone, customer.orders, customer.spend) for customer in report.top_customers] == [
        ("9800000002", 1, Decimal("500.00")),
        ("9800000001", 1, Decimal("200.00")),
    ]


def test_default_range_covers_the_last_year(repos, make_product, place_at):
    basket = make_product(stock=20)
    now = datetime.now(timezone.utc)
    place_at(now - timedelta(days=30), (basket.id, 1))
    place_at(now - timedelta(days=400), (basket.id, 1))

    assert repos.analytics.sales().totals.orders == 1


def test_analytics_endpoints(client, admin_headers, make_product, order_json):
    product = make_product()
    client.post("/api/orders", json=order_json((product.id, 1)))

    for report in ("sales", "revenue", "products", "inventory", "customers"):
        response = client.get(f"/api/admin/analytics/{report}", headers=admin_headers)
        assert response.status_code == 200, report

    sales = client.get("/api/admin/analytics/sales", params={"interval": "month"}, headers=admin_headers).json()
    assert sales["totals"]["revenue"] == "850.00"


def test_analytics_rejects_inverted_range(client, admin_headers):
    response = client.get(
        "/api/admin/analytics/sales",
        params={"from": "2026-02-01T00:00:00", "to": "2026-01-01T00:00:00"},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_cache_endpoints(client, admin_headers, make_product):
    make_product()
    client.get("/api/products")
    client.get("/api/products")

    stats = client.get("/api/admin/cache/stats", headers=admin_headers).json()
    assert stats["hits"] >= 1
    assert stats["keys"] >= 1

    assert client.post("/api/admin/cache/flush", headers=admin_headers).status_code == 200
    assert client.get("/api/admin/cache/stats", headers=admin_headers).json()["keys"] == 0
