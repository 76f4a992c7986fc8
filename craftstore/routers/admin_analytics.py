import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from craftstore.core.cache import CacheService
from craftstore.core.errors import ValidationError
from craftstore.dependencies import get_analytics, get_cache, get_products, require_admin
from craftstore.repositories.analytics import AnalyticsRepository, as_utc
from craftstore.repositories.products import ProductRepository
from craftstore.schemas import (
    CacheStats,
    CustomerReport,
    InventoryReport,
    Interval,
    Message,
    ProductPerformanceRow,
    ProductStats,
    RevenueReport,
    SalesReport,
    UserOut,
)

router = APIRouter(prefix="/api/admin", tags=["Admin"], dependencies=[Depends(require_admin)])

logger = logging.getLogger("craftstore.admin")


def date_range(
    start: Optional[datetime] = Query(None, alias="from"),
    end: Optional[datetime] = Query(None, alias="to"),
):
    start = as_utc(start) if start else None
    end = as_utc(end) if end else None
    if start and end and start > end:
        raise ValidationError("'from' must not be after 'to'")
    return start, end


@router.get("/stats", response_model=ProductStats)
def product_stats(products: ProductRepository = Depends(get_products)):
    return products.product_stats()


@router.get("/analytics/sales", response_model=SalesReport)
def sales_report(
    window=Depends(date_range),
    interval: Interval = Query("day"),
    analytics: AnalyticsRepository = Depends(get_analytics),
):
    return analytics.sales(*window, interval=interval)


@router.get("/analytics/revenue", response_model=RevenueReport)
def revenue_report(
    window=Depends(date_range),
    group_by: Interval = Query("month", alias="groupBy"),
    analytics: AnalyticsRepository = Depends(get_analytics),
):
    return analytics.revenue(*window, group_by=group_by)


@router.get("/analytics/products", response_model=List[ProductPerformanceRow])
def product_performance(
    window=Depends(date_range),
    limit: int = Query(10, ge=1, le=100),
    analytics: AnalyticsRepository = Depends(get_analytics),
):
    return analytics.product_performance(*window, limit=limit)


@router.get("/analytics/inventory", response_model=InventoryReport)
def inventory_report(analytics: AnalyticsRepository = Depends(get_analytics)):
    return analytics.inventory()


@router.get("/analytics/customers", response_model=CustomerReport)
def customer_report(
    window=Depends(date_range),
    limit: int = Query(10, ge=1, le=100),
    analytics: AnalyticsRepository = Depends(get_analytics),
):
    return analytics.customers(*window, limit=limit)


@router.get("/cache/stats", response_model=CacheStats)
def cache_stats(cache: CacheService = Depends(get_cache)):
    return cache.stats()


@router.post("/cache/flush", response_model=Message)
def flush_cache(admin: UserOut = Depends(require_admin), cache: CacheService = Depends(get_cache)):
    cache.flush()
    logger.info("admin_cache_flushed", extra={"admin_id": admin.id})
    return Message(message="Cache flushed")
