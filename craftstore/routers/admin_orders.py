import logging
from typing import List

from fastapi import APIRouter, Depends

from craftstore.dependencies import get_orders, require_admin
from craftstore.repositories.orders import OrderRepository
from craftstore.schemas import OrderOut, OrderStatusUpdate, UserOut

router = APIRouter(prefix="/api/admin/orders", tags=["Admin"], dependencies=[Depends(require_admin)])

logger = logging.getLogger("craftstore.admin")


@router.get("", response_model=List[OrderOut])
def list_orders(orders: OrderRepository = Depends(get_orders)):
    return orders.list_orders()


@router.put("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    admin: UserOut = Depends(require_admin),
    orders: OrderRepository = Depends(get_orders),
):
    order = orders.update_status(order_id, payload.status)
    logger.info(
        "admin_order_status_changed",
        extra={"order_id": order_id, "status": order.status.value, "admin_id": admin.id},
    )
    return order
