from typing import List, Optional

from fastapi import APIRouter, Depends, Path, status

from craftstore.core.email import notify_order_placed
from craftstore.dependencies import get_optional_user, get_orders
from craftstore.repositories.orders import OrderRepository
from craftstore.schemas import OrderCreate, OrderOut, UserOut

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
def place_order(
    payload: OrderCreate,
    user: Optional[UserOut] = Depends(get_optional_user),
    orders: OrderRepository = Depends(get_orders),
):
    """Place a cash-on-delivery order. Signed-in customers get it linked to their account."""
    order = orders.place_order(payload, user_id=user.id if user else None)
    notify_order_placed(order)
    return order


@router.get("/customer/{phone}", response_model=List[OrderOut])
def customer_orders(
    phone: str = Path(..., min_length=3, max_length=40),
    orders: OrderRepository = Depends(get_orders),
):
    return orders.orders_for_customer(phone.strip())
