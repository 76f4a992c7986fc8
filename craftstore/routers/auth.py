import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status

from craftstore.core.errors import UnauthorizedError
from craftstore.core.rate_limit import RateLimiter
from craftstore.core.security import issue_token
from craftstore.db.models import UserRole
from craftstore.dependencies import (
    client_identifier,
    get_current_user,
    get_login_limiter,
    get_orders,
    get_users,
)
from craftstore.repositories.orders import OrderRepository
from craftstore.repositories.users import UserRepository, normalize_email
from craftstore.schemas import AuthResponse, LoginRequest, OrderOut, ProfileUpdate, RegisterRequest, UserOut

router = APIRouter(prefix="/api/auth", tags=["Auth"])

logger = logging.getLogger("craftstore.auth")


def _auth_response(user: UserOut) -> AuthResponse:
    return AuthResponse(token=issue_token(user.id, user.email, user.role.value), user=user)


def _login(
    request: Request, payload: LoginRequest, users: UserRepository, limiter: RateLimiter, role: UserRole
) -> AuthResponse:
    email = normalize_email(payload.email)
    client_id = client_identifier(request)
    limiter_key = f"{role.value}:{client_id}:{email}"
    limiter.check(limiter_key)

    user = users.authenticate(email, payload.password, role=role)
    if user is None:
        logger.warning("login_failed", extra={"email": email, "client": client_id, "role": role.value})
        raise UnauthorizedError("Invalid email or password")

    limiter.reset(limiter_key)
    logger.info("login_success", extra={"user_id": user.id, "client": client_id, "role": role.value})
    return _auth_response(user)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, users: UserRepository = Depends(get_users)):
    user = users.create(payload)
    return _auth_response(user)


@router.post("/login", response_model=AuthResponse)
def admin_login(
    request: Request,
    payload: LoginRequest,
    users: UserRepository = Depends(get_users),
    limiter: RateLimiter = Depends(get_login_limiter),
):
    return _login(request, payload, users, limiter, UserRole.ADMIN)


@router.post("/customer-login", response_model=AuthResponse)
def customer_login(
    request: Request,
    payload: LoginRequest,
    users: UserRepository = Depends(get_users),
    limiter: RateLimiter = Depends(get_login_limiter),
):
    return _login(request, payload, users, limiter, UserRole.CUSTOMER)


@router.get("/me", response_model=UserOut)
def me(user: UserOut = Depends(get_current_user)):
    return user


@router.put("/profile", response_model=UserOut)
def update_profile(
    payload: ProfileUpdate,
    user: UserOut = Depends(get_current_user),
    users: UserRepository = Depends(get_users),
):
    return users.update(user.id, payload)


@router.get("/orders", response_model=List[OrderOut])
def order_history(
    user: UserOut = Depends(get_current_user),
    orders: OrderRepository = Depends(get_orders),
):
    return orders.orders_for_user(user.id)
