from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import sessionmaker

from craftstore.core.cache import CacheService
from craftstore.core.errors import ForbiddenError, UnauthorizedError
from craftstore.core.rate_limit import RateLimiter
from craftstore.core.security import decode_token
from craftstore.db.models import UserRole
from craftstore.repositories.analytics import AnalyticsRepository
from craftstore.repositories.categories import CategoryRepository
from craftstore.repositories.orders import OrderRepository
from craftstore.repositories.products import ProductRepository
from craftstore.repositories.users import UserRepository
from craftstore.repositories.wishlists import WishlistRepository
from craftstore.schemas import UserOut

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Repositories:
    products: ProductRepository
    orders: OrderRepository
    analytics: AnalyticsRepository
    categories: CategoryRepository
    users: UserRepository
    wishlists: WishlistRepository

    @classmethod
    def build(cls, sessions: sessionmaker, cache: CacheService) -> "Repositories":
        return cls(
            products=ProductRepository(sessions, cache),
            orders=OrderRepository(sessions, cache),
            analytics=AnalyticsRepository(sessions, cache),
            categories=CategoryRepository(sessions, cache),
            users=UserRepository(sessions, cache),
            wishlists=WishlistRepository(sessions, cache),
        )


def _repositories(request: Request) -> Repositories:
    return request.app.state.repositories


def get_products(request: Request) -> ProductRepository:
    return _repositories(request).products


def get_orders(request: Request) -> OrderRepository:
    return _repositories(request).orders


def get_analytics(request: Request) -> AnalyticsRepository:
    return _repositories(request).analytics


def get_categories(request: Request) -> CategoryRepository:
    return _repositories(request).categories


def get_users(request: Request) -> UserRepository:
    return _repositories(request).users


def get_wishlists(request: Request) -> WishlistRepository:
    return _repositories(request).wishlists


def get_cache(request: Request) -> CacheService:
    return request.app.state.cache


def get_login_limiter(request: Request) -> RateLimiter:
    return request.app.state.login_limiter


def client_identifier(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    users: UserRepository = Depends(get_users),
) -> Optional[UserOut]:
    """Resolve the bearer token if one was sent; anonymous requests yield None."""
    if credentials is None:
        return None
    payload = decode_token(credentials.credentials)
    if payload is None:
        raise UnauthorizedError("Invalid or expired token")
    user = users.get(payload.id)
    if user is None:
        raise UnauthorizedError("Invalid or expired token")
    return user


def get_current_user(user: Optional[UserOut] = Depends(get_optional_user)) -> UserOut:
    if user is None:
        raise UnauthorizedError("Authentication required")
    return user


def require_admin(user: UserOut = Depends(get_current_user)) -> UserOut:
    if user.role != UserRole.ADMIN:
        raise ForbiddenError("Admin access required")
    return user
