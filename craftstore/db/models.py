import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Lifecycle(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def can_become(self, target: "OrderStatus") -> bool:
        return target is self or target in ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def _enum_column(enum_cls, default):
    return Column(
        Enum(enum_cls, native_enum=False, length=16, values_callable=lambda members: [m.value for m in members]),
        nullable=False,
        default=default,
    )


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(160), nullable=False)
    phone = Column(String(40), nullable=True)
    role = _enum_column(UserRole, UserRole.CUSTOMER)
    district = Column(String(120), nullable=True)
    road = Column(String(255), nullable=True)
    additional_landmark = Column(String(255), nullable=True)

    orders = relationship("Order", back_populates="user")


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(120), nullable=False)
    slug = Column(String(160), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    icon = Column(String(64), nullable=True)
    lifecycle = _enum_column(Lifecycle, Lifecycle.ACTIVE)

    products = relationship("Product", back_populates="category")


class Product(Base, TimestampMixin):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        Index("ix_products_category_lifecycle", "category_id", "lifecycle"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    image = Column(String(500), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    artisan = Column(String(160), nullable=True)
    lifecycle = _enum_column(Lifecycle, Lifecycle.ACTIVE)

    category = relationship("Category", back_populates="products")


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    customer_name = Column(String(160), nullable=False)
    customer_phone = Column(String(40), nullable=False, index=True)
    customer_email = Column(String(255), nullable=True)
    district = Column(String(120), nullable=False)
    road = Column(String(255), nullable=False)
    additional_landmark = Column(String(255), nullable=True)
    special_instructions = Column(Text, nullable=True)
    total = Column(Numeric(10, 2), nullable=False)
    status = _enum_column(OrderStatus, OrderStatus.PENDING)

    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    product_name = Column(String(200), nullable=False)
    product_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")


class Wishlist(Base):
    __tablename__ = "wishlists"
    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_wishlists_user_product"),)

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    product = relationship("Product")
