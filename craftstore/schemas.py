from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from craftstore.core.text import clean_line, clean_text, slugify
from craftstore.db.models import Lifecycle, OrderStatus, UserRole

SortKey = Literal["newest", "oldest", "price-low-high", "price-high-low"]
# stock is a 32-bit integer column
MAX_STOCK = 2_147_483_647
Interval = Literal["day", "week", "month"]
Line = Annotated[str, AfterValidator(clean_line)]
FreeText = Annotated[str, AfterValidator(clean_text)]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- USERS ---
class UserOut(ApiModel):
    id: str
    email: str
    name: str
    phone: Optional[str] = None
    role: UserRole
    district: Optional[str] = None
    road: Optional[str] = None
    additional_landmark: Optional[str] = None


class RegisterRequest(ApiModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    name: Line = Field(min_length=1, max_length=160)
    phone: Optional[Line] = Field(default=None, max_length=40)
    district: Optional[Line] = Field(default=None, max_length=120)
    road: Optional[Line] = Field(default=None, max_length=255)
    additional_landmark: Optional[Line] = Field(default=None, max_length=255)


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ProfileUpdate(ApiModel):
    name: Optional[Line] = Field(default=None, min_length=1, max_length=160)
    phone: Optional[Line] = Field(default=None, max_length=40)
    district: Optional[Line] = Field(default=None, max_length=120)
    road: Optional[Line] = Field(default=None, max_length=255)
    additional_landmark: Optional[Line] = Field(default=None, max_length=255)


class AuthResponse(ApiModel):
    token: str
    user: UserOut


# --- CATEGORIES ---
class CategoryOut(ApiModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    icon: Optional[str] = None
    lifecycle: Lifecycle
    created_at: datetime
    updated_at: datetime


class CategoryCreate(ApiModel):
    name: Line = Field(min_length=1, max_length=120)
    slug: Optional[str] = Field(default=None, max_length=160)
    description: Optional[FreeText] = None
    icon: Optional[str] = Field(default=None, max_length=64)

    def resolved_slug(self) -> str:
        return slugify(self.slug or self.name)


class CategoryUpdate(ApiModel):
    name: Optional[Line] = Field(default=None, min_length=1, max_length=120)
    slug: Optional[str] = Field(default=None, max_length=160)
    description: Optional[FreeText] = None
    icon: Optional[str] = Field(default=None, max_length=64)
    lifecycle: Optional[Lifecycle] = None

    @field_validator("slug")
    @classmethod
    def normalise_slug(cls, value: Optional[str]) -> Optional[str]:
        return slugify(value) if value else value


# --- PRODUCTS ---
class ProductOut(ApiModel):
    id: str
    name: str
    description: str
    price: Decimal
    image: str
    stock: int
    category_id: Optional[str] = None
    artisan: Optional[str] = None
    lifecycle: Lifecycle
    created_at: datetime
    updated_at: datetime


class ProductCreate(ApiModel):
    name: Line = Field(min_length=1, max_length=200)
    description: FreeText = Field(min_length=1)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    image: str = Field(min_length=1, max_length=500)
    stock: int = Field(default=0, ge=0, le=MAX_STOCK)
    category_id: Optional[str] = None
    artisan: Optional[Line] = Field(default=None, max_length=160)


class ProductUpdate(ApiModel):
    name: Optional[Line] = Field(default=None, min_length=1, max_length=200)
    description: Optional[FreeText] = Field(default=None, min_length=1)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    image: Optional[str] = Field(default=None, min_length=1, max_length=500)
    stock: Optional[int] = Field(default=None, ge=0, le=MAX_STOCK)
    category_id: Optional[str] = None
    artisan: Optional[Line] = Field(default=None, max_length=160)
    lifecycle: Optional[Lifecycle] = None


class ProductFilters(ApiModel):
    category: Optional[str] = None
    in_stock: bool = False
    search: Optional[str] = None
    sort_by: Optional[SortKey] = None

    def cache_params(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "inStock": True if self.in_stock else None,
            "search": self.search,
            "sortBy": self.sort_by,
        }


class ProductPage(ApiModel):
    items: List[ProductOut]
    total: int
    page: int
    limit: int
    total_pages: int


class ProductStats(ApiModel):
    total_products: int
    low_stock: int
    categories: int
    total_value: Decimal


# --- ORDERS ---
class OrderItemIn(ApiModel):
    model_config = ConfigDict(extra="forbid")

    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1, le=1000)


class OrderCreate(ApiModel):
    """Checkout payload. Totals and status are always computed server side."""

    model_config = ConfigDict(extra="forbid")

    customer_name: Line = Field(min_length=1, max_length=160)
    customer_phone: Line = Field(min_length=1, max_length=40)
    customer_email: Optional[EmailStr] = None
    district: Line = Field(min_length=1, max_length=120)
    road: Line = Field(min_length=1, max_length=255)
    additional_landmark: Optional[Line] = Field(default=None, max_length=255)
    special_instructions: Optional[FreeText] = Field(default=None, max_length=2000)
    items: List[OrderItemIn] = Field(min_length=1)


class OrderItemOut(ApiModel):
    id: str
    order_id: str
    product_id: str
    product_name: str
    product_price: Decimal
    quantity: int


class OrderOut(ApiModel):
    id: str
    user_id: Optional[str] = None
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    district: str
    road: str
    additional_landmark: Optional[str] = None
    special_instructions: Optional[str] = None
    total: Decimal
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemOut] = Field(default_factory=list)


class OrderStatusUpdate(ApiModel):
    status: OrderStatus


# --- WISHLIST ---
class WishlistAdd(ApiModel):
    product_id: str = Field(min_length=1)


class WishlistEntryOut(ApiModel):
    id: str
    user_id: str
    product_id: str
    created_at: datetime
    product: Optional[ProductOut] = None


class RemovalResult(ApiModel):
    success: bool


# --- ANALYTICS ---
class SalesPoint(ApiModel):
    period_start: date
    orders: int
    revenue: Decimal


class SalesTotals(ApiModel):
    orders: int
    revenue: Decimal
    items: int


class SalesReport(ApiModel):
    series: List[SalesPoint]
    totals: SalesTotals


class RevenuePoint(ApiModel):
    period_start: date
    revenue: Decimal


class RevenueReport(ApiModel):
    series: List[RevenuePoint]
    total_revenue: Decimal


class ProductPerformanceRow(ApiModel):
    product_id: str
    name: str
    total_sold: int
    revenue: Decimal
    stock: int


class LowStockItem(ApiModel):
    id: str
    name: str
    stock: int


class InventoryReport(ApiModel):
    total_products: int
    low_stock_count: int
    out_of_stock_count: int
    low_stock_items: List[LowStockItem]


class TopCustomer(ApiModel):
    user_id: Optional[str] = None
    name: Optional[str] = None
    phone: str
    orders: int
    spend: Decimal


class CustomerReport(ApiModel):
    total_customers: int
    new_customers: int
    returning_customers: int
    top_customers: List[TopCustomer]


# --- ADMIN TOOLING ---
class ImportReport(ApiModel):
    imported: int
    errors: List[str]


class UploadedImage(ApiModel):
    url: str
    filename: str
    size: int
    content_type: str


class CacheStats(ApiModel):
    keys: int
    hits: int
    misses: int


class Message(ApiModel):
    message: str
