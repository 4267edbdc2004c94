"""
Database Schemas

MongoDB collection schemas as Pydantic models.
Each Pydantic model represents a collection in your database.
Model name lowercased is the collection name.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from catalog import slugify


class Role(str, Enum):
    customer = "customer"
    admin = "admin"


class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"


class PaymentStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    failed = "failed"


class PaymentMethod(str, Enum):
    online = "online"
    cod = "cod"


class Category(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str = ""
    description: Optional[str] = None

    @model_validator(mode="after")
    def _derive_slug(self):
        if not self.slug:
            self.slug = slugify(self.name)
        return self


class ProductAttributes(BaseModel):
    size: List[str] = Field(default_factory=list)
    color: List[str] = Field(default_factory=list)
    material: Optional[str] = None
    thread_count: Optional[int] = Field(None, ge=0)
    dimensions: Optional[str] = None


class StockInfo(BaseModel):
    available: bool = True
    quantity: int = Field(0, ge=0)


class Review(BaseModel):
    user: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str = ""
    description: str = ""
    short_description: str = ""
    price: float = Field(..., ge=0)
    discounted_price: float = Field(..., ge=0, description="Customer-facing sell price")
    category: str = Field(..., description="Category id")
    sub_category: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    stock: StockInfo = Field(default_factory=StockInfo)
    attributes: ProductAttributes = Field(default_factory=ProductAttributes)
    rating: float = Field(default=0, ge=0, le=5)
    reviews: List[Review] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    is_featured: bool = False

    @model_validator(mode="after")
    def _check_prices_and_slug(self):
        if self.discounted_price > self.price:
            raise ValueError("discounted price cannot be higher than price")
        if not self.slug:
            self.slug = slugify(self.name)
        if not self.short_description:
            self.short_description = self.description[:100]
        return self


class Address(BaseModel):
    id: str
    name: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class User(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="BCrypt hashed password")
    role: Role = Field(Role.customer, description="Role: customer | admin")
    addresses: List[Address] = Field(default_factory=list)
    wishlist: List[str] = Field(default_factory=list, description="Product ids")


class OrderItem(BaseModel):
    product: str
    name: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at the time of ordering")
    size: Optional[str] = None
    color: Optional[str] = None


class ShippingAddress(BaseModel):
    name: str
    street: str
    city: str
    state: str
    zip_code: str
    phone: str


class Order(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    user: str
    items: List[OrderItem]
    shipping_address: ShippingAddress
    subtotal: float
    shipping: float
    total: float
    payment_method: PaymentMethod
    status: OrderStatus = OrderStatus.pending
    payment_status: PaymentStatus = PaymentStatus.pending
    payment_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    note: Optional[str] = None
