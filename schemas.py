"""
Database Schemas for the Clothing Storefront

Define MongoDB collection schemas using Pydantic models.
Each model class name maps to a collection name in lowercase:
- Product -> "product"
- CartLine -> stored in "cart"
- Order -> "order"
- DiscountCode -> "discountcode"
- admin: emails allowed into the admin routes
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

SIZES = ["S", "M", "L", "XL"]
ONE_SIZE = "ONE SIZE"

OrderStatus = Literal["placed", "shipped", "done"]
ORDER_STATUSES = ["placed", "shipped", "done"]


def normalize_stock_by_size(v: Dict[str, int]) -> Dict[str, int]:
    out = {}
    for size, count in v.items():
        key = size.strip().upper()
        if key not in SIZES:
            raise ValueError(f"Unknown size {size!r}")
        if count < 0:
            raise ValueError("Stock cannot be negative")
        out[key] = int(count)
    return out


# Products (inventory)
class Product(BaseModel):
    product_id: int = Field(..., ge=1, description="Catalog number shown to customers")
    name: str
    description: str = ""
    category: str = Field(..., description="Dresses, Tops, Purses, Earrings, ...")
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0, description="Pre-discount price for strike-through display")
    custom_price: Optional[float] = Field(None, ge=0, description="Extra charge for a customized piece")
    customizable: bool = False
    material: str = ""
    tag: str = ""
    images: List[str] = Field(default_factory=list, max_length=3)
    stock: Optional[int] = Field(None, ge=0, description="General counter")
    stock_by_size: Dict[str, int] = Field(default_factory=dict, description="Counts keyed by S/M/L/XL")

    @field_validator("stock_by_size")
    @classmethod
    def _check_sizes(cls, v: Dict[str, int]) -> Dict[str, int]:
        return normalize_stock_by_size(v)


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    custom_price: Optional[float] = Field(None, ge=0)
    customizable: Optional[bool] = None
    material: Optional[str] = None
    tag: Optional[str] = None
    images: Optional[List[str]] = Field(None, max_length=3)
    stock: Optional[int] = Field(None, ge=0)
    stock_by_size: Optional[Dict[str, int]] = None

    @field_validator("stock_by_size")
    @classmethod
    def _check_sizes(cls, v: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
        return None if v is None else normalize_stock_by_size(v)


# Cart
class Customization(BaseModel):
    text: str = Field(..., min_length=1, max_length=200)


class CartLine(BaseModel):
    line_id: str
    product_id: int
    quantity: int = Field(..., ge=1)
    size: str
    is_customized: bool = False
    customization_text: Optional[str] = None
    custom_price: float = 0
    owner_email: Optional[str] = Field(None, description="None for guest cookie carts")
    added_on: Optional[datetime] = None


# Orders
class Customer(BaseModel):
    name: str
    email: str
    phone: str
    address: str
    pincode: str
    state_city: str


class OrderLine(BaseModel):
    product_id: int
    name: str
    size: str
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0)
    line_total: float = Field(..., ge=0)
    is_customized: bool = False
    customization_text: Optional[str] = None
    custom_price: float = 0
    image: Optional[str] = None


class Order(BaseModel):
    items: List[OrderLine]
    customer: Customer
    subtotal: float = Field(..., ge=0)
    discount_code: str = ""
    discount_percent: float = 0
    discount_amount: float = 0
    shipping: float = 0
    tax: float = 0
    total: float = Field(..., ge=0)
    currency: str = "INR"
    payment_id: str
    payment_method: str = "Razorpay"
    payment_status: str = "paid"
    status: OrderStatus = "placed"
    tracking_id: str = ""
    courier_partner: str = ""
    user_email: Optional[str] = None
    buy_now: bool = False


# Discount Codes
class DiscountCode(BaseModel):
    code: str = Field(..., min_length=1)
    percent: float = Field(..., gt=0, le=100)
    active: bool = True
    description: Optional[str] = None

    @field_validator("code")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper()
