from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional, List

from storefront.db.models import OrderStatus, PaymentMethod, PaymentStatus

# --- products ---
class ProductBase(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = ''
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    image: Optional[str] = None
    sku: Optional[str] = None
class ProductCreate(ProductBase):
    stock: int = Field(default=0, ge=0)
    is_active: bool = True
class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    image: Optional[str] = None
    is_active: Optional[bool] = None
class ProductRead(ProductBase):
    id: int
    stock: int
    is_active: bool
    class Config: from_attributes = True
class RestockReq(BaseModel):
    quantity: int = Field(ge=1)

# --- cart ---
class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)
class CartItemUpdate(BaseModel):
    # zero or negative removes the line
    quantity: int
class CartBulkItem(BaseModel):
    product_id: int
    quantity: int
class CartBulkReq(BaseModel):
    items: List[CartBulkItem]
class CartLineRead(BaseModel):
    line_id: int
    product_id: int
    quantity: int
    price: Decimal
    line_total: Decimal
class CartRead(BaseModel):
    user_id: str
    version: int
    items: List[CartLineRead] = []
    total_items: int
    total_amount: Decimal
    class Config: from_attributes = True

# --- orders ---
class ShippingAddressIn(BaseModel):
    street: str
    city: str
    state: str
    postal_code: str
    country: Optional[str] = None
class CheckoutReq(BaseModel):
    shipping_address: ShippingAddressIn
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY
    notes: Optional[str] = Field(default=None, max_length=500)
class ShippingAddressRead(BaseModel):
    street: str
    city: str
    state: str
    postal_code: str
    country: str
class OrderItemRead(BaseModel):
    product_id: int
    name: str
    price: Decimal
    quantity: int
    image: str
    line_total: Decimal
    class Config: from_attributes = True
class OrderRead(BaseModel):
    id: int
    order_number: str
    user_id: str
    items: List[OrderItemRead] = []
    shipping_address: ShippingAddressRead
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    order_status: OrderStatus
    total_items: int
    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    total_amount: Decimal
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    class Config: from_attributes = True
class StatusUpdateReq(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
class CancelReq(BaseModel):
    reason: Optional[str] = None
class StatusBreakdown(BaseModel):
    status: OrderStatus
    count: int
    total_amount: Decimal
class OrderStatsRead(BaseModel):
    total_orders: int
    total_revenue: Decimal
    status_breakdown: List[StatusBreakdown] = []
    period: dict
