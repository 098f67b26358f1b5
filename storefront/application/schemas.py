from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional
from storefront.domain.models import PaymentStatus, FulfillmentStatus

class CamelModel(BaseModel):
    """Storefront payloads arrive camelCased from the browser."""
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        str_strip_whitespace = True

# Checkout

class CheckoutCustomer(CamelModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("phone")
    @classmethod
    def _blank_phone(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

class CheckoutShipping(CamelModel):
    house_number: str = Field(min_length=1)
    street_name: str = Field(min_length=1)
    building: Optional[str] = None
    region: str = Field(min_length=1)
    province: str = Field(min_length=1)
    city: str = Field(min_length=1)
    barangay: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)

class CheckoutPayment(CamelModel):
    method: str = Field(min_length=1)
    card_name: str = Field(min_length=1)
    card_number: str = Field(min_length=4)

class CheckoutItem(CamelModel):
    product_id: str = Field(min_length=1)
    size: str = Field(min_length=1)
    color: str = Field(min_length=1)
    quantity: int = Field(gt=0, strict=True)

class CheckoutPayload(CamelModel):
    customer: CheckoutCustomer
    shipping: CheckoutShipping
    payment: Optional[CheckoutPayment] = None
    items: list[CheckoutItem] = Field(min_length=1)

class CheckoutResult(CamelModel):
    ok: bool = True
    order_id: str
    order_number: str

# Admin: orders

class OrderItemRead(BaseModel):
    id: int
    product_id: str
    variant_id: str
    name_snapshot: str
    sku_snapshot: str
    price_snapshot: int
    qty: int
    class Config:
        from_attributes = True

class OrderRead(BaseModel):
    id: str
    order_number: str
    customer_id: str
    email: str
    phone: Optional[str] = None
    shipping_address: dict
    payment_details: Optional[dict] = None
    subtotal: int
    shipping_fee: int
    total: int
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    tracking_number: Optional[str] = None
    courier: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    items: list[OrderItemRead]
    class Config:
        from_attributes = True

class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus

class FulfillmentUpdate(BaseModel):
    fulfillment_status: FulfillmentStatus
    tracking_number: Optional[str] = None
    courier: Optional[str] = None

class NotesUpdate(BaseModel):
    notes: str = ""

# Admin: inventory

class VariantStockRead(BaseModel):
    id: str
    product_id: str
    product_title: str
    sku: str
    size: str
    color: str
    stock_qty: int
    low_stock_threshold: int
    is_low_stock: bool
    is_active: bool

class StockAdjustment(BaseModel):
    delta: int
    reason: Optional[str] = None

class StockMovementRead(BaseModel):
    id: int
    variant_id: str
    delta: int
    reason: Optional[str] = None
    actor_admin_id: Optional[str] = None
    created_at: datetime
    class Config:
        from_attributes = True

class StockAdjustmentResult(BaseModel):
    variant_id: str
    stock_qty: int
    movement: StockMovementRead

# Admin: customers

class CustomerRead(BaseModel):
    id: str
    email: str
    name: str
    phone: Optional[str] = None
    created_at: datetime
    class Config:
        from_attributes = True

class CustomerDetail(CustomerRead):
    orders: list[OrderRead] = []

# Cart

class CartLineInput(CamelModel):
    product_id: str = Field(min_length=1)
    size: str = Field(min_length=1)
    color: str = Field(min_length=1)
    quantity: int = Field(default=1, gt=0)

class CartQuantityUpdate(CamelModel):
    product_id: str = Field(min_length=1)
    size: str = Field(min_length=1)
    color: str = Field(min_length=1)
    quantity: int

# Contact

class ContactPayload(CamelModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    message: str = Field(min_length=1)

    @field_validator("phone")
    @classmethod
    def _blank_phone(cls, value: Optional[str]) -> Optional[str]:
        return value or None

class ContactResult(CamelModel):
    ok: bool = True
    message_id: str

class ContactMessageRead(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    message: str
    created_at: datetime
    class Config:
        from_attributes = True
