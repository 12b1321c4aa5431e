"""
Order data models for the Order Service.
"""

from typing import List, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    """Order lifecycle states driven by this service.

    Other terminal statuses may be written by downstream systems; the
    `status` field on `Order` is therefore a plain string.
    """
    PENDING = "Pending"
    CANCELLED = "Cancelled"


@dataclass
class User:
    """Registered account."""
    user_id: int
    username: str
    password_hash: str


@dataclass
class Order:
    """Delivery order.

    Derived commercial fields are computed once by the engine at creation
    time and persisted as-is.
    """
    consignment_id: str
    user_id: int
    recipient_name: str
    recipient_phone: str
    recipient_address: str
    recipient_city: int = 0
    recipient_zone: int = 0
    recipient_area: int = 0
    merchant_order_id: str = ""
    store_id: int = 0
    description: str = ""
    instruction: str = ""
    delivery_type: int = 0
    item_type: int = 0
    item_quantity: int = 0
    item_weight: float = 0.0
    amount_to_collect: float = 0.0
    delivery_fee: float = 0.0
    delivery_charge: float = 0.0
    cod_fee: float = 0.0
    total_fee: float = 0.0
    order_amount: float = 0.0
    cod_amount: float = 0.0
    promo_discount: float = 0.0
    discount: float = 0.0
    store_name: str = ""
    store_contact_phone: str = ""
    order_type: str = ""
    order_type_id: int = 0
    status: str = OrderStatus.PENDING.value
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class OrderPage(BaseModel):
    """Cached listing payload: one page of orders plus the owner's total."""
    orders: List[Order] = Field(default_factory=list)
    total: int = 0


class CreateOrderRequest(BaseModel):
    """Request model for order creation.

    Fields default to empty values so that presence checks happen in the
    engine with its own error messages.
    """
    store_id: int = Field(0, description="Merchant store ID")
    merchant_order_id: str = Field("", description="Merchant-side order reference")
    recipient_name: str = Field("", description="Recipient name")
    recipient_phone: str = Field("", description="Recipient mobile number")
    recipient_address: str = Field("", description="Recipient address")
    recipient_city: int = Field(0, description="City code")
    recipient_zone: int = Field(0, description="Zone code")
    recipient_area: int = Field(0, description="Area code")
    delivery_type: int = Field(0, description="Delivery type code")
    item_type: int = Field(0, description="Item type code")
    special_instruction: str = Field("", description="Courier instruction")
    item_quantity: int = Field(0, description="Item quantity")
    item_weight: float = Field(0.0, description="Item weight in kilograms")
    amount_to_collect: float = Field(0.0, description="Amount to collect on delivery")
    item_description: str = Field("", description="Item description")


class CreatedOrderData(BaseModel):
    """Summary returned after creating an order."""
    consignment_id: str
    merchant_order_id: str
    order_status: str
    delivery_fee: float


class OrderResponse(BaseModel):
    """Full order representation for listings."""
    order_consignment_id: str
    order_created_at: str
    order_description: str
    merchant_order_id: str
    recipient_name: str
    recipient_address: str
    recipient_phone: str
    order_amount: float
    total_fee: float
    instruction: str
    order_type_id: int
    cod_fee: float
    promo_discount: float
    discount: float
    delivery_fee: float
    order_status: str
    order_type: str
    item_type: int
    store_name: str
    store_contact_phone: str
    cod_amount: float
    delivery_charge: float
    store_id: int
    recipient_city: int
    recipient_zone: int
    recipient_area: int
    delivery_type: int
    item_quantity: int
    item_weight: float
    amount_to_collect: float

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            order_consignment_id=order.consignment_id,
            order_created_at=order.created_at.isoformat(),
            order_description=order.description,
            merchant_order_id=order.merchant_order_id,
            recipient_name=order.recipient_name,
            recipient_address=order.recipient_address,
            recipient_phone=order.recipient_phone,
            order_amount=order.order_amount,
            total_fee=order.total_fee,
            instruction=order.instruction,
            order_type_id=order.order_type_id,
            cod_fee=order.cod_fee,
            promo_discount=order.promo_discount,
            discount=order.discount,
            delivery_fee=order.delivery_fee,
            order_status=order.status,
            order_type=order.order_type,
            item_type=order.item_type,
            store_name=order.store_name,
            store_contact_phone=order.store_contact_phone,
            cod_amount=order.cod_amount,
            delivery_charge=order.delivery_charge,
            store_id=order.store_id,
            recipient_city=order.recipient_city,
            recipient_zone=order.recipient_zone,
            recipient_area=order.recipient_area,
            delivery_type=order.delivery_type,
            item_quantity=order.item_quantity,
            item_weight=order.item_weight,
            amount_to_collect=order.amount_to_collect,
        )


class OrdersData(BaseModel):
    """Paginated listing payload."""
    orders: List[OrderResponse]
    total: int
    current_page: int
    per_page: int
    total_in_page: int
    last_page: int


class ApiResponse(BaseModel):
    """Envelope wrapping every reply."""
    message: str
    type: str = "success"
    code: int = 200
    data: Optional[dict] = None
