"""Pydantic schemas for store service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from services.store_service.models import (
    NotificationType,
    OrderStatus,
    PaymentMethod,
    VoucherType,
)

# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class OrderItemRequest(BaseModel):
    product_id: uuid.UUID
    quantity: int


class OrderCreateRequest(BaseModel):
    """Place an order (guest or signed-in customer, or staff on behalf of a user)."""

    customer_name: str = Field(..., max_length=255)
    customer_phone: str = Field(..., max_length=50)
    customer_email: Optional[EmailStr] = None
    shipping_address: str
    payment_method: PaymentMethod = PaymentMethod.BANK
    notes: Optional[str] = None
    items: list[OrderItemRequest] = Field(default_factory=list)

    # Either a fresh set of vouchers or an existing voucher usage record
    voucher_ids: list[uuid.UUID] = Field(default_factory=list)
    voucher_usage_id: Optional[uuid.UUID] = None

    # Staff only: place the order for this user
    user_id: Optional[uuid.UUID] = None


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_code: str
    user_id: Optional[uuid.UUID]
    status: OrderStatus
    payment_method: PaymentMethod

    customer_name: str
    customer_phone: str
    customer_email: Optional[str]
    shipping_address: str

    subtotal_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    voucher_usage_id: Optional[uuid.UUID]

    payment_link: Optional[str]
    notes: Optional[str]
    cancellation_reason: Optional[str]

    paid_at: Optional[datetime]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    items: list[OrderItemResponse] = []


class OrderListResponse(BaseModel):
    """Paginated order list."""

    items: list[OrderResponse]
    total: int
    page: int
    page_size: int


class OrderStatusUpdate(BaseModel):
    """Move an order to another status (admin)."""

    status: OrderStatus
    reason: Optional[str] = None


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class OrderNotesUpdate(BaseModel):
    notes: Optional[str] = None


# ============================================================================
# VOUCHER SCHEMAS
# ============================================================================


class VoucherBase(BaseModel):
    code: str = Field(..., max_length=50)
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    type: VoucherType
    value: Decimal
    usage_limit: Optional[int] = Field(None, ge=1)
    can_stack: bool = False
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True


class VoucherCreate(VoucherBase):
    pass


class VoucherUpdate(BaseModel):
    code: Optional[str] = Field(None, max_length=50)
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    type: Optional[VoucherType] = None
    value: Optional[Decimal] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    can_stack: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None


class VoucherResponse(VoucherBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    used_count: int
    created_at: datetime
    updated_at: datetime


class VoucherUsageCreate(BaseModel):
    voucher_ids: list[uuid.UUID] = Field(..., min_length=1)
    subtotal: Decimal = Field(..., ge=0)


class VoucherUsageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    voucher_ids: list[uuid.UUID]
    discount_amount: Decimal
    base_amount: Decimal
    created_at: datetime


# ============================================================================
# NOTIFICATION SCHEMAS
# ============================================================================


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: NotificationType
    content: str
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    total: int
    page: int
    page_size: int
