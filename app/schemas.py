"""Pydantic schemas for HTTP API requests and responses."""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.order import Order, OrderItem
from domain.report import Statistics
from domain.workspace import Customer


class ProcessOrderRequest(BaseModel):
    """Body of the stateless normalization relay."""
    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = None
    current_items: list[dict[str, Any]] = Field(default_factory=list, alias="currentItems")


class ProcessOrderResponse(BaseModel):
    items: list[Any]


class CreateCustomerRequest(BaseModel):
    name: str


class CustomerResponse(BaseModel):
    id: str
    name: str

    @classmethod
    def from_domain(cls, customer: Customer) -> "CustomerResponse":
        return cls(id=customer.customer_id, name=customer.name)


class StartDraftRequest(BaseModel):
    customer_id: str = Field(..., min_length=1)


class EditItemRequest(BaseModel):
    field: Literal["name", "quantity", "unit", "price"]
    value: Any = None


class NormalizeRequest(BaseModel):
    text: str


class OrderItemResponse(BaseModel):
    name: str
    quantity: Optional[float]
    unit: str
    price: Optional[float]
    amount: float

    @classmethod
    def from_domain(cls, item: OrderItem) -> "OrderItemResponse":
        return cls(
            name=item.name,
            quantity=item.quantity,
            unit=item.unit,
            price=item.price,
            amount=item.total(),
        )


class OrderResponse(BaseModel):
    """Response for order and draft endpoints."""
    id: str
    date: datetime
    customer_id: str
    items: list[OrderItemResponse]
    grand_total: float

    @classmethod
    def from_domain(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.order_id,
            date=order.created_at,
            customer_id=order.customer_id,
            items=[OrderItemResponse.from_domain(item) for item in order.items],
            grand_total=order.grand_total,
        )


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    total: float


class StatisticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    today_orders: int
    today_revenue: float
    month_orders: int
    month_revenue: float
    total_customers: int
    total_orders: int

    @classmethod
    def from_domain(cls, stats: Statistics) -> "StatisticsResponse":
        return cls.model_validate(stats)
