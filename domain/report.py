"""Order history queries used by the report and dashboard endpoints."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta, timezone, tzinfo
from typing import Iterable, List, Optional, Tuple

from domain.errors import ValidationFailed
from domain.order import Order
from domain.workspace import WorkspaceState

RANGE_KINDS = ("week", "month", "year")


@dataclass(frozen=True)
class Statistics:
    today_orders: int
    today_revenue: float
    month_orders: int
    month_revenue: float
    total_customers: int
    total_orders: int


def orders_total(orders: Iterable[Order]) -> float:
    return sum(order.grand_total for order in orders)


def local_date(order: Order, tz: tzinfo = timezone.utc) -> date:
    return order.created_at.astimezone(tz).date()


def orders_on(orders: Iterable[Order], day: date, tz: tzinfo = timezone.utc) -> List[Order]:
    return [order for order in orders if local_date(order, tz) == day]


def orders_between(
    orders: Iterable[Order],
    start: Optional[date],
    end: Optional[date],
    customer_id: Optional[str] = None,
    tz: tzinfo = timezone.utc,
) -> List[Order]:
    """Orders created within [start, end] (calendar dates in ``tz``), optionally for one customer."""
    if start is None or end is None:
        raise ValidationFailed("Both start and end dates are required")
    selected = [order for order in orders if start <= local_date(order, tz) <= end]
    if customer_id is not None:
        selected = [order for order in selected if order.customer_id == customer_id]
    return selected


def date_range(kind: str, today: date) -> Tuple[date, date]:
    if kind == "week":
        return today - timedelta(days=today.weekday()), today
    if kind == "month":
        return today.replace(day=1), today
    if kind == "year":
        return today.replace(month=1, day=1), today
    raise ValidationFailed(f"Unknown range: {kind}")


def statistics(state: WorkspaceState, today: date, tz: tzinfo = timezone.utc) -> Statistics:
    todays = orders_on(state.orders, today, tz)
    this_month = [
        order
        for order in state.orders
        if local_date(order, tz).replace(day=1) == today.replace(day=1)
    ]
    return Statistics(
        today_orders=len(todays),
        today_revenue=orders_total(todays),
        month_orders=len(this_month),
        month_revenue=orders_total(this_month),
        total_customers=len(state.customers),
        total_orders=len(state.orders),
    )


def report_title(state: WorkspaceState, start: date, end: date, customer_id: Optional[str]) -> str:
    if customer_id is None:
        label = "所有厂家"
    else:
        customer = state.find_customer(customer_id)
        label = customer.name if customer else "未知厂家"
    return f"{label} 订单报表 ({start.isoformat()} 至 {end.isoformat()})"
