from __future__ import annotations

import math
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Tuple

from domain.errors import NoValidItems, ValidationFailed

EDITABLE_FIELDS = ("name", "quantity", "unit", "price")


def new_id() -> str:
    """Time-ordered opaque identifier: millisecond timestamp plus random suffix."""
    return f"{int(time.time() * 1000):x}{uuid.uuid4().hex[:9]}"


def _as_amount(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed) or parsed < 0:
        return None
    return parsed


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return value.strip()


@dataclass(frozen=True)
class OrderItem:
    name: str = ""
    quantity: Optional[float] = 1
    unit: str = ""
    price: Optional[float] = 0

    def total(self) -> float:
        return (self.quantity or 0) * (self.price or 0)

    @property
    def has_name(self) -> bool:
        return bool(self.name.strip())

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "OrderItem":
        """Coerce a loosely typed record; unusable numbers become None."""
        return cls(
            name=_as_text(record.get("name")),
            quantity=_as_amount(record.get("quantity")),
            unit=_as_text(record.get("unit")),
            price=_as_amount(record.get("price")),
        )

    def to_record(self) -> dict:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "unit": self.unit,
            "price": self.price,
        }


BLANK_ITEM = OrderItem()


@dataclass(frozen=True)
class Order:
    order_id: str
    customer_id: str
    created_at: datetime
    items: Tuple[OrderItem, ...] = field(default_factory=tuple)

    @property
    def grand_total(self) -> float:
        return sum(item.total() for item in self.items)

    @classmethod
    def start(
        cls,
        customer_id: str,
        order_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "Order":
        """New draft holding one blank row."""
        return cls(
            order_id=order_id or new_id(),
            customer_id=customer_id,
            created_at=now or datetime.now(timezone.utc),
            items=(BLANK_ITEM,),
        )

    @classmethod
    def hydrate(cls, record: Mapping[str, Any]) -> "Order":
        created = record["date"]
        if isinstance(created, str):
            created = datetime.fromisoformat(created.replace("Z", "+00:00"))
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        # grandTotal in the record is ignored; it is always derived from items
        return cls(
            order_id=str(record["id"]),
            customer_id=str(record["customerId"]),
            created_at=created,
            items=tuple(OrderItem.from_record(item) for item in record.get("items") or []),
        )

    def to_record(self) -> dict:
        return {
            "id": self.order_id,
            "date": self.created_at.isoformat(),
            "customerId": self.customer_id,
            "items": [item.to_record() for item in self.items],
            "grandTotal": self.grand_total,
        }

    def named_items(self) -> Tuple[OrderItem, ...]:
        return tuple(item for item in self.items if item.has_name)


def add_row(order: Order) -> Order:
    return replace(order, items=order.items + (BLANK_ITEM,))


def _check_index(order: Order, index: int) -> None:
    if not 0 <= index < len(order.items):
        raise ValidationFailed(f"No item at position {index}")


def edit_item(order: Order, index: int, field_name: str, value: Any) -> Order:
    _check_index(order, index)
    if field_name not in EDITABLE_FIELDS:
        raise ValidationFailed(f"Unknown item field: {field_name}")

    if field_name in ("quantity", "price"):
        parsed = _as_amount(value)
        if parsed is None:
            raise ValidationFailed(f"Item {field_name} must be a non-negative number")
        value = parsed
    elif value is None:
        value = ""
    elif not isinstance(value, str):
        raise ValidationFailed(f"Item {field_name} must be text")

    items = list(order.items)
    items[index] = replace(items[index], **{field_name: value})
    return replace(order, items=tuple(items))


def delete_row(order: Order, index: int) -> Order:
    _check_index(order, index)
    return replace(order, items=order.items[:index] + order.items[index + 1:])


def merge_normalized(order: Order, raw_items: Iterable[Any]) -> Order:
    """
    Replace the order's items with the model's complete list.
    Entries without a usable name are dropped; if none remain the order
    is left untouched and NoValidItems is raised.
    """
    valid = tuple(
        OrderItem.from_record(raw)
        for raw in raw_items
        if isinstance(raw, Mapping) and _as_text(raw.get("name"))
    )
    if not valid:
        raise NoValidItems("No recognizable items in the normalized result")
    return replace(order, items=valid)
