from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable, Optional, Tuple

from domain.errors import NoActiveDraft, UnknownCustomer, ValidationFailed
from domain.order import Order, add_row, delete_row, edit_item, merge_normalized, new_id

DEFAULT_CUSTOMER_NAME = "默认厂家"


@dataclass(frozen=True)
class Customer:
    customer_id: str
    name: str

    @classmethod
    def create(cls, name: str, customer_id: Optional[str] = None) -> "Customer":
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationFailed("Customer name must not be empty")
        return cls(customer_id=customer_id or new_id(), name=cleaned)


@dataclass(frozen=True)
class WorkspaceState:
    """Everything the user works with: customers, saved orders and one draft."""

    customers: Tuple[Customer, ...] = field(default_factory=tuple)
    orders: Tuple[Order, ...] = field(default_factory=tuple)
    draft: Optional[Order] = None
    # bumped whenever the draft slot is replaced
    draft_token: int = 0

    @classmethod
    def initial(cls) -> "WorkspaceState":
        return cls(customers=(Customer(customer_id="1", name=DEFAULT_CUSTOMER_NAME),))

    def find_customer(self, customer_id: str) -> Optional[Customer]:
        for customer in self.customers:
            if customer.customer_id == customer_id:
                return customer
        return None

    def require_draft(self) -> Order:
        if self.draft is None:
            raise NoActiveDraft("Start a new order first")
        return self.draft


def _with_draft(state: WorkspaceState, draft: Optional[Order]) -> WorkspaceState:
    return replace(state, draft=draft, draft_token=state.draft_token + 1)


def add_customer(state: WorkspaceState, name: str) -> Tuple[WorkspaceState, Customer]:
    customer = Customer.create(name)
    return replace(state, customers=state.customers + (customer,)), customer


def delete_customer(state: WorkspaceState, customer_id: str) -> WorkspaceState:
    """Hard delete a customer together with every order that references it."""
    if state.find_customer(customer_id) is None:
        raise UnknownCustomer(f"Customer {customer_id} not found")
    next_state = replace(
        state,
        customers=tuple(c for c in state.customers if c.customer_id != customer_id),
        orders=tuple(o for o in state.orders if o.customer_id != customer_id),
    )
    if state.draft is not None and state.draft.customer_id == customer_id:
        next_state = _with_draft(next_state, None)
    return next_state


def start_draft(
    state: WorkspaceState, customer_id: str, now: Optional[datetime] = None
) -> WorkspaceState:
    if not state.customers:
        raise ValidationFailed("Add a customer before starting an order")
    if state.find_customer(customer_id) is None:
        raise UnknownCustomer(f"Customer {customer_id} not found")
    return _with_draft(state, Order.start(customer_id=customer_id, now=now))


def cancel_draft(state: WorkspaceState) -> WorkspaceState:
    return _with_draft(state, None)


def save_draft(state: WorkspaceState) -> Tuple[WorkspaceState, Order]:
    draft = state.require_draft()
    if not draft.customer_id or state.find_customer(draft.customer_id) is None:
        raise ValidationFailed("Select a customer before saving")
    named = draft.named_items()
    if not named:
        raise ValidationFailed("Add at least one item with a name")

    saved = replace(draft, items=named)
    next_state = _with_draft(replace(state, orders=state.orders + (saved,)), None)
    return next_state, saved


def add_draft_row(state: WorkspaceState) -> WorkspaceState:
    return replace(state, draft=add_row(state.require_draft()))


def edit_draft_item(state: WorkspaceState, index: int, field_name: str, value: Any) -> WorkspaceState:
    return replace(state, draft=edit_item(state.require_draft(), index, field_name, value))


def delete_draft_row(state: WorkspaceState, index: int) -> WorkspaceState:
    return replace(state, draft=delete_row(state.require_draft(), index))


def apply_normalized(state: WorkspaceState, raw_items: Iterable[Any]) -> WorkspaceState:
    return replace(state, draft=merge_normalized(state.require_draft(), raw_items))
