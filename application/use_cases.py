from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Protocol, Sequence

from domain.errors import (
    LLMUnavailable,
    MalformedResponse,
    NormalizationInProgress,
    StaleResponse,
    UpstreamError,
)
from domain.order import Order
from domain.workspace import (
    Customer,
    WorkspaceState,
    add_customer,
    add_draft_row,
    apply_normalized,
    cancel_draft,
    delete_customer,
    delete_draft_row,
    edit_draft_item,
    save_draft,
    start_draft,
)
from infrastructure.logging import get_logger
from infrastructure.metrics import metrics

logger = get_logger("order-entry")


class Normalizer(Protocol):
    async def normalize(self, current_items: Sequence[Any], utterance: str) -> List[Any]: ...


class DirtyMarker(Protocol):
    def mark_dirty(self) -> None: ...


class OrderDesk:
    """
    Owns the workspace state and applies the pure reducers to it.

    Only customers and committed orders are persisted, so only changes to
    those mark the state dirty.
    """

    def __init__(
        self,
        state: Optional[WorkspaceState] = None,
        normalizer: Optional[Normalizer] = None,
        sink: Optional[DirtyMarker] = None,
    ):
        self.state = state or WorkspaceState.initial()
        self.normalizer = normalizer
        self.sink = sink
        self.normalizing = False

    def _commit(self, new_state: WorkspaceState) -> None:
        previous = self.state
        self.state = new_state
        persisted_changed = (
            new_state.orders is not previous.orders or new_state.customers is not previous.customers
        )
        if persisted_changed and self.sink is not None:
            self.sink.mark_dirty()

    def add_customer(self, name: str) -> Customer:
        new_state, customer = add_customer(self.state, name)
        self._commit(new_state)
        logger.info("Customer added", customer_id=customer.customer_id)
        return customer

    def delete_customer(self, customer_id: str) -> None:
        before = len(self.state.orders)
        self._commit(delete_customer(self.state, customer_id))
        logger.info(
            "Customer deleted",
            customer_id=customer_id,
            orders_removed=before - len(self.state.orders),
        )

    def start_draft(self, customer_id: str, now: Optional[datetime] = None) -> Order:
        self._commit(start_draft(self.state, customer_id, now=now))
        return self.state.draft

    def cancel_draft(self) -> None:
        self._commit(cancel_draft(self.state))

    def add_row(self) -> Order:
        self._commit(add_draft_row(self.state))
        return self.state.draft

    def edit_item(self, index: int, field_name: str, value: Any) -> Order:
        self._commit(edit_draft_item(self.state, index, field_name, value))
        return self.state.draft

    def delete_row(self, index: int) -> Order:
        self._commit(delete_draft_row(self.state, index))
        return self.state.draft

    def save_draft(self) -> Order:
        new_state, saved = save_draft(self.state)
        self._commit(new_state)
        metrics.increment("orders_saved_total")
        logger.info("Order saved", order_id=saved.order_id, grand_total=saved.grand_total)
        return saved

    async def normalize_draft(self, utterance: str) -> Order:
        """
        Send the utterance and current draft items to the model and replace
        the draft items with the reply. At most one request runs at a time;
        a reply for a draft that has since been replaced is discarded.
        """
        draft = self.state.require_draft()
        if self.normalizer is None:
            raise LLMUnavailable("No language model is configured")
        if self.normalizing:
            raise NormalizationInProgress("A normalization request is already running")

        token = self.state.draft_token
        self.normalizing = True
        metrics.increment("normalizations_total")
        try:
            raw_items = await self.normalizer.normalize(draft.items, utterance)
        except (UpstreamError, MalformedResponse) as exc:
            metrics.increment("normalizations_failed_total")
            logger.warning("Normalization failed", error=str(exc), error_type=type(exc).__name__)
            raise
        finally:
            self.normalizing = False

        if self.state.draft_token != token:
            metrics.increment("normalizations_discarded_total")
            logger.warning("Discarding normalization reply for replaced draft", token=token)
            raise StaleResponse("The order changed while the request was running")

        self._commit(apply_normalized(self.state, raw_items))
        return self.state.draft
