from __future__ import annotations

import json
import time
from typing import Callable, Optional, Protocol

from domain.order import Order
from domain.workspace import Customer, WorkspaceState
from infrastructure.logging import get_logger
from infrastructure.metrics import metrics

logger = get_logger("order-entry")

# Bump when the blob layout changes so older snapshots are never read back.
STATE_VERSION = "v1"
ORDERS_KEY = f"orders_{STATE_VERSION}"
CUSTOMERS_KEY = f"customers_{STATE_VERSION}"


class BlobStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...
    async def put_many(self, blobs: dict[str, str]) -> None: ...


class StateRepository:
    """Stores customers and committed orders as two JSON blobs. The draft is not persisted."""

    def __init__(self, blobs: BlobStore):
        self.blobs = blobs

    async def load(self) -> WorkspaceState:
        raw_orders = await self.blobs.get(ORDERS_KEY)
        raw_customers = await self.blobs.get(CUSTOMERS_KEY)

        state = WorkspaceState.initial()
        if raw_customers is not None:
            customers = tuple(
                Customer(customer_id=str(record["id"]), name=record["name"])
                for record in json.loads(raw_customers)
            )
            state = WorkspaceState(customers=customers)
        if raw_orders is not None:
            orders = tuple(Order.hydrate(record) for record in json.loads(raw_orders))
            state = WorkspaceState(customers=state.customers, orders=orders)
        return state

    async def save(self, state: WorkspaceState) -> None:
        await self.blobs.put_many(
            {
                ORDERS_KEY: json.dumps([order.to_record() for order in state.orders], ensure_ascii=False),
                CUSTOMERS_KEY: json.dumps(
                    [{"id": c.customer_id, "name": c.name} for c in state.customers],
                    ensure_ascii=False,
                ),
            }
        )


class StateFlusher:
    """
    Coalesces state writes.

    Callers mark the state dirty after every change; a write happens once the
    oldest unwritten change is ``delay_s`` old (``flush_if_due``) or right away
    (``flush``, used on shutdown). Only the latest snapshot is written.
    """

    def __init__(
        self,
        repository: StateRepository,
        snapshot: Callable[[], WorkspaceState],
        delay_s: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.repository = repository
        self.snapshot = snapshot
        self.delay_s = delay_s
        self.clock = clock
        self._dirty_since: Optional[float] = None

    @property
    def dirty(self) -> bool:
        return self._dirty_since is not None

    def mark_dirty(self) -> None:
        if self._dirty_since is None:
            self._dirty_since = self.clock()

    def is_due(self) -> bool:
        return self._dirty_since is not None and self.clock() - self._dirty_since >= self.delay_s

    async def flush_if_due(self) -> bool:
        if not self.is_due():
            return False
        return await self.flush()

    async def flush(self) -> bool:
        if self._dirty_since is None:
            return False
        # Clear first so changes made during the write schedule another flush.
        self._dirty_since = None
        state = self.snapshot()
        try:
            await self.repository.save(state)
        except BaseException:
            # Cancelled or failed writes roll back, so the changes stay pending.
            self.mark_dirty()
            raise
        metrics.increment("state_flushes_total")
        logger.debug("State flushed", orders=len(state.orders), customers=len(state.customers))
        return True
