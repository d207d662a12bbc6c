import asyncio
import os
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from app.errors import generic_error_handler, order_entry_error_handler, request_validation_error_handler
from app.printing import render_report_html
from app.schemas import (
    CreateCustomerRequest,
    CustomerResponse,
    EditItemRequest,
    NormalizeRequest,
    OrderListResponse,
    OrderResponse,
    ProcessOrderRequest,
    ProcessOrderResponse,
    StartDraftRequest,
    StatisticsResponse,
)
from application.normalizer import OrderNormalizer
from application.persistence import StateFlusher, StateRepository
from application.use_cases import OrderDesk
from domain.errors import EmptyInput, MalformedResponse, OrderEntryError, UpstreamError
from domain.report import date_range, orders_between, orders_on, orders_total, report_title, statistics
from infrastructure import db
from infrastructure.config import Settings
from infrastructure.llm_client import ChatCompletionClient, build_llm_client
from infrastructure.logging import configure_level, get_logger
from infrastructure.metrics import metrics

logger = get_logger("order-entry")


# Initialized at startup
settings: Settings | None = None
engine: AsyncEngine | None = None
llm_client: ChatCompletionClient | None = None
normalizer: OrderNormalizer | None = None
desk: OrderDesk | None = None
flusher: StateFlusher | None = None
background_tasks: set[asyncio.Task] = set()


def get_settings() -> Settings:
    return settings if settings is not None else Settings.from_env()


def local_now() -> datetime:
    return datetime.now(get_settings().timezone)


def local_today() -> date:
    return local_now().date()


async def run_state_flusher(poll_interval: float = 0.1):
    """Background task: write the state once pending changes are old enough."""
    while True:
        try:
            if flusher:
                await flusher.flush_if_due()
        except Exception as e:
            logger.error(f"State flush failed: {e}", exc_info=True)
        await asyncio.sleep(poll_interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load state, start the flusher and write pending changes on shutdown."""
    global settings, engine, llm_client, normalizer, desk, flusher, background_tasks

    settings = Settings.from_env()
    configure_level(settings.log_level)

    engine = db.get_engine(settings.db_dsn)
    await db.create_schema(engine)

    repository = StateRepository(db.BlobStore(engine))
    state = await repository.load()

    llm_client, runtime = build_llm_client(settings)
    normalizer = OrderNormalizer(llm_client) if llm_client else None
    logger.info("Language model client", **runtime)

    desk = OrderDesk(state=state, normalizer=normalizer)
    flusher = StateFlusher(repository, snapshot=lambda: desk.state, delay_s=settings.flush_delay_s)
    desk.sink = flusher

    task = asyncio.create_task(run_state_flusher())
    background_tasks.add(task)

    logger.info("Order entry service started", orders=len(state.orders), customers=len(state.customers))

    yield

    for task in background_tasks:
        task.cancel()
    await asyncio.gather(*background_tasks, return_exceptions=True)
    background_tasks.clear()

    try:
        await flusher.flush()
    finally:
        if llm_client:
            await llm_client.aclose()
        if engine:
            await engine.dispose()


app = FastAPI(title="Order Entry Service", version="0.1.0", lifespan=lifespan)

# Register error handlers
app.add_exception_handler(OrderEntryError, order_entry_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(Exception, generic_error_handler)


def get_desk() -> OrderDesk:
    if desk is None:
        raise HTTPException(status_code=500, detail="State not initialized")
    return desk


@app.get("/health")
async def health() -> dict:
    return {"service": get_settings().service_name, "status": "ok", "llm": normalizer is not None}


@app.get("/metrics", response_class=PlainTextResponse)
async def get_metrics() -> str:
    return metrics.get_prometheus_text()


@app.post("/api/process-order", response_model=ProcessOrderResponse)
async def process_order(request: ProcessOrderRequest):
    """Stateless relay: normalize text against the caller's item list."""
    if not (request.text or "").strip():
        return JSONResponse(status_code=400, content={"error": "Please provide input text"})
    if normalizer is None:
        return JSONResponse(status_code=503, content={"error": "No language model is configured"})
    try:
        items = await normalizer.normalize(request.current_items, request.text)
    except EmptyInput:
        return JSONResponse(status_code=400, content={"error": "Please provide input text"})
    except (UpstreamError, MalformedResponse) as exc:
        logger.error("Process order failed", error=str(exc), error_type=type(exc).__name__)
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return ProcessOrderResponse(items=items)


@app.get("/customers", response_model=list[CustomerResponse])
async def list_customers() -> list[CustomerResponse]:
    return [CustomerResponse.from_domain(c) for c in get_desk().state.customers]


@app.post("/customers", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(request: CreateCustomerRequest) -> CustomerResponse:
    return CustomerResponse.from_domain(get_desk().add_customer(request.name))


@app.delete("/customers/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer(customer_id: str) -> None:
    """Delete a customer and every order recorded for it."""
    get_desk().delete_customer(customer_id)


@app.get("/draft", response_model=OrderResponse)
async def get_draft() -> OrderResponse:
    return OrderResponse.from_domain(get_desk().state.require_draft())


@app.post("/draft", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def start_draft(request: StartDraftRequest) -> OrderResponse:
    return OrderResponse.from_domain(get_desk().start_draft(request.customer_id))


@app.delete("/draft", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_draft() -> None:
    get_desk().cancel_draft()


@app.post("/draft/items", response_model=OrderResponse)
async def add_row() -> OrderResponse:
    return OrderResponse.from_domain(get_desk().add_row())


@app.patch("/draft/items/{index}", response_model=OrderResponse)
async def edit_item(index: int, request: EditItemRequest) -> OrderResponse:
    return OrderResponse.from_domain(get_desk().edit_item(index, request.field, request.value))


@app.delete("/draft/items/{index}", response_model=OrderResponse)
async def delete_row(index: int) -> OrderResponse:
    return OrderResponse.from_domain(get_desk().delete_row(index))


@app.post("/draft/normalize", response_model=OrderResponse)
async def normalize_draft(request: NormalizeRequest) -> OrderResponse:
    draft = await get_desk().normalize_draft(request.text)
    return OrderResponse.from_domain(draft)


@app.post("/draft/save", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def save_draft() -> OrderResponse:
    return OrderResponse.from_domain(get_desk().save_draft())


@app.get("/orders", response_model=OrderListResponse)
async def list_orders(
    start: Optional[date] = None,
    end: Optional[date] = None,
    customer_id: Optional[str] = None,
    period: Optional[str] = None,
) -> OrderListResponse:
    """All committed orders, or those in a date range (explicit or week/month/year)."""
    orders = list(get_desk().state.orders)
    if period is not None:
        start, end = date_range(period, local_today())
    if start is not None or end is not None:
        orders = orders_between(orders, start, end, customer_id, get_settings().timezone)
    elif customer_id is not None:
        orders = [order for order in orders if order.customer_id == customer_id]
    return OrderListResponse(
        orders=[OrderResponse.from_domain(order) for order in orders],
        total=orders_total(orders),
    )


@app.get("/orders/today", response_model=OrderListResponse)
async def todays_orders() -> OrderListResponse:
    orders = orders_on(get_desk().state.orders, local_today(), get_settings().timezone)
    return OrderListResponse(
        orders=[OrderResponse.from_domain(order) for order in orders],
        total=orders_total(orders),
    )


@app.get("/stats", response_model=StatisticsResponse)
async def get_statistics() -> StatisticsResponse:
    return StatisticsResponse.from_domain(statistics(get_desk().state, local_today(), get_settings().timezone))


@app.get("/reports/print", response_class=HTMLResponse)
async def print_report(
    start: Optional[date] = None,
    end: Optional[date] = None,
    customer_id: Optional[str] = None,
) -> str:
    """Printable report; without dates it covers today's orders."""
    state = get_desk().state
    tz = get_settings().timezone
    now = local_now()
    today = now.date()
    if start is None and end is None:
        orders = orders_on(state.orders, today, tz)
        title = f"今日单据 ({today.isoformat()})"
    else:
        orders = orders_between(state.orders, start, end, customer_id, tz)
        title = report_title(state, start, end, customer_id)
    return render_report_html(title, orders, state, printed_at=now, tz=tz)


def run() -> None:
    import uvicorn

    uvicorn.run("app.main:app", host=os.getenv("APP__HOST", "127.0.0.1"), port=int(os.getenv("APP__PORT", "8000")))
