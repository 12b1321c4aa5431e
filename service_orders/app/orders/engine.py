"""
Order lifecycle engine.

Validates and prices new orders, persists them, serves paginated listings
through a cache-aside layer and handles cancellation. Writes invalidate the
owner's cached pages rather than updating them; cache failures are logged and
never fail the call.
"""

import re
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from shared.errors import CacheError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.tracing import add_span_attributes, trace_function

from ..cache.base import CacheBackend
from ..persistence.base import OrderRepository
from .models import CreateOrderRequest, Order, OrderPage, OrderStatus
from . import pricing

PHONE_PATTERN = re.compile(r"01[3-9][0-9]{8}")

CONSIGNMENT_PREFIX = "DA"
CONSIGNMENT_ROUTE = "BNWWN"

DEFAULT_PAGE_SIZE = 10
DEFAULT_CACHE_TTL = 300


def validate_order_request(request: CreateOrderRequest) -> None:
    """Reject a submission on the first violated rule."""
    if (
        not request.recipient_name.strip()
        or not request.recipient_phone.strip()
        or not request.recipient_address.strip()
        or request.item_quantity <= 0
        or request.item_weight <= 0
        or request.amount_to_collect <= 0
    ):
        raise ValidationError("missing required fields")

    if not PHONE_PATTERN.fullmatch(request.recipient_phone):
        raise ValidationError("invalid phone number", details={"recipient_phone": request.recipient_phone})


def generate_consignment_id(now: datetime, nanos: int) -> str:
    """Build `DA<yymmdd>BNWWN<sub-second nanos>`.

    Collisions are not ruled out here; the store's primary key rejects a
    duplicate insert.
    """
    return f"{CONSIGNMENT_PREFIX}{now:%y%m%d}{CONSIGNMENT_ROUTE}{nanos % 1_000_000_000}"


def orders_cache_prefix(user_id: int) -> str:
    # Trailing separator keeps user 1 from matching user 10's keys
    return f"orders:user:{user_id}:"


def orders_cache_key(user_id: int, page: int, limit: int) -> str:
    return f"{orders_cache_prefix(user_id)}page:{page}:limit:{limit}"


def normalize_pagination(limit: int, page: int) -> Tuple[int, int]:
    if limit < 1:
        limit = DEFAULT_PAGE_SIZE
    if page < 1:
        page = 1
    return limit, page


class OrderEngine:
    """Create, list and cancel orders on behalf of an authenticated user."""

    def __init__(
        self,
        repository: OrderRepository,
        cache: Optional[CacheBackend] = None,
        *,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        nanos: Callable[[], int] = time.time_ns,
    ):
        self.repository = repository
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds
        self.metrics = metrics
        self._clock = clock
        self._nanos = nanos
        self.logger = get_logger("orders.engine")

    @trace_function("orders.create")
    async def create_order(self, request: CreateOrderRequest, user_id: int) -> Order:
        """Validate, price and persist a new order owned by `user_id`."""
        with self._timed("create"):
            validate_order_request(request)

            charges = pricing.calculate_charges(
                request.item_weight, request.recipient_city, request.amount_to_collect
            )
            now = self._clock()

            order = Order(
                consignment_id=generate_consignment_id(now, self._nanos()),
                user_id=user_id,
                recipient_name=request.recipient_name,
                recipient_phone=request.recipient_phone,
                recipient_address=request.recipient_address,
                recipient_city=request.recipient_city,
                recipient_zone=request.recipient_zone,
                recipient_area=request.recipient_area,
                merchant_order_id=request.merchant_order_id,
                store_id=request.store_id,
                description=request.item_description,
                instruction=request.special_instruction,
                delivery_type=request.delivery_type,
                item_type=request.item_type,
                item_quantity=request.item_quantity,
                item_weight=request.item_weight,
                amount_to_collect=request.amount_to_collect,
                delivery_fee=charges.delivery_fee,
                delivery_charge=charges.delivery_charge,
                cod_fee=charges.cod_fee,
                total_fee=charges.total_fee,
                order_amount=charges.order_amount,
                cod_amount=charges.cod_amount,
                promo_discount=charges.promo_discount,
                discount=charges.discount,
                store_name=pricing.DEFAULT_STORE_NAME,
                store_contact_phone=pricing.DEFAULT_STORE_CONTACT_PHONE,
                order_type=pricing.DEFAULT_ORDER_TYPE,
                order_type_id=pricing.DEFAULT_ORDER_TYPE_ID,
                status=OrderStatus.PENDING.value,
                created_at=now,
            )

            await self.repository.create_order(order)
            add_span_attributes(user_id=user_id, consignment_id=order.consignment_id)

            self.logger.info(
                "Order created",
                consignment_id=order.consignment_id,
                delivery_fee=order.delivery_fee,
                total_fee=order.total_fee
            )
            self._record_event("order_created")

            await self._invalidate_user_pages(user_id)
            return order

    @trace_function("orders.list")
    async def list_orders(self, user_id: int, limit: int, page: int) -> Tuple[List[Order], int]:
        """Return one page of the user's orders, newest first, and their total."""
        with self._timed("list"):
            limit, page = normalize_pagination(limit, page)
            add_span_attributes(user_id=user_id, page=page, limit=limit)
            cache_key = orders_cache_key(user_id, page, limit)

            cached = await self._read_cached_page(cache_key)
            if cached is not None:
                return cached.orders, cached.total

            orders, total = await self.repository.list_orders(user_id, limit, page)

            await self._write_cached_page(cache_key, OrderPage(orders=orders, total=total))
            return orders, total

    @trace_function("orders.cancel")
    async def cancel_order(self, consignment_id: str, user_id: int) -> None:
        """Move a pending order owned by `user_id` to Cancelled."""
        with self._timed("cancel"):
            add_span_attributes(user_id=user_id, consignment_id=consignment_id)
            await self.repository.cancel_order(consignment_id, user_id)

            self.logger.info("Order cancelled", consignment_id=consignment_id)
            self._record_event("order_cancelled")

            await self._invalidate_user_pages(user_id)

    async def _read_cached_page(self, cache_key: str) -> Optional[OrderPage]:
        if self.cache is None:
            return None

        try:
            payload = await self.cache.get(cache_key)
        except CacheError as e:
            self.logger.warning("Cache read failed", cache_key=cache_key, error=str(e))
            self._count("cache_lookups_total", result="error")
            return None

        if payload is None:
            self._count("cache_lookups_total", result="miss")
            return None

        try:
            page = OrderPage.model_validate_json(payload)
        except ValueError as e:
            self.logger.warning("Discarding undecodable cache entry", cache_key=cache_key, error=str(e))
            self._count("cache_lookups_total", result="corrupt")
            return None

        self.logger.debug("Cache hit for order page", cache_key=cache_key)
        self._count("cache_lookups_total", result="hit")
        return page

    async def _write_cached_page(self, cache_key: str, page: OrderPage) -> None:
        if self.cache is None:
            return

        try:
            await self.cache.set(cache_key, page.model_dump_json().encode("utf-8"), self.cache_ttl_seconds)
        except CacheError as e:
            self.logger.warning("Failed to cache order page", cache_key=cache_key, error=str(e))
            self._count("cache_failures_total", operation="set")

    async def _invalidate_user_pages(self, user_id: int) -> None:
        if self.cache is None:
            return

        prefix = orders_cache_prefix(user_id)
        try:
            removed = await self.cache.delete_by_prefix(prefix)
        except CacheError as e:
            # The write is already committed; a stale page lives at most one TTL
            self.logger.warning("Failed to invalidate cached order pages", prefix=prefix, error=str(e))
            self._count("cache_failures_total", operation="invalidate")
            return

        self.logger.debug("Invalidated cached order pages", prefix=prefix, count=removed)

    @contextmanager
    def _timed(self, operation: str):
        started = time.perf_counter()
        try:
            yield
        finally:
            if self.metrics is not None:
                self.metrics.observe_histogram(
                    "order_operation_duration_seconds",
                    time.perf_counter() - started,
                    operation=operation
                )

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, **labels)

    def _record_event(self, event_type: str) -> None:
        if self.metrics is not None:
            self.metrics.record_business_event(event_type)
