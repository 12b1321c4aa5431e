"""
Unit tests for the order lifecycle engine.
"""

import itertools
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from prometheus_client import CollectorRegistry
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from shared.errors import (
    CacheError,
    ConflictError,
    NotFoundOrStateError,
    StorageError,
    ValidationError,
)
from shared.metrics import MetricsCollector
from shared.test_helpers import test_data_factory
from service_orders.app.cache import InMemoryCache
from service_orders.app.orders import CreateOrderRequest, Order, OrderEngine, OrderStatus
from service_orders.app.orders.engine import (
    generate_consignment_id,
    orders_cache_key,
    orders_cache_prefix,
    validate_order_request,
)
from service_orders.app.persistence import InMemoryPersistence


def order_request(**overrides) -> CreateOrderRequest:
    return CreateOrderRequest(**test_data_factory.order_payload(**overrides))


class FailingCache:
    """Cache whose every operation fails."""

    async def get(self, key):
        raise CacheError("cache down")

    async def set(self, key, value, ttl_seconds):
        raise CacheError("cache down")

    async def delete_by_prefix(self, prefix):
        raise CacheError("cache down")

    async def ping(self):
        raise CacheError("cache down")


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def metrics():
    return MetricsCollector("orders-test", registry=CollectorRegistry())


@pytest.fixture
def engine(persistence, cache, metrics):
    start = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    ticks = itertools.count()
    nanos = itertools.count(1)
    return OrderEngine(
        persistence,
        cache,
        metrics=metrics,
        clock=lambda: start + timedelta(seconds=next(ticks)),
        nanos=lambda: next(nanos),
    )


class TestValidation:
    """Order submission validation."""

    @pytest.mark.parametrize("field, value", [
        ("recipient_name", ""),
        ("recipient_name", "   "),
        ("recipient_phone", ""),
        ("recipient_address", ""),
        ("item_quantity", 0),
        ("item_weight", 0.0),
        ("item_weight", -1.0),
        ("amount_to_collect", 0.0),
    ])
    def test_missing_required_fields(self, field, value):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_request(order_request(**{field: value}))
        assert exc_info.value.message == "missing required fields"

    @pytest.mark.parametrize("phone", ["01312345678", "01712345678", "01912345678"])
    def test_valid_phone_numbers(self, phone):
        validate_order_request(order_request(recipient_phone=phone))

    @pytest.mark.parametrize("phone", [
        "01212345678",
        "0171234567",
        "017123456789",
        "+8801712345678",
        "01712a45678",
        "11712345678",
    ])
    def test_invalid_phone_numbers(self, phone):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_request(order_request(recipient_phone=phone))
        assert exc_info.value.message == "invalid phone number"

    def test_first_violated_rule_wins(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_request(order_request(recipient_name="", recipient_phone="123"))
        assert exc_info.value.message == "missing required fields"


class TestIdentifiers:
    """Consignment ids and cache keys."""

    def test_consignment_id_format(self):
        now = datetime(2024, 3, 7, tzinfo=timezone.utc)
        assert generate_consignment_id(now, 1_709_769_600_123_456_789) == "DA240307BNWWN123456789"

    def test_cache_key_layout(self):
        assert orders_cache_key(7, 2, 10) == "orders:user:7:page:2:limit:10"
        assert orders_cache_key(7, 2, 10).startswith(orders_cache_prefix(7))

    def test_prefix_does_not_cover_other_users(self):
        assert not orders_cache_key(10, 1, 10).startswith(orders_cache_prefix(1))


class TestCreateOrder:
    """Order creation."""

    @pytest.mark.asyncio
    async def test_create_order_prices_and_persists(self, engine, persistence):
        order = await engine.create_order(order_request(item_weight=2.0, recipient_city=2), user_id=1)

        assert order.consignment_id.startswith("DA240301BNWWN")
        assert order.status == OrderStatus.PENDING.value
        assert order.user_id == 1
        assert order.delivery_fee == pytest.approx(125.0)
        assert order.cod_fee == pytest.approx(12.0)
        assert order.total_fee == pytest.approx(137.0)
        assert order.store_name == "Default Store"
        assert order.order_type_id == 1

        orders, total = await persistence.list_orders(1, 10, 1)
        assert total == 1
        assert orders[0].consignment_id == order.consignment_id

    @pytest.mark.asyncio
    async def test_invalid_order_is_not_persisted(self, engine, persistence):
        with pytest.raises(ValidationError):
            await engine.create_order(order_request(recipient_phone="12345"), user_id=1)

        _, total = await persistence.list_orders(1, 10, 1)
        assert total == 0

    @pytest.mark.asyncio
    async def test_duplicate_consignment_id_conflicts(self, persistence, cache):
        now = datetime(2024, 3, 1, tzinfo=timezone.utc)
        engine = OrderEngine(persistence, cache, clock=lambda: now, nanos=lambda: 42)

        await engine.create_order(order_request(), user_id=1)
        with pytest.raises(ConflictError):
            await engine.create_order(order_request(), user_id=1)

    @pytest.mark.asyncio
    async def test_create_invalidates_cached_pages(self, engine, cache):
        await engine.create_order(order_request(), user_id=1)
        await engine.list_orders(1, 10, 1)
        assert len(cache) == 1

        await engine.create_order(order_request(), user_id=1)
        assert len(cache) == 0

        orders, total = await engine.list_orders(1, 10, 1)
        assert total == 2
        assert len(orders) == 2

    @pytest.mark.asyncio
    async def test_invalidation_is_owner_scoped(self, engine, cache):
        await engine.list_orders(10, 10, 1)
        await engine.create_order(order_request(), user_id=1)

        assert await cache.get(orders_cache_key(10, 1, 10)) is not None

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self, cache):
        repository = AsyncMock()
        repository.create_order.side_effect = StorageError("store down")
        engine = OrderEngine(repository, cache)

        with pytest.raises(StorageError):
            await engine.create_order(order_request(), user_id=1)


class TestListOrders:
    """Cache-aside listing."""

    @pytest.mark.asyncio
    async def test_pagination(self, engine):
        for _ in range(25):
            await engine.create_order(order_request(), user_id=1)

        sizes = []
        for page in (1, 2, 3):
            orders, total = await engine.list_orders(1, 10, page)
            assert total == 25
            sizes.append(len(orders))

        assert sizes == [10, 10, 5]

    @pytest.mark.asyncio
    async def test_newest_first(self, engine):
        created = [await engine.create_order(order_request(), user_id=1) for _ in range(3)]

        orders, _ = await engine.list_orders(1, 10, 1)
        assert [o.consignment_id for o in orders] == [o.consignment_id for o in reversed(created)]

    @pytest.mark.asyncio
    async def test_out_of_range_pagination_is_normalized(self, engine, cache):
        await engine.create_order(order_request(), user_id=1)

        orders, total = await engine.list_orders(1, 0, 0)
        assert total == 1
        assert len(orders) == 1
        assert await cache.get(orders_cache_key(1, 1, 10)) is not None

    @pytest.mark.asyncio
    async def test_cache_hit_skips_store(self, engine, persistence, metrics):
        for _ in range(2):
            await engine.create_order(order_request(), user_id=1)
        await engine.list_orders(1, 10, 1)

        # Written behind the engine's back, so only a store read would see it
        await persistence.create_order(Order(**test_data_factory.create_test_orders(1, 1)[0]))

        orders, total = await engine.list_orders(1, 10, 1)
        assert total == 2
        assert len(orders) == 2
        assert isinstance(orders[0], Order)
        assert metrics.registry.get_sample_value("cache_lookups_total", {"result": "hit"}) == 1.0

    @pytest.mark.asyncio
    async def test_undecodable_entry_reads_through(self, engine, cache, persistence):
        await persistence.create_order(Order(**test_data_factory.create_test_orders(1, 1)[0]))
        await cache.set(orders_cache_key(1, 1, 10), b"not-json", 300)

        orders, total = await engine.list_orders(1, 10, 1)
        assert total == 1
        assert len(orders) == 1

    @pytest.mark.asyncio
    async def test_cache_failures_are_swallowed(self, persistence, metrics):
        engine = OrderEngine(persistence, FailingCache(), metrics=metrics)

        order = await engine.create_order(order_request(), user_id=1)
        orders, total = await engine.list_orders(1, 10, 1)
        await engine.cancel_order(order.consignment_id, user_id=1)

        assert total == 1
        assert orders[0].consignment_id == order.consignment_id
        assert metrics.registry.get_sample_value("cache_failures_total", {"operation": "set"}) == 1.0
        assert metrics.registry.get_sample_value("cache_failures_total", {"operation": "invalidate"}) == 2.0

    @pytest.mark.asyncio
    async def test_works_without_cache(self, persistence):
        engine = OrderEngine(persistence)
        await engine.create_order(order_request(), user_id=1)

        _, total = await engine.list_orders(1, 10, 1)
        assert total == 1


class TestCancelOrder:
    """Cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_once(self, engine):
        order = await engine.create_order(order_request(), user_id=1)

        await engine.cancel_order(order.consignment_id, user_id=1)

        orders, _ = await engine.list_orders(1, 10, 1)
        assert orders[0].status == OrderStatus.CANCELLED.value

        with pytest.raises(NotFoundOrStateError):
            await engine.cancel_order(order.consignment_id, user_id=1)

    @pytest.mark.asyncio
    async def test_failures_are_indistinguishable(self, engine):
        mine = await engine.create_order(order_request(), user_id=1)
        cancelled = await engine.create_order(order_request(), user_id=1)
        await engine.cancel_order(cancelled.consignment_id, user_id=1)

        errors = []
        for consignment_id, user_id in [
            (mine.consignment_id, 2),
            ("DA000000BNWWN0", 1),
            (cancelled.consignment_id, 1),
        ]:
            with pytest.raises(NotFoundOrStateError) as exc_info:
                await engine.cancel_order(consignment_id, user_id)
            errors.append((exc_info.value.code, exc_info.value.message))

        assert len(set(errors)) == 1

    @pytest.mark.asyncio
    async def test_foreign_cancel_leaves_order_pending(self, engine):
        order = await engine.create_order(order_request(), user_id=1)

        with pytest.raises(NotFoundOrStateError):
            await engine.cancel_order(order.consignment_id, user_id=2)

        orders, _ = await engine.list_orders(1, 10, 1)
        assert orders[0].status == OrderStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_cancel_invalidates_cached_pages(self, engine, cache):
        order = await engine.create_order(order_request(), user_id=1)
        await engine.list_orders(1, 10, 1)
        assert len(cache) == 1

        await engine.cancel_order(order.consignment_id, user_id=1)
        assert len(cache) == 0


class TestTracing:
    """Engine operations emit spans tagged with the caller and order."""

    @pytest.fixture
    def exporter(self):
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        with patch("shared.tracing.get_tracer", side_effect=provider.get_tracer):
            yield exporter

    @pytest.mark.asyncio
    async def test_spans_carry_order_attributes(self, engine, exporter):
        order = await engine.create_order(order_request(), user_id=1)
        await engine.list_orders(1, 0, 2)
        await engine.cancel_order(order.consignment_id, user_id=1)

        spans = {span.name: span for span in exporter.get_finished_spans()}

        assert spans["orders.create"].attributes["consignment_id"] == order.consignment_id
        assert spans["orders.create"].attributes["user_id"] == 1
        assert spans["orders.list"].attributes["limit"] == 10
        assert spans["orders.list"].attributes["page"] == 2
        assert spans["orders.cancel"].attributes["consignment_id"] == order.consignment_id

    @pytest.mark.asyncio
    async def test_failed_operation_marks_span(self, engine, exporter):
        with pytest.raises(NotFoundOrStateError):
            await engine.cancel_order("DA000000BNWWN0", user_id=1)

        span = exporter.get_finished_spans()[-1]
        assert span.name == "orders.cancel"
        assert span.attributes["error.type"] == "NotFoundOrStateError"
