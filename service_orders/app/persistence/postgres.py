"""
PostgreSQL persistence layer for the Order Service.
"""

from contextlib import asynccontextmanager
from typing import List, Optional, Tuple

import asyncpg

from shared.logging import get_logger
from shared.errors import ConflictError, NotFoundOrStateError, StorageError
from ..orders.models import Order, OrderStatus, User


ORDER_COLUMNS = (
    "consignment_id", "created_at", "description", "merchant_order_id",
    "recipient_name", "recipient_address", "recipient_phone",
    "order_amount", "total_fee", "instruction", "order_type_id", "cod_fee",
    "promo_discount", "discount", "delivery_fee", "status", "order_type",
    "item_type", "store_name", "store_contact_phone", "cod_amount",
    "delivery_charge", "user_id", "store_id", "recipient_city",
    "recipient_zone", "recipient_area", "delivery_type", "item_quantity",
    "item_weight", "amount_to_collect",
)


class PostgreSQLPersistence:
    """asyncpg-backed `OrderRepository`."""

    def __init__(self, dsn: str):
        self.dsn = dsn
        self.logger = get_logger("orders.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30
            )
            await self._create_tables()
        except (asyncpg.PostgresError, OSError) as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise StorageError("PostgreSQL unavailable", details={"error": str(e)}) from e

        self.logger.info("PostgreSQL persistence started")

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id BIGSERIAL PRIMARY KEY,
                    username VARCHAR(255) UNIQUE NOT NULL,
                    password VARCHAR(255) NOT NULL
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS orders (
                    consignment_id VARCHAR(64) PRIMARY KEY,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    merchant_order_id VARCHAR(255) NOT NULL DEFAULT '',
                    recipient_name VARCHAR(255) NOT NULL,
                    recipient_address TEXT NOT NULL,
                    recipient_phone VARCHAR(20) NOT NULL,
                    order_amount DOUBLE PRECISION NOT NULL,
                    total_fee DOUBLE PRECISION NOT NULL,
                    instruction TEXT NOT NULL DEFAULT '',
                    order_type_id BIGINT NOT NULL,
                    cod_fee DOUBLE PRECISION NOT NULL,
                    promo_discount DOUBLE PRECISION NOT NULL,
                    discount DOUBLE PRECISION NOT NULL,
                    delivery_fee DOUBLE PRECISION NOT NULL,
                    status VARCHAR(50) NOT NULL,
                    order_type VARCHAR(50) NOT NULL,
                    item_type BIGINT NOT NULL,
                    store_name VARCHAR(255) NOT NULL DEFAULT '',
                    store_contact_phone VARCHAR(20) NOT NULL DEFAULT '',
                    cod_amount DOUBLE PRECISION NOT NULL,
                    delivery_charge DOUBLE PRECISION NOT NULL,
                    user_id BIGINT NOT NULL REFERENCES users(id),
                    store_id BIGINT NOT NULL,
                    recipient_city BIGINT NOT NULL,
                    recipient_zone BIGINT NOT NULL,
                    recipient_area BIGINT NOT NULL,
                    delivery_type BIGINT NOT NULL,
                    item_quantity BIGINT NOT NULL,
                    item_weight DOUBLE PRECISION NOT NULL,
                    amount_to_collect DOUBLE PRECISION NOT NULL
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_orders_user_created
                ON orders(user_id, created_at DESC);
            """)

    @asynccontextmanager
    async def _connection(self, operation: str):
        """Acquire a pooled connection, translating driver failures."""
        if self.pool is None:
            raise StorageError("PostgreSQL persistence not started", details={"operation": operation})
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except (ConflictError, NotFoundOrStateError):
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            self.logger.error("PostgreSQL operation failed", operation=operation, error=str(e))
            raise StorageError(f"{operation} failed", details={"error": str(e)}) from e

    async def find_user_by_username(self, username: str) -> Optional[User]:
        async with self._connection("find_user_by_username") as conn:
            row = await conn.fetchrow(
                "SELECT id, username, password FROM users WHERE username = $1",
                username
            )
        if not row:
            return None
        return User(user_id=row["id"], username=row["username"], password_hash=row["password"])

    async def create_user(self, username: str, password_hash: str) -> User:
        async with self._connection("create_user") as conn:
            try:
                row = await conn.fetchrow(
                    "INSERT INTO users (username, password) VALUES ($1, $2) RETURNING id",
                    username, password_hash
                )
            except asyncpg.UniqueViolationError as e:
                raise ConflictError("username already exists", details={"username": username}) from e

        self.logger.info("User created", user_id=row["id"])
        return User(user_id=row["id"], username=username, password_hash=password_hash)

    async def create_order(self, order: Order) -> None:
        placeholders = ", ".join(f"${i}" for i in range(1, len(ORDER_COLUMNS) + 1))
        query = f"INSERT INTO orders ({', '.join(ORDER_COLUMNS)}) VALUES ({placeholders})"
        values = [getattr(order, column) for column in ORDER_COLUMNS]

        async with self._connection("create_order") as conn:
            try:
                await conn.execute(query, *values)
            except asyncpg.UniqueViolationError as e:
                raise ConflictError(
                    "consignment id already exists",
                    details={"consignment_id": order.consignment_id}
                ) from e

    async def list_orders(self, user_id: int, limit: int, page: int) -> Tuple[List[Order], int]:
        if limit < 1:
            limit = 10
        if page < 1:
            page = 1
        offset = (page - 1) * limit

        # Count and page read one snapshot so `total` matches the rows served
        async with self._connection("list_orders") as conn:
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                total = await conn.fetchval(
                    "SELECT COUNT(*) FROM orders WHERE user_id = $1",
                    user_id
                )
                rows = await conn.fetch(
                    f"""
                    SELECT {', '.join(ORDER_COLUMNS)} FROM orders
                    WHERE user_id = $1
                    ORDER BY created_at DESC, consignment_id DESC
                    LIMIT $2 OFFSET $3
                    """,
                    user_id, limit, offset
                )

        return [self._row_to_order(row) for row in rows], int(total or 0)

    async def cancel_order(self, consignment_id: str, user_id: int) -> None:
        async with self._connection("cancel_order") as conn:
            result = await conn.execute(
                """
                UPDATE orders SET status = $1
                WHERE consignment_id = $2 AND user_id = $3 AND status = $4
                """,
                OrderStatus.CANCELLED.value, consignment_id, user_id, OrderStatus.PENDING.value
            )

        # asyncpg returns the command tag, e.g. "UPDATE 1"
        if result.split()[-1] == "0":
            raise NotFoundOrStateError()

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError):
            return False

    def _row_to_order(self, row) -> Order:
        """Convert database row to Order object."""
        return Order(**{column: row[column] for column in ORDER_COLUMNS})
