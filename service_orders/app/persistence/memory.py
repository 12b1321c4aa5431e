"""
In-process persistence for local runs and tests.
"""

import copy
import itertools
import threading
from typing import Dict, List, Optional, Tuple

from shared.logging import get_logger
from shared.errors import ConflictError, NotFoundOrStateError
from ..orders.models import Order, OrderStatus, User


class InMemoryPersistence:
    """`OrderRepository` over dicts guarded by a lock.

    Every mutation happens under the lock, which stands in for the row-level
    atomicity a relational store provides. Returned objects are copies so
    callers can never mutate stored state.
    """

    def __init__(self):
        self.logger = get_logger("orders.persistence.memory")
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._users: Dict[str, User] = {}
        self._orders: Dict[str, Order] = {}

    async def start(self):
        self.logger.info("In-memory persistence started")

    async def stop(self):
        self.logger.info("In-memory persistence stopped")

    async def health_check(self) -> bool:
        return True

    async def find_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(username)
            return copy.copy(user) if user else None

    async def create_user(self, username: str, password_hash: str) -> User:
        with self._lock:
            if username in self._users:
                raise ConflictError("username already exists", details={"username": username})
            user = User(user_id=next(self._ids), username=username, password_hash=password_hash)
            self._users[username] = user
            return copy.copy(user)

    async def create_order(self, order: Order) -> None:
        with self._lock:
            if order.consignment_id in self._orders:
                raise ConflictError(
                    "consignment id already exists",
                    details={"consignment_id": order.consignment_id}
                )
            self._orders[order.consignment_id] = copy.copy(order)

    async def list_orders(self, user_id: int, limit: int, page: int) -> Tuple[List[Order], int]:
        if limit < 1:
            limit = 10
        if page < 1:
            page = 1
        offset = (page - 1) * limit

        with self._lock:
            owned = [o for o in self._orders.values() if o.user_id == user_id]
        owned.sort(key=lambda o: (o.created_at, o.consignment_id), reverse=True)
        return [copy.copy(o) for o in owned[offset:offset + limit]], len(owned)

    async def cancel_order(self, consignment_id: str, user_id: int) -> None:
        with self._lock:
            order = self._orders.get(consignment_id)
            if (
                order is None
                or order.user_id != user_id
                or order.status != OrderStatus.PENDING.value
            ):
                raise NotFoundOrStateError()
            order.status = OrderStatus.CANCELLED.value
