"""
Durable store contract consumed by the order engine and auth flows.
"""

from typing import List, Optional, Protocol, Tuple, runtime_checkable

from ..orders.models import Order, User


@runtime_checkable
class OrderRepository(Protocol):
    """Users and orders persistence.

    Implementations raise `StorageError` for backend failures,
    `ConflictError` for duplicate usernames or consignment ids and
    `NotFoundOrStateError` when a cancel matches no pending order.
    """

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def health_check(self) -> bool: ...

    async def find_user_by_username(self, username: str) -> Optional[User]: ...

    async def create_user(self, username: str, password_hash: str) -> User: ...

    async def create_order(self, order: Order) -> None: ...

    async def list_orders(self, user_id: int, limit: int, page: int) -> Tuple[List[Order], int]: ...

    async def cancel_order(self, consignment_id: str, user_id: int) -> None: ...
