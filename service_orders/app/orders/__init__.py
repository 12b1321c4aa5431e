"""
Order lifecycle package.

- models: domain dataclasses and request/response models.
- pricing: delivery and collect-on-delivery fee policy.
- engine: validation, creation, cache-aside listing and cancellation.
"""

from .engine import OrderEngine
from .models import CreateOrderRequest, Order, OrderPage, OrderStatus, User

__all__ = ["OrderEngine", "CreateOrderRequest", "Order", "OrderPage", "OrderStatus", "User"]
