"""
Order Service: authenticated order creation, listing and cancellation.
"""

import math
from typing import Dict

from fastapi import Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.errors import CacheError, StorageError

from .auth import (
    AuthenticationGate,
    AuthFlows,
    CredentialsRequest,
    InMemoryRevocationStore,
    PasswordHasher,
    RedisRevocationStore,
    TokenClaims,
    TokenService,
    get_bearer_token,
    get_principal,
)
from .cache import InMemoryCache, RedisCache
from .orders import CreateOrderRequest, OrderEngine
from .orders.engine import normalize_pagination
from .orders.models import ApiResponse, CreatedOrderData, OrderResponse, OrdersData
from .persistence import InMemoryPersistence, PostgreSQLPersistence


class OrdersService(BaseService):
    """Order service implementation."""

    def __init__(self, **config_overrides):
        super().__init__("orders", 8020, **config_overrides)

    def _build_components(self):
        """Wire store, cache and revocation adapters from configuration."""
        if self.config.storage_backend == "memory":
            self.persistence = InMemoryPersistence()
        else:
            self.persistence = PostgreSQLPersistence(self.config.postgres_dsn)

        if self.config.cache_backend == "memory":
            self.cache = InMemoryCache()
        else:
            self.cache = RedisCache(self.config.redis_url)

        if self.config.revocation_backend == "redis":
            self.revocations = RedisRevocationStore(self.config.redis_url)
        else:
            self.revocations = InMemoryRevocationStore()

        self.tokens = TokenService(
            self.config.jwt_secret,
            algorithm=self.config.jwt_algorithm,
            ttl_seconds=self.config.token_ttl_seconds,
            revocation_store=self.revocations,
            metrics=self.metrics,
        )
        self.auth = AuthFlows(self.persistence, self.tokens, PasswordHasher(), metrics=self.metrics)
        self.engine = OrderEngine(
            self.persistence,
            self.cache,
            cache_ttl_seconds=self.config.cache_ttl_seconds,
            metrics=self.metrics,
        )

    def _setup_middleware(self):
        # Added first so the timing middleware wraps it
        self.app.add_middleware(AuthenticationGate, tokens=self.tokens)
        super()._setup_middleware()

    def _setup_routes(self):
        super()._setup_routes()
        self._setup_order_routes()

    def _setup_order_routes(self):
        """Set up auth and order routes."""

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            self.metrics.record_error("VALIDATION_ERROR")
            return JSONResponse(
                status_code=422,
                content={
                    "message": "Invalid request body",
                    "type": "error",
                    "code": 422,
                    "error": {
                        "code": "VALIDATION_ERROR",
                        "message": "Invalid request body",
                        "details": {"errors": [str(e.get("msg")) for e in exc.errors()]},
                    },
                },
            )

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "orders",
                "message": "Order Service",
                "version": "1.0.0",
                "capabilities": ["orders", "authentication", "caching", "persistence"],
            }

        @self.app.post("/auth/signup")
        async def signup(body: CredentialsRequest):
            """Register a new user."""
            user = await self.auth.signup(body.username, body.password)
            return ApiResponse(
                message="User created successfully",
                data={"user_id": user.user_id, "username": user.username},
            )

        @self.app.post("/auth/login")
        async def login(body: CredentialsRequest):
            """Exchange credentials for a bearer token."""
            issued = await self.auth.login(body.username, body.password)
            return ApiResponse(
                message="Login successful",
                data={
                    "token_type": issued.token_type,
                    "expires_in": issued.expires_in,
                    "access_token": issued.access_token,
                },
            )

        @self.app.post("/auth/logout")
        async def logout(token: str = Depends(get_bearer_token)):
            """Revoke the caller's current token."""
            await self.auth.logout(token)
            return ApiResponse(message="Logout successful")

        @self.app.post("/orders")
        async def create_order(
            body: CreateOrderRequest,
            principal: TokenClaims = Depends(get_principal),
        ):
            """Create an order owned by the caller."""
            order = await self.engine.create_order(body, principal.user_id)
            data = CreatedOrderData(
                consignment_id=order.consignment_id,
                merchant_order_id=order.merchant_order_id,
                order_status=order.status,
                delivery_fee=order.delivery_fee,
            )
            return ApiResponse(message="Order Created Successfully", data=data.model_dump())

        @self.app.get("/orders")
        async def list_orders(
            limit: int = Query(10, description="Items per page"),
            page: int = Query(1, description="Page number"),
            principal: TokenClaims = Depends(get_principal),
        ):
            """List the caller's orders, newest first."""
            limit, page = normalize_pagination(limit, page)
            orders, total = await self.engine.list_orders(principal.user_id, limit, page)
            data = OrdersData(
                orders=[OrderResponse.from_order(o) for o in orders],
                total=total,
                current_page=page,
                per_page=limit,
                total_in_page=len(orders),
                last_page=math.ceil(total / limit),
            )
            return ApiResponse(message="Orders successfully fetched.", data=data.model_dump())

        @self.app.put("/orders/{consignment_id}/cancel")
        async def cancel_order(
            consignment_id: str,
            principal: TokenClaims = Depends(get_principal),
        ):
            """Cancel one of the caller's pending orders."""
            await self.engine.cancel_order(consignment_id, principal.user_id)
            return ApiResponse(message="Order Cancelled Successfully")

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check order service dependencies."""
        dependencies = {}

        if await self.persistence.health_check():
            dependencies["store"] = "ok"
        else:
            raise StorageError("Store health check failed")

        # The cache is optional for correctness
        try:
            await self.cache.ping()
            dependencies["cache"] = "ok"
        except CacheError as e:
            self.logger.warning("Cache health check failed", error=str(e))
            dependencies["cache"] = "degraded"

        return dependencies

    async def start(self):
        """Start order service components."""
        await self.persistence.start()

        try:
            await self.cache.start()
        except CacheError as e:
            # Listings read through to the store until the cache answers again
            self.logger.warning("Cache unavailable at startup", error=str(e))

        await self.revocations.start()

        self.logger.info(
            "Order service started",
            storage_backend=self.config.storage_backend,
            cache_backend=self.config.cache_backend,
            revocation_backend=self.config.revocation_backend,
        )

    async def stop(self):
        """Stop order service components."""
        await self.revocations.stop()
        await self.cache.stop()
        await self.persistence.stop()

        self.logger.info("Order service stopped")


def create_app(**config_overrides):
    """Create order service application."""
    service = OrdersService(**config_overrides)
    return service.app


if __name__ == "__main__":
    service = OrdersService()
    service.run()
