"""
Order Service package.

Accepts delivery orders from authenticated merchants, prices them, and
serves paginated order listings. It provides:

- app.main: API surface for auth, orders and health.
- app.auth: Token issuance, revocation and the request authentication gate.
- app.orders: Order models, pricing policy and the lifecycle engine.
- app.cache: Redis and in-process caches for order listings.
- app.persistence: PostgreSQL and in-process stores for users and orders.

Guidelines:
- Every order operation acts on the caller resolved by the gate.
- The cache is best-effort; the store is the source of truth.
"""
