"""HTTP layer: FastAPI routers, schemas and request dependencies."""
