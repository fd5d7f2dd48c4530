"""API routes."""

from staff_pay_engine.api.routes.health import router as health_router
from staff_pay_engine.api.routes.invoicing import router as invoicing_router

__all__ = ["invoicing_router", "health_router"]
