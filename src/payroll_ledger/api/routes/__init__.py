"""API routes."""

from payroll_ledger.api.routes.components import router as components_router
from payroll_ledger.api.routes.health import router as health_router
from payroll_ledger.api.routes.ledgers import router as ledgers_router
from payroll_ledger.api.routes.periods import router as periods_router

__all__ = ["components_router", "health_router", "ledgers_router", "periods_router"]
