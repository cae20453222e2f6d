"""API routers."""

from fastapi import APIRouter

from .auth import router as auth_router
from .employees import router as employees_router
from .health import router as health_router
from .organization import departments_router, positions_router
from .payroll import router as payroll_router
from .subscription import router as subscription_router
from .tenant import router as tenant_router
from .webhooks import router as webhooks_router

# Everything except health lives under /api
api_router = APIRouter(prefix="/api")

api_router.include_router(auth_router)
api_router.include_router(tenant_router)
api_router.include_router(subscription_router)
api_router.include_router(webhooks_router)
api_router.include_router(employees_router)
api_router.include_router(departments_router)
api_router.include_router(positions_router)
api_router.include_router(payroll_router)

__all__ = ["api_router", "health_router"]
