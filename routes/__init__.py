from .auth import router as auth_router
from .business import router as business_router
from .appointments import router as appointments_router
from .telnyx import router as telnyx_router
from .billing import router as billing_router
from .leads import router as leads_router
from .calls import router as calls_router
from .dashboard import router as dashboard_router
from .notifications import router as notifications_router
from .quotes import router as quotes_router

__all__ = [
    "auth_router",
    "business_router",
    "appointments_router",
    "telnyx_router",
    "billing_router",
    "leads_router",
    "calls_router",
    "dashboard_router",
    "notifications_router",
    "quotes_router",
]
