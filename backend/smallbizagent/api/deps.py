"""Dependencies that are used in the API endpoints."""

import uuid

from fastapi import Depends, HTTPException, Request

from smallbizagent.api.context import ApiContext
from smallbizagent.core.config import settings
from smallbizagent.core.exceptions import BillingNotConfiguredError, PermissionException
from smallbizagent.core.logging import logger
from smallbizagent.db.session import get_db
from smallbizagent.integrations.billing_provider import BillingProvider
from smallbizagent.platform.billing.billing_service import BillingService
from smallbizagent.platform.billing.overage_ledger import OverageLedger
from smallbizagent.platform.billing.plan_catalog import PlanCatalog

__all__ = [
    "get_db",
    "get_context",
    "get_admin_context",
    "get_billing_provider",
    "require_billing",
    "get_billing_service",
    "get_plan_catalog",
    "get_overage_ledger",
]


def _is_admin(user: object) -> bool:
    return bool(getattr(user, "is_admin", False) or getattr(user, "is_superuser", False))


async def get_context(request: Request) -> ApiContext:
    """Create the API context for the request.

    With ``AUTH_ENABLED`` the request must carry a user authenticated by the session
    middleware (``request.scope["user"]``); otherwise a system context is used.

    Raises:
    ------
        HTTPException: 401 if authentication is enabled and no session is present.
    """
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    if not settings.AUTH_ENABLED:
        user, auth_method, is_admin = None, "system", True
    else:
        user = request.scope.get("user")
        if user is None or not getattr(user, "is_authenticated", False):
            raise HTTPException(status_code=401, detail="Not authenticated")
        auth_method, is_admin = "session", _is_admin(user)

    base_logger = logger.with_context(
        request_id=request_id,
        auth_method=auth_method,
        context_base="api",
    )

    return ApiContext(
        request_id=request_id,
        user=user,
        auth_method=auth_method,
        is_admin=is_admin,
        logger=base_logger,
    )


async def get_admin_context(ctx: ApiContext = Depends(get_context)) -> ApiContext:
    """Require an administrator session."""
    if not ctx.is_admin:
        raise PermissionException("Administrator access required")
    return ctx


def get_billing_provider(request: Request) -> BillingProvider:
    """The billing provider chosen when the application was created."""
    return request.app.state.billing_provider


def require_billing(
    provider: BillingProvider = Depends(get_billing_provider),
) -> BillingProvider:
    """The billing provider, or 503 when billing is not configured."""
    if not provider.configured:
        raise BillingNotConfiguredError()
    return provider


def get_plan_catalog(provider: BillingProvider = Depends(require_billing)) -> PlanCatalog:
    """Plan catalog bound to the configured provider."""
    return PlanCatalog(provider)


def get_billing_service(
    provider: BillingProvider = Depends(require_billing),
) -> BillingService:
    """Billing service bound to the configured provider."""
    return BillingService(provider)


def get_overage_ledger(request: Request) -> OverageLedger:
    """Overage ledger using the application's usage meter."""
    return OverageLedger(request.app.state.usage_meter)
