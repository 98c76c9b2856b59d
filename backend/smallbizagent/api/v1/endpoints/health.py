"""Health check endpoints."""

from fastapi import Depends

from smallbizagent.api import deps
from smallbizagent.api.router import TrailingSlashRouter
from smallbizagent.integrations.billing_provider import BillingProvider

router = TrailingSlashRouter()


@router.get("")
async def health_check(
    provider: BillingProvider = Depends(deps.get_billing_provider),
) -> dict[str, object]:
    """Check if the API is healthy.

    Returns:
    --------
        dict: The status of the API and whether billing is configured.
    """
    return {"status": "healthy", "billing_configured": provider.configured}
