"""Helpers for integration tests."""

from typing import Any, Optional

from sqlalchemy import select

from smallbizagent.models import BillingEvent, Business, OverageCharge
from tests.fixtures.common import sign_payload

WEBHOOK_URL = "/api/subscription/webhook"


async def seed(session_factory, *objects: Any) -> None:
    """Insert objects in order, flushing each so later ones can reference earlier ids."""
    async with session_factory() as session:
        for obj in objects:
            session.add(obj)
            await session.flush()
        await session.commit()


async def load_business(session_factory, business_id: int) -> Business:
    async with session_factory() as session:
        return await session.get(Business, business_id)


async def load_charge(session_factory, stripe_invoice_id: str) -> OverageCharge:
    async with session_factory() as session:
        result = await session.execute(
            select(OverageCharge).where(OverageCharge.stripe_invoice_id == stripe_invoice_id)
        )
        return result.scalar_one()


async def load_events(session_factory, stripe_event_id: Optional[str] = None) -> list[BillingEvent]:
    async with session_factory() as session:
        query = select(BillingEvent).order_by(BillingEvent.id)
        if stripe_event_id:
            query = query.where(BillingEvent.stripe_event_id == stripe_event_id)
        result = await session.execute(query)
        return list(result.scalars().all())


async def post_webhook(client, payload: str, signature: Optional[str] = "sign"):
    """Deliver a webhook payload, signed with the test secret unless told otherwise."""
    headers = {"Content-Type": "application/json"}
    if signature == "sign":
        headers["Stripe-Signature"] = sign_payload(payload)
    elif signature is not None:
        headers["Stripe-Signature"] = signature
    return await client.post(WEBHOOK_URL, content=payload, headers=headers)
