"""Stripe checkout, billing portal, invoices and subscription webhooks."""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import stripe
import structlog
from sqlalchemy.orm import Session

from accounts.access import get_latest_subscription
from accounts.rbac import SessionUser, require_owner
from billing.plans import get_plan, get_plan_by_price_id
from core.config import Config, get_config
from core.errors import BillingError, NotFoundError, ValidationError
from database.models import Subscription, Team

logger = structlog.get_logger(__name__)

INVOICE_LIMIT = 24


def configure_stripe(config: Optional[Config] = None):
    config = config or get_config()
    stripe.api_key = config.stripe_secret_key


def _team(session: Session, user: SessionUser) -> Team:
    team = session.query(Team).filter(Team.id == user.team_id).first() if user.team_id else None
    if team is None:
        raise NotFoundError("Team not found")
    return team


def create_checkout_session(
    session: Session, user: SessionUser, plan_id: str, config: Optional[Config] = None
) -> str:
    """Create a subscription checkout for the caller's team.

    The Stripe customer is created on first checkout and stored on the team.

    Args:
        session: Database session
        user: Authenticated user
        plan_id: starter, team or professional
        config: Configuration (defaults to the global one)

    Returns:
        Checkout URL

    Raises:
        ValidationError: Unknown plan
        BillingError: Stripe rejected the request
    """
    config = config or get_config()
    require_owner(user, "Only owners can manage billing")
    plan = get_plan(plan_id, config)
    if plan is None:
        raise ValidationError("Invalid plan")

    team = _team(session, user)
    configure_stripe(config)

    try:
        if not team.stripe_customer_id:
            customer = stripe.Customer.create(
                email=user.email,
                name=user.name or None,
                metadata={"teamId": team.id, "userId": user.id},
            )
            team.stripe_customer_id = customer["id"]
            session.flush()
            logger.info("stripe_customer_created", team_id=team.id)

        checkout = stripe.checkout.Session.create(
            customer=team.stripe_customer_id,
            mode="subscription",
            line_items=[{"price": plan.stripe_price_id, "quantity": 1}],
            success_url=f"{config.base_url}/dashboard/billing?success=true",
            cancel_url=f"{config.base_url}/dashboard/billing?canceled=true",
            subscription_data={"metadata": {"teamId": team.id, "planId": plan.id}},
            metadata={"teamId": team.id, "planId": plan.id},
        )
    except stripe.StripeError as e:
        logger.error("stripe_checkout_failed", team_id=team.id, plan=plan.id, error=str(e))
        raise BillingError("Could not start checkout") from e

    logger.info("stripe_checkout_created", team_id=team.id, plan=plan.id)
    return checkout["url"]


def create_portal_session(session: Session, user: SessionUser, config: Optional[Config] = None) -> str:
    config = config or get_config()
    team = _team(session, user)
    if not team.stripe_customer_id:
        raise NotFoundError("No billing account found")

    configure_stripe(config)
    try:
        portal = stripe.billing_portal.Session.create(
            customer=team.stripe_customer_id,
            return_url=f"{config.base_url}/dashboard/billing",
        )
    except stripe.StripeError as e:
        logger.error("stripe_portal_failed", team_id=team.id, error=str(e))
        raise BillingError("Could not open billing portal") from e
    return portal["url"]


def list_invoices(session: Session, user: SessionUser, config: Optional[Config] = None) -> List[Dict]:
    """The team's most recent invoices, newest first."""
    team = _team(session, user)
    if not team.stripe_customer_id:
        return []

    configure_stripe(config)
    try:
        invoices = stripe.Invoice.list(customer=team.stripe_customer_id, limit=INVOICE_LIMIT)
    except stripe.StripeError as e:
        logger.error("stripe_invoices_failed", team_id=team.id, error=str(e))
        raise BillingError("Could not load invoices") from e

    return [
        {
            "id": inv.get("id"),
            "number": inv.get("number"),
            "status": inv.get("status"),
            "amount": inv.get("total"),
            "currency": inv.get("currency"),
            "created": inv.get("created"),
            "periodStart": inv.get("period_start"),
            "periodEnd": inv.get("period_end"),
            "pdfUrl": inv.get("invoice_pdf"),
            "hostedUrl": inv.get("hosted_invoice_url"),
        }
        for inv in invoices["data"]
    ]


def get_subscription_summary(session: Session, user: SessionUser) -> Optional[Dict]:
    subscription = get_latest_subscription(session, user.team_id)
    if subscription is None:
        return None
    return {
        "plan": subscription.plan,
        "status": subscription.status,
        "currentPeriodEnd": (
            subscription.current_period_end.isoformat() if subscription.current_period_end else None
        ),
        "cancelAtPeriodEnd": subscription.cancel_at_period_end,
    }


# --- Webhooks -----------------------------------------------------------------


def construct_event(payload: bytes, signature: Optional[str], config: Optional[Config] = None):
    """Verify a webhook payload's signature and parse it.

    Raises:
        ValidationError: Invalid payload or signature
    """
    config = config or get_config()
    try:
        return stripe.Webhook.construct_event(
            payload=payload, sig_header=signature or "", secret=config.stripe_webhook_secret
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("stripe_webhook_signature_invalid", error=str(e))
        raise ValidationError(str(e) or "Invalid webhook signature") from e


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    return datetime.utcfromtimestamp(value) if value else None


def upsert_subscription(
    session: Session, sub: Mapping[str, Any], config: Optional[Config] = None
) -> Optional[Subscription]:
    """Mirror a Stripe subscription into the database.

    The plan comes from the price id, falling back to the ``planId``
    metadata and then ``starter``. The team comes from the ``teamId``
    metadata, falling back to the team owning the Stripe customer.

    Returns:
        The stored subscription, or None when it cannot be attributed
    """
    items = (sub.get("items") or {}).get("data") or []
    item = items[0] if items else {}
    price_id = (item.get("price") or {}).get("id")
    if not price_id:
        logger.warning("stripe_subscription_without_price", subscription_id=sub.get("id"))
        return None

    metadata = sub.get("metadata") or {}
    plan = get_plan_by_price_id(price_id, config)
    plan_id = plan.id if plan else (metadata.get("planId") or "starter")

    team_id = metadata.get("teamId")
    if not team_id:
        customer = sub.get("customer")
        customer_id = customer if isinstance(customer, str) else (customer or {}).get("id")
        team = session.query(Team).filter(Team.stripe_customer_id == customer_id).first()
        if team is None:
            logger.error("stripe_customer_without_team", customer_id=customer_id)
            return None
        team_id = team.id

    subscription = (
        session.query(Subscription)
        .filter(Subscription.stripe_subscription_id == sub["id"])
        .first()
    )
    if subscription is None:
        subscription = Subscription(stripe_subscription_id=sub["id"])
        session.add(subscription)

    subscription.team_id = team_id
    subscription.stripe_price_id = price_id
    subscription.plan = plan_id
    subscription.status = sub.get("status")
    subscription.current_period_start = _timestamp(
        item.get("current_period_start") or sub.get("current_period_start")
    )
    subscription.current_period_end = _timestamp(
        item.get("current_period_end") or sub.get("current_period_end")
    )
    subscription.cancel_at_period_end = bool(sub.get("cancel_at_period_end"))
    subscription.updated_at = datetime.utcnow()
    session.flush()

    logger.info(
        "stripe_subscription_upserted",
        team_id=team_id,
        subscription_id=sub["id"],
        plan=plan_id,
        status=subscription.status,
    )
    return subscription


def cancel_subscription(session: Session, stripe_subscription_id: str):
    updated = (
        session.query(Subscription)
        .filter(Subscription.stripe_subscription_id == stripe_subscription_id)
        .update(
            {
                Subscription.status: "canceled",
                Subscription.cancel_at_period_end: False,
                Subscription.updated_at: datetime.utcnow(),
            }
        )
    )
    logger.info("stripe_subscription_canceled", subscription_id=stripe_subscription_id, rows=updated)


def handle_event(session: Session, event: Mapping[str, Any], config: Optional[Config] = None):
    """Apply a verified webhook event. Unhandled event types are ignored."""
    event_type = event.get("type")
    obj = event["data"]["object"]
    logger.info("stripe_webhook_received", event_type=event_type, event_id=event.get("id"))

    if event_type == "checkout.session.completed":
        if obj.get("mode") == "subscription" and obj.get("subscription"):
            configure_stripe(config)
            sub = stripe.Subscription.retrieve(obj["subscription"])
            upsert_subscription(session, sub, config)
    elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
        upsert_subscription(session, obj, config)
    elif event_type == "customer.subscription.deleted":
        cancel_subscription(session, obj["id"])
