"""Stripe checkout, billing portal, invoices and webhooks."""

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from accounts.rbac import SessionUser
from api.deps import get_current_user, get_db_session, get_settings
from api.schemas import CheckoutRequest
from billing import stripe_service
from billing.plans import get_plans
from core.config import Config

router = APIRouter(prefix="/api/stripe", tags=["stripe"])


@router.post("/checkout")
def checkout(
    body: CheckoutRequest,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
    config: Config = Depends(get_settings),
):
    return {"url": stripe_service.create_checkout_session(session, user, body.planId, config)}


@router.post("/portal")
def portal(
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
    config: Config = Depends(get_settings),
):
    return {"url": stripe_service.create_portal_session(session, user, config)}


@router.get("/invoices")
def invoices(
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
    config: Config = Depends(get_settings),
):
    return {"invoices": stripe_service.list_invoices(session, user, config)}


@router.get("/subscription")
def subscription(
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
    config: Config = Depends(get_settings),
):
    return {
        "subscription": stripe_service.get_subscription_summary(session, user),
        "plans": [plan.to_dict() for plan in get_plans(config).values()],
    }


@router.post("/webhook")
async def webhook(
    request: Request,
    session: Session = Depends(get_db_session),
    config: Config = Depends(get_settings),
):
    payload = await request.body()
    event = stripe_service.construct_event(payload, request.headers.get("stripe-signature"), config)
    await run_in_threadpool(stripe_service.handle_event, session, event, config)
    return {"received": True}
