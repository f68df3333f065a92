"""
Stripe service for customers, subscriptions and webhook verification.

Thin synchronous wrappers around the Stripe SDK. Async callers run them
with asyncio.to_thread so the event loop is not blocked by HTTP calls.
"""

import logging
import os
from typing import Dict, Optional

import stripe
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

PLAN_ENV_VARS = {
    "monthly": "STRIPE_PRICE_MONTHLY",
    "quarterly": "STRIPE_PRICE_QUARTERLY",
    "annual": "STRIPE_PRICE_ANNUAL",
}


def _get_config() -> Dict[str, Optional[str]]:
    """Read Stripe configuration from environment at call time (not import time)."""
    return {
        "secret_key": os.getenv("STRIPE_SECRET_KEY"),
        "webhook_secret": os.getenv("STRIPE_WEBHOOK_SECRET"),
    }


def _configure() -> None:
    secret_key = _get_config()["secret_key"]
    if not secret_key:
        raise ValueError("Stripe is not configured. Set STRIPE_SECRET_KEY.")
    stripe.api_key = secret_key


def get_price_id(plan: str) -> str:
    """
    Stripe price id of a plan.

    Raises:
        ValueError: If the plan is unknown or its price id is not configured
    """
    env_var = PLAN_ENV_VARS.get(plan)
    if env_var is None:
        raise ValueError(f"Invalid plan: {plan}")
    price_id = os.getenv(env_var)
    if not price_id:
        raise ValueError(f"Stripe price id not configured for plan {plan} ({env_var})")
    return price_id


def get_or_create_customer(customer_id: Optional[str], email: str, club_id: int) -> str:
    """
    Return an existing Stripe customer id, or create a customer for the club.

    A stored id that Stripe no longer knows is replaced by a new customer.
    """
    _configure()
    if customer_id:
        try:
            stripe.Customer.retrieve(customer_id)
            return customer_id
        except stripe.InvalidRequestError:
            logger.warning(f"Stripe customer {customer_id} not found, creating a new one for club {club_id}")

    customer = stripe.Customer.create(email=email, metadata={"club_id": str(club_id)})
    logger.info(f"Created Stripe customer {customer.id} for club {club_id}")
    return customer.id


def _client_secret_from_invoice(invoice) -> Optional[str]:
    if not invoice or isinstance(invoice, str):
        return None
    payment_intent = invoice.get("payment_intent")
    if payment_intent and not isinstance(payment_intent, str):
        return payment_intent.get("client_secret")
    return None


def create_trial_subscription(customer_id: str, plan: str, club_id: int, trial_end_ts: int) -> Dict:
    """
    Create a subscription that starts billing at trial_end_ts.

    When Stripe returns no payment intent (the usual case while trialing),
    a SetupIntent is created to collect the card.

    Returns:
        {"subscription_id", "status", "client_secret", "is_setup_intent"}
    """
    _configure()
    subscription = stripe.Subscription.create(
        customer=customer_id,
        items=[{"price": get_price_id(plan)}],
        payment_behavior="default_incomplete",
        payment_settings={"save_default_payment_method": "on_subscription"},
        expand=["latest_invoice.payment_intent"],
        metadata={"club_id": str(club_id), "plan": plan},
        trial_end=trial_end_ts,
    )

    client_secret = _client_secret_from_invoice(subscription.get("latest_invoice"))
    is_setup_intent = False
    if not client_secret:
        try:
            setup_intent = stripe.SetupIntent.create(
                customer=customer_id,
                payment_method_types=["card"],
                metadata={"club_id": str(club_id), "subscription_id": subscription.id, "plan": plan},
            )
        except stripe.StripeError:
            logger.error(f"SetupIntent creation failed, cancelling Stripe subscription {subscription.id}")
            stripe.Subscription.cancel(subscription.id)
            raise
        client_secret = setup_intent.client_secret
        is_setup_intent = True

    logger.info(f"Created Stripe subscription {subscription.id} ({plan}) for club {club_id}")
    return {
        "subscription_id": subscription.id,
        "status": subscription.get("status"),
        "client_secret": client_secret,
        "is_setup_intent": is_setup_intent,
    }


def create_or_update_admin_subscription(
    customer_id: str, subscription_id: Optional[str], plan: str
) -> Dict:
    """
    Offer a paid period: switch the existing subscription to the plan's
    price, or create a new subscription when there is none.

    Returns:
        {"subscription_id", "status"}
    """
    _configure()
    price_id = get_price_id(plan)

    if subscription_id:
        try:
            existing = stripe.Subscription.retrieve(subscription_id)
            items = existing["items"]["data"]
            if items:
                updated = stripe.Subscription.modify(
                    subscription_id,
                    items=[{"id": items[0]["id"], "price": price_id}],
                    proration_behavior="none",
                    metadata={"plan_cycle": plan, "admin_created": "true"},
                )
                return {"subscription_id": updated.id, "status": updated.get("status")}
        except stripe.StripeError as e:
            logger.warning(f"Could not update Stripe subscription {subscription_id}, creating a new one: {e}")

    subscription = stripe.Subscription.create(
        customer=customer_id,
        items=[{"price": price_id}],
        metadata={"plan_cycle": plan, "admin_created": "true"},
        trial_period_days=0,
    )
    return {"subscription_id": subscription.id, "status": subscription.get("status")}


def cancel_subscription(subscription_id: str) -> None:
    """Cancel a Stripe subscription immediately."""
    _configure()
    stripe.Subscription.cancel(subscription_id)
    logger.info(f"Cancelled Stripe subscription {subscription_id}")


def set_cancel_at_period_end(subscription_id: str, cancel: bool) -> None:
    """Schedule (or undo) the cancellation of a subscription at period end."""
    _configure()
    stripe.Subscription.modify(subscription_id, cancel_at_period_end=cancel)


def update_trial_end(subscription_id: str, trial_end_ts: int) -> None:
    """Move the first charge of a trialing subscription."""
    _configure()
    stripe.Subscription.modify(subscription_id, trial_end=trial_end_ts, proration_behavior="none")


def construct_event(payload: bytes, signature: Optional[str]):
    """
    Verify a webhook payload signature and parse the event.

    Raises:
        ValueError: If the secret is missing, the payload is invalid or the
                    signature does not match
    """
    secret = _get_config()["webhook_secret"]
    if not secret:
        raise ValueError("Stripe webhook secret not configured")
    if not signature:
        raise ValueError("Missing Stripe-Signature header")
    try:
        return stripe.Webhook.construct_event(payload, signature, secret)
    except stripe.SignatureVerificationError as e:
        raise ValueError(f"Invalid signature: {e}")
