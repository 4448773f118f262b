"""
Payment Session Bridge.

The booking core only needs two things from a payment provider: a checkout
session for a booking, and verified callbacks that say whether the booking
was paid. ``StripePaymentProvider`` implements both with Stripe Checkout.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import stripe

from quickshow.core.config import settings
from quickshow.core.exceptions import PaymentUpstreamError, WebhookSignatureError

logger = logging.getLogger(__name__)

EVENT_SUCCEEDED = "succeeded"
EVENT_FAILED = "failed"
EVENT_IGNORED = "ignored"


@dataclass(frozen=True)
class CheckoutRequest:
    amount: Decimal
    description: str
    booking_ref: str
    success_url: str
    cancel_url: str
    expires_at: datetime


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    checkout_url: str


@dataclass(frozen=True)
class PaymentEvent:
    kind: str
    booking_ref: Optional[str] = None
    payment_ref: Optional[str] = None
    provider_event_type: str = ""


class PaymentProvider:
    def open_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        raise NotImplementedError

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        raise NotImplementedError

    def cancel_checkout(self, session_id: str) -> None:
        raise NotImplementedError


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def checkout_expiry(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(minutes=settings.CHECKOUT_SESSION_MINUTES)


class StripePaymentProvider(PaymentProvider):
    def __init__(self, secret_key: str, webhook_secret: str, currency: str = "usd"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency

    def open_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        if not self.secret_key:
            raise PaymentUpstreamError("Payment provider is not configured")
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": {
                                "name": request.description,
                                "description": "Movie ticket booking",
                            },
                            "unit_amount": to_minor_units(request.amount),
                        },
                        "quantity": 1,
                    }
                ],
                success_url=request.success_url,
                cancel_url=request.cancel_url,
                metadata={"booking_id": request.booking_ref},
                # payment_intent.* events carry the intent, not the session
                payment_intent_data={"metadata": {"booking_id": request.booking_ref}},
                expires_at=int(request.expires_at.timestamp()),
                idempotency_key=f"checkout_{request.booking_ref}",
            )
        except stripe.StripeError as e:
            logger.error("Stripe checkout failed for booking %s: %s", request.booking_ref, e)
            raise PaymentUpstreamError() from e

        return CheckoutSession(session_id=session.id, checkout_url=session.url)

    def cancel_checkout(self, session_id: str) -> None:
        """
        Close an open checkout so it can no longer be paid.

        Stripe keeps sessions open for at least 30 minutes, longer than a
        seat hold, so expired bookings close theirs explicitly.
        """
        if not self.secret_key:
            raise PaymentUpstreamError("Payment provider is not configured")
        try:
            stripe.checkout.Session.expire(session_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise PaymentUpstreamError(f"Could not expire checkout {session_id}") from e

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret)
            event = json.loads(body)
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise WebhookSignatureError("Invalid webhook signature") from e
        except ValueError as e:
            raise WebhookSignatureError("Invalid webhook payload") from e

        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}
        booking_ref = metadata.get("booking_id")

        if event_type == "checkout.session.completed":
            return PaymentEvent(
                kind=EVENT_SUCCEEDED,
                booking_ref=booking_ref,
                payment_ref=obj.get("payment_intent") or obj.get("id"),
                provider_event_type=event_type,
            )
        if event_type in ("checkout.session.expired", "payment_intent.payment_failed"):
            return PaymentEvent(
                kind=EVENT_FAILED,
                booking_ref=booking_ref,
                payment_ref=obj.get("id"),
                provider_event_type=event_type,
            )
        return PaymentEvent(kind=EVENT_IGNORED, provider_event_type=event_type)


def get_payment_provider() -> PaymentProvider:
    return StripePaymentProvider(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        currency=settings.PAYMENT_CURRENCY,
    )
