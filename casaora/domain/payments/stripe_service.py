"""Stripe service - payment authorization, capture, refunds and Connect transfers"""

import logging
from typing import Any, Optional

import stripe

from ...config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET

logger = logging.getLogger(__name__)


class PaymentProviderError(Exception):
    """A Stripe call failed. `retryable` is True for network/rate-limit failures."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


def _wrap(action: str, e: Exception) -> PaymentProviderError:
    retryable = isinstance(e, (stripe.APIConnectionError, stripe.RateLimitError))
    message = getattr(e, "user_message", None) or str(e)
    logger.error(f"❌ Stripe {action} failed: {message}")
    return PaymentProviderError(f"Stripe {action} failed: {message}", retryable=retryable)


class StripeService:
    """Thin wrapper around the Stripe SDK"""

    def __init__(self, api_key: Optional[str] = STRIPE_SECRET_KEY):
        self.api_key = api_key
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not set; payment endpoints will fail until configured")
        else:
            stripe.api_key = self.api_key
            logger.info("Stripe client initialized")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _require(self):
        if not self.api_key:
            raise PaymentProviderError("Stripe is not configured")

    def ensure_customer(
        self,
        email: Optional[str],
        name: Optional[str],
        profile_id: str,
        existing_customer_id: Optional[str] = None,
    ) -> str:
        """Return the existing Stripe customer id or create one"""
        if existing_customer_id:
            return existing_customer_id
        self._require()
        try:
            customer = stripe.Customer.create(
                email=email,
                name=name,
                metadata={"profile_id": profile_id},
                idempotency_key=f"customer-{profile_id}",
            )
        except stripe.StripeError as e:
            raise _wrap("customer creation", e) from e
        logger.info(f"✅ Created Stripe customer {customer.id} for profile {profile_id}")
        return customer.id

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_id: Optional[str],
        metadata: Optional[dict] = None,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Authorize (not charge) a payment. Captured later at check-out."""
        self._require()
        try:
            return stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                customer=customer_id,
                capture_method="manual",
                automatic_payment_methods={"enabled": True},
                description=description,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            raise _wrap("payment intent creation", e) from e

    def capture_payment_intent(
        self,
        payment_intent_id: str,
        amount_to_capture: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        self._require()
        params = {}
        if amount_to_capture is not None:
            params["amount_to_capture"] = amount_to_capture
        try:
            return stripe.PaymentIntent.capture(
                payment_intent_id, idempotency_key=idempotency_key, **params
            )
        except stripe.StripeError as e:
            raise _wrap("capture", e) from e

    def cancel_payment_intent(
        self, payment_intent_id: str, reason: str = "requested_by_customer"
    ) -> Any:
        """Release an authorization without charging"""
        self._require()
        try:
            return stripe.PaymentIntent.cancel(payment_intent_id, cancellation_reason=reason)
        except stripe.StripeError as e:
            raise _wrap("cancellation", e) from e

    def create_refund(
        self,
        payment_intent_id: str,
        amount: Optional[int] = None,
        reason: str = "requested_by_customer",
        idempotency_key: Optional[str] = None,
    ) -> Any:
        self._require()
        params = {"payment_intent": payment_intent_id, "reason": reason}
        if amount is not None:
            params["amount"] = amount
        try:
            return stripe.Refund.create(idempotency_key=idempotency_key, **params)
        except stripe.StripeError as e:
            raise _wrap("refund", e) from e

    def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        metadata: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Pay a professional's Connect account"""
        self._require()
        try:
            return stripe.Transfer.create(
                amount=amount,
                currency=currency.lower(),
                destination=destination,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            raise _wrap("transfer", e) from e

    def construct_event(self, payload: bytes, sig_header: Optional[str]) -> Any:
        """Verify a webhook signature and parse the event. Raises ValueError when invalid."""
        if not STRIPE_WEBHOOK_SECRET:
            raise ValueError("STRIPE_WEBHOOK_SECRET not configured")
        try:
            return stripe.Webhook.construct_event(payload, sig_header, STRIPE_WEBHOOK_SECRET)
        except stripe.SignatureVerificationError as e:
            raise ValueError("Invalid webhook signature") from e


stripe_service = StripeService()
