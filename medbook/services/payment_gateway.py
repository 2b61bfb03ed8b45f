"""Dodo Payments checkout sessions for consultation bookings"""

import logging
from dataclasses import dataclass
from typing import Optional

from dodopayments import AsyncDodoPayments  # type: ignore

from ..config import (
    DODO_ADHOC_PRODUCT_ID,
    DODO_PAYMENTS_API_KEY,
    DODO_PAYMENTS_ENVIRONMENT,
    FRONTEND_URL,
)
from ..errors import UpstreamFailure

logger = logging.getLogger(__name__)


def normalize_dodo_environment(env: Optional[str]) -> str:
    """Normalize Dodo environment value to expected format"""
    value = (env or "test_mode").strip().lower()
    if value in {"live", "production", "prod"}:
        return "live_mode"
    if value in {"test", "sandbox", "staging", "dev", "development"}:
        return "test_mode"
    if value in {"test_mode", "live_mode"}:
        return value
    logger.warning(f"Unknown DODO environment '{env}', defaulting to test_mode")
    return "test_mode"


@dataclass
class CheckoutSession:
    session_id: str
    checkout_url: str


class DodoCheckoutGateway:
    """Creates one-off checkout sessions priced per booking"""

    def __init__(self, client: Optional[AsyncDodoPayments] = None, product_id: Optional[str] = None):
        self.environment = normalize_dodo_environment(DODO_PAYMENTS_ENVIRONMENT)
        self.product_id = product_id or DODO_ADHOC_PRODUCT_ID
        self.client = client

        if self.client is None:
            if not DODO_PAYMENTS_API_KEY:
                logger.warning(
                    "DODO_PAYMENTS_API_KEY not set; checkout endpoints will fail until configured"
                )
            else:
                try:
                    self.client = AsyncDodoPayments(
                        bearer_token=DODO_PAYMENTS_API_KEY,
                        environment=self.environment,
                    )
                    logger.info(f"Dodo Payments client initialized (env={self.environment})")
                except Exception as e:
                    logger.error(f"Failed to initialize Dodo client (env={self.environment}): {e}")
                    self.client = None

    def is_available(self) -> bool:
        return self.client is not None and bool(self.product_id)

    async def create_checkout_session(
        self,
        amount: int,
        customer_email: str,
        customer_name: str,
        metadata: dict[str, str],
        return_url: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Create a checkout session for `amount` minor units.

        The adhoc (pay-what-you-want) product carries the per-booking price;
        `metadata` is echoed back verbatim in the completion webhook.
        """
        if not self.is_available():
            raise UpstreamFailure("Payment provider not configured")

        try:
            session = await self.client.checkout_sessions.create(
                product_cart=[{"product_id": self.product_id, "quantity": 1, "amount": amount}],
                customer={"email": customer_email, "name": customer_name},
                metadata=metadata,
                return_url=return_url or f"{FRONTEND_URL}/successPay",
            )
        except Exception as e:
            logger.error(f"❌ Failed to create checkout session: {e}")
            raise UpstreamFailure("Payment provider rejected the checkout session") from e

        session_id = getattr(session, "session_id", None)
        checkout_url = getattr(session, "checkout_url", None)
        if not session_id or not checkout_url:
            logger.error(f"❌ Checkout session response missing id/url: {session}")
            raise UpstreamFailure("Payment provider returned an incomplete session")

        logger.info(f"💳 Checkout session {session_id} created for {amount} minor units")
        return CheckoutSession(session_id=session_id, checkout_url=checkout_url)


_gateway: Optional[DodoCheckoutGateway] = None


def get_payment_gateway() -> DodoCheckoutGateway:
    """FastAPI dependency returning the process-wide Dodo gateway"""
    global _gateway
    if _gateway is None:
        _gateway = DodoCheckoutGateway()
    return _gateway
