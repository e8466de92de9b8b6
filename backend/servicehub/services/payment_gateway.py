"""Card payment gateway (Stripe PaymentIntents).

The billing service only sees `charge()` and a ChargeResult; tests replace
the gateway on app.state / via dependency override.
"""

import asyncio
import logging
from dataclasses import dataclass, field

import stripe
from fastapi import Request

logger = logging.getLogger("servicehub.payments")


class PaymentGatewayError(Exception):
    """The processor could not be reached or rejected the request."""


@dataclass
class ChargeResult:
    id: str
    status: str  # succeeded, requires_action, requires_payment_method, processing, ...
    amount: int  # minor units
    currency: str
    raw: dict = field(default_factory=dict, repr=False)


class StripeGateway:
    def __init__(self, secret_key: str):
        self.secret_key = secret_key

    async def charge(
        self,
        *,
        amount_minor: int,
        currency: str,
        payment_method_id: str,
        description: str,
        metadata: dict[str, str],
    ) -> ChargeResult:
        """Create and confirm a PaymentIntent in one call, without redirects."""
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self.secret_key,
                amount=amount_minor,
                currency=currency.lower(),
                payment_method=payment_method_id,
                confirm=True,
                description=description,
                metadata=metadata,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
            )
        except stripe.StripeError as exc:
            message = getattr(exc, "user_message", None) or str(exc)
            logger.error("Stripe error for %s: %s", metadata.get("renewal_id"), message)
            raise PaymentGatewayError(message) from exc

        logger.info(
            "PaymentIntent %s status=%s amount=%s %s",
            intent.id, intent.status, intent.amount, intent.currency,
        )
        return ChargeResult(
            id=intent.id,
            status=intent.status,
            amount=intent.amount,
            currency=intent.currency,
        )


def get_payment_gateway(request: Request) -> StripeGateway:
    return request.app.state.payment_gateway
