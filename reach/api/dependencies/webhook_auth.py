"""
Signature check for incoming Paystack webhooks.

Paystack sends ``x-paystack-signature``: the HMAC-SHA512 of the raw request body
keyed by the secret key. The dependency returns the verified raw body so the route
parses exactly the bytes that were signed.

Usage:
    @router.post("/paystack")
    async def paystack_webhook(
        body: bytes = Depends(verify_paystack_webhook),
        ...
    ):
        ...
"""
from fastapi import Header, Request

from reach.core.exceptions import AuthenticationException
from reach.core.logging import get_logger
from reach.core.security import verify_paystack_signature

logger = get_logger(__name__)


async def verify_paystack_webhook(
    request: Request,
    x_paystack_signature: str | None = Header(None),
) -> bytes:
    """401 when the signature header is missing or does not match the body"""
    body = await request.body()

    if not x_paystack_signature:
        logger.warning("Paystack webhook without x-paystack-signature header")
        raise AuthenticationException("Missing webhook signature")

    if not verify_paystack_signature(body, x_paystack_signature):
        logger.warning(
            "Paystack webhook with invalid signature",
            extra_data={"body_length": len(body)},
        )
        raise AuthenticationException("Invalid webhook signature")

    return body
