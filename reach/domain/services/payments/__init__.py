from reach.domain.services.payments.paystack_client import PaystackClient, get_payment_gateway

__all__ = ["PaystackClient", "get_payment_gateway"]
