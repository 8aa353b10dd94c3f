"""
Hashing and signing helpers: withdrawal PINs, handover signatures, webhook HMACs.
"""
import hashlib
import hmac
import re
import secrets
import time

from bcrypt import checkpw, gensalt, hashpw

from reach.core.config import settings

PIN_PATTERN = re.compile(r"^\d{4}$")


def is_valid_pin_format(pin: str | None) -> bool:
    return bool(pin) and bool(PIN_PATTERN.match(pin))


def hash_pin(pin: str) -> str:
    return hashpw(pin.encode("utf-8"), gensalt()).decode("utf-8")


def check_pin(pin: str, pin_hash: str) -> bool:
    try:
        return checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        # stored hash is not a bcrypt hash
        return False


def sign_document(document_id: int | str, user_id: int, role: str, timestamp: int | None = None) -> tuple[str, int]:
    """
    Sign a handover document on behalf of ``role``.

    Returns the hex signature and the millisecond timestamp it covers; both are
    stored so the signature can be verified later.
    """
    ts = timestamp if timestamp is not None else int(time.time() * 1000)
    message = f"{document_id}:{user_id}:{role}:{ts}".encode("utf-8")
    signature = hmac.new(settings.SIGNING_SECRET.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return signature, ts


def verify_document_signature(
    signature: str,
    document_id: int | str,
    user_id: int,
    role: str,
    timestamp: int,
) -> bool:
    if not signature or len(signature) != 64:
        return False
    expected, _ = sign_document(document_id, user_id, role, timestamp)
    return hmac.compare_digest(signature, expected)


def verify_paystack_signature(body: bytes, signature: str | None) -> bool:
    """Paystack signs the raw body with HMAC-SHA512 keyed by the secret key"""
    if not signature or not settings.PAYSTACK_SECRET_KEY:
        return False
    expected = hmac.new(
        settings.PAYSTACK_SECRET_KEY.encode("utf-8"),
        body,
        hashlib.sha512,
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


def generate_tracking_code(creator_id: int, property_id: int) -> str:
    """16 hex chars; unique per creator/property pair in practice"""
    data = f"{creator_id}{property_id}{time.time_ns()}{secrets.token_hex(8)}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:16]
