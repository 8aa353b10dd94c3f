"""
Paystack client: charges (deposits), transfers (withdrawals) and bank lookups.

Every call goes through the ``paystack`` circuit breaker. Only transport failures and
5xx responses count against the breaker; a 4xx or ``status: false`` body is a business
rejection and is raised as PaymentGatewayError without tripping it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from reach.core.circuit_breaker import CircuitBreaker, get_paystack_circuit_breaker
from reach.core.config import settings
from reach.core.exceptions import PaymentGatewayError, ServiceTimeoutError
from reach.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class InitializedCharge:
    authorization_url: str
    access_code: str
    reference: str


@dataclass(frozen=True)
class ChargeVerification:
    reference: str
    status: str  # success / failed / abandoned / ...
    amount_kobo: int
    gateway_response: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        return self.status == "success"


@dataclass(frozen=True)
class TransferRecipient:
    recipient_code: str
    account_name: Optional[str] = None


@dataclass(frozen=True)
class Transfer:
    transfer_code: str
    reference: str
    status: str  # pending / success / otp / ...


@dataclass(frozen=True)
class ResolvedAccount:
    account_number: str
    account_name: str


class PaystackClient:
    """Thin async wrapper over the Paystack REST API"""

    service_name = "paystack"

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        *,
        secret_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._circuit_breaker = circuit_breaker
        self._secret_key = secret_key if secret_key is not None else settings.PAYSTACK_SECRET_KEY
        self._base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self._timeout = timeout or settings.PAYSTACK_TIMEOUT_SECONDS

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._secret_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _send(
        self,
        method: str,
        path: str,
        operation: str,
        json: dict[str, Any] | None,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.request(
                    method,
                    f"{self._base_url}{path}",
                    json=json,
                    params=params,
                    headers=self._headers(),
                )
            except httpx.TimeoutException:
                raise ServiceTimeoutError(self.service_name, self._timeout)
            except httpx.RequestError as exc:
                raise PaymentGatewayError(
                    f"{operation} network error: {exc}",
                    details={"operation": operation, "network_error": True},
                )

        if response.status_code >= 500:
            raise PaymentGatewayError.from_response(operation, response)
        return response

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        if not self._secret_key:
            raise PaymentGatewayError("PAYSTACK_SECRET_KEY is not configured")

        response = await self._circuit_breaker.execute(
            self._send, method, path, operation, json, params
        )

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or not body.get("status"):
            logger.warning(
                "Paystack rejected request",
                extra_data={
                    "operation": operation,
                    "status_code": response.status_code,
                    "gateway_message": body.get("message"),
                },
            )
            raise PaymentGatewayError.from_response(
                operation,
                response,
                message=body.get("message") or f"{operation} failed",
            )
        return body.get("data")

    async def initialize_transaction(
        self,
        email: str,
        amount_kobo: int,
        reference: str,
        callback_url: str,
        metadata: dict[str, Any] | None = None,
    ) -> InitializedCharge:
        data = await self._request(
            "POST",
            "/transaction/initialize",
            "transaction/initialize",
            json={
                "email": email,
                "amount": amount_kobo,
                "reference": reference,
                "callback_url": callback_url,
                "currency": settings.CURRENCY,
                "metadata": metadata or {},
            },
        ) or {}
        if not data.get("authorization_url"):
            raise PaymentGatewayError("transaction/initialize returned no authorization_url")
        return InitializedCharge(
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code", ""),
            reference=data.get("reference", reference),
        )

    async def verify_transaction(self, reference: str) -> ChargeVerification:
        data = await self._request(
            "GET", f"/transaction/verify/{reference}", "transaction/verify"
        ) or {}
        return ChargeVerification(
            reference=data.get("reference", reference),
            status=data.get("status", "unknown"),
            amount_kobo=int(data.get("amount") or 0),
            gateway_response=data.get("gateway_response"),
        )

    async def create_transfer_recipient(
        self,
        name: str,
        account_number: str,
        bank_code: str,
    ) -> TransferRecipient:
        data = await self._request(
            "POST",
            "/transferrecipient",
            "transferrecipient",
            json={
                "type": "nuban",
                "name": name,
                "account_number": account_number,
                "bank_code": bank_code,
                "currency": settings.CURRENCY,
            },
        ) or {}
        if not data.get("recipient_code"):
            raise PaymentGatewayError("transferrecipient returned no recipient_code")
        details = data.get("details") or {}
        return TransferRecipient(
            recipient_code=data["recipient_code"],
            account_name=details.get("account_name"),
        )

    async def initiate_transfer(
        self,
        amount_kobo: int,
        recipient_code: str,
        reference: str,
        reason: str,
    ) -> Transfer:
        data = await self._request(
            "POST",
            "/transfer",
            "transfer",
            json={
                "source": "balance",
                "amount": amount_kobo,
                "recipient": recipient_code,
                "reference": reference,
                "reason": reason,
            },
        ) or {}
        return Transfer(
            transfer_code=data.get("transfer_code", ""),
            reference=data.get("reference", reference),
            status=data.get("status", "pending"),
        )

    async def resolve_account(self, account_number: str, bank_code: str) -> ResolvedAccount:
        data = await self._request(
            "GET",
            "/bank/resolve",
            "bank/resolve",
            params={"account_number": account_number, "bank_code": bank_code},
        ) or {}
        return ResolvedAccount(
            account_number=data.get("account_number", account_number),
            account_name=data.get("account_name", ""),
        )

    async def list_banks(self) -> list[dict[str, Any]]:
        data = await self._request(
            "GET", "/bank", "bank", params={"country": "nigeria", "perPage": 100}
        ) or []
        return [
            {"name": bank.get("name"), "code": bank.get("code"), "slug": bank.get("slug")}
            for bank in data
            if bank.get("active", True)
        ]


def get_payment_gateway() -> PaystackClient:
    return PaystackClient(get_paystack_circuit_breaker())
