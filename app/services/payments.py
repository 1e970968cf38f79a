"""
services/payments.py

Payment gateway client (Paystack-compatible REST API) and the reconciliation
check used by the verification workflow.

`reconcile_payment` never raises: any gateway error, network failure or
amount/status mismatch comes back as the same failed `PaymentResult`. There
are no retries here; a payer retries by resubmitting the same reference.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)

PAYMENT_FAILED_MESSAGE = "Payment verification failed"


class PaymentGatewayError(Exception):
    pass


@dataclass(frozen=True)
class GatewayTransaction:
    reference: str
    status: str
    amount: int
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    reason: Optional[str] = None
    transaction: Optional[GatewayTransaction] = None


class PaystackGateway:
    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {secret_key}",
            "Content-Type": "application/json",
        })

    def close(self) -> None:
        self.session.close()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise PaymentGatewayError(f"Gateway unreachable: {e}") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise PaymentGatewayError(f"Gateway returned non-JSON (HTTP {resp.status_code})") from e

        if not isinstance(body, dict):
            raise PaymentGatewayError(f"Unexpected gateway payload (HTTP {resp.status_code})")
        if not (200 <= resp.status_code < 300) or not body.get("status"):
            message = body.get("message")
            raise PaymentGatewayError(f"Gateway error HTTP {resp.status_code}: {message or 'unknown'}")

        data = body.get("data")
        if not isinstance(data, dict):
            raise PaymentGatewayError("Gateway response has no data object")
        return data

    def verify_transaction(self, reference: str) -> GatewayTransaction:
        data = self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")
        try:
            amount = int(data["amount"])
        except (KeyError, TypeError, ValueError) as e:
            raise PaymentGatewayError("Gateway response has no usable amount") from e
        return GatewayTransaction(
            reference=str(data.get("reference") or reference),
            status=str(data.get("status") or ""),
            amount=amount,
            raw=data,
        )

    def initialize_transaction(
        self,
        email: str,
        amount: int,
        reference: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """`amount` is in minor units (kobo)."""
        return self._request(
            "POST",
            "/transaction/initialize",
            json={
                "email": email,
                "amount": amount,
                "reference": reference,
                "metadata": metadata or {},
            },
        )


def to_minor_units(amount: int, multiplier: Optional[int] = None) -> int:
    return int(amount) * (multiplier or settings.PAYMENT_MINOR_UNIT_MULTIPLIER)


def reconcile_payment(gateway, reference: str, expected_amount: int) -> PaymentResult:
    """
    Confirm that `reference` is a successful transaction for exactly
    `expected_amount` (base currency units).
    """
    if not reference or not reference.strip():
        return PaymentResult(success=False, reason="Missing payment reference")

    try:
        transaction = gateway.verify_transaction(reference.strip())
    except PaymentGatewayError as e:
        logger.error("Payment verify error for %s: %s", reference, e)
        return PaymentResult(success=False, reason=PAYMENT_FAILED_MESSAGE)

    expected_minor = to_minor_units(expected_amount)
    if transaction.status != "success" or transaction.amount != expected_minor:
        logger.warning(
            "Payment mismatch for %s: status=%s amount=%s expected=%s",
            reference, transaction.status, transaction.amount, expected_minor,
        )
        return PaymentResult(success=False, reason="Mismatch or failed payment", transaction=transaction)

    return PaymentResult(success=True, transaction=transaction)
