"""Settlement provider abstraction layer.

The settlement service executes the USDC ``transferFrom`` on-chain on the
platform's behalf and reports back a transaction hash. The billing engine only
sees the interface below.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from app.core.config import settings
from app.core.errors import SettlementError, SettlementTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class SettlementResult:
    """Result of a successful settlement call."""

    tx_hash: str
    raw: dict[str, Any] | None = None


class SettlementProviderBase(ABC):
    """Abstract base class for settlement providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass  # pragma: no cover

    @abstractmethod
    def charge(
        self,
        customer_wallet: str,
        merchant_wallet: str,
        amount: Decimal,
        attempt_token: str,
    ) -> SettlementResult:
        """Move ``amount`` from the customer to the merchant.

        Must raise ``SettlementError`` on any failure, and
        ``SettlementTimeoutError`` when the outcome is unknown.
        ``attempt_token`` is unique per attempt and lets the service
        deduplicate retried requests.
        """
        pass  # pragma: no cover

    @abstractmethod
    def verify_approval(self, tx_hash: str, customer_wallet: str, amount: Decimal) -> bool:
        """Check an ERC-20 approval transaction grants at least ``amount``."""
        pass  # pragma: no cover


class HttpSettlementProvider(SettlementProviderBase):
    """Settlement provider backed by the platform's settlement HTTP API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.SETTLEMENT_API_URL).rstrip("/")
        self.api_key = api_key or settings.SETTLEMENT_API_KEY
        self.timeout = timeout if timeout is not None else settings.SETTLEMENT_TIMEOUT_SECONDS

    @property
    def provider_name(self) -> str:
        return "http"

    def _headers(self, idempotency_key: str | None = None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def charge(
        self,
        customer_wallet: str,
        merchant_wallet: str,
        amount: Decimal,
        attempt_token: str,
    ) -> SettlementResult:
        payload = {
            "from": customer_wallet,
            "to": merchant_wallet,
            "amount": str(amount),
            "asset": "USDC",
        }
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(
                    f"{self.base_url}/v1/transfers",
                    json=payload,
                    headers=self._headers(attempt_token),
                )
        except httpx.TimeoutException as exc:
            raise SettlementTimeoutError(f"Settlement timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise SettlementError(f"Settlement request failed: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            raise SettlementError(
                f"Settlement rejected ({resp.status_code}): {_error_message(resp)}"
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise SettlementError(
                "Settlement response was not valid JSON; transfer outcome is ambiguous"
            ) from exc
        if not isinstance(data, dict):
            raise SettlementError(
                "Settlement response was not a JSON object; transfer outcome is ambiguous"
            )
        tx_hash = data.get("tx_hash")
        if not tx_hash:
            # Accepted but no hash: the transfer may or may not have happened.
            raise SettlementError("Settlement response did not include a transaction hash")
        return SettlementResult(tx_hash=str(tx_hash), raw=data)

    def verify_approval(self, tx_hash: str, customer_wallet: str, amount: Decimal) -> bool:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.get(
                    f"{self.base_url}/v1/approvals/{tx_hash}",
                    params={"owner": customer_wallet},
                    headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            logger.warning("Approval verification failed for %s: %s", tx_hash, exc)
            return False

        if resp.status_code != 200:
            return False
        try:
            data = resp.json()
        except ValueError:
            logger.warning("Approval verification for %s returned a non-JSON body", tx_hash)
            return False
        if not isinstance(data, dict) or not data.get("confirmed"):
            return False
        if str(data.get("owner", "")).lower() != customer_wallet.lower():
            return False
        return Decimal(str(data.get("allowance", "0"))) >= Decimal(amount)


class UnconfiguredSettlementProvider(SettlementProviderBase):
    """Used when no settlement service is configured: every charge fails."""

    @property
    def provider_name(self) -> str:
        return "unconfigured"

    def charge(
        self,
        customer_wallet: str,
        merchant_wallet: str,
        amount: Decimal,
        attempt_token: str,
    ) -> SettlementResult:
        raise SettlementError("Settlement service is not configured")

    def verify_approval(self, tx_hash: str, customer_wallet: str, amount: Decimal) -> bool:
        return False


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:500] if resp.text else "no body"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


def get_settlement_provider() -> SettlementProviderBase:
    """Return the settlement provider configured for this deployment."""
    if settings.settlement_enabled:
        return HttpSettlementProvider()
    return UnconfiguredSettlementProvider()
