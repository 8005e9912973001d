"""Ledger collaborator: on-chain account creation and balance lookups.

Account creation goes through an operator gateway that holds the paying
account's key; balances are read from the public Hedera mirror node REST API.
"""

from decimal import Decimal
from typing import Protocol

import httpx

from walletdrop.common.errors import LedgerTransientError
from walletdrop.common.logging import logger

TINYBARS_PER_HBAR = Decimal(100_000_000)

# Gateway error codes that indicate operator misconfiguration rather than bad input.
OPERATOR_ERROR_CODES = {"INSUFFICIENT_PAYER_BALANCE", "INVALID_SIGNATURE", "PAYER_ACCOUNT_NOT_FOUND"}


class LedgerClient(Protocol):
    async def create_account(self, public_key: str) -> str: ...

    async def get_balance(self, account_id: str) -> Decimal: ...


class HttpLedgerClient:
    """httpx client for the operator gateway and the mirror node."""

    def __init__(
        self,
        gateway_url: str,
        api_key: str | None,
        mirror_node_url: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"X-API-Key": api_key} if api_key else {}
        self._gateway = httpx.AsyncClient(base_url=gateway_url, headers=headers, timeout=timeout, transport=transport)
        self._mirror = httpx.AsyncClient(base_url=mirror_node_url, timeout=timeout, transport=transport)

    async def create_account(self, public_key: str) -> str:
        """Create an account keyed to `public_key` and return its id (`0.0.N`)."""

        try:
            resp = await self._gateway.post("/accounts", json={"public_key": public_key})
        except httpx.TimeoutException as exc:
            raise LedgerTransientError("account creation timed out", reason="TIMEOUT") from exc
        except httpx.HTTPError as exc:
            raise LedgerTransientError(f"account creation failed: {exc}", reason="TRANSPORT") from exc
        if resp.status_code >= 400:
            code = "UNKNOWN"
            try:
                code = resp.json().get("error", code)
            except ValueError:
                pass
            if code in OPERATOR_ERROR_CODES:
                logger.error("ledger_operator_misconfigured code=%s", code)
            raise LedgerTransientError(f"account creation rejected (status={resp.status_code})", reason=code)
        account_id = resp.json().get("account_id")
        if not isinstance(account_id, str) or not account_id:
            raise LedgerTransientError("gateway response missing account_id", reason="MALFORMED")
        return account_id

    async def get_balance(self, account_id: str) -> Decimal:
        """Current balance in whole units (HBAR)."""

        resp = await self._mirror.get(f"/api/v1/accounts/{account_id}")
        resp.raise_for_status()
        tinybars = resp.json().get("balance", {}).get("balance", 0)
        return Decimal(tinybars) / TINYBARS_PER_HBAR

    async def close(self) -> None:
        await self._gateway.aclose()
        await self._mirror.aclose()
