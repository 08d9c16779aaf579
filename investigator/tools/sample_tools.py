"""
Tools the chat model can call during follow-up analysis.

  1. AccountLookup          - account metadata from the account directory
  2. TransactionSearch      - aggregated statistics over a customer's transactions
  3. CustomerProfileLookup  - KYC / risk profile for a customer
  4. HttpFetch              - bounded GET against an external URL
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import httpx

from investigator.analytics.evidence_weighting import normalize_account
from investigator.config.settings import Settings
from investigator.data.bank_client import BankDataClient, BankDataError
from investigator.models import ToolCall, ToolResult
from investigator.tools.base import Tool, ToolRegistry

logger = logging.getLogger(__name__)


SAMPLE_ACCOUNTS: Dict[str, Dict[str, Any]] = {
    "ACC-1001": {"customerName": "ACME Corp", "riskRating": "Low", "opened": "2018-05-01", "status": "Active"},
    "ACC-2002": {"customerName": "Jane Doe", "riskRating": "Medium", "opened": "2021-11-15", "status": "Active"},
    "ACC-3003": {"customerName": "Northwind Traders", "riskRating": "High", "opened": "2023-02-20", "status": "UnderReview"},
}


def _parse_customer_id(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class AccountLookupTool(Tool):
    name = "AccountLookup"
    description = "Lookup account metadata such as customer name, risk rating and account open date."
    input_schema = {
        "type": "object",
        "properties": {"accountId": {"type": "string", "description": "Account number to look up"}},
        "required": ["accountId"],
    }

    def __init__(self, directory: Optional[Mapping[str, Dict[str, Any]]] = None):
        source = SAMPLE_ACCOUNTS if directory is None else directory
        self._directory = {normalize_account(k): v for k, v in source.items()}

    async def execute(self, call: ToolCall) -> ToolResult:
        account_id = self.arg(call, "accountId")
        if account_id is None:
            return self.error(call, "Missing required argument: accountId")

        record = self._directory.get(normalize_account(account_id))
        if record is None:
            return self.result(call, {"ok": True, "found": False, "accountId": account_id})

        return self.result(call, {"ok": True, "found": True, "accountId": account_id, **record})


class TransactionSearchTool(Tool):
    name = "TransactionSearch"
    description = "Search a customer's recent transactions, optionally for one account, and return aggregated statistics."
    input_schema = {
        "type": "object",
        "properties": {
            "customerId": {"type": "string", "description": "Customer id owning the transactions"},
            "accountId": {"type": "string", "description": "Only count transactions touching this account"},
        },
        "required": ["customerId"],
    }

    def __init__(self, bank_client: BankDataClient):
        self.bank_client = bank_client

    async def execute(self, call: ToolCall) -> ToolResult:
        customer_id = _parse_customer_id(self.arg(call, "customerId"))
        if customer_id is None:
            return self.error(call, "customerId must be an integer")

        account_id = self.arg(call, "accountId")

        try:
            history = await self.bank_client.get_transactions_by_customer(customer_id)
        except BankDataError as e:
            return self.error(call, str(e))

        if history is None:
            return self.error(call, "Transaction history unavailable")

        if account_id is not None:
            target = normalize_account(account_id)
            history = [
                t for t in history
                if target in (normalize_account(t.source_account), normalize_account(t.destination_account))
            ]

        amounts = [t.amount for t in history]
        stamps = sorted(t.timestamp for t in history if t.timestamp is not None)

        return self.result(call, {
            "ok": True,
            "customerId": customer_id,
            "accountId": account_id,
            "transactionCount": len(history),
            "totalAmount": round(sum(amounts), 2),
            "averageAmount": round(sum(amounts) / len(amounts), 2) if amounts else 0.0,
            "maxAmount": max(amounts) if amounts else 0.0,
            "channels": sorted({t.channel for t in history if t.channel}),
            "firstTimestamp": stamps[0].isoformat() if stamps else None,
            "lastTimestamp": stamps[-1].isoformat() if stamps else None,
        })


class CustomerProfileLookupTool(Tool):
    name = "CustomerProfileLookup"
    description = "Fetch a customer's KYC level, occupation, segment, risk rating and linked accounts."
    input_schema = {
        "type": "object",
        "properties": {"customerId": {"type": "string", "description": "Customer id"}},
        "required": ["customerId"],
    }

    def __init__(self, bank_client: BankDataClient):
        self.bank_client = bank_client

    async def execute(self, call: ToolCall) -> ToolResult:
        customer_id = _parse_customer_id(self.arg(call, "customerId"))
        if customer_id is None:
            return self.error(call, "customerId must be an integer")

        try:
            profile = await self.bank_client.get_customer_profile(customer_id)
        except BankDataError as e:
            return self.error(call, str(e))

        if profile is None:
            return self.result(call, {"ok": True, "found": False, "customerId": customer_id})

        return self.result(call, {"ok": True, "found": True, **profile.model_dump(mode="json", by_alias=True)})


class HttpFetchTool(Tool):
    name = "HttpFetch"
    description = "Fetch a public http(s) URL and return its status and (truncated) body."
    input_schema = {
        "type": "object",
        "properties": {"url": {"type": "string", "description": "Absolute http or https URL"}},
        "required": ["url"],
    }

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        max_body_chars: int = 4000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_body_chars = max_body_chars
        self._transport = transport

    async def execute(self, call: ToolCall) -> ToolResult:
        url = self.arg(call, "url")
        if url is None:
            return self.error(call, "Missing required argument: url")

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return self.error(call, f"Unsupported URL: {url}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                resp = await client.get(url)
        except httpx.TimeoutException:
            return self.error(call, f"Timed out after {self.timeout_seconds}s")
        except httpx.HTTPError as e:
            return self.error(call, f"{type(e).__name__}: {e}")

        return self.result(call, {
            "ok": resp.is_success,
            "status": resp.status_code,
            "url": str(resp.url),
            "body": resp.text[: self.max_body_chars],
        })


def default_tool_registry(bank_client: BankDataClient, settings: Optional[Settings] = None) -> ToolRegistry:
    settings = settings or Settings()
    return ToolRegistry([
        AccountLookupTool(),
        TransactionSearchTool(bank_client),
        CustomerProfileLookupTool(bank_client),
        HttpFetchTool(timeout_seconds=settings.http_tool_timeout_seconds),
    ])
