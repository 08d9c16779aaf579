from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from investigator.config.settings import Settings
from investigator.models import Alert, CustomerBehaviourProfile, CustomerProfile, Transaction

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

_ALERT = TypeAdapter(Alert)
_ALERTS = TypeAdapter(List[Alert])
_TRANSACTIONS = TypeAdapter(List[Transaction])
_PROFILE = TypeAdapter(CustomerProfile)
_BEHAVIOUR = TypeAdapter(CustomerBehaviourProfile)


class BankDataError(RuntimeError):
    """Raised when the bank API is unreachable after retries, or the circuit is open."""


class CircuitBreaker:
    """
    Consecutive-failure breaker.

    Opens after ``failure_threshold`` failed requests in a row and rejects calls
    for ``reset_after_seconds``. The first call after that window is let through;
    its outcome closes or re-opens the circuit.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        reset_after_seconds: float = 20.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_after_seconds = reset_after_seconds
        self._clock = clock
        self._failures = 0
        self._opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        if self._opened_at is None:
            return False
        return (self._clock() - self._opened_at) < self.reset_after_seconds

    def allow(self) -> bool:
        return not self.is_open

    def record_success(self) -> None:
        self._failures = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self._failures += 1
        if self._failures >= self.failure_threshold:
            self._opened_at = self._clock()


class BankDataClient:
    """
    Async GET wrapper over the bank data REST API.

    Lookups return ``None`` when the API answers with a non-success status or an
    unparseable body. Transport failures and transient statuses are retried with
    exponential backoff; a transport failure that survives every retry raises
    ``BankDataError``.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._breaker = breaker or CircuitBreaker()

    @classmethod
    def from_settings(cls, settings: Settings) -> "BankDataClient":
        return cls(
            base_url=settings.bank_api_base_url,
            timeout_seconds=settings.bank_api_timeout_seconds,
            max_retries=settings.bank_api_max_retries,
            backoff_seconds=settings.bank_api_backoff_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BankDataClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ---------------------------------------------------------
    # ALERTS
    # ---------------------------------------------------------

    async def get_alert_by_id(self, alert_id: int) -> Optional[Alert]:
        return await self._get_model(f"/alerts/{alert_id}", _ALERT)

    async def get_alerts_by_customer(self, customer_id: int) -> Optional[List[Alert]]:
        return await self._get_model(f"/customers/{customer_id}/alerts", _ALERTS)

    # ---------------------------------------------------------
    # TRANSACTIONS
    # ---------------------------------------------------------

    async def get_transactions_by_customer(self, customer_id: int) -> Optional[List[Transaction]]:
        return await self._get_model(f"/customers/{customer_id}/transactions", _TRANSACTIONS)

    # ---------------------------------------------------------
    # CUSTOMER PROFILE / BEHAVIOUR
    # ---------------------------------------------------------

    async def get_customer_profile(self, customer_id: int) -> Optional[CustomerProfile]:
        return await self._get_model(f"/customers/{customer_id}/profile", _PROFILE)

    async def get_customer_behaviour(self, customer_id: int) -> Optional[CustomerBehaviourProfile]:
        return await self._get_model(f"/customers/{customer_id}/behaviour", _BEHAVIOUR)

    # ---------------------------------------------------------
    # COMMON HTTP HANDLER
    # ---------------------------------------------------------

    async def _get_model(self, path: str, adapter: TypeAdapter) -> Any:
        payload = await self._get_json(path)
        if payload is None:
            return None
        try:
            return adapter.validate_python(payload)
        except ValidationError as e:
            logger.warning("Bank API payload for %s did not match schema: %s", path, e)
            return None

    async def _get_json(self, path: str) -> Any:
        if not self._breaker.allow():
            raise BankDataError(f"Circuit open, skipping GET {path}")

        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.get(path)
            except httpx.TransportError as e:
                last_error = e
                logger.warning("GET %s attempt %d failed: %s: %s", path, attempt + 1, type(e).__name__, e)
            else:
                logger.info("GET %s -> %s", path, response.status_code)
                if response.status_code not in TRANSIENT_STATUS_CODES:
                    self._breaker.record_success()
                    if not response.is_success:
                        return None
                    try:
                        return response.json()
                    except ValueError:
                        logger.warning("GET %s returned a non-JSON body", path)
                        return None
                last_error = None

            if attempt < self._max_retries:
                await asyncio.sleep(self._backoff_seconds * (2 ** attempt))

        self._breaker.record_failure()

        if last_error is not None:
            raise BankDataError(
                f"GET {path} failed after {self._max_retries + 1} attempts: "
                f"{type(last_error).__name__}: {last_error}"
            ) from last_error

        logger.warning("GET %s still transient after %d attempts", path, self._max_retries + 1)
        return None
