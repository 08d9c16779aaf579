"""Tests for the bank data REST client, driven by httpx.MockTransport."""

import asyncio

import httpx
import pytest

from investigator.data.bank_client import BankDataClient, BankDataError, CircuitBreaker

BASE_URL = "http://bank.test/api"


class _Recorder:
    """MockTransport handler that replays scripted outcomes and records paths."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.paths = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.paths.append(request.url.path)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        status, body = outcome
        return httpx.Response(status, json=body)


def _run(recorder, call, breaker=None, max_retries=2):
    async def scenario():
        client = BankDataClient(
            BASE_URL,
            max_retries=max_retries,
            backoff_seconds=0,
            transport=httpx.MockTransport(recorder),
            breaker=breaker,
        )
        async with client:
            return await call(client)

    return asyncio.run(scenario())


class TestLookups:

    def test_alert_by_id(self):
        rec = _Recorder((200, {"id": 1, "customerId": 7, "amount": 250.5, "severity": "High"}))
        alert = _run(rec, lambda c: c.get_alert_by_id(1))

        assert alert.id == 1
        assert alert.customer_id == 7
        assert alert.amount == 250.5
        assert rec.paths == ["/api/alerts/1"]

    def test_transactions_by_customer(self):
        body = [
            {"transactionId": "T1", "amount": 10, "timestamp": "2024-03-01T12:00:00Z", "destinationAccount": "D1"},
            {"transactionId": "T2", "amount": 20},
        ]
        rec = _Recorder((200, body))
        txns = _run(rec, lambda c: c.get_transactions_by_customer(7))

        assert [t.transaction_id for t in txns] == ["T1", "T2"]
        assert txns[0].timestamp is not None
        assert rec.paths == ["/api/customers/7/transactions"]

    def test_customer_endpoints(self):
        rec = _Recorder((200, {"customerId": 7, "riskRating": 2}))
        profile = _run(rec, lambda c: c.get_customer_profile(7))
        assert profile.risk_rating == "High"
        assert rec.paths == ["/api/customers/7/profile"]

        rec = _Recorder((200, {"customerId": 7, "maxTransactionAmount": 900}))
        behaviour = _run(rec, lambda c: c.get_customer_behaviour(7))
        assert behaviour.max_transaction_amount == 900
        assert rec.paths == ["/api/customers/7/behaviour"]

        rec = _Recorder((200, []))
        assert _run(rec, lambda c: c.get_alerts_by_customer(7)) == []
        assert rec.paths == ["/api/customers/7/alerts"]

    def test_not_found_is_none_without_retry(self):
        rec = _Recorder((404, {"error": "missing"}))
        assert _run(rec, lambda c: c.get_alert_by_id(1)) is None
        assert len(rec.paths) == 1

    def test_schema_mismatch_is_none(self):
        rec = _Recorder((200, {"id": "not-a-number"}))
        assert _run(rec, lambda c: c.get_alert_by_id(1)) is None


class TestRetries:

    def test_transient_status_is_retried(self):
        rec = _Recorder((503, {}), (200, {"id": 3}))
        alert = _run(rec, lambda c: c.get_alert_by_id(3))
        assert alert.id == 3
        assert len(rec.paths) == 2

    def test_exhausted_transient_status_is_none(self):
        rec = _Recorder((503, {}))
        assert _run(rec, lambda c: c.get_alert_by_id(3), max_retries=2) is None
        assert len(rec.paths) == 3

    def test_exhausted_transport_error_raises(self):
        rec = _Recorder(httpx.ConnectError("connection refused"))
        with pytest.raises(BankDataError):
            _run(rec, lambda c: c.get_alert_by_id(3), max_retries=1)
        assert len(rec.paths) == 2

    def test_transport_error_then_success(self):
        rec = _Recorder(httpx.ReadTimeout("slow"), (200, {"id": 4}))
        assert _run(rec, lambda c: c.get_alert_by_id(4)).id == 4


class TestCircuitBreaker:

    def test_open_circuit_fails_fast(self):
        breaker = CircuitBreaker(failure_threshold=2, reset_after_seconds=60)
        rec = _Recorder((503, {}))

        async def three_calls(client):
            assert await client.get_alert_by_id(1) is None
            assert await client.get_alert_by_id(1) is None
            with pytest.raises(BankDataError):
                await client.get_alert_by_id(1)

        _run(rec, three_calls, breaker=breaker, max_retries=0)
        assert len(rec.paths) == 2

    def test_half_open_after_reset_window(self):
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=1, reset_after_seconds=20, clock=lambda: now[0])

        breaker.record_failure()
        assert breaker.is_open
        assert not breaker.allow()

        now[0] = 20.0
        assert breaker.allow()

        breaker.record_success()
        assert not breaker.is_open

    def test_success_resets_failure_count(self):
        breaker = CircuitBreaker(failure_threshold=2)
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert not breaker.is_open
