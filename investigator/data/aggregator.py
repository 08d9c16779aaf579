from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from investigator.models import Alert, AlertInvestigationContext, Transaction

logger = logging.getLogger(__name__)

_FETCH_NAMES = ("alert_history", "transaction_history", "customer_profile", "customer_behaviour")


def select_triggering_transaction(history: Optional[List[Transaction]]) -> Optional[Transaction]:
    """Latest transaction by timestamp; on ties the earliest in list order wins."""
    if not history:
        return None

    dated = [t for t in history if t.timestamp is not None]
    if not dated:
        return None

    # max() keeps the first maximal element
    return max(dated, key=lambda t: t.timestamp)


def select_related_alerts(primary: Alert, history: Optional[List[Alert]]) -> List[Alert]:
    """History entries (excluding the primary) sharing its account OR its severity."""
    if not history:
        return []

    related: List[Alert] = []
    for a in history:
        if a.id == primary.id:
            continue
        same_account = primary.account_no is not None and a.account_no == primary.account_no
        same_severity = primary.severity is not None and a.severity == primary.severity
        if same_account or same_severity:
            related.append(a)
    return related


class ContextAggregator:
    """
    Assembles the canonical AlertInvestigationContext from the bank data client.

    - Resolves the alert by id (degraded, alert-only context if it cannot)
    - Fans out four customer fetches concurrently and waits for all of them
    - A failed fetch leaves its field as None; it never fails the investigation
    """

    def __init__(self, client: Any):
        self.client = client

    async def build_context(self, alert: Alert) -> AlertInvestigationContext:
        resolved = await self._resolve_alert(alert)
        if resolved is None:
            logger.warning("Alert %s not found; continuing with degraded context", alert.id)
            return AlertInvestigationContext(alert=alert)

        customer_id = resolved.customer_id
        if customer_id is None:
            logger.warning("Alert %s has no customer id; skipping customer fetches", resolved.id)
            return AlertInvestigationContext(alert=resolved)

        results = await asyncio.gather(
            self.client.get_alerts_by_customer(customer_id),
            self.client.get_transactions_by_customer(customer_id),
            self.client.get_customer_profile(customer_id),
            self.client.get_customer_behaviour(customer_id),
            return_exceptions=True,
        )

        fetched = {}
        for name, value in zip(_FETCH_NAMES, results):
            # cancellation (and other BaseExceptions) aborts the build
            if isinstance(value, BaseException) and not isinstance(value, Exception):
                raise value
            if isinstance(value, Exception):
                logger.warning(
                    "Fetch %s failed for customer %s: %s: %s",
                    name, customer_id, type(value).__name__, value,
                )
                value = None
            fetched[name] = value

        alert_history = fetched["alert_history"]
        transaction_history = fetched["transaction_history"]

        return AlertInvestigationContext(
            alert=resolved,
            alert_history=alert_history,
            transaction=select_triggering_transaction(transaction_history),
            transaction_history=transaction_history,
            customer_profile=fetched["customer_profile"],
            customer_behaviour=fetched["customer_behaviour"],
            related_alerts=select_related_alerts(resolved, alert_history),
        )

    async def _resolve_alert(self, alert: Alert) -> Optional[Alert]:
        try:
            return await self.client.get_alert_by_id(alert.id)
        except Exception as e:
            logger.warning("Alert lookup %s failed: %s: %s", alert.id, type(e).__name__, e)
            return None
