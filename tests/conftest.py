"""Shared pytest fixtures."""

import pytest

from support import FakeBankClient, full_context, make_alert, make_behaviour, make_profile, make_txn


@pytest.fixture
def context():
    return full_context()


@pytest.fixture
def bank_client():
    alert = make_alert()
    return FakeBankClient(
        alert=alert,
        alerts=[alert, make_alert(id=2, severity="Low", account_no="ACC-9999")],
        transactions=[
            make_txn(900.0, minutes_before=30, destination="DEST-A", transaction_id="T1"),
            make_txn(950.0, minutes_before=0, destination="DEST-B", transaction_id="T2"),
        ],
        profile=make_profile(),
        behaviour=make_behaviour(),
    )
