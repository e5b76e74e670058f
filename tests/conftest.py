from decimal import Decimal

import pytest

from models import ExpenseRecord, Split
from storage import storage


def expense(payer, amount, shares, **kwargs):
    """Build an ExpenseRecord from a {member: share} mapping."""
    kwargs.setdefault("description", "Shared expense")
    return ExpenseRecord(
        payer_id=payer,
        amount=Decimal(amount),
        splits=[Split(member_id=m, share_amount=Decimal(s)) for m, s in shares.items()],
        **kwargs)


@pytest.fixture(autouse=True)
def clean_storage():
    yield
    storage.members.clear()
    storage.groups.clear()
    storage.settlement_keys.clear()
