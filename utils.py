from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Dict, List, Sequence, Union

TOLERANCE = Decimal("0.01")
CENT = Decimal("0.01")

Amount = Union[Decimal, int, float, str]


def to_decimal(value: Amount) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # go through str() so 0.1 stays 0.1
        value = str(value)
    if isinstance(value, str):
        value = value.replace(',', '.').strip()

    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Invalid amount: {value!r}")


def round2(value: Amount) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def equal_split(amount: Amount, member_ids: Sequence[str]) -> Dict[str, Decimal]:
    """
    Split an amount equally, in cents. Leftover cents go one at a time to
    the first members so the shares always add up to the amount.
    """
    if not member_ids:
        raise ValueError("At least one member is required to split an expense")

    amount_minor = int(round2(amount) * 100)
    per_person, remainder = divmod(amount_minor, len(member_ids))

    shares: Dict[str, Decimal] = {}
    for i, member_id in enumerate(member_ids):
        share = per_person
        if i < remainder:
            share += 1
        shares[member_id] = (Decimal(share) / 100).quantize(CENT)
    return shares


def format_currency(amount: Amount, symbol: str = "$") -> str:
    value = round2(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def total(amounts: List[Decimal]) -> Decimal:
    return sum(amounts, Decimal("0"))
