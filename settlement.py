import logging
from decimal import Decimal
from typing import Dict, Iterable, List

from errors import InvariantViolationError, ReferentialIntegrityError
from models import ExpenseRecord, MemberBalance, SimplifiedDebt
from utils import TOLERANCE, round2

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def compute_settlements(expenses: Iterable[ExpenseRecord],
                        member_ids: Iterable[str]) -> List[SimplifiedDebt]:
    balances = aggregate(expenses, member_ids)
    return simplify(balances.values())


def aggregate(expenses: Iterable[ExpenseRecord],
              member_ids: Iterable[str]) -> Dict[str, MemberBalance]:
    """
    Net balance per member over one scope: total paid minus total owed.

    Every member in ``member_ids`` gets an entry, even with no activity.
    Settlement records are counted like any other expense. Sums are kept
    exact and only the final figures are rounded to cents.
    """
    paid: Dict[str, Decimal] = {m: ZERO for m in member_ids}
    owed: Dict[str, Decimal] = {m: ZERO for m in paid}

    count = 0
    for expense in expenses:
        if expense.payer_id not in paid:
            raise ReferentialIntegrityError(expense.payer_id, expense.id)
        paid[expense.payer_id] += expense.amount

        for split in expense.splits:
            if split.member_id not in owed:
                raise ReferentialIntegrityError(split.member_id, expense.id)
            owed[split.member_id] += split.share_amount
        count += 1

    logger.debug("Aggregated %d expenses over %d members", count, len(paid))

    return {
        member_id: _balance(member_id, paid[member_id], owed[member_id])
        for member_id in paid
    }


def merge_balances(
        balance_maps: Iterable[Dict[str, MemberBalance]]
) -> Dict[str, MemberBalance]:
    """Sum balances of the same members across several scopes."""
    paid: Dict[str, Decimal] = {}
    owed: Dict[str, Decimal] = {}

    for balances in balance_maps:
        for member_id, balance in balances.items():
            paid[member_id] = paid.get(member_id, ZERO) + balance.total_paid
            owed[member_id] = owed.get(member_id, ZERO) + balance.total_owed

    return {
        member_id: _balance(member_id, paid[member_id], owed[member_id])
        for member_id in paid
    }


def _balance(member_id: str, paid: Decimal, owed: Decimal) -> MemberBalance:
    return MemberBalance(member_id=member_id,
                         total_paid=round2(paid),
                         total_owed=round2(owed),
                         net_balance=round2(paid - owed))


def simplify(balances: Iterable[MemberBalance]) -> List[SimplifiedDebt]:
    """
    Greedy largest creditor / largest debtor matching.

    Balances within 0.01 of zero are treated as settled. Equal amounts keep
    their input order, so the same input always yields the same debts.
    Raises InvariantViolationError when the balances do not net to zero.
    """
    creditors = []
    debtors = []
    for b in balances:
        if b.net_balance > TOLERANCE:
            creditors.append([b.member_id, b.net_balance])
        elif b.net_balance < -TOLERANCE:
            debtors.append([b.member_id, -b.net_balance])

    # sort() is stable with reverse=True too
    creditors.sort(key=lambda x: x[1], reverse=True)
    debtors.sort(key=lambda x: x[1], reverse=True)

    debts = []

    i, j = 0, 0
    while i < len(creditors) and j < len(debtors):
        creditor = creditors[i]
        debtor = debtors[j]

        amount = min(creditor[1], debtor[1])

        if amount > TOLERANCE:
            debts.append(SimplifiedDebt(from_member_id=debtor[0],
                                        to_member_id=creditor[0],
                                        amount=round2(amount)))

        creditor[1] -= amount
        debtor[1] -= amount

        if creditor[1] < TOLERANCE:
            i += 1
        if debtor[1] < TOLERANCE:
            j += 1

    _check_exhausted(creditors[i:], debtors[j:])

    logger.debug("Simplified %d creditors and %d debtors into %d debts",
                 len(creditors), len(debtors), len(debts))
    return debts


def _check_exhausted(creditors_left, debtors_left) -> None:
    creditor_residual = sum((c[1] for c in creditors_left), ZERO)
    debtor_residual = sum((d[1] for d in debtors_left), ZERO)

    if creditor_residual == ZERO and debtor_residual == ZERO:
        return

    # Splits may miss their amount by up to a cent at ingestion, so a
    # residual of one cent is expected; anything above that is corruption.
    if creditor_residual + debtor_residual <= TOLERANCE:
        logger.warning(
            "Ignoring rounding residual of %s when simplifying debts",
            creditor_residual + debtor_residual)
        return

    raise InvariantViolationError(round2(creditor_residual),
                                  round2(debtor_residual))
