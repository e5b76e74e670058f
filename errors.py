from decimal import Decimal
from typing import Optional


class SettlementError(Exception):
    """Base class for data-integrity failures in balance computation."""

    kind = "settlement_error"


class ReferentialIntegrityError(SettlementError):
    kind = "referential_integrity"

    def __init__(self, member_id: str, expense_id: Optional[str] = None):
        self.member_id = member_id
        self.expense_id = expense_id
        where = f" in expense {expense_id}" if expense_id else ""
        super().__init__(
            f"Member {member_id!r}{where} is not part of the balance scope")


class InvariantViolationError(SettlementError):
    kind = "invariant_violation"

    def __init__(self, creditor_residual: Decimal, debtor_residual: Decimal):
        self.creditor_residual = creditor_residual
        self.debtor_residual = debtor_residual
        super().__init__(
            "Balances do not sum to zero: "
            f"{creditor_residual} left unpaid to creditors, "
            f"{debtor_residual} left owed by debtors")
