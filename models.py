from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime, date
from decimal import Decimal
from uuid import uuid4

from utils import TOLERANCE, round2, total

CATEGORIES = ('Food', 'Transportation', 'Entertainment', 'Shopping', 'Bills',
              'Travel', 'Other')
SETTLEMENT_CATEGORY = 'Settlement'


class Member(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str

    @field_validator('name')
    @classmethod
    def name_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('Member name cannot be empty')
        return v.strip()


class Split(BaseModel):
    model_config = ConfigDict(frozen=True)

    member_id: str
    share_amount: Decimal = Field(..., ge=0, decimal_places=2)


class ExpenseRecord(BaseModel):
    """
    A shared expense as handed to the balance aggregator.

    Construction is the ingestion check: amounts are whole cents, the amount
    must be positive, splits non-empty and their shares must add up to the
    amount exactly.
    Records are frozen once built.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    group_id: Optional[str] = None
    description: str = Field(..., min_length=1, max_length=200)
    payer_id: str
    amount: Decimal = Field(..., decimal_places=2)
    splits: List[Split]
    category: str = 'Other'
    notes: Optional[str] = Field(None, max_length=500)
    expense_date: date = Field(default_factory=date.today)
    settled: bool = False

    @field_validator('description', mode='before')
    @classmethod
    def strip_description(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator('amount')
    @classmethod
    def amount_positive(cls, v):
        if v <= 0:
            raise ValueError('Amount must be greater than 0')
        return v

    @field_validator('splits')
    @classmethod
    def at_least_one_split(cls, v):
        if not v:
            raise ValueError('At least one split is required')
        return v

    @field_validator('category')
    @classmethod
    def known_category(cls, v):
        if v not in CATEGORIES and v != SETTLEMENT_CATEGORY:
            raise ValueError(f'Invalid category: {v}')
        return v

    @model_validator(mode='after')
    def splits_match_amount(self):
        split_total = total([s.share_amount for s in self.splits])
        if abs(split_total - self.amount) >= TOLERANCE:
            raise ValueError(
                f'Split amounts ({split_total}) do not add up to '
                f'total amount ({self.amount})')
        return self

    @property
    def is_settlement(self) -> bool:
        return self.category == SETTLEMENT_CATEGORY


class SettlementRecord(BaseModel):
    """A payment from a debtor to a creditor."""

    from_member_id: str
    to_member_id: str
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    group_id: Optional[str] = None

    @model_validator(mode='after')
    def distinct_members(self):
        if self.from_member_id == self.to_member_id:
            raise ValueError('A member cannot settle with themselves')
        return self

    def to_expense(self) -> ExpenseRecord:
        amount = round2(self.amount)
        return ExpenseRecord(
            group_id=self.group_id,
            description='Settlement payment',
            payer_id=self.from_member_id,
            amount=amount,
            splits=[Split(member_id=self.to_member_id, share_amount=amount)],
            category=SETTLEMENT_CATEGORY,
            settled=True,
        )


class MemberBalance(BaseModel):
    model_config = ConfigDict(extra='forbid')

    member_id: str
    total_paid: Decimal = Decimal('0.00')
    total_owed: Decimal = Decimal('0.00')
    net_balance: Decimal = Decimal('0.00')


class SimplifiedDebt(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_member_id: str
    to_member_id: str
    amount: Decimal = Field(..., gt=0)

    @model_validator(mode='after')
    def no_self_debt(self):
        if self.from_member_id == self.to_member_id:
            raise ValueError('A debt must be between two different members')
        return self


class Group(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    created_at: datetime = Field(default_factory=datetime.now)
    member_ids: List[str] = Field(default_factory=list)
    expenses: List[ExpenseRecord] = Field(default_factory=list)

    @field_validator('name')
    @classmethod
    def name_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('Group name cannot be empty')
        return v.strip()


class GroupDebt(SimplifiedDebt):
    group_id: str
    group_name: str


class GroupBalances(BaseModel):
    group_id: str
    balances: List[MemberBalance]
    debts: List[SimplifiedDebt]
    group_total: Decimal


class MemberSettlements(BaseModel):
    member_id: str
    debts: List[GroupDebt]
    balances: List[MemberBalance]


class MemberSummary(BaseModel):
    total_paid: Decimal
    total_owed: Decimal
    net_balance: Decimal
    you_owe: Decimal
    you_are_owed: Decimal

    @classmethod
    def from_balance(cls, balance: MemberBalance) -> 'MemberSummary':
        net = balance.net_balance
        return cls(total_paid=balance.total_paid,
                   total_owed=balance.total_owed,
                   net_balance=net,
                   you_owe=-net if net < 0 else Decimal('0.00'),
                   you_are_owed=net if net > 0 else Decimal('0.00'))


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_expenses: int
    has_next: bool
    has_prev: bool


class MemberExpenses(BaseModel):
    member_id: str
    expenses: List[ExpenseRecord]
    pagination: Pagination
    summary: MemberSummary
