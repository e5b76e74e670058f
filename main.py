import logging
import math
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError

from config import get_settings
from errors import InvariantViolationError, SettlementError
from models import (Group, GroupBalances, GroupDebt, Member, MemberBalance,
                    MemberExpenses, MemberSettlements, MemberSummary,
                    ExpenseRecord, Pagination, SettlementRecord, Split)
from reports import build_csv, build_pdf, export_filename
from settlement import aggregate, merge_balances, simplify
from storage import storage
from utils import equal_split, total

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_title)

EXPENSE_VIEWS = ('all', 'paid', 'owe')


class MemberCreate(BaseModel):
    name: str


class GroupCreate(BaseModel):
    name: str
    member_ids: List[str] = []


class GroupMemberAdd(BaseModel):
    member_id: str


class ExpenseCreate(BaseModel):
    description: str
    amount: Decimal
    payer_id: str
    splits: Optional[List[Split]] = None
    category: str = 'Other'
    notes: Optional[str] = None
    expense_date: Optional[date] = None


class ExpenseUpdate(BaseModel):
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    splits: Optional[List[Split]] = None
    category: Optional[str] = None
    notes: Optional[str] = None


class SettlementCreate(BaseModel):
    from_member_id: str
    to_member_id: str
    amount: Decimal
    idempotency_key: Optional[str] = None


@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError):
    if isinstance(exc, InvariantViolationError):
        logger.error("Data-integrity alarm on %s: %s", request.url.path, exc)
    else:
        logger.error("Balance computation failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500,
                        content={"error": exc.kind, "detail": str(exc)})


def _get_group(group_id: str) -> Group:
    group = storage.get_group(group_id)
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    return group


def _get_member(member_id: str) -> Member:
    member = storage.get_member(member_id)
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


def _group_members(group: Group):
    return {m: storage.get_member(m) for m in group.member_ids}


def calculate_group_balances(group: Group,
                             expenses: List[ExpenseRecord]) -> GroupBalances:
    balances = aggregate(expenses, group.member_ids)
    debts = simplify(balances.values())

    return GroupBalances(
        group_id=group.id,
        balances=list(balances.values()),
        debts=debts,
        group_total=total([e.amount for e in expenses if not e.is_settlement]))


@app.get("/api/health")
async def health_check():
    return {"status": "healthy"}


@app.post("/api/members", status_code=201)
async def create_member(payload: MemberCreate):
    try:
        member = Member(name=payload.name)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return storage.create_member(member)


@app.get("/api/members/{member_id}")
async def view_member(member_id: str):
    return _get_member(member_id)


@app.post("/api/groups", status_code=201)
async def create_group(payload: GroupCreate):
    for member_id in payload.member_ids:
        _get_member(member_id)

    try:
        group = Group(name=payload.name,
                      member_ids=list(dict.fromkeys(payload.member_ids)))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return storage.create_group(group)


@app.get("/api/groups/{group_id}")
async def view_group(group_id: str):
    return _get_group(group_id)


@app.post("/api/groups/{group_id}/members")
async def add_group_member(group_id: str, payload: GroupMemberAdd):
    _get_group(group_id)
    _get_member(payload.member_id)
    return storage.add_group_member(group_id, payload.member_id)


@app.post("/api/groups/{group_id}/expenses", status_code=201)
async def add_expense(group_id: str, payload: ExpenseCreate):
    group = _get_group(group_id)

    if payload.payer_id not in group.member_ids:
        raise HTTPException(status_code=400,
                            detail="Payer must be a member of the group")

    if payload.splits:
        for split in payload.splits:
            if split.member_id not in group.member_ids:
                raise HTTPException(
                    status_code=400,
                    detail="Some users in split are not group members")
        splits = payload.splits
    elif payload.amount <= 0:
        raise HTTPException(status_code=400,
                            detail="Amount must be greater than 0")
    else:
        shares = equal_split(payload.amount, group.member_ids)
        splits = [Split(member_id=m, share_amount=a) for m, a in shares.items()]

    fields = dict(group_id=group.id,
                  description=payload.description,
                  payer_id=payload.payer_id,
                  amount=payload.amount,
                  splits=splits,
                  category=payload.category,
                  notes=payload.notes)
    if payload.expense_date:
        fields['expense_date'] = payload.expense_date

    try:
        expense = ExpenseRecord(**fields)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    storage.add_expense(group.id, expense)
    logger.info("Added expense %s of %s to group %s", expense.id,
                expense.amount, group.id)
    return expense


@app.get("/api/groups/{group_id}/expenses")
async def list_expenses(group_id: str, category: Optional[str] = None):
    _get_group(group_id)
    expenses = storage.list_expenses(group_id)
    if category and category != 'All':
        expenses = [e for e in expenses if e.category == category]
    # newest first
    return list(reversed(expenses))


@app.delete("/api/groups/{group_id}/expenses/{expense_id}")
async def delete_expense(group_id: str, expense_id: str):
    _get_group(group_id)
    if not storage.delete_expense(group_id, expense_id):
        raise HTTPException(status_code=404, detail="Expense not found")
    return {"deleted": expense_id}


@app.put("/api/expenses/{expense_id}")
async def update_expense(expense_id: str, payload: ExpenseUpdate):
    expense = storage.find_expense(expense_id)
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    if expense.is_settlement:
        raise HTTPException(status_code=400,
                            detail="Settlements cannot be edited")
    group = _get_group(expense.group_id)

    changes = payload.model_dump(exclude_unset=True, exclude={'splits'})

    if payload.splits:
        for split in payload.splits:
            if split.member_id not in group.member_ids:
                raise HTTPException(
                    status_code=400,
                    detail="Some users in split are not group members")
        changes['splits'] = payload.splits
    elif payload.amount is not None and payload.amount != expense.amount:
        if payload.amount <= 0:
            raise HTTPException(status_code=400,
                                detail="Amount must be greater than 0")
        # same people, new amount split equally between them
        shares = equal_split(payload.amount, [s.member_id for s in expense.splits])
        changes['splits'] = [Split(member_id=m, share_amount=a)
                             for m, a in shares.items()]

    fields = expense.model_dump()
    fields.update(changes)
    try:
        updated = ExpenseRecord(**fields)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    storage.replace_expense(updated)
    logger.info("Updated expense %s in group %s", updated.id, group.id)
    return updated


@app.get("/api/groups/{group_id}/balances")
async def group_balances(group_id: str):
    group = _get_group(group_id)
    return calculate_group_balances(group, storage.list_expenses(group.id))


@app.post("/api/groups/{group_id}/settlements", status_code=201)
async def record_settlement(group_id: str, payload: SettlementCreate):
    group = _get_group(group_id)

    for member_id in (payload.from_member_id, payload.to_member_id):
        if member_id not in group.member_ids:
            raise HTTPException(
                status_code=400,
                detail="Both members must belong to the group")

    try:
        settlement = SettlementRecord(from_member_id=payload.from_member_id,
                                      to_member_id=payload.to_member_id,
                                      amount=payload.amount,
                                      group_id=group.id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    expense = storage.record_settlement(settlement, payload.idempotency_key)
    logger.info("Recorded settlement %s: %s paid %s to %s", expense.id,
                settlement.from_member_id, expense.amount, settlement.to_member_id)
    return expense


@app.get("/api/members/{member_id}/settlements")
async def member_settlements(member_id: str):
    _get_member(member_id)

    debts = []
    balance_maps = []
    for group in storage.groups_of_member(member_id):
        balances = aggregate(storage.list_expenses(group.id), group.member_ids)
        balance_maps.append(balances)
        for debt in simplify(balances.values()):
            if member_id in (debt.from_member_id, debt.to_member_id):
                debts.append(GroupDebt(**debt.model_dump(),
                                       group_id=group.id,
                                       group_name=group.name))

    merged = merge_balances(balance_maps)
    return MemberSettlements(member_id=member_id,
                             debts=debts,
                             balances=list(merged.values()))


@app.get("/api/members/{member_id}/expenses")
async def member_expenses(member_id: str,
                          kind: str = Query('all', alias='type'),
                          page: int = Query(1, ge=1),
                          limit: int = Query(20, ge=1)):
    _get_member(member_id)
    if kind not in EXPENSE_VIEWS:
        raise HTTPException(status_code=400, detail=f"Invalid type: {kind}")

    expenses = [e for e in storage.member_expenses(member_id)
                if _involves(e, member_id, kind)]
    expenses = sorted(reversed(expenses), key=lambda e: e.expense_date, reverse=True)

    balance_maps = [aggregate(storage.list_expenses(g.id), g.member_ids)
                    for g in storage.groups_of_member(member_id)]
    balance = merge_balances(balance_maps).get(member_id,
                                               MemberBalance(member_id=member_id))

    start = (page - 1) * limit
    return MemberExpenses(
        member_id=member_id,
        expenses=expenses[start:start + limit],
        pagination=Pagination(current_page=page,
                              total_pages=math.ceil(len(expenses) / limit),
                              total_expenses=len(expenses),
                              has_next=page * limit < len(expenses),
                              has_prev=page > 1),
        summary=MemberSummary.from_balance(balance))


def _involves(expense: ExpenseRecord, member_id: str, kind: str) -> bool:
    paid = expense.payer_id == member_id
    owes = any(s.member_id == member_id for s in expense.splits)
    if kind == 'paid':
        return paid
    if kind == 'owe':
        return owes and not paid
    return paid or owes


@app.get("/api/groups/{group_id}/export/csv")
async def export_csv(group_id: str):
    group = _get_group(group_id)
    expenses = storage.list_expenses(group.id)
    report = calculate_group_balances(group, expenses)
    content = build_csv(group, expenses, _group_members(group), report, settings)

    return Response(
        content=content,
        media_type="text/csv",
        headers={
            "Content-Disposition":
            f"attachment; filename={export_filename(group, 'csv')}"
        })


@app.get("/api/groups/{group_id}/export/pdf")
async def export_pdf(group_id: str):
    group = _get_group(group_id)
    expenses = storage.list_expenses(group.id)
    report = calculate_group_balances(group, expenses)
    content = build_pdf(group, expenses, _group_members(group), report, settings)

    return Response(
        content=content,
        media_type="application/pdf",
        headers={
            "Content-Disposition":
            f"attachment; filename={export_filename(group, 'pdf')}"
        })


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
