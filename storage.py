import threading
from typing import Dict, List, Optional

from models import ExpenseRecord, Group, Member, SettlementRecord


class InMemoryStorage:
    def __init__(self):
        self.members: Dict[str, Member] = {}
        self.groups: Dict[str, Group] = {}
        self.settlement_keys: Dict[str, ExpenseRecord] = {}
        self._lock = threading.RLock()

    def create_member(self, member: Member) -> Member:
        with self._lock:
            self.members[member.id] = member
        return member

    def get_member(self, member_id: str) -> Optional[Member]:
        return self.members.get(member_id)

    def create_group(self, group: Group) -> Group:
        with self._lock:
            self.groups[group.id] = group
        return group

    def get_group(self, group_id: str) -> Optional[Group]:
        return self.groups.get(group_id)

    def add_group_member(self, group_id: str, member_id: str) -> Group:
        with self._lock:
            group = self.groups[group_id]
            if member_id not in group.member_ids:
                group.member_ids.append(member_id)
            return group

    def groups_of_member(self, member_id: str) -> List[Group]:
        with self._lock:
            return [g for g in self.groups.values() if member_id in g.member_ids]

    def add_expense(self, group_id: str, expense: ExpenseRecord) -> ExpenseRecord:
        with self._lock:
            self.groups[group_id].expenses.append(expense)
        return expense

    def list_expenses(self, group_id: str) -> List[ExpenseRecord]:
        """Snapshot of a group's expenses, safe to aggregate without the lock."""
        with self._lock:
            return list(self.groups[group_id].expenses)

    def find_expense(self, expense_id: str) -> Optional[ExpenseRecord]:
        with self._lock:
            for group in self.groups.values():
                for expense in group.expenses:
                    if expense.id == expense_id:
                        return expense
        return None

    def replace_expense(self, expense: ExpenseRecord) -> ExpenseRecord:
        with self._lock:
            group = self.groups[expense.group_id]
            group.expenses = [expense if e.id == expense.id else e
                              for e in group.expenses]
        return expense

    def member_expenses(self, member_id: str) -> List[ExpenseRecord]:
        """Expenses from every group of the member, as one snapshot."""
        with self._lock:
            return [e for g in self.groups_of_member(member_id) for e in g.expenses]

    def delete_expense(self, group_id: str, expense_id: str) -> bool:
        with self._lock:
            group = self.groups[group_id]
            remaining = [e for e in group.expenses if e.id != expense_id]
            if len(remaining) == len(group.expenses):
                return False
            group.expenses = remaining
            return True

    def record_settlement(self,
                          settlement: SettlementRecord,
                          idempotency_key: Optional[str] = None) -> ExpenseRecord:
        """
        Store a settlement as a settlement expense. Repeating an idempotency
        key returns the expense recorded the first time.
        """
        with self._lock:
            if idempotency_key and idempotency_key in self.settlement_keys:
                return self.settlement_keys[idempotency_key]

            expense = self.add_expense(settlement.group_id, settlement.to_expense())
            if idempotency_key:
                self.settlement_keys[idempotency_key] = expense
            return expense


storage = InMemoryStorage()
