"""Fold a group's expenses into one net balance per member."""
import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Optional

from splitledger.errors import PreconditionViolation
from splitledger.money import ZERO, to_money, within_epsilon
from splitledger.schemas import SettlementStatus

logger = logging.getLogger(__name__)


def _check_expense(group_id: int, expense) -> None:
    expense_group = getattr(expense, "group_id", group_id)
    if expense_group != group_id:
        raise PreconditionViolation(
            f"Expense {getattr(expense, 'id', '?')} belongs to group {expense_group}, not {group_id}"
        )
    paid = sum((to_money(p.amount) for p in expense.payers), ZERO)
    owed = sum((to_money(s.owed_amount) for s in expense.splits), ZERO)
    if paid != to_money(expense.amount) or not within_epsilon(owed, expense.amount):
        raise PreconditionViolation(
            f"Expense {getattr(expense, 'id', '?')} is unbalanced: "
            f"amount={expense.amount} paid={paid} owed={owed}"
        )


def compute_balances(
    group_id: int,
    expenses: Iterable,
    members: Optional[Iterable[int]] = None,
    settlements: Optional[Iterable] = None,
    strict: bool = False,
) -> dict[int, Decimal]:
    """
    user_id -> net balance (positive = is owed money, negative = owes money).

    Each expense needs `payers` (items with user_id, amount) and `splits`
    (items with user_id, owed_amount). Expenses are trusted to be balanced
    unless strict is set. Completed settlements, when given, count as money
    moved from the debtor to the creditor.
    """
    balances: dict[int, Decimal] = {uid: ZERO for uid in members or ()}
    count = 0
    for e in expenses:
        if strict:
            _check_expense(group_id, e)
        for p in e.payers:
            balances[p.user_id] = balances.get(p.user_id, ZERO) + to_money(p.amount)
        for s in e.splits:
            balances[s.user_id] = balances.get(s.user_id, ZERO) - to_money(s.owed_amount)
        count += 1

    for s in settlements or ():
        if s.status != SettlementStatus.COMPLETED:
            continue
        balances[s.from_user_id] = balances.get(s.from_user_id, ZERO) + to_money(s.amount)
        balances[s.to_user_id] = balances.get(s.to_user_id, ZERO) - to_money(s.amount)

    logger.debug("Group %s: folded %d expenses into %d balances", group_id, count, len(balances))
    return balances
