"""Expenses: create, list (per group or across your groups), get, update, delete, mark splits paid, group summary."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from splitledger.database import get_db
from splitledger.errors import ValidationError
from splitledger.models import User, Group, Expense, ExpensePayer, ExpenseSplit, Settlement
from splitledger.money import ZERO, to_money
from splitledger.schemas import (
    ExpenseCreate, ExpenseUpdate, ExpenseResponse, ExpenseSummary, MemberSpending,
    PayerShare, SplitInput, SplitShare, SplitType, EXPENSE_CATEGORIES,
)
from splitledger.auth import get_current_user
from splitledger.routers.common import group_for_member, is_admin, member_ids, require_members
from splitledger.services.balance_aggregator import compute_balances
from splitledger.services.split_calculator import compute_splits, validate_payers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/expenses", tags=["expenses"])


def _check_category(category: Optional[str]) -> None:
    if category is not None and category not in EXPENSE_CATEGORIES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid category. Must be one of: {', '.join(EXPENSE_CATEGORIES)}",
        )


def _check_currency(group: Group, currency: Optional[str]) -> None:
    if currency is not None and currency.strip().upper() != group.currency:
        raise ValidationError(f"Expense currency {currency} does not match group currency {group.currency}")


def _directive(split_type: SplitType, participant_ids: Optional[list[int]], splits: Optional[list[SplitInput]]):
    """Build the split calculator's directive from the request body."""
    if split_type == SplitType.EQUAL:
        return participant_ids
    if not splits:
        raise ValidationError(f"A {split_type.value} split requires per-participant splits")
    field = "percentage" if split_type == SplitType.PERCENTAGE else "amount"
    pairs = []
    for s in splits:
        value = getattr(s, field)
        if value is None:
            raise ValidationError(f"Split for user {s.user_id} is missing its {field}")
        pairs.append((s.user_id, value))
    return pairs


def _existing_directive(expense: Expense, split_type: SplitType):
    if split_type == SplitType.EQUAL:
        return [s.user_id for s in expense.splits]
    if split_type == SplitType.PERCENTAGE:
        return [(s.user_id, s.percentage) for s in expense.splits]
    return [(s.user_id, s.owed_amount) for s in expense.splits]


def _calculate(group: Group, amount, split_type: SplitType, directive, payers) -> tuple[list[PayerShare], list[SplitShare]]:
    payers = validate_payers(amount, payers)
    splits = compute_splits(amount, split_type, directive)
    require_members(group, [p.user_id for p in payers], "payers")
    require_members(group, [s.user_id for s in splits], "participants")
    return payers, splits


def _store_shares(expense: Expense, payers: list[PayerShare], splits: list[SplitShare]) -> None:
    expense.payers = [ExpensePayer(user_id=p.user_id, amount=p.amount) for p in payers]
    expense.splits = [
        ExpenseSplit(user_id=s.user_id, owed_amount=s.owed_amount, percentage=s.percentage, is_paid=s.is_paid)
        for s in splits
    ]


def _get_expense(db: Session, expense_id: int, user: User) -> tuple[Expense, Group]:
    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    group = group_for_member(db, expense.group_id, user)
    return expense, group


def _require_owner_or_admin(db: Session, expense: Expense, group: Group, user: User) -> None:
    if expense.created_by != user.id and not is_admin(db, group, user):
        raise HTTPException(status_code=403, detail="Only the expense creator or a group admin can change it")


@router.post("", response_model=ExpenseResponse, status_code=201)
def create_expense(
    data: ExpenseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = group_for_member(db, data.group_id, current_user)
    _check_category(data.category)
    _check_currency(group, data.currency)

    payers = data.payers or [PayerShare(user_id=current_user.id, amount=data.amount)]
    participant_ids = data.participant_ids if data.participant_ids is not None else member_ids(group)
    directive = _directive(data.split_type, participant_ids, data.splits)
    payers, splits = _calculate(group, data.amount, data.split_type, directive, payers)

    expense = Expense(
        group_id=group.id,
        created_by=current_user.id,
        description=data.description,
        amount=to_money(data.amount),
        currency=group.currency,
        category=data.category,
        notes=data.notes,
        split_type=data.split_type.value,
    )
    if data.date is not None:
        expense.date = data.date
    _store_shares(expense, payers, splits)
    db.add(expense)
    db.commit()
    db.refresh(expense)
    logger.info(
        "User %s added expense %s (%s %s, %s split) to group %s",
        current_user.id, expense.id, expense.amount, expense.currency, expense.split_type, group.id,
    )
    return ExpenseResponse.model_validate(expense)


@router.get("", response_model=list[ExpenseResponse])
def list_expenses(
    group_id: Optional[int] = Query(None),
    category: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Expenses of one group, or of every group the caller belongs to when group_id is omitted."""
    if group_id is not None:
        group_for_member(db, group_id, current_user)
        q = db.query(Expense).filter(Expense.group_id == group_id)
    else:
        q = db.query(Expense).join(Group).filter(Group.members.any(User.id == current_user.id))
    if category:
        q = q.filter(Expense.category == category)
    if start_date:
        q = q.filter(Expense.date >= start_date)
    if end_date:
        q = q.filter(Expense.date <= end_date)

    expenses = q.order_by(Expense.date.desc(), Expense.id.desc()).offset(offset).limit(limit).all()
    return [ExpenseResponse.model_validate(e) for e in expenses]


@router.get("/group/{group_id}/summary", response_model=ExpenseSummary)
def get_summary(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = group_for_member(db, group_id, current_user)
    expenses = db.query(Expense).filter(Expense.group_id == group_id).all()
    settlements = db.query(Settlement).filter(Settlement.group_id == group_id).all()

    total = ZERO
    cat_totals: dict[str, Decimal] = {}
    member_paid = {m.id: ZERO for m in group.members}
    paid_splits = unpaid_splits = ZERO
    for e in expenses:
        total += e.amount
        cat_totals[e.category] = cat_totals.get(e.category, ZERO) + e.amount
        for p in e.payers:
            member_paid[p.user_id] = member_paid.get(p.user_id, ZERO) + p.amount
        for s in e.splits:
            if s.is_paid:
                paid_splits += s.owed_amount
            else:
                unpaid_splits += s.owed_amount

    balances = compute_balances(group.id, expenses, members=member_ids(group), settlements=settlements)
    member_map = {m.id: m.name or m.email for m in group.members}
    return ExpenseSummary(
        group_id=group.id,
        currency=group.currency,
        expense_count=len(expenses),
        total_spent=total,
        category_totals=cat_totals,
        member_spending=[
            MemberSpending(user_id=uid, name=member_map.get(uid, str(uid)), paid=paid)
            for uid, paid in member_paid.items()
        ],
        your_balance=balances.get(current_user.id, ZERO),
        total_paid_splits=paid_splits,
        total_unpaid_splits=unpaid_splits,
    )


@router.get("/{expense_id}", response_model=ExpenseResponse)
def get_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense, _ = _get_expense(db, expense_id, current_user)
    return ExpenseResponse.model_validate(expense)


@router.patch("/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    expense_id: int,
    data: ExpenseUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense, group = _get_expense(db, expense_id, current_user)
    _require_owner_or_admin(db, expense, group, current_user)
    _check_category(data.category)

    recompute = any(
        v is not None for v in (data.amount, data.payers, data.split_type, data.participant_ids, data.splits)
    )
    if recompute:
        amount = data.amount if data.amount is not None else expense.amount
        split_type = data.split_type or SplitType(expense.split_type)

        if data.payers is not None:
            payers = data.payers
        elif len(expense.payers) == 1:
            # A sole payer keeps paying the whole (possibly new) amount.
            payers = [PayerShare(user_id=expense.payers[0].user_id, amount=amount)]
        else:
            payers = [PayerShare.model_validate(p) for p in expense.payers]

        if data.participant_ids is None and data.splits is None:
            directive = _existing_directive(expense, split_type)
        else:
            directive = _directive(split_type, data.participant_ids, data.splits)
        payers, splits = _calculate(group, amount, split_type, directive, payers)

        if data.preserve_paid:
            previous = {s.user_id: s for s in expense.splits}
            for s in splits:
                old = previous.get(s.user_id)
                if old is not None and old.owed_amount == s.owed_amount:
                    s.is_paid = old.is_paid

        expense.amount = to_money(amount)
        expense.split_type = split_type.value
        _store_shares(expense, payers, splits)

    if data.description is not None:
        expense.description = data.description
    if data.category is not None:
        expense.category = data.category
    if data.date is not None:
        expense.date = data.date
    if data.notes is not None:
        expense.notes = data.notes

    db.commit()
    db.refresh(expense)
    logger.info("User %s updated expense %s (splits recomputed: %s)", current_user.id, expense.id, recompute)
    return ExpenseResponse.model_validate(expense)


@router.delete("/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense, group = _get_expense(db, expense_id, current_user)
    _require_owner_or_admin(db, expense, group, current_user)
    db.delete(expense)
    db.commit()
    logger.info("User %s deleted expense %s", current_user.id, expense_id)


@router.put("/{expense_id}/splits/{user_id}/paid", response_model=ExpenseResponse)
def mark_split_paid(
    expense_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense, _ = _get_expense(db, expense_id, current_user)
    split = next((s for s in expense.splits if s.user_id == user_id), None)
    if not split:
        raise HTTPException(status_code=404, detail="Split not found")
    split.is_paid = True
    db.commit()
    db.refresh(expense)
    return ExpenseResponse.model_validate(expense)
