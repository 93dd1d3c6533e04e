"""Settlements: who owes whom in a group, calculated batches, manual payments, status changes."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from splitledger.database import get_db
from splitledger.errors import ValidationError
from splitledger.models import User, Group, Expense, Settlement
from splitledger.money import ZERO, to_money
from splitledger.schemas import (
    BalanceEntry, MemberInfo, SettlementCreate, SettlementResponse, SettlementStats,
    SettlementSource, SettlementStatus, SettlementSummary, SettlementUpdate,
)
from splitledger.auth import get_current_user
from splitledger.routers.common import group_for_member, member_ids
from splitledger.services.balance_aggregator import compute_balances
from splitledger.services.settlement_calculator import compute_settlements
from splitledger.services.settlement_store import replace_pending, transition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settlements", tags=["settlements"])


def _group_balances(db: Session, group: Group):
    expenses = db.query(Expense).filter(Expense.group_id == group.id).all()
    settled = (
        db.query(Settlement)
        .filter(Settlement.group_id == group.id, Settlement.status == SettlementStatus.COMPLETED.value)
        .all()
    )
    return compute_balances(group.id, expenses, members=member_ids(group), settlements=settled)


def _get_settlement_for_party(db: Session, settlement_id: int, user: User) -> Settlement:
    settlement = db.query(Settlement).filter(Settlement.id == settlement_id).first()
    if not settlement:
        raise HTTPException(status_code=404, detail="Settlement not found")
    if user.id not in (settlement.from_user_id, settlement.to_user_id):
        raise HTTPException(status_code=403, detail="Not a party to this settlement")
    return settlement


@router.get("/group/{group_id}/balances", response_model=SettlementSummary)
def get_balances(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = group_for_member(db, group_id, current_user)
    balances = _group_balances(db, group)
    return SettlementSummary(
        group_id=group.id,
        currency=group.currency,
        members=[MemberInfo(id=m.id, name=m.name, email=m.email) for m in group.members],
        balances=[BalanceEntry(user_id=uid, balance=bal) for uid, bal in balances.items()],
        settlements=compute_settlements(group.id, balances, currency=group.currency),
    )


@router.post("/group/{group_id}/calculate", response_model=list[SettlementResponse])
def calculate_settlements(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = group_for_member(db, group_id, current_user)
    items = compute_settlements(group.id, _group_balances(db, group), currency=group.currency)
    saved = replace_pending(db, group, items)
    return [SettlementResponse.model_validate(s) for s in saved]


@router.get("/group/{group_id}", response_model=list[SettlementResponse])
def list_group_settlements(
    group_id: int,
    status: Optional[SettlementStatus] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group_for_member(db, group_id, current_user)
    q = db.query(Settlement).filter(Settlement.group_id == group_id)
    if status:
        q = q.filter(Settlement.status == status.value)
    return [SettlementResponse.model_validate(s) for s in q.order_by(Settlement.id.desc()).all()]


def _user_settlements(db: Session, user: User, status: Optional[SettlementStatus], group_id: Optional[int]):
    q = db.query(Settlement).filter(or_(Settlement.from_user_id == user.id, Settlement.to_user_id == user.id))
    if status:
        q = q.filter(Settlement.status == status.value)
    if group_id is not None:
        q = q.filter(Settlement.group_id == group_id)
    return q.order_by(Settlement.id.desc()).all()


@router.get("", response_model=list[SettlementResponse])
def list_my_settlements(
    status: Optional[SettlementStatus] = None,
    group_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return [SettlementResponse.model_validate(s) for s in _user_settlements(db, current_user, status, group_id)]


@router.get("/stats", response_model=SettlementStats)
def get_stats(
    group_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    settlements = _user_settlements(db, current_user, None, group_id)

    def _of(status: SettlementStatus):
        return [s for s in settlements if s.status == status.value]

    return SettlementStats(
        total=len(settlements),
        pending=len(_of(SettlementStatus.PENDING)),
        completed=len(_of(SettlementStatus.COMPLETED)),
        cancelled=len(_of(SettlementStatus.CANCELLED)),
        total_amount=sum((s.amount for s in settlements), ZERO),
        pending_amount=sum((s.amount for s in _of(SettlementStatus.PENDING)), ZERO),
        completed_amount=sum((s.amount for s in _of(SettlementStatus.COMPLETED)), ZERO),
    )


@router.post("", response_model=SettlementResponse, status_code=201)
def create_settlement(
    data: SettlementCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = group_for_member(db, data.group_id, current_user)
    if data.to_user_id not in member_ids(group):
        raise HTTPException(status_code=400, detail="Recipient must be a group member")
    if data.to_user_id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot settle with yourself")
    amount = to_money(data.amount)
    if amount <= 0:
        raise ValidationError("Settlement amount must be positive")

    settlement = Settlement(
        group_id=group.id,
        from_user_id=current_user.id,
        to_user_id=data.to_user_id,
        amount=amount,
        currency=group.currency,
        status=SettlementStatus.PENDING.value,
        method=data.method.value,
        notes=data.notes,
        source=SettlementSource.MANUAL.value,
    )
    db.add(settlement)
    db.commit()
    db.refresh(settlement)
    logger.info("User %s recorded settlement %s to %s", current_user.id, settlement.id, data.to_user_id)
    return SettlementResponse.model_validate(settlement)


@router.put("/{settlement_id}", response_model=SettlementResponse)
def update_settlement(
    settlement_id: int,
    data: SettlementUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    settlement = _get_settlement_for_party(db, settlement_id, current_user)
    if data.status == SettlementStatus.COMPLETED and current_user.id != settlement.to_user_id:
        raise HTTPException(status_code=403, detail="Only the recipient can mark a settlement as paid")
    settlement = transition(
        db,
        settlement,
        status=data.status,
        method=data.method.value if data.method else None,
        notes=data.notes,
    )
    return SettlementResponse.model_validate(settlement)


@router.delete("/{settlement_id}", status_code=204)
def delete_settlement(
    settlement_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    settlement = _get_settlement_for_party(db, settlement_id, current_user)
    db.delete(settlement)
    db.commit()
    logger.info("User %s deleted settlement %s", current_user.id, settlement_id)
