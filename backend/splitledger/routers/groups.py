"""Groups: create, list, get, update, delete, manage members and their roles."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from splitledger.database import get_db
from splitledger.models import User, Group, Expense
from splitledger.schemas import (
    GroupCreate, GroupUpdate, GroupResponse, GroupAddMember, GroupMemberRole, MemberInfo, MemberRole,
)
from splitledger.auth import get_current_user
from splitledger.routers.common import group_for_admin, group_for_member, member_roles, set_member_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])


def _member_info(user: User, role: str) -> MemberInfo:
    return MemberInfo(id=user.id, name=user.name, email=user.email, role=role)


def _group_response(db: Session, group: Group) -> GroupResponse:
    roles = member_roles(db, group)
    return GroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        currency=group.currency,
        created_at=group.created_at,
        member_ids=[u.id for u in group.members],
        members=[_member_info(u, roles.get(u.id, MemberRole.MEMBER.value)) for u in group.members],
    )


@router.get("", response_model=list[GroupResponse])
def list_groups(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    groups = db.query(Group).filter(Group.members.any(User.id == current_user.id)).all()
    return [_group_response(db, g) for g in groups]


@router.post("", response_model=GroupResponse)
def create_group(
    data: GroupCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    members = [current_user]
    if data.member_ids:
        others = db.query(User).filter(User.id.in_(data.member_ids)).all()
        for u in others:
            if u not in members:
                members.append(u)
    group = Group(name=data.name, description=data.description, currency=data.currency)
    group.members = members
    db.add(group)
    db.flush()
    set_member_role(db, group, current_user.id, MemberRole.ADMIN)
    db.commit()
    db.refresh(group)
    logger.info("User %s created group %s (%s)", current_user.id, group.id, group.currency)
    return _group_response(db, group)


@router.get("/{group_id}", response_model=GroupResponse)
def get_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _group_response(db, group_for_member(db, group_id, current_user))


@router.patch("/{group_id}", response_model=GroupResponse)
def update_group(
    group_id: int,
    data: GroupUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = group_for_admin(db, group_id, current_user)
    if data.name is not None:
        group.name = data.name
    if data.description is not None:
        group.description = data.description
    if data.currency is not None and data.currency != group.currency:
        has_expenses = db.query(Expense.id).filter(Expense.group_id == group.id).first() is not None
        if has_expenses:
            raise HTTPException(status_code=400, detail="Cannot change currency of a group with expenses")
        group.currency = data.currency
    db.commit()
    db.refresh(group)
    return _group_response(db, group)


@router.delete("/{group_id}", status_code=204)
def delete_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = group_for_admin(db, group_id, current_user)
    db.delete(group)
    db.commit()
    logger.info("User %s deleted group %s", current_user.id, group_id)


@router.post("/{group_id}/members", response_model=GroupResponse)
def add_group_member(
    group_id: int,
    data: GroupAddMember,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = group_for_admin(db, group_id, current_user)
    user = db.query(User).filter(User.email == data.email).first()
    if not user:
        raise HTTPException(status_code=404, detail="No user found with that email")
    if user in group.members:
        raise HTTPException(status_code=400, detail="User already in group")
    group.members.append(user)
    db.commit()
    db.refresh(group)
    return _group_response(db, group)


@router.delete("/{group_id}/members/{user_id}", response_model=GroupResponse)
def remove_group_member(
    group_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = group_for_admin(db, group_id, current_user)
    user = next((m for m in group.members if m.id == user_id), None)
    if not user:
        raise HTTPException(status_code=404, detail="User not in this group")
    if user.id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot remove yourself")
    group.members.remove(user)
    db.commit()
    db.refresh(group)
    return _group_response(db, group)


@router.put("/{group_id}/members/{user_id}/role", response_model=GroupResponse)
def change_member_role(
    group_id: int,
    user_id: int,
    data: GroupMemberRole,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = group_for_admin(db, group_id, current_user)
    roles = member_roles(db, group)
    if user_id not in roles:
        raise HTTPException(status_code=404, detail="User not in this group")
    admins = [uid for uid, role in roles.items() if role == MemberRole.ADMIN.value]
    if data.role == MemberRole.MEMBER and admins == [user_id]:
        raise HTTPException(status_code=400, detail="A group needs at least one admin")
    set_member_role(db, group, user_id, data.role)
    db.commit()
    logger.info("User %s made user %s %s of group %s", current_user.id, user_id, data.role.value, group.id)
    return _group_response(db, group)
