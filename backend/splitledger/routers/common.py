"""Lookups shared by the routers."""
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from splitledger.models import User, Group, group_members
from splitledger.schemas import MemberRole


def group_for_member(db: Session, group_id: int, user: User) -> Group:
    group = db.query(Group).filter(Group.id == group_id).first()
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    if user not in group.members:
        raise HTTPException(status_code=403, detail="Not a member of this group")
    return group


def member_roles(db: Session, group: Group) -> dict[int, str]:
    rows = db.execute(
        select(group_members.c.user_id, group_members.c.role).where(group_members.c.group_id == group.id)
    ).all()
    return {user_id: role for user_id, role in rows}


def member_role(db: Session, group: Group, user_id: int) -> Optional[str]:
    return member_roles(db, group).get(user_id)


def set_member_role(db: Session, group: Group, user_id: int, role: MemberRole) -> None:
    db.execute(
        group_members.update()
        .where(group_members.c.group_id == group.id, group_members.c.user_id == user_id)
        .values(role=role.value)
    )


def is_admin(db: Session, group: Group, user: User) -> bool:
    return member_role(db, group, user.id) == MemberRole.ADMIN.value


def group_for_admin(db: Session, group_id: int, user: User) -> Group:
    group = group_for_member(db, group_id, user)
    if not is_admin(db, group, user):
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return group


def member_ids(group: Group) -> list[int]:
    return [m.id for m in group.members]


def require_members(group: Group, user_ids, what: str) -> None:
    ids = set(member_ids(group))
    if any(uid not in ids for uid in user_ids):
        raise HTTPException(status_code=400, detail=f"All {what} must be group members")
