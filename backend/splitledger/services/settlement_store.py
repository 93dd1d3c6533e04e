"""Persist calculated settlements and their status changes."""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from splitledger.errors import InvalidStateError
from splitledger.models import Group, Settlement
from splitledger.schemas import SettlementItem, SettlementSource, SettlementStatus
from splitledger.services.settlement_status import apply_status, is_terminal

logger = logging.getLogger(__name__)


def replace_pending(db: Session, group: Group, items: list[SettlementItem]) -> list[Settlement]:
    """
    Swap the group's pending calculated settlements for a freshly calculated
    batch, in one transaction. Manual and terminal settlements are kept.
    """
    try:
        stale = (
            db.query(Settlement)
            .filter(
                Settlement.group_id == group.id,
                Settlement.status == SettlementStatus.PENDING.value,
                Settlement.source == SettlementSource.CALCULATED.value,
            )
            .all()
        )
        for s in stale:
            db.delete(s)
        saved = [
            Settlement(
                group_id=group.id,
                from_user_id=item.from_user_id,
                to_user_id=item.to_user_id,
                amount=item.amount,
                currency=item.currency or group.currency,
                status=SettlementStatus.PENDING.value,
                source=SettlementSource.CALCULATED.value,
            )
            for item in items
        ]
        db.add_all(saved)
        db.commit()
    except Exception:
        db.rollback()
        raise
    for s in saved:
        db.refresh(s)
    logger.info("Group %s: replaced %d pending settlements with %d", group.id, len(stale), len(saved))
    return saved


def transition(
    db: Session,
    settlement: Settlement,
    status: Optional[SettlementStatus] = None,
    method: Optional[str] = None,
    notes: Optional[str] = None,
) -> Settlement:
    """Apply a status change and/or edit method and notes. Raises InvalidStateError on a terminal settlement."""
    if status is not None:
        apply_status(settlement, status)
    elif is_terminal(settlement) and (method is not None or notes is not None):
        raise InvalidStateError(f"Settlement {settlement.id} is {settlement.status} and can no longer change")
    if method is not None:
        settlement.method = method
    if notes is not None:
        settlement.notes = notes
    db.commit()
    db.refresh(settlement)
    return settlement
