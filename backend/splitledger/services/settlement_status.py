"""Settlement status transitions: pending -> completed | cancelled. Both targets are terminal."""
import logging
from datetime import datetime, timezone

from splitledger.errors import InvalidStateError
from splitledger.schemas import SettlementStatus

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {SettlementStatus.COMPLETED, SettlementStatus.CANCELLED}


def current_status(settlement) -> SettlementStatus:
    return SettlementStatus(settlement.status or SettlementStatus.PENDING)


def is_terminal(settlement) -> bool:
    return current_status(settlement) in TERMINAL_STATUSES


def _require_pending(settlement, target: SettlementStatus) -> None:
    status = current_status(settlement)
    if status != SettlementStatus.PENDING:
        raise InvalidStateError(
            f"Cannot move settlement {getattr(settlement, 'id', '?')} from {status.value} to {target.value}"
        )


def complete(settlement):
    _require_pending(settlement, SettlementStatus.COMPLETED)
    settlement.status = SettlementStatus.COMPLETED.value
    settlement.completed_at = datetime.now(timezone.utc)
    logger.info("Settlement %s completed", getattr(settlement, "id", "?"))
    return settlement


def cancel(settlement):
    _require_pending(settlement, SettlementStatus.CANCELLED)
    settlement.status = SettlementStatus.CANCELLED.value
    logger.info("Settlement %s cancelled", getattr(settlement, "id", "?"))
    return settlement


def apply_status(settlement, status):
    try:
        target = SettlementStatus(status)
    except ValueError:
        raise InvalidStateError(f"Unknown settlement status: {status!r}")
    if target == SettlementStatus.COMPLETED:
        return complete(settlement)
    if target == SettlementStatus.CANCELLED:
        return cancel(settlement)
    raise InvalidStateError(f"Settlement {getattr(settlement, 'id', '?')} cannot be moved back to pending")
