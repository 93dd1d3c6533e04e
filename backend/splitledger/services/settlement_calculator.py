"""Reduce net balances to a short list of transfers so everyone is settled (who owes whom)."""
import heapq
import logging
from decimal import Decimal
from typing import Optional

from splitledger.money import is_dust, to_money
from splitledger.schemas import SettlementItem, SettlementStatus

logger = logging.getLogger(__name__)


def compute_settlements(
    group_id: int,
    balances: dict[int, Decimal],
    currency: Optional[str] = None,
) -> list[SettlementItem]:
    """
    balances: user_id -> net balance (positive = is owed money, negative = owes money).
    Returns pending transfers that zero every balance.

    Greedy: the largest remaining debtor pays the largest remaining creditor
    until one side runs out. At most n - 1 transfers for n members, but not
    always the fewest possible.
    """
    # Heaps of (-remaining, input position, user_id); position breaks ties deterministically.
    debtors = []
    creditors = []
    for pos, (uid, bal) in enumerate(balances.items()):
        bal = to_money(bal)
        if is_dust(bal):
            continue
        if bal < 0:
            debtors.append((bal, pos, uid))
        else:
            creditors.append((-bal, pos, uid))
    heapq.heapify(debtors)
    heapq.heapify(creditors)

    out: list[SettlementItem] = []
    while debtors and creditors:
        d_neg, d_pos, du = heapq.heappop(debtors)
        c_neg, c_pos, cu = heapq.heappop(creditors)
        d_amount, c_amount = -d_neg, -c_neg
        transfer = min(d_amount, c_amount)
        out.append(SettlementItem(
            group_id=group_id,
            from_user_id=du,
            to_user_id=cu,
            amount=transfer,
            currency=currency,
            status=SettlementStatus.PENDING,
        ))
        if not is_dust(d_amount - transfer):
            heapq.heappush(debtors, (-(d_amount - transfer), d_pos, du))
        if not is_dust(c_amount - transfer):
            heapq.heappush(creditors, (-(c_amount - transfer), c_pos, cu))

    logger.debug("Group %s: %d balances -> %d settlements", group_id, len(balances), len(out))
    return out
