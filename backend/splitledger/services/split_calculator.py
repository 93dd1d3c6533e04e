"""Turn an expense amount and a split directive into per-participant owed shares.

All functions here are pure. Amounts are rounded to cents; equal and percentage
splits hand out leftover cents by largest remainder so the owed amounts always
add up to exactly the expense amount. Custom splits are taken verbatim and only
have to match the amount within EPSILON. Payers must match it exactly.
"""
import logging
from collections.abc import Mapping
from decimal import Decimal

from splitledger.errors import ValidationError
from splitledger.money import EPSILON, HUNDRED, ZERO, from_cents, to_cents, to_money, to_percent
from splitledger.schemas import PayerShare, SplitShare, SplitType

logger = logging.getLogger(__name__)


def _number(value, convert, what: str) -> Decimal:
    """Coerce with convert; anything that is not a finite number is a ValidationError."""
    try:
        result = convert(value)
    except (ArithmeticError, ValueError, TypeError):
        raise ValidationError(f"Invalid {what}: {value!r}")
    if not result.is_finite():
        raise ValidationError(f"Invalid {what}: {value!r}")
    return result


def _positive_amount(amount) -> Decimal:
    value = _number(amount, to_money, "amount")
    if value <= 0:
        raise ValidationError("Expense amount must be positive")
    return value


def _pairs(directive) -> list[tuple]:
    if isinstance(directive, Mapping):
        return list(directive.items())
    return [tuple(pair) for pair in directive]


def _check_unique(user_ids) -> None:
    seen = set()
    for uid in user_ids:
        if uid in seen:
            raise ValidationError(f"Participant {uid} appears more than once")
        seen.add(uid)


def _allocate(total_cents: int, weights: list[Decimal]) -> list[int]:
    """Largest-remainder allocation of total_cents in proportion to weights."""
    weight_sum = sum(weights)
    exact = [Decimal(total_cents) * w / weight_sum for w in weights]
    floors = [int(x) for x in exact]
    leftover = total_cents - sum(floors)
    # Stable sort keeps directive order among equal remainders.
    order = sorted(range(len(exact)), key=lambda i: exact[i] - floors[i], reverse=True)
    for i in order[:leftover]:
        floors[i] += 1
    return floors


def split_equal(amount, participant_ids) -> list[SplitShare]:
    amount = _positive_amount(amount)
    participant_ids = list(participant_ids)
    if not participant_ids:
        raise ValidationError("At least one participant required")
    _check_unique(participant_ids)

    n = len(participant_ids)
    base, remainder = divmod(to_cents(amount), n)
    percentage = to_percent(HUNDRED / n)
    return [
        SplitShare(
            user_id=uid,
            owed_amount=from_cents(base + (1 if i < remainder else 0)),
            percentage=percentage,
            is_paid=False,
        )
        for i, uid in enumerate(participant_ids)
    ]


def split_by_percentage(amount, directive) -> list[SplitShare]:
    amount = _positive_amount(amount)
    pairs = _pairs(directive)
    if not pairs:
        raise ValidationError("Percentage split requires at least one participant")
    _check_unique(uid for uid, _ in pairs)

    percentages = [_number(pct, lambda v: Decimal(str(v)), "percentage") for _, pct in pairs]
    if any(pct < 0 for pct in percentages):
        raise ValidationError("Percentages cannot be negative")
    total = sum(percentages)
    if abs(total - HUNDRED) > EPSILON:
        raise ValidationError(f"Percentages must add up to 100% (got {total})")

    cents = _allocate(to_cents(amount), percentages)
    return [
        SplitShare(user_id=uid, owed_amount=from_cents(c), percentage=to_percent(pct), is_paid=False)
        for (uid, _), pct, c in zip(pairs, percentages, cents)
    ]


def split_custom(amount, directive) -> list[SplitShare]:
    amount = _positive_amount(amount)
    pairs = _pairs(directive)
    if not pairs:
        raise ValidationError("Custom split requires at least one participant")
    _check_unique(uid for uid, _ in pairs)

    owed = [_number(value, to_money, "split amount") for _, value in pairs]
    if any(value < 0 for value in owed):
        raise ValidationError("Split amounts cannot be negative")
    total = sum(owed, ZERO)
    if abs(total - amount) > EPSILON:
        raise ValidationError(
            f"Custom split amounts ({total}) must add up to the expense amount ({amount})"
        )

    return [
        SplitShare(user_id=uid, owed_amount=value, percentage=to_percent(value / amount * HUNDRED), is_paid=False)
        for (uid, _), value in zip(pairs, owed)
    ]


_CALCULATORS = {
    SplitType.EQUAL: split_equal,
    SplitType.PERCENTAGE: split_by_percentage,
    SplitType.CUSTOM: split_custom,
}


def compute_splits(amount, split_type, directive) -> list[SplitShare]:
    """
    amount: positive total of the expense.
    split_type: "equal", "percentage" or "custom".
    directive: participant ids for equal; (participant, percentage) pairs for
    percentage; (participant, amount) pairs for custom. Mappings are accepted
    for the pair forms.
    Raises ValidationError when the directive does not describe the amount.
    """
    try:
        split_type = SplitType(split_type)
    except ValueError:
        raise ValidationError(f"Unknown split type: {split_type!r}")
    splits = _CALCULATORS[split_type](amount, directive)
    logger.debug("Computed %d %s splits for %s", len(splits), split_type.value, amount)
    return splits


def validate_payers(amount, payers) -> list[PayerShare]:
    """
    Check who paid adds up to exactly the expense amount, in cents.
    Accepts PayerShare objects or (user_id, amount) pairs.
    """
    amount = _positive_amount(amount)
    pairs = [
        (p.user_id, p.amount) if isinstance(p, PayerShare) else tuple(p)
        for p in (_pairs(payers) if isinstance(payers, Mapping) else payers)
    ]
    if not pairs:
        raise ValidationError("At least one payer required")
    _check_unique(uid for uid, _ in pairs)

    shares = [PayerShare(user_id=uid, amount=_number(paid, to_money, "paid amount")) for uid, paid in pairs]
    if any(p.amount < 0 for p in shares):
        raise ValidationError("Paid amounts cannot be negative")
    total = sum((p.amount for p in shares), ZERO)
    if total != amount:
        raise ValidationError(f"Paid amounts ({total}) must add up to the expense amount ({amount})")
    return shares
