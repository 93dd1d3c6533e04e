from types import SimpleNamespace

import pytest

from splitledger.errors import InvalidStateError
from splitledger.services.settlement_status import apply_status, cancel, complete, is_terminal


def pending():
    return SimpleNamespace(id=1, status="pending", completed_at=None)


def test_complete():
    s = complete(pending())
    assert s.status == "completed"
    assert s.completed_at is not None
    assert is_terminal(s)


def test_cancel():
    s = cancel(pending())
    assert s.status == "cancelled"
    assert s.completed_at is None


def test_completed_cannot_be_cancelled():
    s = complete(pending())
    with pytest.raises(InvalidStateError):
        cancel(s)
    assert s.status == "completed"


def test_cancelled_cannot_be_completed():
    s = cancel(pending())
    with pytest.raises(InvalidStateError):
        complete(s)


def test_pending_accepts_exactly_one_transition():
    s = pending()
    apply_status(s, "completed")
    with pytest.raises(InvalidStateError):
        apply_status(s, "completed")


@pytest.mark.parametrize("status", ["pending", "refunded"])
def test_apply_status_rejects_other_targets(status):
    with pytest.raises(InvalidStateError):
        apply_status(pending(), status)
