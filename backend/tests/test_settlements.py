import pytest


@pytest.fixture
def cabin(client, auth_headers, trio):
    """300 paid by the creator, split equally three ways."""
    gid, a, b, c = trio
    client.post("/api/expenses", json={
        "group_id": gid, "amount": 300, "description": "Cabin", "participant_ids": [a, b, c]
    }, headers=auth_headers)
    return trio


def pairs(settlements):
    return sorted((s["from_user_id"], s["to_user_id"], s["amount"]) for s in settlements)


def test_balances_preview(client, auth_headers, cabin):
    gid, a, b, c = cabin
    res = client.get(f"/api/settlements/group/{gid}/balances", headers=auth_headers)
    assert res.status_code == 200
    data = res.json()
    assert data["currency"] == "USD"
    assert {e["user_id"]: e["balance"] for e in data["balances"]} == {a: 200.0, b: -100.0, c: -100.0}
    assert pairs(data["settlements"]) == sorted([(b, a, 100.0), (c, a, 100.0)])
    assert client.get(f"/api/settlements/group/{gid}", headers=auth_headers).json() == []


def test_offsetting_expenses_need_no_settlements(client, auth_headers, trio):
    gid, a, b, _ = trio
    for payer in (a, b):
        client.post("/api/expenses", json={
            "group_id": gid, "amount": 60, "description": "Round",
            "payers": [{"user_id": payer, "amount": 60}], "participant_ids": [a, b],
        }, headers=auth_headers)
    res = client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers)
    assert res.status_code == 200
    assert res.json() == []


def test_calculate_persists_pending_batch(client, auth_headers, cabin):
    gid, a, b, c = cabin
    res = client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers)
    assert res.status_code == 200
    saved = res.json()
    assert pairs(saved) == sorted([(b, a, 100.0), (c, a, 100.0)])
    assert all(s["status"] == "pending" and s["currency"] == "USD" for s in saved)


def test_recalculate_replaces_pending(client, auth_headers, cabin):
    gid, a, b, c = cabin
    client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers)
    client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers)
    listed = client.get(f"/api/settlements/group/{gid}", headers=auth_headers).json()
    assert len(listed) == 2


def test_completed_settlements_count_toward_balances(client, auth_headers, cabin, second_user):
    gid, a, b, c = cabin
    saved = client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers).json()
    from_b = next(s for s in saved if s["from_user_id"] == b)
    res = client.put(f"/api/settlements/{from_b['id']}", json={"status": "completed"}, headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["completed_at"] is not None

    again = client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers).json()
    assert pairs(again) == [(c, a, 100.0)]
    assert len(client.get(f"/api/settlements/group/{gid}", headers=auth_headers).json()) == 2
    completed = client.get(f"/api/settlements/group/{gid}?status=completed", headers=auth_headers).json()
    assert [s["id"] for s in completed] == [from_b["id"]]


def test_only_recipient_marks_completed(client, auth_headers, cabin, second_user):
    gid, a, b, _ = cabin
    saved = client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers).json()
    from_b = next(s for s in saved if s["from_user_id"] == b)
    res = client.put(f"/api/settlements/{from_b['id']}", json={"status": "completed"}, headers=second_user["headers"])
    assert res.status_code == 403
    res = client.put(f"/api/settlements/{from_b['id']}", json={"status": "cancelled"}, headers=second_user["headers"])
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"


def test_terminal_settlement_is_immutable(client, auth_headers, cabin):
    gid, a, b, _ = cabin
    saved = client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers).json()
    sid = next(s["id"] for s in saved if s["from_user_id"] == b)
    client.put(f"/api/settlements/{sid}", json={"status": "completed"}, headers=auth_headers)
    res = client.put(f"/api/settlements/{sid}", json={"status": "cancelled"}, headers=auth_headers)
    assert res.status_code == 409
    res = client.put(f"/api/settlements/{sid}", json={"notes": "late"}, headers=auth_headers)
    assert res.status_code == 409


def test_non_party_cannot_touch_settlement(client, auth_headers, cabin, third_user):
    gid, a, b, c = cabin
    saved = client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers).json()
    sid = next(s["id"] for s in saved if s["from_user_id"] == b)
    res = client.put(f"/api/settlements/{sid}", json={"status": "cancelled"}, headers=third_user["headers"])
    assert res.status_code == 403
    res = client.delete(f"/api/settlements/{sid}", headers=third_user["headers"])
    assert res.status_code == 403


def test_manual_settlement(client, cabin, second_user):
    gid, a, b, _ = cabin
    res = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": a, "amount": 40, "method": "cash", "notes": "partial cash"
    }, headers=second_user["headers"])
    assert res.status_code == 201
    data = res.json()
    assert (data["from_user_id"], data["to_user_id"], data["amount"]) == (b, a, 40.0)
    assert data["method"] == "cash"
    assert data["status"] == "pending"
    assert data["source"] == "manual"


def test_recalculate_keeps_manual_settlements(client, auth_headers, cabin, second_user):
    gid, a, b, c = cabin
    manual = client.post("/api/settlements", json={
        "group_id": gid, "to_user_id": a, "amount": 40, "method": "cash"
    }, headers=second_user["headers"]).json()
    client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers)
    saved = client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers).json()
    assert all(s["source"] == "calculated" for s in saved)

    listed = client.get(f"/api/settlements/group/{gid}", headers=auth_headers).json()
    assert manual["id"] in [s["id"] for s in listed]
    assert len(listed) == 3


def test_manual_settlement_validation(client, auth_headers, cabin):
    gid, a, b, _ = cabin
    res = client.post("/api/settlements", json={"group_id": gid, "to_user_id": a, "amount": 5}, headers=auth_headers)
    assert res.status_code == 400
    res = client.post("/api/settlements", json={"group_id": gid, "to_user_id": b, "amount": 0}, headers=auth_headers)
    assert res.status_code == 400


def test_my_settlements_and_stats(client, auth_headers, cabin, second_user):
    gid, a, b, _ = cabin
    saved = client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers).json()
    sid = next(s["id"] for s in saved if s["from_user_id"] == b)
    client.put(f"/api/settlements/{sid}", json={"status": "completed"}, headers=auth_headers)

    mine = client.get("/api/settlements", headers=second_user["headers"]).json()
    assert [s["id"] for s in mine] == [sid]

    stats = client.get(f"/api/settlements/stats?group_id={gid}", headers=auth_headers).json()
    assert stats["total"] == 2
    assert stats["pending"] == 1
    assert stats["completed"] == 1
    assert stats["cancelled"] == 0
    assert stats["total_amount"] == 200.0
    assert stats["completed_amount"] == 100.0


def test_delete_settlement(client, auth_headers, cabin):
    gid, *_ = cabin
    saved = client.post(f"/api/settlements/group/{gid}/calculate", headers=auth_headers).json()
    res = client.delete(f"/api/settlements/{saved[0]['id']}", headers=auth_headers)
    assert res.status_code == 204
    assert len(client.get(f"/api/settlements/group/{gid}", headers=auth_headers).json()) == 1
