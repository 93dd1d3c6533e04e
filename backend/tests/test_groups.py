def test_create_group(client, auth_headers):
    res = client.post("/api/groups", json={
        "name": "Trip", "description": "Weekend trip", "currency": "lkr"
    }, headers=auth_headers)
    assert res.status_code == 200
    data = res.json()
    assert data["name"] == "Trip"
    assert data["currency"] == "LKR"
    assert len(data["member_ids"]) == 1  # creator auto-added
    assert data["members"][0]["role"] == "admin"


def test_create_group_requires_currency(client, auth_headers):
    res = client.post("/api/groups", json={"name": "Trip"}, headers=auth_headers)
    assert res.status_code == 422


def test_create_group_rejects_bad_currency(client, auth_headers):
    res = client.post("/api/groups", json={"name": "Trip", "currency": "dollars"}, headers=auth_headers)
    assert res.status_code == 422


def test_list_groups(client, auth_headers):
    client.post("/api/groups", json={"name": "G1", "currency": "USD"}, headers=auth_headers)
    client.post("/api/groups", json={"name": "G2", "currency": "EUR"}, headers=auth_headers)
    res = client.get("/api/groups", headers=auth_headers)
    assert res.status_code == 200
    assert len(res.json()) == 2


def test_update_group(client, auth_headers, group_id):
    res = client.patch(f"/api/groups/{group_id}", json={"name": "New", "currency": "eur"}, headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["name"] == "New"
    assert res.json()["currency"] == "EUR"


def test_currency_locked_once_expenses_exist(client, auth_headers, group_id):
    client.post("/api/expenses", json={
        "group_id": group_id, "description": "Lunch", "amount": 10.0
    }, headers=auth_headers)
    res = client.patch(f"/api/groups/{group_id}", json={"currency": "EUR"}, headers=auth_headers)
    assert res.status_code == 400


def test_delete_group(client, auth_headers, group_id):
    res = client.delete(f"/api/groups/{group_id}", headers=auth_headers)
    assert res.status_code == 204
    res = client.get("/api/groups", headers=auth_headers)
    assert len(res.json()) == 0


def test_non_member_forbidden(client, group_id, second_user):
    res = client.get(f"/api/groups/{group_id}", headers=second_user["headers"])
    assert res.status_code == 403


def test_add_member_by_email(client, auth_headers, group_id, second_user):
    res = client.post(f"/api/groups/{group_id}/members", json={"email": "user2@example.com"}, headers=auth_headers)
    assert res.status_code == 200
    assert len(res.json()["member_ids"]) == 2


def test_add_member_twice(client, auth_headers, group_id, second_user):
    client.post(f"/api/groups/{group_id}/members", json={"email": "user2@example.com"}, headers=auth_headers)
    res = client.post(f"/api/groups/{group_id}/members", json={"email": "user2@example.com"}, headers=auth_headers)
    assert res.status_code == 400


def test_remove_member(client, auth_headers, group_id, second_user):
    client.post(f"/api/groups/{group_id}/members", json={"email": "user2@example.com"}, headers=auth_headers)
    res = client.delete(f"/api/groups/{group_id}/members/{second_user['id']}", headers=auth_headers)
    assert res.status_code == 200
    assert len(res.json()["member_ids"]) == 1


def roles(group):
    return {m["id"]: m["role"] for m in group["members"]}


def test_added_members_join_as_members(client, auth_headers, trio):
    gid, a, b, c = trio
    group = client.get(f"/api/groups/{gid}", headers=auth_headers).json()
    assert roles(group) == {a: "admin", b: "member", c: "member"}


def test_non_admin_cannot_manage_group(client, trio, second_user):
    gid, a, b, c = trio
    headers = second_user["headers"]
    assert client.patch(f"/api/groups/{gid}", json={"name": "Mine"}, headers=headers).status_code == 403
    assert client.delete(f"/api/groups/{gid}", headers=headers).status_code == 403
    assert client.delete(f"/api/groups/{gid}/members/{c}", headers=headers).status_code == 403
    res = client.post(f"/api/groups/{gid}/members", json={"email": "test@example.com"}, headers=headers)
    assert res.status_code == 403
    res = client.put(f"/api/groups/{gid}/members/{b}/role", json={"role": "admin"}, headers=headers)
    assert res.status_code == 403
    assert client.get(f"/api/groups/{gid}", headers=headers).status_code == 200


def test_change_member_role(client, auth_headers, trio, second_user):
    gid, a, b, c = trio
    res = client.put(f"/api/groups/{gid}/members/{b}/role", json={"role": "admin"}, headers=auth_headers)
    assert res.status_code == 200
    assert roles(res.json())[b] == "admin"

    # The promoted member can now manage the group.
    res = client.patch(f"/api/groups/{gid}", json={"name": "Renamed"}, headers=second_user["headers"])
    assert res.status_code == 200
    res = client.put(f"/api/groups/{gid}/members/{a}/role", json={"role": "member"}, headers=second_user["headers"])
    assert roles(res.json()) == {a: "member", b: "admin", c: "member"}


def test_change_role_validation(client, auth_headers, trio):
    gid, a, b, _ = trio
    res = client.put(f"/api/groups/{gid}/members/{b}/role", json={"role": "owner"}, headers=auth_headers)
    assert res.status_code == 422
    res = client.put(f"/api/groups/{gid}/members/99999/role", json={"role": "admin"}, headers=auth_headers)
    assert res.status_code == 404
    res = client.put(f"/api/groups/{gid}/members/{a}/role", json={"role": "member"}, headers=auth_headers)
    assert res.status_code == 400


def test_readded_member_starts_as_member(client, auth_headers, trio):
    gid, a, b, _ = trio
    client.put(f"/api/groups/{gid}/members/{b}/role", json={"role": "admin"}, headers=auth_headers)
    client.delete(f"/api/groups/{gid}/members/{b}", headers=auth_headers)
    res = client.post(f"/api/groups/{gid}/members", json={"email": "user2@example.com"}, headers=auth_headers)
    assert roles(res.json())[b] == "member"
