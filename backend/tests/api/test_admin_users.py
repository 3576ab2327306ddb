import logging

import pytest

pytestmark = pytest.mark.integration


async def test_admin_endpoints_reject_non_admins(api_client, act_as):
    for uid in ("E1", "A1", "R1"):
        act_as(uid)
        resp = await api_client.get("/api/v1/admin/users")
        assert resp.status_code == 403
        assert resp.json()["code"] == "unauthorized"

    act_as("E1")
    resp = await api_client.put("/api/v1/admin/users/RD/role", json={"role": "reviewer"})
    assert resp.status_code == 403
    resp = await api_client.delete("/api/v1/admin/users/RD")
    assert resp.status_code == 403


async def test_admin_lists_all_users_with_filters(api_client, act_as):
    act_as("ADM")
    resp = await api_client.get("/api/v1/admin/users")
    assert resp.status_code == 200
    assert len(resp.json()) == 11

    resp = await api_client.get("/api/v1/admin/users", params={"role": "reviewer"})
    assert [u["id"] for u in resp.json()] == ["R1", "R2", "R3"]

    resp = await api_client.get("/api/v1/admin/users", params={"q": "USER E"})
    assert [u["id"] for u in resp.json()] == ["E1", "E2"]


async def test_promoted_reader_can_be_assigned_as_reviewer(api_client, act_as, submitted, caplog):
    act_as("E1")
    resp = await api_client.post(
        f"/api/v1/submissions/{submitted.id}/assign",
        json={"role": "reviewer", "user_ids": ["RD"]},
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "role_mismatch"

    act_as("ADM")
    with caplog.at_level(logging.INFO, logger="journalflow.users"):
        resp = await api_client.put("/api/v1/admin/users/RD/role", json={"role": "reviewer"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["role"] == "reviewer"
    assert "changed role of RD: reader -> reviewer" in caplog.text

    act_as("E1")
    resp = await api_client.post(
        f"/api/v1/submissions/{submitted.id}/assign",
        json={"role": "reviewer", "user_ids": ["RD"]},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["reviewers"] == ["RD"]


async def test_role_update_errors(api_client, act_as):
    act_as("ADM")
    resp = await api_client.put("/api/v1/admin/users/ghost/role", json={"role": "reviewer"})
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"

    resp = await api_client.put("/api/v1/admin/users/RD/role", json={"role": "superuser"})
    assert resp.status_code == 422

    resp = await api_client.put("/api/v1/admin/users/ADM/role", json={"role": "editor"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "invalid_transition"


async def test_create_update_and_delete_user(api_client, act_as, fake_db):
    act_as("ADM")
    payload = {"id": "N1", "email": "New.Reviewer@Example.com", "full_name": "New Reviewer", "role": "reviewer"}
    resp = await api_client.post("/api/v1/admin/users", json=payload)
    assert resp.status_code == 201, resp.text
    assert resp.json()["email"] == "new.reviewer@example.com"
    assert fake_db.row("user_profiles", "N1")["role"] == "reviewer"

    resp = await api_client.post("/api/v1/admin/users", json=payload)
    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"

    resp = await api_client.put("/api/v1/admin/users/N1", json={"affiliation": "Univ. of Somewhere"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["affiliation"] == "Univ. of Somewhere"
    assert body["role"] == "reviewer"

    resp = await api_client.put("/api/v1/admin/users/N1", json={"role": "editor", "full_name": "N. Editor"})
    assert resp.json()["role"] == "editor"
    assert resp.json()["full_name"] == "N. Editor"

    resp = await api_client.delete("/api/v1/admin/users/N1")
    assert resp.status_code == 204
    resp = await api_client.get("/api/v1/admin/users", params={"q": "new.reviewer"})
    assert resp.json() == []

    resp = await api_client.delete("/api/v1/admin/users/N1")
    assert resp.status_code == 404

    resp = await api_client.delete("/api/v1/admin/users/ADM")
    assert resp.status_code == 409
