from datetime import timedelta

import pytest
from httpx import AsyncClient

from app.domain.enums import Role
from tests.conftest import auth_headers, make_actor, make_token

pytestmark = pytest.mark.asyncio

BASE = "/api/v1/organizations/acme-corp"


async def create_submitted(async_client: AsyncClient, creator, approver, **overrides) -> dict:
    payload = {
        "amount": 1500,
        "expense_type": "Trains",
        "expense_date": "2024-10-01",
        "description": "Client workshop",
        "approver_id": approver.user_id,
        "status": "submitted",
    }
    payload.update(overrides)
    resp = await async_client.post(f"{BASE}/expenses", json=payload, headers=auth_headers(creator))
    assert resp.status_code == 201, resp.text
    return resp.json()


# ── Health & auth ────────────────────────────────────────────────────────────

async def test_health(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["environment"] == "testing"


async def test_missing_token_is_401_envelope(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/organizations")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "AUTHENTICATION_ERROR"
    assert resp.headers["WWW-Authenticate"] == "Bearer"
    assert "X-Correlation-Id" in resp.headers


async def test_expired_token(async_client: AsyncClient, owner):
    token = make_token(owner, expires_in=timedelta(minutes=-5))
    resp = await async_client.get("/api/v1/organizations", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Token has expired"


async def test_wrong_audience(async_client: AsyncClient, owner):
    token = make_token(owner, aud="someone-else")
    resp = await async_client.get("/api/v1/organizations", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


# ── Organizations ────────────────────────────────────────────────────────────

async def test_create_and_list_organizations(async_client: AsyncClient):
    founder = make_actor("founder", "Frank Founder")
    resp = await async_client.post("/api/v1/organizations", json={"name": "Initech"}, headers=auth_headers(founder))
    assert resp.status_code == 201
    assert resp.json()["organization"]["slug"] == "initech"
    assert resp.json()["role"] == "owner"

    resp = await async_client.get("/api/v1/organizations", headers=auth_headers(founder))
    assert [item["organization"]["slug"] for item in resp.json()["items"]] == ["initech"]

    resp = await async_client.get("/api/v1/organizations/initech/policies", headers=auth_headers(founder))
    assert len(resp.json()["items"]) == 13


async def test_non_member_gets_404(async_client: AsyncClient, org_ctx, outsider):
    resp = await async_client.get(BASE, headers=auth_headers(outsider))
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "ORGANIZATION_NOT_FOUND"


async def test_members_and_role_change(async_client: AsyncClient, org_ctx, owner, admin, member):
    resp = await async_client.get(f"{BASE}/members", params={"role": "finance"}, headers=auth_headers(member))
    assert resp.status_code == 200
    assert [m["email"] for m in resp.json()["items"]] == ["finance@acme-corp.com"]

    resp = await async_client.patch(
        f"{BASE}/members/{owner.user_id}", json={"role": "member"}, headers=auth_headers(admin)
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["message"] == "Only owner can change another owner's role"

    resp = await async_client.patch(
        f"{BASE}/members/{member.user_id}", json={"role": "manager"}, headers=auth_headers(admin)
    )
    assert resp.status_code == 200
    assert resp.json()["membership"]["role"] == "manager"

    resp = await async_client.delete(f"{BASE}/members/{member.user_id}", headers=auth_headers(owner))
    assert resp.status_code == 204


# ── Expenses ─────────────────────────────────────────────────────────────────

async def test_expense_workflow_over_http(async_client: AsyncClient, org_ctx, member, manager, finance):
    body = await create_submitted(async_client, member, manager)
    expense_id = body["expense"]["expense_id"]
    assert body["side_effects"]["enqueued"] == ["manager@acme-corp.com"]

    resp = await async_client.get(f"{BASE}/expenses/{expense_id}", headers=auth_headers(manager))
    assert resp.json()["allowed_actions"] == ["manager_approve", "manager_reject"]

    resp = await async_client.post(
        f"{BASE}/expenses/{expense_id}/transitions",
        json={"action": "manager_approve", "approval_type": "custom", "approved_amount": 1200},
        headers=auth_headers(manager),
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["expense"]["status"] == "approved"
    assert body["expense"]["approved_amount"] == 1200
    assert body["custom_amount"] is True
    assert body["previous_status"] == "submitted"
    assert body["stage"] == "manager"

    resp = await async_client.get(f"{BASE}/expenses", params={"view": "finance"}, headers=auth_headers(finance))
    assert [e["expense_id"] for e in resp.json()["items"]] == [expense_id]

    resp = await async_client.get(f"{BASE}/expenses/{expense_id}/history", headers=auth_headers(member))
    assert "approved" in {h["action_type"] for h in resp.json()["items"]}


async def test_self_approval_is_403(async_client: AsyncClient, org_ctx, owner):
    body = await create_submitted(async_client, owner, owner)
    resp = await async_client.post(
        f"{BASE}/expenses/{body['expense']['expense_id']}/transitions",
        json={"action": "manager_approve"},
        headers=auth_headers(owner),
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == {
        "code": "FORBIDDEN",
        "message": "You cannot approve your own expense.",
        "details": {"action": "manager_approve", "rule": "not_creator", "role": "owner"},
    }


async def test_invalid_transition_is_409(async_client: AsyncClient, org_ctx, member, manager, finance):
    body = await create_submitted(async_client, member, manager)
    resp = await async_client.post(
        f"{BASE}/expenses/{body['expense']['expense_id']}/transitions",
        json={"action": "mark_payment_processed"},
        headers=auth_headers(finance),
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "INVALID_TRANSITION"


async def test_rejection_without_reason_is_400(async_client: AsyncClient, org_ctx, member, manager):
    body = await create_submitted(async_client, member, manager)
    resp = await async_client.post(
        f"{BASE}/expenses/{body['expense']['expense_id']}/transitions",
        json={"action": "manager_reject"},
        headers=auth_headers(manager),
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_request_validation_uses_envelope(async_client: AsyncClient, org_ctx, member):
    resp = await async_client.post(
        f"{BASE}/expenses", json={"amount": -5, "expense_type": "Trains"}, headers=auth_headers(member)
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_comments_over_http(async_client: AsyncClient, org_ctx, member, manager):
    body = await create_submitted(async_client, member, manager)
    url = f"{BASE}/expenses/{body['expense']['expense_id']}/comments"

    resp = await async_client.post(url, json={"content": "Ticket attached"}, headers=auth_headers(member))
    assert resp.status_code == 201
    assert resp.json()["side_effects"]["enqueued"] == ["manager@acme-corp.com"]

    resp = await async_client.get(url, headers=auth_headers(manager))
    assert [c["content"] for c in resp.json()["items"]] == ["Ticket attached"]


async def test_policy_check(async_client: AsyncClient, org_ctx, member):
    resp = await async_client.post(
        f"{BASE}/policies/check", json={"expense_type": "Flights", "amount": 6000}, headers=auth_headers(member)
    )
    assert resp.status_code == 200
    assert resp.json()["policy_warning"]["message"] == "The amount (₹6000) is above the policy limit of ₹5000 for Flights."


# ── Vouchers ─────────────────────────────────────────────────────────────────

async def test_voucher_pdf_and_signed_download(async_client: AsyncClient, org_ctx, storage_dir, member, manager):
    body = await create_submitted(async_client, member, manager)
    expense_id = body["expense"]["expense_id"]

    resp = await async_client.post(
        f"{BASE}/expenses/{expense_id}/voucher", json={"credit_person": "Accounts"}, headers=auth_headers(member)
    )
    assert resp.status_code == 201, resp.text
    voucher_id = resp.json()["voucher"]["voucher_id"]

    resp = await async_client.get(f"{BASE}/vouchers/{voucher_id}/download", headers=auth_headers(member))
    assert resp.status_code == 200
    signed_url = resp.json()["signed_url"]

    # The signed URL needs no bearer token
    resp = await async_client.get(signed_url)
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content.startswith(b"%PDF")


async def test_tampered_download_token(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/files/not-a-token")
    assert resp.status_code == 401


# ── Invitations ──────────────────────────────────────────────────────────────

async def test_invite_link_flow(async_client: AsyncClient, org_ctx, admin):
    resp = await async_client.post(
        f"{BASE}/invite-links", json={"role": "member", "max_uses": 1}, headers=auth_headers(admin)
    )
    assert resp.status_code == 201
    link_id = resp.json()["link"]["link_id"]
    assert resp.json()["invite_url"].endswith(f"/invite/{link_id}")

    first = make_actor("joiner1", "Jo Joiner")
    second = make_actor("joiner2", "Jay Joiner")

    resp = await async_client.get(f"/api/v1/invite-links/{link_id}", headers=auth_headers(first))
    assert resp.json()["usable"] is True

    resp = await async_client.post(f"/api/v1/invite-links/{link_id}/use", headers=auth_headers(first))
    assert resp.status_code == 200
    assert resp.json()["role"] == Role.MEMBER.value

    resp = await async_client.post(f"/api/v1/invite-links/{link_id}/use", headers=auth_headers(second))
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "LIMIT_EXCEEDED"

    resp = await async_client.get(BASE, headers=auth_headers(first))
    assert resp.status_code == 200


async def test_email_invite_accept(async_client: AsyncClient, org_ctx, admin):
    invitee = make_actor("invitee", "Ivy Invitee")
    resp = await async_client.post(
        f"{BASE}/invites", json={"email": invitee.email, "role": "finance"}, headers=auth_headers(admin)
    )
    assert resp.status_code == 201
    invite_id = resp.json()["invite"]["invite_id"]

    resp = await async_client.post(f"/api/v1/invites/{invite_id}/accept", headers=auth_headers(invitee))
    assert resp.status_code == 200
    assert resp.json()["role"] == "finance"

    resp = await async_client.post(f"/api/v1/invites/{invite_id}/accept", headers=auth_headers(invitee))
    assert resp.status_code == 409
