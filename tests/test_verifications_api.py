"""
HTTP surface of the verification workflow
"""
import uuid

import pytest

from conftest import auth_headers

BASE = "/api/v1/verifications"


@pytest.fixture(autouse=True)
def collaborators(gateway, notifier):
    """Every request in this module talks to the fake gateway and recorder"""
    return gateway, notifier


def request_case(client, user, listing, priority=None):
    body = {"property_id": str(listing.id)}
    if priority:
        body["priority"] = priority
    return client.post(f"{BASE}/request", json=body, headers=auth_headers(user))


def paid_case_id(client, gateway, requester, listing, reference="PSK-API-1"):
    case = request_case(client, requester, listing).json()["data"]["verification"]
    gateway.add(reference, case["payment"]["amount"] * 100)
    resp = client.post(
        f"{BASE}/{case['id']}/payment",
        json={"payment_reference": reference},
        headers=auth_headers(requester),
    )
    assert resp.status_code == 200
    return case["id"]


def test_request_returns_fee_and_instructions(client, requester, listing):
    resp = request_case(client, requester, listing, "urgent")

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Verification request created"
    data = body["data"]
    assert data["payment_amount"] == 100000
    assert data["currency"] == "NGN"
    assert data["payment_instructions"] == "Proceed to payment to start verification"
    case = data["verification"]
    assert case["status"] == "pending"
    assert case["priority"] == "urgent"
    assert case["payment"] == {"amount": 100000, "status": "pending", "reference": None, "paid_at": None}
    assert case["property"]["id"] == str(listing.id)
    assert len(case["timeline"]) == 1


def test_request_requires_authentication(client, listing):
    resp = client.post(f"{BASE}/request", json={"property_id": str(listing.id)})
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Not authenticated"}


def test_request_with_unknown_priority_is_rejected(client, requester, listing):
    resp = request_case(client, requester, listing, "asap")
    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert resp.json()["message"].startswith("priority")


def test_request_for_missing_property(client, requester):
    resp = client.post(
        f"{BASE}/request", json={"property_id": str(uuid.uuid4())}, headers=auth_headers(requester)
    )
    assert resp.status_code == 404
    assert resp.json()["message"] == "Property not found"


def test_duplicate_request_is_a_conflict(client, requester, listing):
    assert request_case(client, requester, listing).status_code == 201
    resp = request_case(client, requester, listing)
    assert resp.status_code == 409
    assert resp.json() == {"success": False, "message": "Verification already in progress"}


def test_payment_confirmation(client, gateway, notifier, requester, listing):
    case_id = paid_case_id(client, gateway, requester, listing)

    resp = client.get(f"{BASE}/{case_id}", headers=auth_headers(requester))
    case = resp.json()["data"]["verification"]
    assert case["status"] == "pending"
    assert case["payment"]["status"] == "paid"
    assert case["payment"]["reference"] == "PSK-API-1"
    assert case["timeline"][-1]["action"] == "Payment confirmed"
    assert any(kind == "sms" and phone == "+2348000000000" for kind, phone, _ in notifier.sent)


def test_payment_with_wrong_amount(client, gateway, requester, listing):
    case = request_case(client, requester, listing).json()["data"]["verification"]
    gateway.add("PSK-SHORT", 100)

    resp = client.post(
        f"{BASE}/{case['id']}/payment",
        json={"payment_reference": "PSK-SHORT"},
        headers=auth_headers(requester),
    )
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Payment verification failed"}

    after = client.get(f"{BASE}/{case['id']}", headers=auth_headers(requester)).json()["data"]["verification"]
    assert after["payment"]["status"] == "pending"
    assert after["version"] == case["version"]


def test_payment_after_assignment_returns_case_to_pending(client, gateway, requester, admin, agent, listing):
    case = request_case(client, requester, listing).json()["data"]["verification"]
    assigned = client.post(
        f"{BASE}/{case['id']}/assign", json={"agent_id": str(agent.id)}, headers=auth_headers(admin)
    ).json()["data"]["verification"]
    assert assigned["status"] == "in-progress"

    gateway.add("PSK-LATE", case["payment"]["amount"] * 100)
    resp = client.post(
        f"{BASE}/{case['id']}/payment",
        json={"payment_reference": "PSK-LATE"},
        headers=auth_headers(requester),
    )
    assert resp.status_code == 200
    paid = resp.json()["data"]["verification"]
    assert paid["status"] == "pending"
    assert paid["payment"]["status"] == "paid"
    assert paid["assigned_to"] == str(agent.id)

def test_payment_initialize(client, gateway, requester, listing):
    case = request_case(client, requester, listing, "low").json()["data"]["verification"]

    resp = client.post(f"{BASE}/{case['id']}/payment/initialize", headers=auth_headers(requester))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["amount"] == 25000
    assert data["authorization_url"].endswith(data["reference"])
    assert gateway.initialized[0]["amount"] == 2500000


def test_workflow_through_completion(client, gateway, notifier, requester, admin, agent, listing):
    case_id = paid_case_id(client, gateway, requester, listing)

    resp = client.post(f"{BASE}/{case_id}/assign", json={"agent_id": str(agent.id)}, headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["message"] == "Assigned successfully"
    assigned = resp.json()["data"]["verification"]
    assert assigned["status"] == "in-progress"
    assert assigned["assigned_to"] == str(agent.id)

    resp = client.put(
        f"{BASE}/{case_id}/checks",
        json={"ownership": {"verified": True}, "legal": {"status": "clear"}, "version": assigned["version"]},
        headers=auth_headers(agent),
    )
    assert resp.status_code == 200
    checked = resp.json()["data"]["verification"]
    assert checked["checks"]["ownership"] == {"verified": True}

    resp = client.put(
        f"{BASE}/{case_id}/status",
        json={
            "status": "completed",
            "notes": "Documents verified at the land registry",
            "score": 85,
            "breakdown": {"documentation": 90, "ownership": 80},
            "version": checked["version"],
        },
        headers=auth_headers(agent),
    )
    assert resp.status_code == 200
    done = resp.json()["data"]["verification"]
    assert done["status"] == "completed"
    assert done["score"]["overall"] == 85
    assert done["score"]["breakdown"]["documentation"] == 90
    assert done["certificate"]["id"].startswith("PV-")
    assert [e["sequence"] for e in done["timeline"]] == [1, 2, 3, 4, 5]

    prop = client.get(f"/api/v1/properties/{listing.id}").json()["data"]["property"]
    assert prop["verification"]["status"] == "verified"
    assert prop["verification"]["score"] == 85
    assert ("email", requester.email, "Property verification update") in notifier.sent


def test_partial_checks_update_keeps_recorded_issues(client, gateway, requester, admin, agent, listing):
    case_id = paid_case_id(client, gateway, requester, listing)
    client.post(f"{BASE}/{case_id}/assign", json={"agent_id": str(agent.id)}, headers=auth_headers(admin))

    first = client.put(
        f"{BASE}/{case_id}/checks", json={"ownership": {"issues": ["boundary dispute"]}}, headers=auth_headers(agent)
    )
    assert first.status_code == 200

    second = client.put(f"{BASE}/{case_id}/checks", json={"ownership": {"verified": True}}, headers=auth_headers(agent))
    assert second.status_code == 200
    checks = second.json()["data"]["verification"]["checks"]
    assert checks["ownership"] == {"issues": ["boundary dispute"], "verified": True}

def test_stale_version_returns_conflict(client, gateway, admin, agent, requester, listing):
    case_id = paid_case_id(client, gateway, requester, listing)
    assigned = client.post(
        f"{BASE}/{case_id}/assign", json={"agent_id": str(agent.id)}, headers=auth_headers(admin)
    ).json()["data"]["verification"]

    first = client.put(
        f"{BASE}/{case_id}/status",
        json={"status": "disputed", "version": assigned["version"]},
        headers=auth_headers(agent),
    )
    assert first.status_code == 200

    second = client.put(
        f"{BASE}/{case_id}/status",
        json={"status": "completed", "score": 70, "version": assigned["version"]},
        headers=auth_headers(agent),
    )
    assert second.status_code == 409


def test_score_out_of_range(client, gateway, admin, agent, requester, listing):
    case_id = paid_case_id(client, gateway, requester, listing)
    client.post(f"{BASE}/{case_id}/assign", json={"agent_id": str(agent.id)}, headers=auth_headers(admin))

    resp = client.put(
        f"{BASE}/{case_id}/status", json={"status": "completed", "score": 101}, headers=auth_headers(agent)
    )
    assert resp.status_code == 400
    assert resp.json()["message"].startswith("score")


def test_breakdown_without_score_is_a_bad_request(client, gateway, admin, agent, requester, listing):
    case_id = paid_case_id(client, gateway, requester, listing)
    client.post(f"{BASE}/{case_id}/assign", json={"agent_id": str(agent.id)}, headers=auth_headers(admin))

    resp = client.put(
        f"{BASE}/{case_id}/status",
        json={"status": "completed", "breakdown": {"documentation": 90}},
        headers=auth_headers(agent),
    )
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "A score breakdown needs an overall score"}

    case = client.get(f"{BASE}/{case_id}", headers=auth_headers(agent)).json()["data"]["verification"]
    assert case["status"] == "in-progress"

def test_illegal_transition_is_a_bad_request(client, requester, admin, listing):
    case = request_case(client, requester, listing).json()["data"]["verification"]
    resp = client.put(f"{BASE}/{case['id']}/status", json={"status": "completed"}, headers=auth_headers(admin))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot move verification from pending to completed"


def test_plain_users_cannot_work_cases(client, requester, listing):
    case = request_case(client, requester, listing).json()["data"]["verification"]

    resp = client.put(f"{BASE}/{case['id']}/status", json={"status": "rejected"}, headers=auth_headers(requester))
    assert resp.status_code == 403
    assert resp.json()["message"] == "Access denied. Agent or admin privileges required."

    resp = client.get(f"{BASE}/", headers=auth_headers(requester))
    assert resp.status_code == 403


def test_only_admin_assigns(client, requester, agent, listing):
    case = request_case(client, requester, listing).json()["data"]["verification"]
    resp = client.post(f"{BASE}/{case['id']}/assign", json={"agent_id": str(agent.id)}, headers=auth_headers(agent))
    assert resp.status_code == 403


def test_outsider_cannot_view_case(client, requester, user_factory, listing):
    case = request_case(client, requester, listing).json()["data"]["verification"]
    resp = client.get(f"{BASE}/{case['id']}", headers=auth_headers(user_factory()))
    assert resp.status_code == 403
    assert resp.json()["message"] == "Not authorized"


def test_unknown_case(client, admin):
    resp = client.get(f"{BASE}/{uuid.uuid4()}", headers=auth_headers(admin))
    assert resp.status_code == 404
    assert resp.json()["message"] == "Verification not found"


def test_my_verifications(client, requester, user_factory, property_factory, agent):
    request_case(client, requester, property_factory(agent))
    request_case(client, requester, property_factory(agent))
    request_case(client, user_factory(), property_factory(agent))

    resp = client.get(f"{BASE}/my-verifications", headers=auth_headers(requester))
    assert resp.status_code == 200
    assert len(resp.json()["data"]["verifications"]) == 2


def test_admin_listing_with_filters(client, requester, admin, agent, property_factory):
    for priority in ("low", "high", "high"):
        request_case(client, requester, property_factory(agent), priority)

    resp = client.get(f"{BASE}/", params={"priority": "high", "limit": 1}, headers=auth_headers(admin))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert len(data["verifications"]) == 1
    assert data["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}

    resp = client.get(f"{BASE}/", params={"status": "in-progress"}, headers=auth_headers(admin))
    assert resp.json()["data"]["pagination"]["total"] == 0


def test_agent_listing_only_shows_assigned(client, gateway, requester, admin, agent, other_agent, property_factory):
    case_id = paid_case_id(client, gateway, requester, property_factory(agent))
    request_case(client, requester, property_factory(agent))
    client.post(f"{BASE}/{case_id}/assign", json={"agent_id": str(agent.id)}, headers=auth_headers(admin))

    mine = client.get(f"{BASE}/", headers=auth_headers(agent)).json()["data"]
    theirs = client.get(f"{BASE}/", headers=auth_headers(other_agent)).json()["data"]
    assert [c["id"] for c in mine["verifications"]] == [case_id]
    assert theirs["verifications"] == []


def test_refund(client, gateway, requester, admin, listing):
    case_id = paid_case_id(client, gateway, requester, listing)

    resp = client.post(f"{BASE}/{case_id}/refund", json={"reason": "Duplicate payment"}, headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["data"]["verification"]["payment"]["status"] == "refunded"

    resp = client.post(f"{BASE}/{case_id}/refund", json={}, headers=auth_headers(requester))
    assert resp.status_code == 403
