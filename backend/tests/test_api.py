from uuid import uuid4

from fastapi.testclient import TestClient

from homeservices.main import app
from homeservices.services.provider_directory import provider_directory

client = TestClient(app)


def _service_name(prefix: str) -> str:
    # Unique per test so the shared database never mixes provider pools.
    return f"{prefix} {uuid4().hex[:6]}"


def _create_booking(provider_id: str, service_name: str, **overrides) -> dict:
    payload = {
        "service_id": "svc_1",
        "service_name": service_name,
        "service_category": "home",
        "customer_id": f"home_{uuid4().hex[:6]}",
        "customer_name": "Asha",
        "customer_phone": "9876543210",
        "customer_address": "12 Lake View Road, Pune",
        "booking_date": "2026-11-02",
        "booking_time": "10:30",
        "provider_id": provider_id,
    }
    payload.update(overrides)
    response = client.post("/bookings/create", json=payload)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    return body["data"]


def test_health_ok():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_plumbing_rejection_cascade_denies_resident_request():
    service = _service_name("Plumbing")
    p1 = provider_directory.add_provider(name="Ravi", services=[service], rates={service: 450})
    p2 = provider_directory.add_provider(name="FlowFix", services=[service], rates={service: 500})
    created = _create_booking(p1.id, service)
    booking_id = created["booking"]["id"]
    assert created["notified_providers"] == 2

    first = client.post("/bookings/reject", json={"booking_id": booking_id, "provider_id": p1.id})
    assert first.status_code == 200
    assert first.json()["data"] == {"id": booking_id, "status": "offered"}

    second = client.post(
        "/bookings/reject",
        json={"booking_id": booking_id, "provider_id": p2.id, "reason": "Out of town"},
    )
    assert second.status_code == 200
    assert second.json()["data"]["status"] == "rejected"

    homeowner_id = created["booking"]["customer_id"]
    request_view = client.get(
        f"/resident/requests/{created['resident_request_id']}",
        params={"homeowner_id": homeowner_id},
    )
    assert request_view.status_code == 200
    assert request_view.json()["data"]["status"] == "denied"


def test_reject_error_statuses():
    missing_fields = client.post("/bookings/reject", json={"booking_id": "bkg_x"})
    assert missing_fields.status_code == 400
    assert missing_fields.json()["success"] is False

    missing_booking = client.post("/bookings/reject", json={"booking_id": "bkg_missing", "provider_id": "prv_1"})
    assert missing_booking.status_code == 404
    assert missing_booking.json() == {"success": False, "message": "Booking not found"}


def test_negotiate_flow_and_validation():
    service = _service_name("Driving")
    driver = provider_directory.add_provider(name="Suresh", services=[service], rates={service: 800})
    created = _create_booking(driver.id, service)
    booking_id = created["booking"]["id"]

    for bad_amount in [0, "-5", "abc"]:
        response = client.post(
            "/bookings/negotiate",
            json={"booking_id": booking_id, "provider_id": driver.id, "proposed_amount": bad_amount},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid proposed amount"

    missing_amount = client.post("/bookings/negotiate", json={"booking_id": booking_id, "provider_id": driver.id})
    assert missing_amount.status_code == 400

    response = client.post(
        "/bookings/negotiate",
        json={
            "booking_id": booking_id,
            "provider_id": driver.id,
            "proposed_amount": 500,
            "note": "flexible on timing",
        },
    )
    assert response.status_code == 200
    snapshot = response.json()["data"]
    assert snapshot["status"] == "pending"
    assert snapshot["proposed_amount"] == 500
    assert snapshot["note"] == "flexible on timing"
    assert set(snapshot) == {"proposed_amount", "provider_id", "provider_name", "note", "status", "created_at"}

    booking = client.get(f"/bookings/{booking_id}").json()["data"]
    assert booking["status"] == "negotiating"
    assert len(booking["negotiation"]["history"]) == 1


def test_negotiate_rejects_service_mismatch_and_closed_booking():
    service = _service_name("Cooking")
    chef = provider_directory.add_provider(name="Annapurna", services=[service], rates={service: 600})
    p4 = provider_directory.add_provider(name="Harish", services=[_service_name("Plumbing")])
    created = _create_booking(chef.id, service)
    booking_id = created["booking"]["id"]

    mismatch = client.post(
        "/bookings/negotiate",
        json={"booking_id": booking_id, "provider_id": p4.id, "proposed_amount": 300},
    )
    assert mismatch.status_code == 400
    assert mismatch.json()["message"] == "Provider does not offer this service"

    missing_provider = client.post(
        "/bookings/negotiate",
        json={"booking_id": booking_id, "provider_id": "prv_missing", "proposed_amount": 300},
    )
    assert missing_provider.status_code == 404

    accepted = client.post("/bookings/accept", json={"booking_id": booking_id, "provider_id": chef.id})
    assert accepted.status_code == 200
    assert accepted.json()["data"]["status"] == "accepted"

    closed = client.post(
        "/bookings/negotiate",
        json={"booking_id": booking_id, "provider_id": chef.id, "proposed_amount": 650},
    )
    assert closed.status_code == 400
    assert closed.json()["message"] == "Negotiation is not allowed for this booking state"


def test_resident_answers_counter_offer():
    service = _service_name("Cleaning")
    cleaner = provider_directory.add_provider(name="Sparkle", services=[service], rates={service: 300})
    created = _create_booking(cleaner.id, service)
    booking_id = created["booking"]["id"]
    homeowner_id = created["booking"]["customer_id"]

    client.post(
        "/bookings/negotiate",
        json={"booking_id": booking_id, "provider_id": cleaner.id, "proposed_amount": "350"},
    )

    listed = client.get("/resident/requests", params={"homeowner_id": homeowner_id})
    assert listed.status_code == 200
    assert listed.json()["data"][0]["negotiation"]["proposed_amount"] == 350

    answered = client.post(
        f"/resident/requests/{created['resident_request_id']}/negotiation",
        json={"homeowner_id": homeowner_id, "action": "accept"},
    )
    assert answered.status_code == 200
    assert answered.json()["data"]["status"] == "accepted"

    booking = client.get(f"/bookings/{booking_id}").json()["data"]
    assert booking["status"] == "accepted"
    assert booking["total_price"] == 350


def test_provider_inbox_lists_open_requests():
    service = _service_name("Electrician")
    provider = provider_directory.add_provider(name="Volt", services=[service], rates={service: 550})
    created = _create_booking(provider.id, service, customer_id=None)

    inbox = client.get(f"/providers/{provider.id}/requests")
    assert inbox.status_code == 200
    payload = inbox.json()["data"]
    assert [item["id"] for item in payload["pending_requests"]] == [created["booking"]["id"]]
    assert created["resident_request_id"] is None

    eligible = client.get("/providers/eligible", params={"service_name": service})
    assert [item["id"] for item in eligible.json()["data"]] == [provider.id]

    assert client.get("/providers/prv_missing/requests").status_code == 404


def test_create_booking_validation():
    response = client.post("/bookings/create", json={"service_name": "Plumbing"})
    assert response.status_code == 400
    assert response.json()["message"] == "service_id is required"

    bad_quantity = client.post("/bookings/create", json={"service_name": "Plumbing", "quantity": 0})
    assert bad_quantity.status_code == 400
    assert bad_quantity.json()["success"] is False
