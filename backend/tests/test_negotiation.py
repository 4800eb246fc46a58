import logging

import pytest

from helpers import booking_request, build_dispatch
from homeservices.services.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from homeservices.services.negotiation import parse_proposed_amount


def _driving_setup(tmp_path, customer_id="home_7"):
    ctx = build_dispatch(tmp_path)
    driver = ctx.providers.add_provider(name="Suresh Kumar", services=["Driving"], rates={"Driving": 800})
    created = ctx.engine.create_booking(booking_request(driver.id, "Driving", customer_id=customer_id))
    return ctx, driver, created


@pytest.mark.parametrize("value", [0, "-5", "abc", "", "nan", "inf", True, [150]])
def test_parse_proposed_amount_rejects_non_positive_or_non_numeric(value):
    with pytest.raises(InvalidArgumentError, match="Invalid proposed amount"):
        parse_proposed_amount(value)


def test_parse_proposed_amount_accepts_numbers_and_numeric_strings():
    assert parse_proposed_amount(150.50) == 150.5
    assert parse_proposed_amount(" 500 ") == 500.0


def test_propose_amount_returns_pending_snapshot(tmp_path):
    ctx, driver, created = _driving_setup(tmp_path)

    snapshot = ctx.negotiation.propose_amount(created.booking.id, driver.id, 500, note="flexible on timing")

    assert snapshot.status == "pending"
    assert snapshot.proposed_amount == 500
    assert snapshot.note == "flexible on timing"
    assert snapshot.provider_name == "Suresh Kumar"
    assert snapshot.created_at

    booking = ctx.bookings.get_booking(created.booking.id)
    assert booking.status == "negotiating"
    assert booking.negotiation.is_active is True


def test_propose_amount_with_decimal_amount(tmp_path):
    ctx, driver, created = _driving_setup(tmp_path)

    snapshot = ctx.negotiation.propose_amount(created.booking.id, driver.id, 150.50, provider_name="Suresh K.")

    assert snapshot.status == "pending"
    assert snapshot.proposed_amount == 150.5
    assert snapshot.provider_name == "Suresh K."


@pytest.mark.parametrize("amount", [0, "-5", "abc"])
def test_propose_amount_rejects_invalid_amounts_without_writing(tmp_path, amount):
    ctx, driver, created = _driving_setup(tmp_path)

    with pytest.raises(InvalidArgumentError):
        ctx.negotiation.propose_amount(created.booking.id, driver.id, amount)

    assert ctx.bookings.get_booking(created.booking.id).negotiation is None


def test_propose_amount_requires_all_fields(tmp_path):
    ctx, driver, created = _driving_setup(tmp_path)

    with pytest.raises(InvalidArgumentError, match="are required"):
        ctx.negotiation.propose_amount(created.booking.id, driver.id, None)
    with pytest.raises(InvalidArgumentError, match="are required"):
        ctx.negotiation.propose_amount(None, driver.id, 100)


def test_note_is_truncated_to_300_characters(tmp_path):
    ctx, driver, created = _driving_setup(tmp_path)

    snapshot = ctx.negotiation.propose_amount(created.booking.id, driver.id, 700, note="x" * 450)

    assert len(snapshot.note) == 300


def test_provider_must_offer_the_booked_service(tmp_path):
    ctx = build_dispatch(tmp_path)
    chef = ctx.providers.add_provider(name="Annapurna", services=["Cooking"], rates={"Cooking": 600})
    p4 = ctx.providers.add_provider(name="Handy Harish", services=["Plumbing"])
    created = ctx.engine.create_booking(booking_request(chef.id, "Cooking"))

    with pytest.raises(InvalidArgumentError, match="Provider does not offer this service"):
        ctx.negotiation.propose_amount(created.booking.id, p4.id, 300)
    with pytest.raises(NotFoundError, match="Provider not found"):
        ctx.negotiation.propose_amount(created.booking.id, "prv_missing", 300)
    with pytest.raises(NotFoundError, match="Booking not found"):
        ctx.negotiation.propose_amount("bkg_missing", chef.id, 300)


def test_propose_on_accepted_booking_leaves_negotiation_unchanged(tmp_path):
    ctx, driver, created = _driving_setup(tmp_path)
    ctx.negotiation.propose_amount(created.booking.id, driver.id, 900)
    ctx.engine.record_provider_acceptance(created.booking.id, driver.id)
    before = ctx.bookings.get_booking(created.booking.id).negotiation

    with pytest.raises(InvalidStateError, match="not allowed for this booking state"):
        ctx.negotiation.propose_amount(created.booking.id, driver.id, 950)

    assert ctx.bookings.get_booking(created.booking.id).negotiation == before


def test_history_grows_and_tracks_latest_offer(tmp_path):
    ctx, driver, created = _driving_setup(tmp_path)
    second_driver = ctx.providers.add_provider(name="Imran", services=["Driving"])

    lengths = []
    for provider_id, amount in [(driver.id, 900), (second_driver.id, 850), (driver.id, 820)]:
        ctx.negotiation.propose_amount(created.booking.id, provider_id, amount)
        negotiation = ctx.bookings.get_booking(created.booking.id).negotiation
        lengths.append(len(negotiation.history))
        assert negotiation.history[-1] == negotiation.latest()

    assert lengths == [1, 2, 3]
    history = ctx.bookings.get_booking(created.booking.id).negotiation.history
    assert [item.proposed_amount for item in history] == [900, 850, 820]
    assert history[1].provider_name == "Imran"


def test_offer_is_mirrored_onto_resident_request(tmp_path):
    ctx, driver, created = _driving_setup(tmp_path)

    snapshot = ctx.negotiation.propose_amount(created.booking.id, driver.id, 750, note="Includes fuel")

    mirror = ctx.requests.get(created.resident_request_id).negotiation
    assert mirror.is_active is True
    assert mirror.proposed_amount == 750
    assert mirror.note == "Includes fuel"
    assert mirror.status == "pending"
    assert mirror.updated_at >= snapshot.created_at
    assert not hasattr(mirror, "history")


def test_propose_without_resident_request_skips_sync(tmp_path):
    ctx = build_dispatch(tmp_path)
    driver = ctx.providers.add_provider(name="Suresh Kumar", services=["Driving"], rates={"Driving": 800})
    created = ctx.engine.create_booking(booking_request(driver.id, "Driving"))

    snapshot = ctx.negotiation.propose_amount(created.booking.id, driver.id, 640)

    assert created.resident_request_id is None
    assert snapshot.proposed_amount == 640


def test_resident_accepts_offer(tmp_path):
    ctx, driver, created = _driving_setup(tmp_path)
    ctx.negotiation.propose_amount(created.booking.id, driver.id, 720)

    resident_request = ctx.negotiation.respond_to_negotiation(created.resident_request_id, "home_7", "accept")

    assert resident_request.status == "accepted"
    assert resident_request.negotiation.status == "accepted"
    booking = ctx.bookings.get_booking(created.booking.id)
    assert booking.status == "accepted"
    assert booking.assigned_provider == driver.id
    assert booking.total_price == 720
    assert booking.negotiation.is_active is False


def test_resident_declines_offer_and_booking_is_reoffered(tmp_path, caplog):
    ctx, driver, created = _driving_setup(tmp_path)
    ctx.negotiation.propose_amount(created.booking.id, driver.id, 1200)

    with caplog.at_level(logging.INFO):
        resident_request = ctx.negotiation.respond_to_negotiation(created.resident_request_id, "home_7", "decline")

    assert "Resident home_7 declined offer" in caplog.text

    assert resident_request.status == "pending"
    assert resident_request.negotiation.status == "declined"
    booking = ctx.bookings.get_booking(created.booking.id)
    assert booking.status == "offered"
    assert booking.negotiation.status == "declined"

    # A fresh counter offer reopens the negotiation.
    ctx.negotiation.propose_amount(created.booking.id, driver.id, 1000)
    assert ctx.bookings.get_booking(created.booking.id).negotiation.is_active is True


def test_resident_response_errors(tmp_path):
    ctx, driver, created = _driving_setup(tmp_path)

    with pytest.raises(InvalidArgumentError, match="Unsupported"):
        ctx.negotiation.respond_to_negotiation(created.resident_request_id, "home_7", "haggle")
    with pytest.raises(NotFoundError):
        ctx.negotiation.respond_to_negotiation(created.resident_request_id, "someone_else", "accept")
    with pytest.raises(InvalidStateError, match="No active negotiation"):
        ctx.negotiation.respond_to_negotiation(created.resident_request_id, "home_7", "accept")

    orphan = ctx.requests.create(homeowner_id="home_7", title="Driving")
    with pytest.raises(InvalidStateError, match="No linked booking"):
        ctx.negotiation.respond_to_negotiation(orphan.id, "home_7", "accept")
