import asyncio
from datetime import datetime

import pytest
from bson import ObjectId

from app.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError


def run(coro):
    return asyncio.run(coro)


def create(services, account, waste_type="dry", overflow=False, location=None, hour=9):
    return run(
        services.pickups.create_request(
            account,
            waste_type=waste_type,
            pickup_time=datetime(2026, 10, 20, hour, 0),
            overflow=overflow,
            location=location,
        )
    )


def balance(services, account):
    return run(services.ledger.get_balance(account.id))["points"]


def stray_request(services, accounts):
    # a request stored without a ward
    return run(
        services.pickup_repo.insert({
            "user_id": accounts.citizen.id,
            "ward_number": None,
            "waste_type": "dry",
            "pickup_time": datetime(2026, 10, 20, 9, 0),
            "overflow": False,
            "location": None,
            "status": "pending",
            "assigned_to": None,
        })
    )


async def ledger_unavailable(*args, **kwargs):
    raise RuntimeError("ledger unavailable")


# -------------------------
# Create
# -------------------------
def test_create_copies_identity_fields_from_account(services, accounts):
    doc = create(services, accounts.citizen)

    assert doc["user_id"] == accounts.citizen.id
    assert doc["ward_number"] == "4"
    assert doc["house_number"] == "H001"
    assert doc["area"] == "Bhetapara - Lane 1"
    assert doc["status"] == "pending"
    assert doc["verification_status"] == "pending"
    assert doc["segregation_verified"] is False
    assert doc["assigned_to"] is None


def test_create_uses_client_location_only_when_numeric(services, accounts):
    given = create(services, accounts.citizen, location={"lat": 26.2, "lng": 91.8})
    partial = create(services, accounts.citizen, location={"lat": 26.2})
    garbage = create(services, accounts.citizen, location={"lat": "x", "lng": "y"})

    assert given["location"] == {"lat": 26.2, "lng": 91.8}
    assert partial["location"] == {"lat": 26.1401, "lng": 91.7301}
    assert garbage["location"] == {"lat": 26.1401, "lng": 91.7301}


def test_create_without_any_location_stores_none(services, accounts):
    assert create(services, accounts.neighbour)["location"] is None


def test_create_accepts_iso_string_time(services, accounts):
    doc = run(services.pickups.create_request(accounts.citizen, "wet", "2026-10-20T09:00:00Z"))
    assert doc["pickup_time"] == datetime(2026, 10, 20, 9, 0)


@pytest.mark.parametrize("waste_type, pickup_time", [(None, "2026-10-20T09:00:00"), ("wet", None), ("", "")])
def test_create_requires_waste_type_and_time(services, accounts, waste_type, pickup_time):
    with pytest.raises(ValidationError):
        run(services.pickups.create_request(accounts.citizen, waste_type, pickup_time))


def test_create_rejects_unknown_waste_type(services, accounts):
    with pytest.raises(ValidationError):
        run(services.pickups.create_request(accounts.citizen, "plastic", datetime(2026, 10, 20)))


def test_only_citizens_create(services, accounts):
    with pytest.raises(AuthorizationError):
        create(services, accounts.collector)


def test_missing_fields_reported_before_role(services, accounts):
    with pytest.raises(ValidationError):
        run(services.pickups.create_request(accounts.collector, None, None))


# -------------------------
# List
# -------------------------
def test_list_is_scoped_by_role(services, accounts):
    mine = create(services, accounts.citizen)
    theirs = create(services, accounts.neighbour)
    far = create(services, accounts.far_citizen)

    def ids(principal, status=None):
        return {d["_id"] for d in run(services.pickups.list_requests(principal, status))}

    assert ids(accounts.citizen) == {mine["_id"]}
    assert ids(accounts.collector) == {mine["_id"], theirs["_id"]}
    assert ids(accounts.far_collector) == {far["_id"]}
    assert ids(accounts.admin) == {mine["_id"], theirs["_id"], far["_id"]}


def test_list_filters_by_status_and_sorts_by_time(services, accounts):
    late = create(services, accounts.citizen, hour=15)
    early = create(services, accounts.citizen, hour=8)
    cancelled = create(services, accounts.citizen, hour=10)
    run(services.pickups.cancel_request(cancelled["_id"], accounts.citizen.id))

    pending = run(services.pickups.list_requests(accounts.citizen, "pending"))
    assert [d["_id"] for d in pending] == [early["_id"], late["_id"]]


def test_list_rows_carry_owner_summary(services, accounts):
    create(services, accounts.citizen)
    (row,) = run(services.pickups.list_requests(accounts.citizen))
    assert row["owner"]["house_number"] == "H001"
    assert row["owner"]["id"] == str(accounts.citizen.id)


def test_list_with_unknown_status_is_empty(services, accounts):
    create(services, accounts.citizen)
    assert run(services.pickups.list_requests(accounts.admin, "lost")) == []


def test_collector_without_ward_sees_nothing(services, accounts):
    create(services, accounts.citizen)
    stray_request(services, accounts)
    assert run(services.pickups.list_requests(accounts.wardless)) == []


# -------------------------
# Verify
# -------------------------
@pytest.mark.parametrize("pickup_id", [str(ObjectId()), "not-an-id"])
def test_verify_unknown_pickup(services, pickup_id):
    with pytest.raises(NotFoundError):
        run(services.pickups.record_verification(pickup_id, verified=True))


def test_verify_needs_a_field(services, accounts):
    doc = create(services, accounts.citizen)
    with pytest.raises(ValidationError):
        run(services.pickups.record_verification(doc["_id"]))


def test_false_alarm_on_overflow_penalises_once(services, accounts):
    doc = create(services, accounts.citizen, overflow=True)

    updated = run(services.pickups.record_verification(doc["_id"], verification_status="false_alarm"))
    for verdict in ("false_alarm", "verified", "false_alarm"):
        run(services.pickups.record_verification(doc["_id"], verification_status=verdict))

    assert updated["verification_status"] == "false_alarm"
    assert balance(services, accounts.citizen) == -50


def test_false_alarm_without_overflow_is_inert(services, accounts):
    doc = create(services, accounts.citizen, overflow=False)
    run(services.pickups.record_verification(doc["_id"], verification_status="false_alarm"))
    assert balance(services, accounts.citizen) == 0


def test_failed_penalty_is_settled_by_a_repeated_verdict(services, accounts, monkeypatch):
    doc = create(services, accounts.citizen, overflow=True)
    monkeypatch.setattr(services.ledger, "penalize", ledger_unavailable)

    with pytest.raises(RuntimeError):
        run(services.pickups.record_verification(doc["_id"], verification_status="false_alarm"))

    stored = run(services.pickup_repo.find_by_id(doc["_id"]))
    assert stored["verification_status"] == "false_alarm"
    assert stored["penalty_pending"] is True
    assert balance(services, accounts.citizen) == 0

    monkeypatch.undo()
    updated = run(services.pickups.record_verification(doc["_id"], verification_status="false_alarm"))
    run(services.pickups.record_verification(doc["_id"], verification_status="false_alarm"))

    assert updated["penalty_pending"] is False
    assert balance(services, accounts.citizen) == -50


def test_verified_flag_sets_segregation(services, accounts):
    doc = create(services, accounts.citizen)
    updated = run(services.pickups.record_verification(doc["_id"], verified=False, verification_status="verified"))
    assert updated["segregation_verified"] is False
    assert updated["verification_status"] == "verified"


# -------------------------
# Complete
# -------------------------
@pytest.mark.parametrize("waste_type, points", [("wet", 5), ("dry", 8), ("e-waste", 15)])
def test_complete_without_verification_trusts_and_credits(services, accounts, waste_type, points):
    doc = create(services, accounts.citizen, waste_type=waste_type)

    updated, incentive = run(services.pickups.complete_request(doc["_id"], accounts.collector.id))

    assert updated["status"] == "completed"
    assert updated["completed_by"] == accounts.collector.id
    assert updated["assigned_to"] == accounts.collector.id
    assert updated["segregation_verified"] is True
    assert incentive["points"] == points


def test_complete_twice_credits_once(services, accounts):
    doc = create(services, accounts.citizen, waste_type="dry")
    run(services.pickups.complete_request(doc["_id"], accounts.collector.id))

    again, incentive = run(services.pickups.complete_request(doc["_id"], accounts.collector.id))

    assert again["status"] == "completed"
    assert incentive is None
    assert balance(services, accounts.citizen) == 8


def test_failed_credit_is_settled_by_the_next_completion(services, accounts, monkeypatch):
    doc = create(services, accounts.citizen, waste_type="dry")
    monkeypatch.setattr(services.ledger, "accrue", ledger_unavailable)

    with pytest.raises(RuntimeError):
        run(services.pickups.complete_request(doc["_id"], accounts.collector.id))

    stored = run(services.pickup_repo.find_by_id(doc["_id"]))
    assert stored["status"] == "completed"
    assert stored["credit_pending"] is True
    assert balance(services, accounts.citizen) == 0

    monkeypatch.undo()
    again, incentive = run(services.pickups.complete_request(doc["_id"], accounts.collector.id))

    assert again["credit_pending"] is False
    assert incentive["points"] == 8

    _, third = run(services.pickups.complete_request(doc["_id"], accounts.collector.id))
    assert third is None
    assert balance(services, accounts.citizen) == 8


def test_replayed_credit_is_not_counted_twice(services, accounts, monkeypatch):
    """The credit lands but clearing the marker fails; the replay must not add again."""
    doc = create(services, accounts.citizen, waste_type="dry")
    repo = services.pickup_repo
    original = repo.update_if

    async def drop_marker_clear(pickup_id, expected, update):
        if expected == {"credit_pending": True}:
            raise RuntimeError("connection dropped")
        return await original(pickup_id, expected, update)

    monkeypatch.setattr(repo, "update_if", drop_marker_clear)
    with pytest.raises(RuntimeError):
        run(services.pickups.complete_request(doc["_id"], accounts.collector.id))
    assert balance(services, accounts.citizen) == 8

    monkeypatch.undo()
    again, _ = run(services.pickups.complete_request(doc["_id"], accounts.collector.id))

    assert again["credit_pending"] is False
    assert balance(services, accounts.citizen) == 8


def test_false_alarm_overrides_prior_verification(services, accounts):
    doc = create(services, accounts.citizen, overflow=True, waste_type="e-waste")
    run(services.pickups.record_verification(doc["_id"], verified=True))
    run(services.pickups.record_verification(doc["_id"], verification_status="false_alarm"))

    updated, incentive = run(services.pickups.complete_request(doc["_id"], accounts.collector.id))

    assert updated["segregation_verified"] is False
    assert incentive is None
    assert balance(services, accounts.citizen) == -50


def test_false_alarm_after_completion_still_penalises(services, accounts):
    doc = create(services, accounts.citizen, overflow=True, waste_type="dry")
    run(services.pickups.complete_request(doc["_id"], accounts.collector.id))

    run(services.pickups.record_verification(doc["_id"], verification_status="false_alarm"))

    assert balance(services, accounts.citizen) == 8 - 50


def test_segregation_is_frozen_after_completion(services, accounts):
    doc = create(services, accounts.citizen)
    run(services.pickups.complete_request(doc["_id"], accounts.collector.id))
    with pytest.raises(ConflictError):
        run(services.pickups.record_verification(doc["_id"], verified=False))


def test_complete_unknown_pickup(services, accounts):
    with pytest.raises(NotFoundError):
        run(services.pickups.complete_request(str(ObjectId()), accounts.collector.id))


def test_cannot_complete_cancelled(services, accounts):
    doc = create(services, accounts.citizen)
    run(services.pickups.cancel_request(doc["_id"], accounts.citizen.id))
    with pytest.raises(ConflictError):
        run(services.pickups.complete_request(doc["_id"], accounts.collector.id))
    assert balance(services, accounts.citizen) == 0


def test_complete_reads_verdict_written_just_before(services, accounts):
    doc = create(services, accounts.citizen, overflow=True)

    async def verdict_then_complete():
        await services.pickups.record_verification(doc["_id"], verification_status="false_alarm")
        return await services.pickups.complete_request(doc["_id"], accounts.collector.id)

    updated, incentive = run(verdict_then_complete())
    assert updated["segregation_verified"] is False
    assert incentive is None


def test_complete_retries_after_concurrent_change(services, accounts, monkeypatch):
    doc = create(services, accounts.citizen, overflow=True)
    repo = services.pickup_repo
    original = repo.update_if
    calls = []

    async def racing_update_if(pickup_id, expected, update):
        if not calls:
            calls.append(1)
            # a false_alarm verdict lands between completion's read and write
            await original(pickup_id, {}, {"$set": {"verification_status": "false_alarm"}})
        return await original(pickup_id, expected, update)

    monkeypatch.setattr(repo, "update_if", racing_update_if)

    updated, incentive = run(services.pickups.complete_request(doc["_id"], accounts.collector.id))
    assert updated["segregation_verified"] is False
    assert incentive is None


# -------------------------
# Cancel
# -------------------------
def test_cancel_by_owner(services, accounts):
    doc = create(services, accounts.citizen)
    updated = run(services.pickups.cancel_request(doc["_id"], accounts.citizen.id))
    assert updated["status"] == "cancelled"


def test_cancel_assigned_pickup_releases_collector(services, accounts):
    doc = create(services, accounts.citizen)
    run(services.route.build_route("4", accounts.collector.id))

    updated = run(services.pickups.cancel_request(doc["_id"], accounts.citizen.id))

    assert updated["status"] == "cancelled"
    assert updated["assigned_to"] is None
    assert run(services.route.build_route("4", accounts.collector.id)) == []


def test_cancel_by_someone_else(services, accounts):
    doc = create(services, accounts.citizen)
    with pytest.raises(AuthorizationError):
        run(services.pickups.cancel_request(doc["_id"], accounts.neighbour.id))


def test_cancel_completed_is_conflict_and_changes_nothing(services, accounts):
    doc = create(services, accounts.citizen, waste_type="wet")
    run(services.pickups.complete_request(doc["_id"], accounts.collector.id))

    with pytest.raises(ConflictError):
        run(services.pickups.cancel_request(doc["_id"], accounts.citizen.id))

    stored = run(services.pickup_repo.find_by_id(doc["_id"]))
    assert stored["status"] == "completed"
    assert balance(services, accounts.citizen) == 5


def test_cancel_twice_is_conflict(services, accounts):
    doc = create(services, accounts.citizen)
    run(services.pickups.cancel_request(doc["_id"], accounts.citizen.id))
    with pytest.raises(ConflictError):
        run(services.pickups.cancel_request(doc["_id"], accounts.citizen.id))


def test_cancel_unknown(services, accounts):
    with pytest.raises(NotFoundError):
        run(services.pickups.cancel_request(str(ObjectId()), accounts.citizen.id))
