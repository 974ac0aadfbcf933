"""
Tests for appointment creation and its fallback tiers.
"""

import json

import pytest

from app.services.crm.appointment_service import (
    TYPE_CANDIDATES,
    AppointmentValidationError,
    ValidationFailure,
    analyze_failure,
    build_fallback_payload,
    create_appointment,
    fetch_appointment_metadata,
    parse_invalid_fields,
    requires_type_candidates,
)
from app.services.rollout.client import RolloutAPIError

BASE_PAYLOAD = {
    "personId": " P1 ",
    "title": " Intro call ",
    "location": " Office ",
    "startsAt": "2024-02-01T10:00:00Z",
    "endsAt": "2024-02-01T11:00:00Z",
}


def validation_error(*entries, message=None):
    body = {"errors": [{"path": path, "message": text} for path, text in entries]}
    if message:
        body["message"] = message
    return RolloutAPIError(422, json.dumps(body))


def catalog_routes(overrides=None):
    routes = {
        "/appointment-types": {"appointmentTypes": [{"id": 7, "name": "Showing"}]},
        "/users": {"users": [{"id": "U1"}]},
    }
    routes.update(overrides or {})
    return routes


def test_parse_invalid_fields():
    body = '{"message":"Invalid fields: startsAt, endsAt."}'
    assert parse_invalid_fields(body) == ["startsAt", "endsAt"]
    assert parse_invalid_fields("Invalid fields in body: personId") == ["personId"]
    assert parse_invalid_fields("nothing to see") == []


def test_analyze_failure_reads_required_paths_only_for_422():
    error = validation_error(("/appointmentTypeId", "is required"), ("/title", "too long"))
    assert analyze_failure(error).missing_required == {"appointmentTypeId"}

    other = RolloutAPIError(400, error.body)
    assert analyze_failure(other).missing_required == frozenset()


def test_requires_type_candidates():
    assert requires_type_candidates(validation_error(("/appointmentTypeId", "must be one of")))
    assert not requires_type_candidates(validation_error(("/title", "is required")))
    assert not requires_type_candidates(RolloutAPIError(400, '{"errors":[{"path":"/appointmentTypeId"}]}'))
    assert not requires_type_candidates(RolloutAPIError(422, "not json"))


def test_fallback_payload_shape():
    body = {
        "personId": "P1",
        "userId": "U1",
        "title": "Intro",
        "location": "Office",
        "description": "Notes",
        "appointmentTypeId": "7",
        "startsAt": "s",
        "endsAt": "e",
        "isAllDay": False,
    }
    failure = ValidationFailure(status_code=422, invalid_fields=frozenset({"startsAt", "appointmentTypeId"}))

    fallback = build_fallback_payload(body, failure)

    assert fallback == {
        "title": "Intro",
        "location": "Office",
        "description": "Notes",
        "start": "s",
        "endsAt": "e",
        "invitees": [{"personId": "P1"}, {"userId": "U1"}],
        "personId": "P1",
    }


def test_fallback_payload_drops_top_level_person_when_flagged_or_not_422():
    body = {"personId": "P1", "title": "T", "location": "L"}

    flagged = build_fallback_payload(body, ValidationFailure(422, invalid_fields=frozenset({"personId"})))
    not_422 = build_fallback_payload(body, ValidationFailure(400))
    missing = build_fallback_payload(
        body,
        ValidationFailure(422, invalid_fields=frozenset({"personId"}), missing_required=frozenset({"personId"})),
    )

    assert "personId" not in flagged
    assert "personId" not in not_422
    assert missing["personId"] == "P1"
    assert flagged["invitees"] == [{"personId": "P1"}]


@pytest.mark.asyncio
async def test_missing_fields_fail_before_any_request(fake_connection):
    connection = fake_connection()

    with pytest.raises(AppointmentValidationError) as exc:
        await create_appointment(connection, {"personId": "P1", "title": "  "})

    assert str(exc.value) == "Missing required fields: title, location"
    assert connection.calls == []


@pytest.mark.asyncio
async def test_natural_payload_with_defaults(fake_connection):
    connection = fake_connection(catalog_routes({("POST", "/appointments"): {"id": "created-1"}}))

    created = await create_appointment(connection, {**BASE_PAYLOAD, "description": "", "isAllDay": True})

    assert created == {"id": "created-1"}
    [post] = connection.calls_to("/appointments", "POST")
    assert post["body"] == {
        "personId": "P1",
        "title": "Intro call",
        "location": "Office",
        "appointmentTypeId": "7",
        "userId": "U1",
        "description": "",
        "isAllDay": True,
        "startsAt": BASE_PAYLOAD["startsAt"],
        "endsAt": BASE_PAYLOAD["endsAt"],
    }
    assert connection.calls_to("/users")[0]["params"] == {"limit": 1}


@pytest.mark.asyncio
async def test_caller_values_skip_catalog_lookups(fake_connection):
    connection = fake_connection({("POST", "/appointments"): {"id": "created-1"}})

    await create_appointment(connection, {**BASE_PAYLOAD, "appointmentTypeId": "T9", "userId": "U9"})

    assert [c["path"] for c in connection.calls] == ["/appointments"]


@pytest.mark.asyncio
async def test_catalog_failures_mean_no_defaults(fake_connection):
    connection = fake_connection(
        {
            "/appointment-types": RolloutAPIError(500, ""),
            "/users": RolloutAPIError(403, ""),
            ("POST", "/appointments"): {"id": "created-1"},
        }
    )

    await create_appointment(connection, BASE_PAYLOAD)

    body = connection.calls_to("/appointments", "POST")[0]["body"]
    assert "appointmentTypeId" not in body
    assert "userId" not in body


@pytest.mark.asyncio
async def test_second_attempt_uses_start_when_starts_at_invalid(fake_connection):
    def create(params, body):
        if "startsAt" in body:
            return RolloutAPIError(422, '{"message":"Invalid fields: startsAt"}')
        return {"id": "from-second", "start": body["start"]}

    connection = fake_connection(catalog_routes({("POST", "/appointments"): create}))

    created = await create_appointment(connection, BASE_PAYLOAD)

    assert created == {"id": "from-second", "start": BASE_PAYLOAD["startsAt"]}
    posts = connection.calls_to("/appointments", "POST")
    assert len(posts) == 2
    assert posts[1]["body"]["invitees"] == [{"personId": "P1"}, {"userId": "U1"}]
    assert posts[1]["body"]["endsAt"] == BASE_PAYLOAD["endsAt"]


@pytest.mark.asyncio
async def test_missing_type_is_resolved_again_for_fallback(fake_connection):
    types = [{"items": []}, {"items": [{"id": "late-type"}]}]

    def create(params, body):
        if "invitees" not in body:
            return validation_error(("/appointmentTypeId", "is required"))
        return {"id": "ok", "type": body.get("appointmentTypeId")}

    connection = fake_connection(
        catalog_routes({"/appointment-types": types, ("POST", "/appointments"): create})
    )

    created = await create_appointment(connection, BASE_PAYLOAD)

    assert created == {"id": "ok", "type": "late-type"}
    assert len(connection.calls_to("/appointment-types")) == 2


@pytest.mark.asyncio
async def test_type_candidates_tried_in_order(fake_connection):
    type_error = validation_error(("/appointmentTypeId", "must be a known type"))

    def create(params, body):
        if body.get("appointmentTypeId") == "Meeting":
            return {"id": "meeting-appointment"}
        return type_error

    connection = fake_connection(
        {"/appointment-types": {"items": []}, "/users": {"items": []}, ("POST", "/appointments"): create}
    )

    created = await create_appointment(connection, BASE_PAYLOAD)

    assert created == {"id": "meeting-appointment"}
    tried = [c["body"].get("appointmentTypeId") for c in connection.calls_to("/appointments", "POST")]
    assert tried == [None, None, "Other", "Default", "Appointment", "Meeting"]


@pytest.mark.asyncio
async def test_exhausted_candidates_raise_last_error(fake_connection):
    def create(params, body):
        candidate = body.get("appointmentTypeId", "none")
        return RolloutAPIError(422, json.dumps({"errors": [{"path": "/appointmentTypeId", "message": candidate}]}))

    connection = fake_connection(
        {"/appointment-types": {"items": []}, "/users": {"items": []}, ("POST", "/appointments"): create}
    )

    with pytest.raises(RolloutAPIError) as exc:
        await create_appointment(connection, BASE_PAYLOAD)

    assert json.loads(exc.value.body)["errors"][0]["message"] == TYPE_CANDIDATES[-1]
    assert len(connection.calls_to("/appointments", "POST")) == 2 + len(TYPE_CANDIDATES)


@pytest.mark.asyncio
async def test_other_second_failures_propagate(fake_connection):
    responses = [RolloutAPIError(400, "bad"), RolloutAPIError(409, "conflict")]
    connection = fake_connection(catalog_routes({("POST", "/appointments"): responses}))

    with pytest.raises(RolloutAPIError) as exc:
        await create_appointment(connection, BASE_PAYLOAD)

    assert exc.value.status_code == 409
    assert len(connection.calls_to("/appointments", "POST")) == 2


@pytest.mark.asyncio
async def test_appointment_metadata_labels(fake_connection):
    connection = fake_connection(
        {
            "/appointment-types": {"items": [{"id": 1, "name": " Showing "}, {"id": "2", "label": "Call"}, {"id": 3}]},
            "/appointment-outcomes": [[{"id": "o1"}, {"name": "no id"}]],
        }
    )

    metadata = await fetch_appointment_metadata(connection)

    assert metadata == {
        "types": [
            {"id": "1", "label": "Showing"},
            {"id": "2", "label": "Call"},
            {"id": "3", "label": "Type 3"},
        ],
        "outcomes": [{"id": "o1", "label": "Outcome o1"}],
    }


@pytest.mark.asyncio
async def test_non_string_title_or_location_is_missing(fake_connection):
    connection = fake_connection()

    with pytest.raises(AppointmentValidationError) as exc:
        await create_appointment(connection, {"personId": 12, "title": 5, "location": ["Office"]})

    assert exc.value.missing_fields == ["title", "location"]
    assert connection.calls == []


@pytest.mark.asyncio
async def test_rejected_resolved_type_skips_candidates(fake_connection):
    type_error = validation_error(("/appointmentTypeId", "unknown type"))
    connection = fake_connection(catalog_routes({("POST", "/appointments"): type_error}))

    with pytest.raises(RolloutAPIError) as exc:
        await create_appointment(connection, BASE_PAYLOAD)

    assert exc.value is type_error
    tried = [c["body"].get("appointmentTypeId") for c in connection.calls_to("/appointments", "POST")]
    assert tried == ["7", "7"]
