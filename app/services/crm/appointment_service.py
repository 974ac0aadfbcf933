"""
Appointment creation and appointment catalogs.

CRM connectors behind the Rollout API disagree on which appointment fields are
required or accepted, so creation runs in tiers:

1. the natural camelCase payload;
2. a reduced payload shaped by the first validation error (start/end renames,
   invitees instead of top-level person/user, type re-resolution);
3. the reduced payload with each literal in TYPE_CANDIDATES as the type, only
   when the reduced payload has no type and its failure is a 422 on
   /appointmentTypeId.

The first success wins. The last upstream error is raised when every tier fails.
"""

import asyncio
import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.infrastructure.observability.logging import get_logger, preview
from app.models.domain.session_domain import clean_string
from app.services.rollout.client import CrmConnection, RolloutAPIError
from app.utils.items import extract_items, normalize_id

logger = get_logger(__name__)

APPOINTMENTS_PATH = "/appointments"
APPOINTMENT_TYPES_PATH = "/appointment-types"
APPOINTMENT_OUTCOMES_PATH = "/appointment-outcomes"
USERS_PATH = "/users"

REQUIRED_FIELDS = ("personId", "title", "location")
TYPE_FIELD_PATH = "/appointmentTypeId"

# Connector-specific guesses; order matters, first accepted value wins.
TYPE_CANDIDATES = ("Other", "Default", "Appointment", "Meeting", "Consultation", "1")

INVALID_FIELDS_PATTERN = re.compile(r'Invalid fields[^:]*:\s*([^"]+)', re.IGNORECASE)


class AppointmentValidationError(Exception):
    """Required appointment fields are missing from the request."""

    def __init__(self, missing_fields: list[str]):
        super().__init__(f"Missing required fields: {', '.join(missing_fields)}")
        self.missing_fields = missing_fields
        self.status_code = 400


class AttemptTier(str, Enum):
    NATURAL = "natural"
    FALLBACK = "fallback"
    TYPE_CANDIDATE = "type_candidate"


@dataclass(frozen=True)
class ValidationFailure:
    """What an upstream rejection says about the payload."""

    status_code: int
    invalid_fields: frozenset[str] = field(default_factory=frozenset)
    missing_required: frozenset[str] = field(default_factory=frozenset)


# =================================================================
# Error body parsing
# =================================================================


def parse_invalid_fields(body: str) -> list[str]:
    """Field names from an "Invalid fields: a, b." message."""
    match = INVALID_FIELDS_PATTERN.search(body or "")
    if not match:
        return []
    tokens = (token.strip() for token in re.split(r"[\s,]+", match.group(1)))
    return [token.rstrip(".") for token in tokens if token]


def parse_error_entries(body: str) -> list[dict]:
    """The `errors` array of a JSON error body, or []."""
    try:
        parsed = json.loads(body or "")
    except ValueError:
        return []
    errors = parsed.get("errors") if isinstance(parsed, dict) else None
    if not isinstance(errors, list):
        return []
    return [entry for entry in errors if isinstance(entry, dict)]


def parse_missing_required(body: str) -> set[str]:
    """Field names whose validation error message mentions "required"."""
    missing = set()
    for entry in parse_error_entries(body):
        path = entry.get("path") if isinstance(entry.get("path"), str) else ""
        message = entry.get("message") if isinstance(entry.get("message"), str) else ""
        if path.startswith("/") and "required" in message.lower():
            missing.add(path[1:])
    return missing


def analyze_failure(error: RolloutAPIError) -> ValidationFailure:
    body = str(error.body or "")
    missing = parse_missing_required(body) if error.status_code == 422 else set()
    return ValidationFailure(
        status_code=error.status_code,
        invalid_fields=frozenset(parse_invalid_fields(body)),
        missing_required=frozenset(missing),
    )


def requires_type_candidates(error: RolloutAPIError) -> bool:
    """True for a 422 whose errors point at /appointmentTypeId."""
    if error.status_code != 422:
        return False
    return any(str(entry.get("path")) == TYPE_FIELD_PATH for entry in parse_error_entries(str(error.body or "")))


# =================================================================
# Payloads
# =================================================================


def _clean(value: Any) -> str | None:
    normalized = normalize_id(value) if isinstance(value, str | int) else ""
    return normalized or None


def _required_value(payload: dict, name: str) -> str | None:
    # personId may be numeric; title and location must be strings
    if name == "personId":
        return _clean(payload.get(name))
    return clean_string(payload.get(name))


def validate_appointment_request(payload: dict) -> None:
    """
    Raises:
        AppointmentValidationError: If personId, title or location is blank or of the wrong type.
    """
    missing = [name for name in REQUIRED_FIELDS if not _required_value(payload, name)]
    if missing:
        raise AppointmentValidationError(missing)


def build_natural_payload(payload: dict, type_id: str | None, user_id: str | None) -> dict:
    body = {
        "personId": _clean(payload.get("personId")),
        "title": clean_string(payload.get("title")),
        "location": clean_string(payload.get("location")),
    }
    if type_id:
        body["appointmentTypeId"] = type_id
    if user_id:
        body["userId"] = user_id

    outcome_id = _clean(payload.get("appointmentOutcomeId"))
    if outcome_id:
        body["appointmentOutcomeId"] = outcome_id
    if isinstance(payload.get("description"), str):
        body["description"] = payload["description"]
    if isinstance(payload.get("isAllDay"), bool):
        body["isAllDay"] = payload["isAllDay"]
    for time_field in ("startsAt", "endsAt"):
        if isinstance(payload.get(time_field), str) and payload[time_field]:
            body[time_field] = payload[time_field]
    return body


def build_fallback_payload(body: dict, failure: ValidationFailure) -> dict:
    """
    Reduced payload for the second attempt.

    Person and user move into `invitees`; start/end are renamed only when the
    upstream flagged the camelCase names; the type is dropped if flagged.
    """
    invalid = failure.invalid_fields
    fallback = {"title": body["title"], "location": body["location"]}
    if body.get("description"):
        fallback["description"] = body["description"]
    if body.get("startsAt"):
        fallback["start" if "startsAt" in invalid else "startsAt"] = body["startsAt"]
    if body.get("endsAt"):
        fallback["end" if "endsAt" in invalid else "endsAt"] = body["endsAt"]

    invitees = []
    if body.get("personId"):
        invitees.append({"personId": body["personId"]})
    if body.get("userId"):
        invitees.append({"userId": body["userId"]})
    if invitees:
        fallback["invitees"] = invitees

    if body.get("appointmentTypeId") and "appointmentTypeId" not in invalid:
        fallback["appointmentTypeId"] = body["appointmentTypeId"]

    if failure.status_code == 422 and body.get("personId"):
        if "personId" in failure.missing_required or "personId" not in invalid:
            fallback["personId"] = body["personId"]
    return fallback


# =================================================================
# Catalog lookups
# =================================================================


def _first_id(data: Any) -> str | None:
    for item in extract_items(data):
        if isinstance(item, dict) and isinstance(item.get("id"), str | int) and not isinstance(item.get("id"), bool):
            return normalize_id(item["id"]) or None
    return None


async def fetch_first_appointment_type_id(connection: CrmConnection) -> str | None:
    """First entry of the type catalog; lookup failures count as "no type"."""
    try:
        return _first_id(await connection.request(APPOINTMENT_TYPES_PATH))
    except RolloutAPIError as e:
        logger.warning("Appointment type lookup failed", status_code=e.status_code)
        return None


async def resolve_default_user_id(connection: CrmConnection) -> str | None:
    try:
        return _first_id(await connection.request(USERS_PATH, search_params={"limit": 1}))
    except RolloutAPIError as e:
        logger.warning("Default user lookup failed", status_code=e.status_code)
        return None


async def fetch_catalog(connection: CrmConnection, path: str, label: str) -> list[dict]:
    """Catalog entries as {id, label}; unnamed entries become "<label> <id>"."""
    entries = []
    for item in extract_items(await connection.request(path)):
        if not isinstance(item, dict):
            continue
        item_id = normalize_id(item.get("id"))
        if not item_id:
            continue
        name = next(
            (item[key].strip() for key in ("name", "label") if isinstance(item.get(key), str) and item[key].strip()),
            None,
        )
        entries.append({"id": item_id, "label": name or f"{label} {item_id}"})
    return entries


async def fetch_appointment_metadata(connection: CrmConnection) -> dict[str, list[dict]]:
    types, outcomes = await asyncio.gather(
        fetch_catalog(connection, APPOINTMENT_TYPES_PATH, "Type"),
        fetch_catalog(connection, APPOINTMENT_OUTCOMES_PATH, "Outcome"),
    )
    return {"types": types, "outcomes": outcomes}


# =================================================================
# Creation
# =================================================================


async def _attempt(connection: CrmConnection, body: dict, tier: AttemptTier) -> Any:
    logger.info("Creating appointment", tier=tier.value, fields=sorted(body))
    return await connection.request(APPOINTMENTS_PATH, method="POST", body=body)


async def _try_type_candidates(connection: CrmConnection, fallback: dict, error: RolloutAPIError) -> Any:
    last_error = error
    for candidate in TYPE_CANDIDATES:
        try:
            return await _attempt(connection, {**fallback, "appointmentTypeId": candidate}, AttemptTier.TYPE_CANDIDATE)
        except RolloutAPIError as e:
            logger.info("Appointment type candidate rejected", candidate=candidate, status_code=e.status_code)
            last_error = e
    logger.warning("Appointment type candidates exhausted", status_code=last_error.status_code)
    raise last_error


async def create_appointment(connection: CrmConnection, payload: dict) -> Any:
    """
    Create an appointment, falling back through looser payload shapes.

    Args:
        connection: CRM connection scoped to a credential
        payload: camelCase request fields (personId, title, location, ...)

    Returns:
        The upstream's created appointment record

    Raises:
        AppointmentValidationError: If required fields are missing (no upstream call is made)
        RolloutAPIError: The last upstream error when every tier fails
    """
    validate_appointment_request(payload)

    type_id = _clean(payload.get("appointmentTypeId")) or await fetch_first_appointment_type_id(connection)
    user_id = _clean(payload.get("userId")) or await resolve_default_user_id(connection)
    body = build_natural_payload(payload, type_id, user_id)

    try:
        return await _attempt(connection, body, AttemptTier.NATURAL)
    except RolloutAPIError as first_error:
        failure = analyze_failure(first_error)
        logger.warning(
            "Appointment creation rejected; retrying with fallback payload",
            status_code=first_error.status_code,
            invalid_fields=sorted(failure.invalid_fields),
            missing_required=sorted(failure.missing_required),
            body=preview(first_error.body),
        )

    fallback = build_fallback_payload(body, failure)
    if (
        failure.status_code == 422
        and "appointmentTypeId" not in fallback
        and "appointmentTypeId" in failure.missing_required
    ):
        resolved_type_id = await fetch_first_appointment_type_id(connection)
        if resolved_type_id:
            fallback["appointmentTypeId"] = resolved_type_id

    try:
        return await _attempt(connection, fallback, AttemptTier.FALLBACK)
    except RolloutAPIError as second_error:
        if "appointmentTypeId" in fallback or not requires_type_candidates(second_error):
            raise
        logger.warning("Fallback appointment rejected on type; trying type candidates")
        return await _try_type_candidates(connection, fallback, second_error)
