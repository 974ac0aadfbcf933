"""
Per-person collections from the Rollout CRM API.

The upstream list endpoints cannot be filtered by person (text messages aside),
so each collection is read page by page and filtered locally. What "belongs to
this person" means, how records are reshaped and how they are ordered differs
per resource and lives in a CollectionPolicy; fetch_collection itself has no
resource-specific branches.
"""

from contextlib import aclosing
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.services.crm.pagination import iterate_pages
from app.services.rollout.client import CrmConnection
from app.utils.items import extract_items, normalize_id

logger = get_logger(__name__)

SORT_TIMESTAMP_FIELD = "_sortTimestamp"
MIN_TIMESTAMP = float("-inf")


class PersonResource(str, Enum):
    """Sub-resources gathered for a person, valued by their response key."""

    EVENTS = "events"
    NOTES = "notes"
    CALLS = "calls"
    TEXT_MESSAGES = "textMessages"
    APPOINTMENTS = "appointments"
    TASKS = "tasks"


class CollectionPolicy:
    """Default policy: records carry the owning person's id in `person_field`."""

    def __init__(self, path: str, response_key: str | None = None, person_field: str = "personId"):
        self.path = path
        self.response_key = response_key
        self.person_field = person_field

    def search_params(self, person_id: str) -> dict[str, Any]:
        return {}

    def matches(self, item: dict, person_id: str) -> bool:
        item_person_id = normalize_id(item.get(self.person_field))
        return bool(item_person_id) and item_person_id == person_id

    def process(self, item: dict) -> dict | None:
        return item

    def sort(self, items: list[dict]) -> list[dict]:
        return items

    def page_items(self, data: Any) -> list:
        if self.response_key and isinstance(data, dict):
            items = data.get(self.response_key)
            if isinstance(items, list):
                return items
        return extract_items(data)


class TextMessagesPolicy(CollectionPolicy):
    """Text messages must be filtered upstream with a personId query param."""

    def search_params(self, person_id: str) -> dict[str, Any]:
        return {"personId": person_id}


def parse_timestamp(value: Any) -> float | None:
    """Epoch seconds for an ISO-8601 string; None when missing or unparseable."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def appointment_sort_timestamp(appointment: dict) -> float:
    """
    End time, else start time, else last update/creation time.
    Appointments with none of these sort last.
    """
    for fields in (("endsAt", "end"), ("startsAt", "start"), ("updated", "created")):
        raw = next((appointment.get(field) for field in fields if appointment.get(field)), None)
        timestamp = parse_timestamp(raw)
        if timestamp is not None:
            return timestamp
    return MIN_TIMESTAMP


class AppointmentsPolicy(CollectionPolicy):
    """
    Appointments belong to a person through a top-level personId or through
    an invitee entry. Results are newest first.
    """

    def matches(self, item: dict, person_id: str) -> bool:
        if super().matches(item, person_id):
            return True
        invitees = item.get("invitees")
        if not isinstance(invitees, list):
            return False
        return any(
            isinstance(invitee, dict) and normalize_id(invitee.get("personId")) == person_id
            for invitee in invitees
        )

    def process(self, item: dict) -> dict | None:
        return {**item, SORT_TIMESTAMP_FIELD: appointment_sort_timestamp(item)}

    def sort(self, items: list[dict]) -> list[dict]:
        ordered = sorted(items, key=lambda item: item.get(SORT_TIMESTAMP_FIELD, MIN_TIMESTAMP), reverse=True)
        return [
            {key: value for key, value in item.items() if key != SORT_TIMESTAMP_FIELD}
            for item in ordered
        ]


COLLECTION_POLICIES: dict[PersonResource, CollectionPolicy] = {
    PersonResource.EVENTS: CollectionPolicy("/events", response_key="events"),
    PersonResource.NOTES: CollectionPolicy("/notes", response_key="notes"),
    PersonResource.CALLS: CollectionPolicy("/calls", response_key="calls"),
    PersonResource.TEXT_MESSAGES: TextMessagesPolicy("/textMessages"),
    PersonResource.APPOINTMENTS: AppointmentsPolicy("/appointments", response_key="appointments"),
    PersonResource.TASKS: CollectionPolicy("/tasks", response_key="tasks"),
}


def get_policy(resource: PersonResource) -> CollectionPolicy:
    return COLLECTION_POLICIES[resource]


async def fetch_collection(
    connection: CrmConnection,
    person_id: Any,
    policy: CollectionPolicy,
    record_limit: int | None = None,
    max_requests: int | None = None,
) -> list[dict]:
    """
    Collect up to `record_limit` records of one collection for a person.

    A blank person id returns [] without touching the network. Pages are read
    until the limit is reached, the cursor runs out, or `max_requests` pages
    have been fetched.
    """
    if record_limit is None:
        record_limit = settings.PERSON_RECORDS_LIMIT

    normalized_person_id = normalize_id(person_id)
    if not normalized_person_id or record_limit <= 0:
        return []

    collected: list[dict] = []
    pages = iterate_pages(
        connection,
        policy.path,
        search_params=policy.search_params(normalized_person_id),
        max_requests=max_requests,
    )
    async with aclosing(pages):
        async for data in pages:
            for item in policy.page_items(data):
                if not isinstance(item, dict) or not policy.matches(item, normalized_person_id):
                    continue
                processed = policy.process(item)
                if not processed:
                    continue
                collected.append(processed)
                if len(collected) >= record_limit:
                    break
            if len(collected) >= record_limit:
                break

    logger.debug(
        "Person collection fetched",
        path=policy.path,
        person_id=normalized_person_id,
        record_count=len(collected),
    )
    return policy.sort(list(collected))[:record_limit]


async def fetch_person_resource(
    connection: CrmConnection,
    person_id: Any,
    resource: PersonResource,
    record_limit: int | None = None,
    max_requests: int | None = None,
) -> list[dict]:
    return await fetch_collection(
        connection,
        person_id,
        get_policy(resource),
        record_limit=record_limit,
        max_requests=max_requests,
    )
