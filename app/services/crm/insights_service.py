"""
Person insights: one person plus everything the CRM holds about them.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from app.infrastructure.observability.logging import get_logger
from app.services.crm.collections import PersonResource, fetch_person_resource
from app.services.crm.people_service import fetch_person_by_email, fetch_person_by_id
from app.services.rollout.client import CrmConnection, RolloutAPIError
from app.utils.items import normalize_id

logger = get_logger(__name__)


class IdentifierType(str, Enum):
    PERSON_ID = "personId"
    EMAIL = "email"


class PersonNotFoundError(Exception):
    """No person matched the lookup."""

    def __init__(self, identifier_type: IdentifierType, value: str):
        noun = "id" if identifier_type == IdentifierType.PERSON_ID else "email"
        super().__init__(f"No person found with {noun} {value}")
        self.identifier_type = identifier_type
        self.value = value


@dataclass
class PersonInsights:
    person: dict
    events: list[dict] = field(default_factory=list)
    notes: list[dict] = field(default_factory=list)
    calls: list[dict] = field(default_factory=list)
    text_messages: list[dict] = field(default_factory=list)
    appointments: list[dict] = field(default_factory=list)
    tasks: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "person": self.person,
            "events": self.events,
            "notes": self.notes,
            "calls": self.calls,
            "textMessages": self.text_messages,
            "appointments": self.appointments,
            "tasks": self.tasks,
        }


async def resolve_person(
    connection: CrmConnection, identifier_type: IdentifierType, value: str
) -> dict | None:
    if identifier_type == IdentifierType.PERSON_ID:
        return await fetch_person_by_id(connection, value)
    return await fetch_person_by_email(connection, value)


def _settled(resource: PersonResource, result) -> list[dict]:
    """Successful result as-is; a failure becomes [] with a warning."""
    if isinstance(result, BaseException):
        detail = result.body if isinstance(result, RolloutAPIError) else str(result)
        logger.warning(
            "Suppressed person collection error; treating as empty",
            resource=resource.value,
            error=detail,
        )
        return []
    return result if isinstance(result, list) else []


async def gather_person_collections(
    connection: CrmConnection, person_id: str
) -> dict[PersonResource, list[dict]]:
    """
    Fetch every PersonResource concurrently.

    Each fetch settles on its own: one failing collection is replaced by an
    empty list and never cancels or fails the others.
    """
    resources = list(PersonResource)
    results = await asyncio.gather(
        *(fetch_person_resource(connection, person_id, resource) for resource in resources),
        return_exceptions=True,
    )
    return {resource: _settled(resource, result) for resource, result in zip(resources, results)}


async def get_person_insights(
    connection: CrmConnection, identifier_type: IdentifierType, value: str
) -> PersonInsights:
    """
    Resolve a person by id or email and gather their CRM activity.

    Raises:
        PersonNotFoundError: If no person matches.
        RolloutAPIError: If the person lookup itself fails.
    """
    person = await resolve_person(connection, identifier_type, value)
    if not person:
        raise PersonNotFoundError(identifier_type, value)

    insights = PersonInsights(person=person)
    person_id = normalize_id(person.get("id")) if isinstance(person, dict) else ""
    if not person_id:
        logger.warning("Person has no usable id; skipping collections", identifier_type=identifier_type.value)
        return insights

    collections = await gather_person_collections(connection, person_id)
    insights.events = collections[PersonResource.EVENTS]
    insights.notes = collections[PersonResource.NOTES]
    insights.calls = collections[PersonResource.CALLS]
    insights.text_messages = collections[PersonResource.TEXT_MESSAGES]
    insights.appointments = collections[PersonResource.APPOINTMENTS]
    insights.tasks = collections[PersonResource.TASKS]

    logger.info(
        "Person insights gathered",
        person_id=person_id,
        counts={resource.value: len(items) for resource, items in collections.items()},
    )
    return insights
