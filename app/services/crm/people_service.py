"""
Person lookups against the Rollout CRM API.
"""

from contextlib import aclosing
from typing import Any
from urllib.parse import quote

from app.infrastructure.observability.logging import get_logger
from app.services.crm.pagination import PAGE_SIZE, iterate_pages
from app.services.rollout.client import CrmConnection, RolloutAPIError
from app.utils.items import extract_items, normalize_id

logger = get_logger(__name__)

PEOPLE_PATH = "/people"
LABEL_SEPARATOR = " · "


def _page_people(data: Any) -> list:
    if isinstance(data, dict) and isinstance(data.get("people"), list):
        return data["people"]
    return extract_items(data)


def _normalize_email(value: Any) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def has_email(person: Any, email: str) -> bool:
    """True if any of the person's emails equals `email` (trimmed, case-insensitive)."""
    if not isinstance(person, dict) or not isinstance(person.get("emails"), list):
        return False
    wanted = _normalize_email(email)
    return bool(wanted) and any(
        isinstance(entry, dict) and _normalize_email(entry.get("value")) == wanted
        for entry in person["emails"]
    )


async def fetch_person_by_id(connection: CrmConnection, person_id: str) -> dict | None:
    """Person record by id; None when the upstream answers 404."""
    trimmed_id = person_id.strip()
    try:
        return await connection.request(f"{PEOPLE_PATH}/{quote(trimmed_id, safe='')}")
    except RolloutAPIError as e:
        if e.status_code == 404:
            logger.info("Person not found", person_id=trimmed_id)
            return None
        raise


async def fetch_person_by_email(
    connection: CrmConnection,
    email: str,
    max_requests: int | None = None,
) -> dict | None:
    """
    First person with a matching email.

    The people endpoint has no email filter, so this scans pages in order and
    gives up after MAX_PAGINATED_REQUESTS pages.
    """
    async with aclosing(iterate_pages(connection, PEOPLE_PATH, max_requests=max_requests)) as pages:
        async for data in pages:
            match = next((person for person in _page_people(data) if has_email(person, email)), None)
            if match:
                return match

    logger.info("No person matched email", email=email.strip().lower())
    return None


def _full_name(record: dict) -> str:
    parts = [record.get("firstName"), record.get("lastName")]
    return " ".join(part.strip() for part in parts if isinstance(part, str) and part.strip())


def person_label(person: dict, person_id: str) -> str:
    """Full name and primary (or first) email, falling back to the id."""
    email = ""
    emails = person.get("emails")
    if isinstance(emails, list) and emails:
        primary = next((e for e in emails if isinstance(e, dict) and e.get("isPrimary")), emails[0])
        if isinstance(primary, dict) and isinstance(primary.get("value"), str):
            email = primary["value"].strip()

    parts = [part for part in (_full_name(person), email) if part]
    return LABEL_SEPARATOR.join(parts) if parts else person_id


def user_label(user: dict, user_id: str) -> str:
    """Full name, else email, else the id."""
    email = user.get("email").strip() if isinstance(user.get("email"), str) else ""
    return _full_name(user) or email or user_id


async def list_summaries(
    connection: CrmConnection,
    path: str,
    limit: int,
    label_for,
    empty_on_not_found: bool = False,
) -> list[dict]:
    """
    Up to `limit` unique {id, label} entries from a paginated list endpoint.

    With `empty_on_not_found`, an upstream 404 ends the listing with whatever
    was collected so far instead of failing.
    """
    summaries: list[dict] = []
    seen: set[str] = set()
    page_size = min(PAGE_SIZE, max(1, limit))

    try:
        async with aclosing(iterate_pages(connection, path, page_size=page_size)) as pages:
            async for data in pages:
                for record in extract_items(data):
                    if not isinstance(record, dict):
                        continue
                    record_id = normalize_id(record.get("id"))
                    if not record_id or record_id in seen:
                        continue
                    summaries.append({"id": record_id, "label": label_for(record, record_id)})
                    seen.add(record_id)
                    if len(summaries) >= limit:
                        break
                if len(summaries) >= limit:
                    break
    except RolloutAPIError as e:
        if not (empty_on_not_found and e.status_code == 404):
            raise
        logger.info("List endpoint not found; treating as empty", path=path)

    return summaries


async def list_people(connection: CrmConnection, limit: int) -> list[dict]:
    return await list_summaries(connection, PEOPLE_PATH, limit, person_label, empty_on_not_found=True)


async def list_users(connection: CrmConnection, limit: int) -> list[dict]:
    return await list_summaries(connection, "/users", limit, user_label)
