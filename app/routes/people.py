"""
People API Routes
Person pickers and person insights.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.infrastructure.observability.logging import get_logger
from app.models.api.crm_response import OptionResponse, PeopleListResponse, PersonInsightsResponse
from app.models.domain.session_domain import SessionPreferences
from app.routes.dependencies import (
    clean_query,
    get_session_preferences,
    http_error_for,
    parse_limit,
)
from app.services.crm.insights_service import (
    IdentifierType,
    PersonNotFoundError,
    get_person_insights,
)
from app.services.crm.people_service import list_people
from app.services.rollout.client import RolloutClient, get_rollout_client
from app.services.rollout.credentials import open_crm_connection

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["people"])

PEOPLE_DEFAULT_LIMIT = 20
PEOPLE_MAX_LIMIT = 100


@router.get("/people", response_model=PeopleListResponse)
async def get_people(
    limit: str | None = Query(default=None, description="Maximum people to return (1-100)"),
    credential_id: str | None = Query(default=None, alias="credentialId"),
    preferences: SessionPreferences = Depends(get_session_preferences),
    client: RolloutClient = Depends(get_rollout_client),
):
    """List people as {id, label} options."""
    try:
        connection = await open_crm_connection(client, preferences, clean_query(credential_id))
        people = await list_people(connection, parse_limit(limit, PEOPLE_DEFAULT_LIMIT, PEOPLE_MAX_LIMIT))
        return PeopleListResponse(people=[OptionResponse(**person) for person in people])
    except Exception as e:
        logger.error("Error fetching people", error=str(e))
        raise http_error_for(e, "Failed to fetch people")


@router.get("/person-insights", response_model=PersonInsightsResponse)
async def get_insights(
    identifier_type: str = Query(default="", alias="identifierType"),
    value: str = Query(default=""),
    credential_id: str | None = Query(default=None, alias="credentialId"),
    preferences: SessionPreferences = Depends(get_session_preferences),
    client: RolloutClient = Depends(get_rollout_client),
):
    """A person (by id or email) with events, notes, calls, texts, appointments and tasks."""
    try:
        lookup = IdentifierType(identifier_type)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="identifierType must be either personId or email",
        )

    lookup_value = value.strip()
    if not lookup_value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="value is required")

    try:
        connection = await open_crm_connection(client, preferences, clean_query(credential_id))
        insights = await get_person_insights(connection, lookup, lookup_value)
        return PersonInsightsResponse(**insights.to_dict())
    except PersonNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        logger.error("Error fetching person insights", identifier_type=lookup.value, error=str(e))
        raise http_error_for(e, "Failed to fetch person insights")
