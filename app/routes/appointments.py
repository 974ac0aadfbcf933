"""
Appointment API Routes
Appointment catalogs, CRM users and appointment creation.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.infrastructure.observability.logging import get_logger
from app.models.api.crm_request import CreateAppointmentRequest
from app.models.api.crm_response import (
    AppointmentMetadataResponse,
    OptionResponse,
    UsersListResponse,
)
from app.models.domain.session_domain import SessionPreferences, clean_string
from app.routes.dependencies import (
    clean_query,
    get_session_preferences,
    http_error_for,
    parse_limit,
)
from app.services.crm.appointment_service import (
    AppointmentValidationError,
    create_appointment,
    fetch_appointment_metadata,
    validate_appointment_request,
)
from app.services.crm.people_service import list_users
from app.services.rollout.client import RolloutClient, get_rollout_client
from app.services.rollout.credentials import open_crm_connection

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["appointments"])

USERS_DEFAULT_LIMIT = 100
USERS_MAX_LIMIT = 500


@router.get("/appointment-metadata", response_model=AppointmentMetadataResponse)
async def get_appointment_metadata(
    credential_id: str | None = Query(default=None, alias="credentialId"),
    preferences: SessionPreferences = Depends(get_session_preferences),
    client: RolloutClient = Depends(get_rollout_client),
):
    """Appointment types and outcomes as {id, label} options."""
    try:
        connection = await open_crm_connection(client, preferences, clean_query(credential_id))
        metadata = await fetch_appointment_metadata(connection)
        return AppointmentMetadataResponse(
            types=[OptionResponse(**item) for item in metadata["types"]],
            outcomes=[OptionResponse(**item) for item in metadata["outcomes"]],
        )
    except Exception as e:
        logger.error("Error fetching appointment metadata", error=str(e))
        raise http_error_for(e, "Failed to fetch appointment metadata")


@router.get("/users", response_model=UsersListResponse)
async def get_users(
    limit: str | None = Query(default=None, description="Maximum users to return (1-500)"),
    credential_id: str | None = Query(default=None, alias="credentialId"),
    preferences: SessionPreferences = Depends(get_session_preferences),
    client: RolloutClient = Depends(get_rollout_client),
):
    try:
        connection = await open_crm_connection(client, preferences, clean_query(credential_id))
        users = await list_users(connection, parse_limit(limit, USERS_DEFAULT_LIMIT, USERS_MAX_LIMIT))
        return UsersListResponse(users=[OptionResponse(**user) for user in users])
    except Exception as e:
        logger.error("Error fetching users", error=str(e))
        raise http_error_for(e, "Failed to fetch users")


@router.post("/appointments", status_code=status.HTTP_201_CREATED)
async def post_appointment(
    request: CreateAppointmentRequest | None = None,
    preferences: SessionPreferences = Depends(get_session_preferences),
    client: RolloutClient = Depends(get_rollout_client),
):
    """Create an appointment; upstream schema mismatches are retried with fallback payloads."""
    request = request or CreateAppointmentRequest()
    payload = request.appointment_fields()
    try:
        validate_appointment_request(payload)
    except AppointmentValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    try:
        connection = await open_crm_connection(client, preferences, clean_string(request.credential_id))
        return await create_appointment(connection, payload)
    except Exception as e:
        logger.error("Error creating appointment", error=str(e))
        raise http_error_for(e, "Failed to create appointment", use_upstream_body=True)
