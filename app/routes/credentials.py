"""
Credential API Routes
Connected third-party accounts for the session's consumer key.
"""

from fastapi import APIRouter, Depends, Query

from app.infrastructure.observability.logging import get_logger
from app.models.api.crm_response import CredentialResponse, CredentialsListResponse
from app.models.domain.session_domain import SessionPreferences
from app.routes.dependencies import get_session_preferences, http_error_for
from app.services.rollout.client import RolloutClient, get_rollout_client
from app.services.rollout.credentials import list_credentials

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["credentials"])


@router.get("/credentials", response_model=CredentialsListResponse)
async def get_credentials(
    consumer_key: str | None = Query(default=None, alias="consumerKey"),
    preferences: SessionPreferences = Depends(get_session_preferences),
    client: RolloutClient = Depends(get_rollout_client),
):
    try:
        credentials = await list_credentials(client, preferences, consumer_key)
        return CredentialsListResponse(credentials=[CredentialResponse(**c) for c in credentials])
    except Exception as e:
        logger.error("Error fetching Rollout credentials", error=str(e))
        raise http_error_for(e, "Failed to fetch credentials")
