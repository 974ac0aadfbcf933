"""
Session API Routes
Per-session Rollout client credentials, consumer key and bearer tokens.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.api.crm_request import ConsumerKeyRequest, RolloutClientRequest
from app.models.api.crm_response import (
    ConsumerKeyResponse,
    RolloutClientStatusResponse,
    RolloutTokenResponse,
)
from app.models.domain.session_domain import SessionPreferences, clean_string
from app.routes.dependencies import get_session_preferences
from app.services.rollout.auth import (
    RolloutConfigurationError,
    create_rollout_token,
    effective_client_credentials,
    resolve_consumer_key,
)

logger = get_logger(__name__)

router = APIRouter(tags=["session"])


def _default_client_id() -> str:
    default_pair = settings.default_client_credentials()
    return default_pair[0] if default_pair else ""


@router.get("/rollout-token", response_model=RolloutTokenResponse)
async def get_rollout_token(
    consumer_key: str | None = Query(default=None, alias="consumerKey"),
    preferences: SessionPreferences = Depends(get_session_preferences),
):
    """Mint a bearer token for the embedded connect flow."""
    try:
        token = create_rollout_token(preferences, resolve_consumer_key(preferences, consumer_key))
        return RolloutTokenResponse(token=token.token, expires_at=token.expires_at)
    except RolloutConfigurationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error("Error generating Rollout token", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unexpected error generating Rollout token",
        )


@router.get("/api/session/rollout-client", response_model=RolloutClientStatusResponse)
async def get_rollout_client_status(preferences: SessionPreferences = Depends(get_session_preferences)):
    session_credentials = preferences.client_credentials
    effective = effective_client_credentials(preferences)
    return RolloutClientStatusResponse(
        configured=effective is not None,
        client_id=effective.client_id if effective else "",
        updated_at=session_credentials.updated_at if session_credentials else None,
        default_client_id=_default_client_id(),
        using_environment=session_credentials is None and effective is not None,
        session_client_id=session_credentials.client_id if session_credentials else "",
    )


@router.post("/api/session/rollout-client", response_model=RolloutClientStatusResponse)
async def set_rollout_client(
    request: RolloutClientRequest,
    preferences: SessionPreferences = Depends(get_session_preferences),
):
    """Store a client id/secret pair for this session."""
    client_id = clean_string(request.client_id)
    client_secret = clean_string(request.client_secret)
    if not client_id or not client_secret:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="clientId and clientSecret must be non-empty strings",
        )

    credentials = preferences.set_client_credentials(client_id, client_secret)
    logger.info("Session Rollout client updated", client_id=client_id)
    return RolloutClientStatusResponse(
        configured=True,
        client_id=credentials.client_id,
        updated_at=credentials.updated_at,
        default_client_id=_default_client_id(),
        using_environment=False,
        session_client_id=credentials.client_id,
    )


@router.delete("/api/session/rollout-client", status_code=status.HTTP_204_NO_CONTENT)
async def clear_rollout_client(preferences: SessionPreferences = Depends(get_session_preferences)):
    preferences.clear_client_credentials()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/api/session/consumer-key", response_model=ConsumerKeyResponse)
async def get_consumer_key(preferences: SessionPreferences = Depends(get_session_preferences)):
    return ConsumerKeyResponse(
        consumer_key=preferences.consumer_key or "",
        effective_consumer_key=resolve_consumer_key(preferences),
    )


@router.post("/api/session/consumer-key", response_model=ConsumerKeyResponse)
async def set_consumer_key(
    request: ConsumerKeyRequest,
    preferences: SessionPreferences = Depends(get_session_preferences),
):
    """Set the session consumer key; null or blank clears it."""
    if request.consumer_key is not None and not isinstance(request.consumer_key, str):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="consumerKey must be a string, null, or undefined",
        )

    preferences.consumer_key = request.consumer_key
    return ConsumerKeyResponse(
        consumer_key=preferences.consumer_key or "",
        effective_consumer_key=resolve_consumer_key(preferences),
    )
