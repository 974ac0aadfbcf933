"""
Rollout credential lookup and the per-session default credential.
"""

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.session_domain import SessionPreferences, clean_string
from app.services.rollout.client import CrmConnection, RolloutClient
from app.utils.items import extract_items

logger = get_logger(__name__)

CREDENTIALS_PATH = "/credentials"
CREDENTIAL_LIST_PARAMS = {"includeProfile": "true", "includeData": "true"}


class NoCredentialAvailableError(Exception):
    """The session has no connected Rollout credential to act on."""

    def __init__(
        self,
        message: str = "No Rollout credentials available. Connect a provider first to continue.",
    ):
        super().__init__(message)
        self.status_code = 400


async def fetch_credentials(
    client: RolloutClient,
    preferences: SessionPreferences,
    consumer_key: str | None = None,
) -> list[dict]:
    """Raw credential records for the consumer key."""
    data = await client.call(
        preferences,
        settings.ROLLOUT_API_BASE,
        CREDENTIALS_PATH,
        search_params=CREDENTIAL_LIST_PARAMS,
        consumer_key=consumer_key,
    )
    return extract_items(data)


async def list_credentials(
    client: RolloutClient,
    preferences: SessionPreferences,
    consumer_key: str | None = None,
) -> list[dict]:
    """Credentials as {id, label, appKey, accountName}, skipping records without an id."""
    credentials = []
    for record in await fetch_credentials(client, preferences, consumer_key):
        if not isinstance(record, dict):
            continue
        credential_id = clean_string(record.get("id"))
        if not credential_id:
            continue
        app_key = record.get("appKey") if isinstance(record.get("appKey"), str) else ""
        profile = record.get("profile") if isinstance(record.get("profile"), dict) else {}
        account_name = profile.get("accountName") if isinstance(profile.get("accountName"), str) else ""
        credentials.append(
            {
                "id": credential_id,
                "label": account_name or app_key or credential_id,
                "appKey": app_key,
                "accountName": account_name,
            }
        )
    return credentials


async def resolve_default_credential_id(
    client: RolloutClient,
    preferences: SessionPreferences,
    explicit_id: str | None = None,
) -> str | None:
    """
    Pick the credential a request acts on.

    An explicit id wins and becomes the session default. Otherwise the cached
    session default is reused, and only when there is none is the credential
    list fetched (first record with a non-empty string id).
    """
    explicit = clean_string(explicit_id)
    if explicit:
        preferences.default_credential_id = explicit
        return explicit

    cached = preferences.default_credential_id
    if cached:
        return cached

    for record in await fetch_credentials(client, preferences):
        credential_id = clean_string(record.get("id")) if isinstance(record, dict) else None
        if credential_id:
            preferences.default_credential_id = credential_id
            logger.info("Default credential selected", credential_id=credential_id)
            return credential_id

    logger.info("No Rollout credentials available")
    return None


async def require_credential_id(
    client: RolloutClient,
    preferences: SessionPreferences,
    explicit_id: str | None = None,
) -> str:
    credential_id = await resolve_default_credential_id(client, preferences, explicit_id)
    if not credential_id:
        raise NoCredentialAvailableError()
    return credential_id


async def open_crm_connection(
    client: RolloutClient,
    preferences: SessionPreferences,
    explicit_id: str | None = None,
) -> CrmConnection:
    """CRM connection scoped to the request's credential."""
    credential_id = await require_credential_id(client, preferences, explicit_id)
    return CrmConnection(client=client, preferences=preferences, credential_id=credential_id)
