# app/models/api/crm_response.py
"""
CRM and session API response models.
Upstream records (people, notes, ...) pass through as plain dicts.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OptionResponse(BaseModel):
    """An {id, label} choice for pickers."""

    id: str = Field(..., description="Upstream id")
    label: str = Field(..., description="Display label")


class PeopleListResponse(BaseModel):
    people: list[OptionResponse]


class UsersListResponse(BaseModel):
    users: list[OptionResponse]


class AppointmentMetadataResponse(BaseModel):
    types: list[OptionResponse]
    outcomes: list[OptionResponse]


class CredentialResponse(CamelResponse):
    id: str = Field(..., description="Credential id")
    label: str = Field(..., description="Account name, app key or id")
    app_key: str = Field(default="", description="Connected app")
    account_name: str = Field(default="", description="Connected account name")


class CredentialsListResponse(BaseModel):
    credentials: list[CredentialResponse]


class PersonInsightsResponse(CamelResponse):
    """A person and their CRM activity, each list capped at PERSON_RECORDS_LIMIT."""

    person: dict[str, Any]
    events: list[dict[str, Any]] = Field(default_factory=list)
    notes: list[dict[str, Any]] = Field(default_factory=list)
    calls: list[dict[str, Any]] = Field(default_factory=list)
    text_messages: list[dict[str, Any]] = Field(default_factory=list)
    appointments: list[dict[str, Any]] = Field(default_factory=list)
    tasks: list[dict[str, Any]] = Field(default_factory=list)


class RolloutTokenResponse(CamelResponse):
    token: str
    expires_at: int


class RolloutClientStatusResponse(CamelResponse):
    """Session client credential status. The secret is never returned."""

    configured: bool
    client_id: str = ""
    updated_at: str | None = None
    default_client_id: str = ""
    using_environment: bool = False
    session_client_id: str = ""


class ConsumerKeyResponse(CamelResponse):
    consumer_key: str = ""
    effective_consumer_key: str
