# app/models/api/crm_request.py
"""
CRM and session API request models.
Fields are snake_case in Python and camelCase on the wire.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CreateAppointmentRequest(CamelModel):
    """
    Request for creating an appointment for a person.

    Fields accept any JSON value. The service checks types and reports a
    wrongly typed required field as missing.
    """

    credential_id: Any = Field(None, description="Credential override")
    person_id: Any = Field(None, description="Person the appointment is for (string or number)")
    user_id: Any = Field(None, description="Owning CRM user (defaults to the first user)")
    appointment_type_id: Any = Field(None, description="Type (defaults to the first type)")
    appointment_outcome_id: Any = Field(None, description="Outcome")
    title: Any = Field(None, description="Appointment title")
    description: Any = Field(None, description="Free-text description")
    location: Any = Field(None, description="Where the appointment takes place")
    is_all_day: Any = Field(None, description="All-day appointment")
    starts_at: Any = Field(None, description="ISO-8601 start")
    ends_at: Any = Field(None, description="ISO-8601 end")

    def appointment_fields(self) -> dict[str, Any]:
        """camelCase appointment fields without the credential override."""
        return self.model_dump(by_alias=True, exclude={"credential_id"})


class RolloutClientRequest(CamelModel):
    """Client id/secret pair to store in the session. Checked by the route."""

    client_id: Any = None
    client_secret: Any = None


class ConsumerKeyRequest(CamelModel):
    """Consumer key override; null or blank clears it."""

    consumer_key: Any = None
