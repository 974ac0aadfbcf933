import json

import httpx
import jwt
import pytest

from app.config import settings
from app.services.rollout.auth import RolloutConfigurationError
from app.services.rollout.client import CrmConnection, RolloutAPIError, RolloutClient, build_url

CRM_BASE = "https://crm.example.test/api"


def test_build_url_joins_and_filters_params():
    url = build_url(CRM_BASE, "/people", {"limit": 100, "next": "", "personId": None, "includeData": True})

    assert str(url) == "https://crm.example.test/api/people?limit=100&includeData=true"
    assert str(build_url(f"{CRM_BASE}/", "notes")) == "https://crm.example.test/api/notes"


@pytest.mark.asyncio
async def test_call_signs_request_and_parses_json(httpx_mock, configured_client, preferences):
    httpx_mock.add_response(
        method="GET",
        url="https://crm.example.test/api/people?limit=100&next=abc",
        json={"people": [{"id": "P1"}]},
    )
    client = RolloutClient()

    data = await client.call(
        preferences,
        CRM_BASE,
        "/people",
        search_params={"limit": 100, "next": "abc"},
        credential_id="cred-1",
        consumer_key="tenant-a",
    )
    await client.close()

    assert data == {"people": [{"id": "P1"}]}
    request = httpx_mock.get_request()
    assert request.headers["X-Rollout-Credential-Id"] == "cred-1"
    token = request.headers["Authorization"].removeprefix("Bearer ")
    claims = jwt.decode(token, settings.ROLLOUT_CLIENT_SECRET, algorithms=["HS512"])
    assert claims["sub"] == "tenant-a"


@pytest.mark.asyncio
async def test_call_sends_json_body(httpx_mock, configured_client, preferences):
    httpx_mock.add_response(method="POST", url="https://crm.example.test/api/appointments", json={"id": "A1"})
    client = RolloutClient()

    created = await client.call(preferences, CRM_BASE, "appointments", method="POST", body={"title": "Intro"})
    await client.close()

    assert created == {"id": "A1"}
    request = httpx_mock.get_request()
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {"title": "Intro"}
    assert "X-Rollout-Credential-Id" not in request.headers


@pytest.mark.asyncio
async def test_non_json_response_returns_text(httpx_mock, configured_client, preferences):
    httpx_mock.add_response(
        method="GET",
        url="https://crm.example.test/api/ping",
        text="pong",
        headers={"Content-Type": "text/plain"},
    )
    client = RolloutClient()

    result = await client.call(preferences, CRM_BASE, "/ping")
    await client.close()

    assert result == "pong"


@pytest.mark.asyncio
async def test_error_status_raises_typed_error_with_body(httpx_mock, configured_client, preferences):
    httpx_mock.add_response(
        method="GET",
        url="https://crm.example.test/api/people/P1",
        status_code=422,
        text='{"message":"Invalid fields: startsAt"}',
    )
    client = RolloutClient()

    with pytest.raises(RolloutAPIError) as exc:
        await client.call(preferences, CRM_BASE, "/people/P1")
    await client.close()

    assert exc.value.status_code == 422
    assert exc.value.body == '{"message":"Invalid fields: startsAt"}'
    assert str(exc.value) == "Rollout API request failed with status 422"


@pytest.mark.asyncio
async def test_transport_error_is_typed(httpx_mock, configured_client, preferences):
    httpx_mock.add_exception(httpx.ConnectError("connection refused"))
    client = RolloutClient()

    with pytest.raises(RolloutAPIError) as exc:
        await client.call(preferences, CRM_BASE, "/people")
    await client.close()

    assert exc.value.status_code == 502


@pytest.mark.asyncio
async def test_missing_client_credentials_fail_before_request(unconfigured_client, preferences):
    client = RolloutClient()

    with pytest.raises(RolloutConfigurationError):
        await client.call(preferences, CRM_BASE, "/people")
    await client.close()


@pytest.mark.asyncio
async def test_crm_connection_scopes_calls(httpx_mock, configured_client, preferences):
    httpx_mock.add_response(method="GET", url="https://crm.example.test/api/notes?limit=5", json={"notes": []})
    client = RolloutClient()
    connection = CrmConnection(client=client, preferences=preferences, credential_id="cred-7", base_url=CRM_BASE)

    await connection.request("/notes", search_params={"limit": 5})
    await client.close()

    assert httpx_mock.get_request().headers["X-Rollout-Credential-Id"] == "cred-7"
