"""Tests for credential API endpoints."""

import pytest
from httpx import AsyncClient
from sqlmodel import select

from nodeflow.api.deps import create_access_token
from nodeflow.models.credential import Credential, CredentialType

from conftest import OTHER_USER_ID


class TestCredentialEndpoints:
    """Tests for credential CRUD endpoints."""

    @pytest.mark.asyncio
    async def test_create_never_returns_payload(self, client: AsyncClient, auth_headers, db_session):
        response = await client.post(
            "/api/v1/credentials",
            headers=auth_headers,
            json={"name": "OpenAI", "type": "API_KEY", "data": {"apiKey": "sk-test-1234567890"}},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["type"] == "API_KEY"
        assert "data" not in body
        assert "encrypted_data" not in body

        stored = (await db_session.execute(select(Credential))).scalars().one()
        assert "sk-test" not in stored.encrypted_data

    @pytest.mark.asyncio
    async def test_get_is_masked(self, client: AsyncClient, auth_headers, make_credential):
        credential_id = await make_credential(CredentialType.API_KEY, {"apiKey": "sk-test-1234567890"})

        response = await client.get(f"/api/v1/credentials/{credential_id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"] == {"apiKey": "sk-t...7890"}

    @pytest.mark.asyncio
    async def test_list_filters_by_type(self, client: AsyncClient, auth_headers, make_credential):
        await make_credential(CredentialType.API_KEY, "k1")
        await make_credential(CredentialType.DATABASE, {"connectionString": "postgres://x"})
        await make_credential(CredentialType.API_KEY, "k2", user_id=OTHER_USER_ID)

        all_mine = await client.get("/api/v1/credentials", headers=auth_headers)
        databases = await client.get(
            "/api/v1/credentials", headers=auth_headers, params={"type": "DATABASE"}
        )

        assert len(all_mine.json()) == 2
        assert [c["type"] for c in databases.json()] == ["DATABASE"]

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/v1/credentials",
            headers=auth_headers,
            json={"name": "x", "type": "PASSWORD", "data": "secret"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client: AsyncClient, auth_headers, make_credential):
        credential_id = await make_credential(CredentialType.BEARER_TOKEN, "old-token-value")

        updated = await client.put(
            f"/api/v1/credentials/{credential_id}",
            headers=auth_headers,
            json={"name": "Renamed", "data": "new-token-value"},
        )
        masked = await client.get(f"/api/v1/credentials/{credential_id}", headers=auth_headers)
        deleted = await client.delete(f"/api/v1/credentials/{credential_id}", headers=auth_headers)
        missing = await client.get(f"/api/v1/credentials/{credential_id}", headers=auth_headers)

        assert updated.json()["name"] == "Renamed"
        assert masked.json()["data"] == "new-...alue"
        assert deleted.status_code == 204
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_other_user_forbidden(self, client: AsyncClient, make_credential):
        credential_id = await make_credential(CredentialType.API_KEY, "k")
        other = {"Authorization": f"Bearer {create_access_token(OTHER_USER_ID)}"}

        response = await client.delete(f"/api/v1/credentials/{credential_id}", headers=other)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_credential_types(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/v1/credentials/types", headers=auth_headers)

        assert response.status_code == 200
        types = {item["type"] for item in response.json()}
        assert {"API_KEY", "BEARER_TOKEN", "DATABASE"} <= types
