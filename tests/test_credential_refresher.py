"""
Unit tests for ChzzkOAuthClient and CredentialRefresher.

Tests token refresh requests, response unwrapping, and failure translation.
"""

import asyncio
import pytest
import aiohttp
from datetime import datetime, timedelta
from unittest.mock import Mock, AsyncMock, patch

from chzzkbot.auth.oauth import ChzzkOAuthClient, unwrap_content
from chzzkbot.auth.refresher import Credential, CredentialRefresher
from chzzkbot.errors import AuthFailure
from tests.conftest import create_mock_response


class TestUnwrapContent:
    """Test cases for response envelope handling."""

    def test_wrapped_body(self):
        payload = {"code": 200, "message": None, "content": {"accessToken": "a"}}
        assert unwrap_content(payload) == {"accessToken": "a"}

    def test_flat_body(self):
        assert unwrap_content({"accessToken": "a"}) == {"accessToken": "a"}

    def test_non_dict_body(self):
        assert unwrap_content(["unexpected"]) == {}
        assert unwrap_content(None) == {}


class TestChzzkOAuthClient:
    """Test cases for ChzzkOAuthClient class."""

    def test_initialization_with_trailing_slash(self):
        client = ChzzkOAuthClient("id", "secret", base_url="https://openapi.chzzk.naver.com/")
        assert client.base_url == "https://openapi.chzzk.naver.com"

    async def test_refresh_token_success(self):
        client = ChzzkOAuthClient("id", "secret", base_url="https://api.test")
        session = Mock()
        session.post = Mock(return_value=create_mock_response(200, {
            "code": 200,
            "content": {"accessToken": "new-access", "refreshToken": "new-refresh", "expiresIn": "86400"}
        }))

        with patch.object(client, '_get_session', new_callable=AsyncMock, return_value=session):
            token_data = await client.refresh_token("old-refresh")

        assert token_data["accessToken"] == "new-access"
        session.post.assert_called_once_with(
            "https://api.test/auth/v1/token",
            json={
                'grantType': 'refresh_token',
                'refreshToken': 'old-refresh',
                'clientId': 'id',
                'clientSecret': 'secret'
            }
        )

    async def test_refresh_token_rejected(self):
        client = ChzzkOAuthClient("id", "secret")
        session = Mock()
        session.post = Mock(return_value=create_mock_response(401, text="INVALID_TOKEN"))

        with patch.object(client, '_get_session', new_callable=AsyncMock, return_value=session):
            with pytest.raises(AuthFailure, match="401"):
                await client.refresh_token("bad")

    async def test_refresh_token_timeout(self):
        client = ChzzkOAuthClient("id", "secret", timeout=5)
        session = Mock()
        session.post = Mock(side_effect=asyncio.TimeoutError())

        with patch.object(client, '_get_session', new_callable=AsyncMock, return_value=session):
            with pytest.raises(AuthFailure, match="timed out"):
                await client.refresh_token("refresh")

    async def test_refresh_token_client_error(self):
        client = ChzzkOAuthClient("id", "secret")
        session = Mock()
        session.post = Mock(side_effect=aiohttp.ClientConnectionError("refused"))

        with patch.object(client, '_get_session', new_callable=AsyncMock, return_value=session):
            with pytest.raises(AuthFailure):
                await client.refresh_token("refresh")

    async def test_close_without_session(self):
        client = ChzzkOAuthClient("id", "secret")
        await client.close()


class TestCredential:
    """Test cases for Credential."""

    def test_expiry(self):
        credential = Credential(access_token="a", expires_in=3600)

        assert credential.expires_at is not None
        assert credential.is_expired() is False

    def test_expired_within_buffer(self):
        credential = Credential(
            access_token="a",
            expires_in=600,
            issued_at=datetime.now() - timedelta(seconds=400)
        )

        assert credential.is_expired(buffer_seconds=300) is True

    def test_unknown_expiry_never_expires(self):
        credential = Credential(access_token="a")

        assert credential.expires_at is None
        assert credential.is_expired() is False


class TestCredentialRefresher:
    """Test cases for CredentialRefresher class."""

    def setup_method(self):
        self.oauth_client = Mock(spec=ChzzkOAuthClient)
        self.oauth_client.refresh_token = AsyncMock()
        self.refresher = CredentialRefresher(self.oauth_client)

    async def test_refresh_success(self):
        self.oauth_client.refresh_token.return_value = {
            "accessToken": "access",
            "refreshToken": "rotated",
            "tokenType": "Bearer",
            "expiresIn": "86400",
            "scope": "채팅 메시지 조회"
        }

        credential = await self.refresher.refresh("refresh", owner_id="owner-a")

        assert credential.access_token == "access"
        assert credential.refresh_token == "rotated"
        assert credential.expires_in == 86400
        assert credential.token_type == "Bearer"
        self.oauth_client.refresh_token.assert_called_once_with("refresh")

    async def test_refresh_with_unparseable_expiry(self):
        self.oauth_client.refresh_token.return_value = {"accessToken": "access", "expiresIn": "soon"}

        credential = await self.refresher.refresh("refresh")

        assert credential.access_token == "access"
        assert credential.expires_in is None

    async def test_empty_credential_fails_without_request(self):
        with pytest.raises(AuthFailure) as exc_info:
            await self.refresher.refresh("", owner_id="owner-a")

        assert exc_info.value.owner_id == "owner-a"
        self.oauth_client.refresh_token.assert_not_called()

    async def test_rejected_credential_carries_owner(self):
        self.oauth_client.refresh_token.side_effect = AuthFailure("Token endpoint returned status 401")

        with pytest.raises(AuthFailure) as exc_info:
            await self.refresher.refresh("revoked", owner_id="owner-b")

        assert exc_info.value.owner_id == "owner-b"

    async def test_missing_access_token(self):
        self.oauth_client.refresh_token.return_value = {"refreshToken": "rotated"}

        with pytest.raises(AuthFailure, match="access token"):
            await self.refresher.refresh("refresh")
