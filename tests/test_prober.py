"""
Tests for the connection prober — classification and the refresh-once rule.
"""

import httpx
import pytest

from conftest import (
    ACCOUNT_PATH,
    PING_PATH,
    TOKEN_PATH,
    expired_token_error,
    make_credential,
    token_payload,
)
from connectors.prober import ConnectionProber
from utils.schemas import ConnectionState

ACCOUNT = {
    "account_id": "dbid:AAH4f99T0taONIb",
    "name": {"display_name": "Ada Lovelace"},
    "email": "ada@example.com",
}


@pytest.fixture
def prober(manager, transport) -> ConnectionProber:
    return ConnectionProber(manager, transport=transport)


class TestTestConnection:
    @pytest.mark.asyncio
    async def test_not_configured_without_credential(self, prober, fake_dropbox):
        report = await prober.test_connection()

        assert report.status is ConnectionState.NOT_CONFIGURED
        assert report.error_code == "no_token"
        assert report.suggested_action == "authenticate"
        assert report.is_authenticated is False
        assert fake_dropbox.requests == []

    @pytest.mark.asyncio
    async def test_connected(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential("live-token"))
        fake_dropbox.queue(ACCOUNT_PATH, json=ACCOUNT)

        report = await prober.test_connection()

        assert report.status is ConnectionState.CONNECTED
        assert report.is_authenticated
        assert report.details["accountInfo"] == {
            "accountId": "dbid:AAH4f99T0taONIb",
            "displayName": "Ada Lovelace",
            "email": "ada@example.com",
        }
        assert fake_dropbox.calls(ACCOUNT_PATH)[0].headers["Authorization"] == "Bearer live-token"

    @pytest.mark.asyncio
    async def test_wire_shape_is_camel_case(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential())
        fake_dropbox.queue(ACCOUNT_PATH, json=ACCOUNT)

        wire = (await prober.test_connection()).to_wire()

        assert wire["status"] == "connected"
        assert wire["isAuthenticated"] is True
        assert "errorCode" in wire
        assert "suggestedAction" in wire

    @pytest.mark.asyncio
    async def test_remote_expiry_refreshes_once_then_connects(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential("stale-but-unexpired"))
        fake_dropbox.queue(ACCOUNT_PATH, 401, expired_token_error()).queue(ACCOUNT_PATH, json=ACCOUNT)
        fake_dropbox.queue(TOKEN_PATH, json=token_payload("new-token"))

        report = await prober.test_connection()

        assert report.status is ConnectionState.CONNECTED
        assert len(fake_dropbox.calls(TOKEN_PATH)) == 1
        account_calls = fake_dropbox.calls(ACCOUNT_PATH)
        assert len(account_calls) == 2
        assert account_calls[1].headers["Authorization"] == "Bearer new-token"

    @pytest.mark.asyncio
    async def test_remote_expiry_with_failed_refresh_is_expired(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential())
        fake_dropbox.queue(ACCOUNT_PATH, 401, expired_token_error())
        fake_dropbox.queue(TOKEN_PATH, 400, {"error": "invalid_request"})

        report = await prober.test_connection()

        assert report.status is ConnectionState.EXPIRED
        assert report.error_code == "token_expired"
        assert report.retryable is True
        assert report.suggested_action == "reconnect"

    @pytest.mark.asyncio
    async def test_final_probe_never_refreshes_again(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential())
        fake_dropbox.queue(ACCOUNT_PATH, 401, expired_token_error())
        fake_dropbox.queue(TOKEN_PATH, json=token_payload("new-token"))

        report = await prober.test_connection()

        assert report.status is ConnectionState.REVOKED
        assert len(fake_dropbox.calls(TOKEN_PATH)) == 1
        assert len(fake_dropbox.calls(ACCOUNT_PATH)) == 2

    @pytest.mark.asyncio
    async def test_locally_expired_and_revoked_refresh(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential("old", expires_in=-60))
        fake_dropbox.queue(TOKEN_PATH, 400, {"error": "invalid_grant"})

        report = await prober.test_connection()

        assert report.status is ConnectionState.REVOKED
        assert report.error_code == "invalid_grant"
        assert report.retryable is False
        assert fake_dropbox.calls(ACCOUNT_PATH) == []
        # the prober never clears the stored credential
        assert (await token_store.load()).access_token == "old"

    @pytest.mark.asyncio
    async def test_local_refresh_counts_as_the_one_refresh(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential("old", expires_in=-60))
        fake_dropbox.queue(TOKEN_PATH, json=token_payload("t2")).queue(TOKEN_PATH, json=token_payload("t3"))
        fake_dropbox.queue(ACCOUNT_PATH, 401, expired_token_error()).queue(ACCOUNT_PATH, json=ACCOUNT)

        report = await prober.test_connection()

        assert report.status is ConnectionState.REVOKED
        assert len(fake_dropbox.calls(TOKEN_PATH)) == 1
        account_calls = fake_dropbox.calls(ACCOUNT_PATH)
        assert len(account_calls) == 1
        assert account_calls[0].headers["Authorization"] == "Bearer t2"

    @pytest.mark.asyncio
    async def test_local_refresh_then_connected(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential("old", expires_in=-60))
        fake_dropbox.queue(TOKEN_PATH, json=token_payload("t2"))
        fake_dropbox.queue(ACCOUNT_PATH, json=ACCOUNT)

        report = await prober.test_connection()

        assert report.status is ConnectionState.CONNECTED
        assert len(fake_dropbox.calls(TOKEN_PATH)) == 1
        assert report.details["refreshTokenExists"] is True

    @pytest.mark.asyncio
    async def test_earlier_refresh_failure_does_not_leak_into_later_check(
        self, prober, manager, fake_dropbox, token_store
    ):
        await token_store.save(make_credential("old", refresh_token="r1", expires_in=-60))
        fake_dropbox.queue(TOKEN_PATH, 400, {"error": "invalid_grant"})
        assert await manager.get_valid_access_token() is None
        assert manager.last_refresh_error.error_code == "invalid_grant"

        await token_store.save(make_credential("old", refresh_token=None, expires_in=-60))
        report = await prober.test_connection()

        assert report.status is ConnectionState.EXPIRED
        assert report.error_code == "token_expired"
        assert manager.last_refresh_error is None

    @pytest.mark.asyncio
    async def test_locally_expired_and_network_down(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential("old", expires_in=-60))
        fake_dropbox.fail(TOKEN_PATH, httpx.ConnectError("no route to host"))

        report = await prober.test_connection()

        assert report.status is ConnectionState.UNREACHABLE
        assert report.retryable is True

    @pytest.mark.asyncio
    async def test_locally_expired_without_refresh_token(self, prober, token_store):
        await token_store.save(make_credential("old", refresh_token=None, expires_in=-60))

        report = await prober.test_connection()

        assert report.status is ConnectionState.EXPIRED
        assert report.details["refreshTokenExists"] is False

    @pytest.mark.asyncio
    async def test_rate_limited_is_unreachable(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential())
        fake_dropbox.queue(ACCOUNT_PATH, 429, {"error_summary": "too_many_requests/..", "error": {".tag": "too_many_requests"}})

        report = await prober.test_connection()

        assert report.status is ConnectionState.UNREACHABLE
        assert report.error_code == "rate_limited"
        assert report.retryable is True

    @pytest.mark.asyncio
    async def test_invalid_token_without_refresh_token_is_expired(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential(refresh_token=None))
        fake_dropbox.queue(ACCOUNT_PATH, 401, {"error_summary": "invalid_access_token/", "error": {".tag": "invalid_access_token"}})

        report = await prober.test_connection()

        # a refresh is attempted, finds no refresh token and reports expired
        assert report.status is ConnectionState.EXPIRED
        assert fake_dropbox.calls(TOKEN_PATH) == []

    @pytest.mark.asyncio
    async def test_forbidden_is_revoked(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential())
        fake_dropbox.queue(ACCOUNT_PATH, 403, {"error_summary": "app_suspended/", "error": {".tag": "app_suspended"}})

        report = await prober.test_connection()

        assert report.status is ConnectionState.REVOKED
        assert report.error_code == "app_suspended"

    @pytest.mark.asyncio
    async def test_server_error_is_unreachable(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential())
        fake_dropbox.queue(ACCOUNT_PATH, 503, None)

        report = await prober.test_connection()

        assert report.status is ConnectionState.UNREACHABLE
        assert report.suggested_action == "retry later"

    @pytest.mark.asyncio
    async def test_timeout_is_unreachable(self, prober, fake_dropbox, token_store):
        await token_store.save(make_credential())
        fake_dropbox.fail(ACCOUNT_PATH, httpx.ReadTimeout("timed out"))

        report = await prober.test_connection()

        assert report.status is ConnectionState.UNREACHABLE
        assert report.error_code == "timeout"


class TestPing:
    @pytest.mark.asyncio
    async def test_client_error_still_means_reachable(self, prober, fake_dropbox):
        fake_dropbox.queue(PING_PATH, 400, None)

        ping = await prober.ping_remote_api()

        assert ping.reachable is True
        assert ping.status_code == 400
        assert ping.latency_ms >= 0
        assert fake_dropbox.requests[0].method == "HEAD"
        assert "Authorization" not in fake_dropbox.requests[0].headers

    @pytest.mark.asyncio
    async def test_server_error_is_unreachable(self, prober, fake_dropbox):
        fake_dropbox.queue(PING_PATH, 502, None)
        assert (await prober.ping_remote_api()).reachable is False

    @pytest.mark.asyncio
    async def test_timeout_reports_408(self, prober, fake_dropbox):
        fake_dropbox.fail(PING_PATH, httpx.ConnectTimeout("timed out"))

        ping = await prober.ping_remote_api()

        assert ping.reachable is False
        assert ping.status_code == 408

    @pytest.mark.asyncio
    async def test_connection_error(self, prober, fake_dropbox):
        fake_dropbox.fail(PING_PATH, httpx.ConnectError("dns failure"))

        ping = await prober.ping_remote_api()

        assert ping.reachable is False
        assert ping.status_code is None
