"""Tests for TokenCache freshness, regeneration and token_type normalization."""

import pytest

from platformtrust.exceptions import MissingArgumentError, StorageError, TokenIssuanceError
from platformtrust.identity import AuthConfig, AuthMethod, PlatformIdentity
from platformtrust.tokens import AccessToken, TokenCache, TokenIssuer, is_fresh

NOW = 1_700_000_000.0
SCOPES = "https://purl.imsglobal.org/spec/lti-ags/scope/score"


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeIssuer(TokenIssuer):
    """Issues numbered bearer tokens and records every request."""

    def __init__(self, expires_in: int = 3600) -> None:
        self.expires_in = expires_in
        self.requests: list[tuple[str, str]] = []

    async def issue(self, scopes, platform):
        self.requests.append((scopes, platform.kid))
        return {
            "access_token": f"token-{len(self.requests)}",
            "token_type": "bearer",
            "expires_in": self.expires_in,
            "scope": scopes,
        }


@pytest.fixture
def platform():
    return PlatformIdentity(
        kid="kid-1",
        name="Example LMS",
        url="https://lms.example.com",
        client_id="tool-client-1",
        authentication_endpoint="https://lms.example.com/auth",
        access_token_endpoint="https://lms.example.com/token",
        auth_config=AuthConfig(method=AuthMethod.JWK_SET, key="https://lms.example.com/jwks"),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def issuer():
    return FakeIssuer()


@pytest.fixture
def cache(store, issuer, clock):
    return TokenCache(store, issuer, clock=clock)


async def seed(store, platform, scopes, created_seconds_ago, token_type="bearer", expires_in=3600):
    key = {"platformUrl": platform.url, "clientId": platform.client_id, "scopes": scopes}
    record = {
        **key,
        "token": {"access_token": "cached", "token_type": token_type, "expires_in": expires_in},
        "createdAt": (NOW - created_seconds_ago) * 1000,
    }
    await store.replace("accesstoken", key, record, upsert=True)


class TestFreshness:
    """Tests for is_fresh()."""

    def test_within_lifetime(self):
        token = AccessToken(token_type="Bearer", expires_in=60)
        assert is_fresh(token, created_at_ms=0, now_ms=59_000)
        assert is_fresh(token, created_at_ms=0, now_ms=60_000)
        assert not is_fresh(token, created_at_ms=0, now_ms=60_001)


class TestTokenCache:
    """Tests for TokenCache.get_access_token()."""

    @pytest.mark.asyncio
    async def test_miss_issues_and_caches(self, cache, store, issuer, platform):
        token = await cache.get_access_token(platform, SCOPES)

        assert token.access_token == "token-1"
        assert token.token_type == "Bearer"
        assert issuer.requests == [(SCOPES, "kid-1")]
        records = await store.get("accesstoken", {"scopes": SCOPES})
        assert records[0]["createdAt"] == NOW * 1000
        assert records[0]["token"]["access_token"] == "token-1"

    @pytest.mark.asyncio
    async def test_integer_lifetime_kept_as_issued(self, cache, store, platform):
        token = await cache.get_access_token(platform, SCOPES)

        assert token.expires_in == 3600
        assert isinstance(token.expires_in, int)
        records = await store.get("accesstoken", {"scopes": SCOPES})
        assert isinstance(records[0]["token"]["expires_in"], int)

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, cache, issuer, clock, platform):
        first = await cache.get_access_token(platform, SCOPES)
        clock.now += 10
        second = await cache.get_access_token(platform, SCOPES)

        assert second.access_token == first.access_token == "token-1"
        assert second.token_type == "Bearer"
        assert len(issuer.requests) == 1

    @pytest.mark.asyncio
    async def test_fresh_cached_token_returned_unchanged(self, cache, store, issuer, platform):
        await seed(store, platform, SCOPES, created_seconds_ago=10)

        token = await cache.get_access_token(platform, SCOPES)

        assert issuer.requests == []
        assert token.access_token == "cached"
        assert token.expires_in == 3600
        assert token.token_type == "Bearer"

    @pytest.mark.asyncio
    async def test_expired_token_regenerated(self, cache, store, issuer, platform):
        await seed(store, platform, SCOPES, created_seconds_ago=3601)

        token = await cache.get_access_token(platform, SCOPES)

        assert len(issuer.requests) == 1
        assert token.access_token == "token-1"
        records = await store.get("accesstoken")
        assert len(records) == 1
        assert records[0]["token"]["access_token"] == "token-1"

    @pytest.mark.asyncio
    async def test_token_at_exact_expiry_is_fresh(self, cache, store, issuer, platform):
        await seed(store, platform, SCOPES, created_seconds_ago=3600)
        await cache.get_access_token(platform, SCOPES)
        assert issuer.requests == []

    @pytest.mark.asyncio
    async def test_token_expires_between_calls(self, cache, issuer, clock, platform):
        await cache.get_access_token(platform, SCOPES)
        clock.now += 3601
        token = await cache.get_access_token(platform, SCOPES)

        assert token.access_token == "token-2"
        assert len(issuer.requests) == 2

    @pytest.mark.asyncio
    async def test_scopes_are_keyed_exactly(self, cache, issuer, platform):
        await cache.get_access_token(platform, "a b")
        await cache.get_access_token(platform, "b a")
        await cache.get_access_token(platform, "a b")
        assert [scopes for scopes, _ in issuer.requests] == ["a b", "b a"]

    @pytest.mark.asyncio
    async def test_token_type_only_first_letter_changed(self, cache, store, platform):
        await seed(store, platform, SCOPES, created_seconds_ago=1, token_type="bEARER")
        token = await cache.get_access_token(platform, SCOPES)
        assert token.token_type == "BEARER"

    @pytest.mark.asyncio
    async def test_issuer_failure(self, store, platform):
        class DownIssuer(TokenIssuer):
            async def issue(self, scopes, platform):
                raise ConnectionError("token endpoint unreachable")

        cache = TokenCache(store, DownIssuer())
        with pytest.raises(TokenIssuanceError) as exc_info:
            await cache.get_access_token(platform, SCOPES)
        assert exc_info.value.kind == "COLLABORATOR_FAILURE"
        assert isinstance(exc_info.value.cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_unusable_token_rejected(self, store, platform):
        class BadIssuer(TokenIssuer):
            async def issue(self, scopes, platform):
                return {"access_token": "x", "expires_in": 3600}

        cache = TokenCache(store, BadIssuer())
        with pytest.raises(TokenIssuanceError):
            await cache.get_access_token(platform, SCOPES)
        assert await store.get("accesstoken") is None

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_returns_token(self, cache, store, monkeypatch, platform):
        async def broken_replace(*args, **kwargs):
            raise StorageError("write failed")

        monkeypatch.setattr(store, "replace", broken_replace)

        token = await cache.get_access_token(platform, SCOPES)
        assert token.access_token == "token-1"

    @pytest.mark.asyncio
    async def test_malformed_cache_entry_regenerated(self, cache, store, issuer, platform):
        key = {"platformUrl": platform.url, "clientId": platform.client_id, "scopes": SCOPES}
        await store.replace("accesstoken", key, {**key, "token": {"foo": "bar"}}, upsert=True)

        token = await cache.get_access_token(platform, SCOPES)
        assert token.access_token == "token-1"
        assert len(issuer.requests) == 1

    @pytest.mark.asyncio
    async def test_platform_required(self, cache):
        with pytest.raises(MissingArgumentError):
            await cache.get_access_token(None, SCOPES)
