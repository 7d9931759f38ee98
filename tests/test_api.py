"""Tests for the gscore HTTP API."""

import pytest
from httpx import AsyncClient, ASGITransport

from gscore.api import create_app
from gscore.config import Settings
from gscore.errors import LedgerError, UpstreamError
from gscore.flags import FlagLedger
from gscore.ledger import InMemoryLedger
from gscore.service import ScoreService

WALLET = "0x" + "ab" * 20


@pytest.fixture
def app(service):
    return create_app(service, use_lifespan=False)


def client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, app):
        async with client(app) as c:
            r = await c.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "ok"
        assert body["ledger_configured"] is True
        assert "X-Request-ID" in r.headers

    @pytest.mark.asyncio
    async def test_health_unconfigured(self, collector):
        svc = ScoreService(collector, FlagLedger(), settings=Settings())
        async with client(create_app(svc, use_lifespan=False)) as c:
            r = await c.get("/health")
        assert r.json()["ledger_configured"] is False


class TestCalculateScore:
    @pytest.mark.asyncio
    async def test_score(self, app, ledger):
        async with client(app) as c:
            r = await c.post("/api/calculate-score", json={"github_username": "alice"})
        assert r.status_code == 200
        body = r.json()
        assert body["score"] == 550
        assert body["github_username"] == "alice"
        assert body["raw_data"]["total_stars"] == 25000
        assert set(body["normalized_factors"]) == {
            "followers", "total_stars", "recent_activity", "public_repos", "collaboration_diversity",
        }
        assert ledger.writes == 0

    @pytest.mark.asyncio
    async def test_camel_case_and_url(self, app, collector):
        async with client(app) as c:
            r = await c.post("/api/calculate-score", json={
                "githubUsername": "https://github.com/bob", "githubToken": "tok",
            })
        assert r.status_code == 200
        assert r.json()["score"] == 280
        assert collector.calls[-1] == ("bob", "tok")

    @pytest.mark.asyncio
    async def test_repo_url_scores_owner(self, app, collector):
        async with client(app) as c:
            r = await c.post("/api/calculate-score", json={"github_username": "https://github.com/alice/wand?tab=readme"})
        assert r.status_code == 200
        assert r.json()["github_username"] == "alice"
        assert collector.calls[-1][0] == "alice"

    @pytest.mark.asyncio
    async def test_missing_username(self, app):
        async with client(app) as c:
            r = await c.post("/api/calculate-score", json={})
        assert r.status_code == 422

    @pytest.mark.asyncio
    async def test_blank_username(self, app):
        async with client(app) as c:
            r = await c.post("/api/calculate-score", json={"github_username": "   "})
        assert r.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_user_404(self, app):
        async with client(app) as c:
            r = await c.post("/api/calculate-score", json={"github_username": "ghost"})
        assert r.status_code == 404
        assert r.json()["detail"] == "GitHub API Error: Not Found (404)"

    @pytest.mark.asyncio
    async def test_upstream_failure_502(self, app, collector):
        collector.errors["alice"] = UpstreamError(None, "GitHub API Error: timed out")
        async with client(app) as c:
            r = await c.post("/api/calculate-score", json={"github_username": "alice"})
        assert r.status_code == 502


class TestVerifyAndStore:
    @pytest.mark.asyncio
    async def test_store(self, app, ledger):
        async with client(app) as c:
            r = await c.post("/api/fdc/verify-and-store", json={
                "wallet_address": WALLET, "github_username": "alice",
            })
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["score"] == 550
        assert body["attestation_id"].startswith("0x")
        assert body["transaction_hash"].startswith("0x")
        assert await ledger.get_latest_score(WALLET) == ("alice", 550, body["timestamp"])

    @pytest.mark.asyncio
    async def test_repo_url_locks_owner_not_repo(self, app, ledger):
        async with client(app) as c:
            r = await c.post("/api/fdc/verify-and-store", json={
                "wallet_address": WALLET, "github_username": "github.com/alice/wand",
            })
        assert r.status_code == 200
        assert r.json()["github_username"] == "alice"
        assert (await ledger.get_latest_score(WALLET))[0] == "alice"

    @pytest.mark.asyncio
    async def test_lock_violation_409(self, app, ledger):
        await ledger.store_score(WALLET, "alice", 10, 1)
        async with client(app) as c:
            r = await c.post("/api/fdc/verify-and-store", json={
                "walletAddress": WALLET, "githubUsername": "bob",
            })
            flag = await c.get("/api/fdc/flag/bob")
        assert r.status_code == 409
        body = r.json()
        assert body["flagged"] is True
        assert body["detail"] == f'Wallet {WALLET} is already locked to GitHub username "alice".'
        assert ledger.writes == 1
        assert flag.json()["flagged"] is True
        assert flag.json()["entry"]["reason"] == "Wallet locked to alice"

    @pytest.mark.asyncio
    async def test_invalid_wallet(self, app):
        async with client(app) as c:
            r = await c.post("/api/fdc/verify-and-store", json={
                "wallet_address": "0x123", "github_username": "alice",
            })
        assert r.status_code == 422

    @pytest.mark.asyncio
    async def test_not_configured_500(self, collector):
        svc = ScoreService(collector, FlagLedger(), settings=Settings())
        async with client(create_app(svc, use_lifespan=False)) as c:
            r = await c.post("/api/fdc/verify-and-store", json={
                "wallet_address": WALLET, "github_username": "alice",
            })
        assert r.status_code == 500
        assert r.json()["detail"] == "Contract address or private key not configured"

    @pytest.mark.asyncio
    async def test_malformed_contract_address_500(self, collector):
        svc = ScoreService(collector, FlagLedger(), settings=Settings(contract_address="0x123"))
        async with client(create_app(svc, use_lifespan=False)) as c:
            r = await c.get(f"/api/fdc/check/{WALLET}/alice")
        assert r.status_code == 500
        assert r.json()["detail"] == "Invalid contract address '0x123'"

    @pytest.mark.asyncio
    async def test_ledger_failure_502(self, collector, flags):
        class Broken(InMemoryLedger):
            async def store_verified_score(self, *args):
                raise LedgerError("Transaction failed: out of gas")

        svc = ScoreService(collector, flags, ledger=Broken())
        async with client(create_app(svc, use_lifespan=False)) as c:
            r = await c.post("/api/fdc/verify-and-store", json={
                "wallet_address": WALLET, "github_username": "alice",
            })
        assert r.status_code == 502
        assert flags.lookup("alice") is not None


class TestCheckAndFlag:
    @pytest.mark.asyncio
    async def test_check_unverified(self, app):
        async with client(app) as c:
            r = await c.get(f"/api/fdc/check/{WALLET}/alice")
        assert r.status_code == 200
        assert r.json() == {"verified": False, "attestation_id": None}

    @pytest.mark.asyncio
    async def test_check_after_store(self, app):
        async with client(app) as c:
            stored = await c.post("/api/fdc/verify-and-store", json={
                "wallet_address": WALLET, "github_username": "alice",
            })
            r = await c.get(f"/api/fdc/check/{WALLET}/alice")
        assert r.json() == {"verified": True, "attestation_id": stored.json()["attestation_id"]}

    @pytest.mark.asyncio
    async def test_check_bad_wallet(self, app):
        async with client(app) as c:
            r = await c.get("/api/fdc/check/not-a-wallet/alice")
        assert r.status_code == 400

    @pytest.mark.asyncio
    async def test_flag_unknown(self, app):
        async with client(app) as c:
            r = await c.get("/api/fdc/flag/nobody")
        assert r.json() == {"flagged": False, "entry": None}

    @pytest.mark.asyncio
    async def test_flag_case_insensitive(self, app, flags):
        flags.flag("Bob", "GitHub API Error: Forbidden (403)")
        async with client(app) as c:
            r = await c.get("/api/fdc/flag/BOB")
        assert r.json()["flagged"] is True


class TestBatchAndLeaderboard:
    @pytest.mark.asyncio
    async def test_batch_list(self, app):
        async with client(app) as c:
            r = await c.post("/api/batch", json={"usernames": ["alice", "ghost", "carol"]})
        assert r.status_code == 200
        body = r.json()
        assert [x["status"] for x in body["results"]] == ["scored", "error", "scored"]
        assert body["summary"]["top_performers"][0]["identity"] == "carol"

    @pytest.mark.asyncio
    async def test_batch_text(self, app):
        async with client(app) as c:
            r = await c.post("/api/batch", json={"usernames": "alice\nhttps://github.com/bob, carol"})
        assert [x["identity"] for x in r.json()["results"]] == ["alice", "bob", "carol"]

    @pytest.mark.asyncio
    async def test_batch_empty(self, app):
        async with client(app) as c:
            r = await c.post("/api/batch", json={"usernames": " \n "})
        assert r.status_code == 422

    @pytest.mark.asyncio
    async def test_leaderboard(self, app, ledger):
        await ledger.store_score("0x" + "01" * 20, "bob", 280, 1)
        await ledger.store_score("0x" + "02" * 20, "carol", 1000, 1)
        async with client(app) as c:
            r = await c.get("/api/leaderboard")
        body = r.json()
        assert body["total"] == 2
        assert body["entries"][0]["identity"] == "carol"
        assert body["entries"][0]["rank"] == 1


class TestCors:
    @pytest.mark.asyncio
    async def test_preflight(self, app):
        async with client(app) as c:
            r = await c.options("/api/calculate-score", headers={
                "Origin": "https://example.com",
                "Access-Control-Request-Method": "POST",
            })
        assert r.status_code == 200
        assert r.headers["access-control-allow-origin"] in ("*", "https://example.com")

    @pytest.mark.asyncio
    async def test_wildcard_origin_without_credentials(self, app):
        async with client(app) as c:
            r = await c.get("/health", headers={"Origin": "https://example.com"})
        assert r.headers["access-control-allow-origin"] == "*"
        assert "access-control-allow-credentials" not in r.headers

    @pytest.mark.asyncio
    async def test_listed_origin_allows_credentials(self, service):
        settings = Settings(ledger_backend="memory", allowed_origins=["https://app.example"])
        app = create_app(service, settings, use_lifespan=False)
        async with client(app) as c:
            r = await c.get("/health", headers={"Origin": "https://app.example"})
            other = await c.get("/health", headers={"Origin": "https://evil.example"})
        assert r.headers["access-control-allow-origin"] == "https://app.example"
        assert r.headers["access-control-allow-credentials"] == "true"
        assert "access-control-allow-origin" not in other.headers


class TestResponseHeaders:
    @pytest.mark.asyncio
    async def test_request_id_echoed(self, app):
        async with client(app) as c:
            r = await c.get("/health", headers={"X-Request-ID": "job-42.a"})
        assert r.headers["x-request-id"] == "job-42.a"
        assert r.headers["x-content-type-options"] == "nosniff"

    @pytest.mark.asyncio
    async def test_unsafe_request_id_replaced(self, app):
        async with client(app) as c:
            r = await c.get("/health", headers={"X-Request-ID": "id with <spaces>"})
        assert r.headers["x-request-id"] != "id with <spaces>"
        assert len(r.headers["x-request-id"]) == 12

    @pytest.mark.asyncio
    async def test_api_responses_not_cached(self, app):
        async with client(app) as c:
            scored = await c.post("/api/calculate-score", json={"github_username": "alice"})
            health = await c.get("/health")
        assert scored.headers["cache-control"] == "no-store"
        assert "cache-control" not in health.headers
