"""Tests for gscore.client — the Python SDK against a mocked server."""

import httpx
import pytest
import respx

from gscore.client import GScoreAPIError, GScoreClient

BASE = "http://gscore.test"
WALLET = "0x" + "ab" * 20


@pytest.fixture
def api():
    with respx.mock(base_url=BASE, assert_all_called=False) as router:
        yield router


@pytest.fixture
def gclient():
    with GScoreClient(BASE) as c:
        yield c


def test_calculate_score(api, gclient):
    route = api.post("/api/calculate-score").mock(
        return_value=httpx.Response(200, json={"score": 550, "normalized_factors": {}, "raw_data": {}})
    )
    assert gclient.calculate_score("alice", github_token="tok")["score"] == 550
    sent = route.calls.last.request
    assert b'"github_token": "tok"' in sent.content or b'"github_token":"tok"' in sent.content


def test_no_token_not_sent(api, gclient):
    route = api.post("/api/calculate-score").mock(return_value=httpx.Response(200, json={"score": 1}))
    gclient.calculate_score("alice")
    assert b"github_token" not in route.calls.last.request.content


def test_verify_and_store(api, gclient):
    route = api.post("/api/fdc/verify-and-store").mock(
        return_value=httpx.Response(200, json={"success": True, "transaction_hash": "0x01"})
    )
    assert gclient.verify_and_store(WALLET, "alice")["success"] is True
    assert WALLET.encode() in route.calls.last.request.content


def test_check_and_flag(api, gclient):
    api.get(f"/api/fdc/check/{WALLET}/alice").mock(
        return_value=httpx.Response(200, json={"verified": True, "attestation_id": "0xaa"})
    )
    api.get("/api/fdc/flag/bob").mock(
        return_value=httpx.Response(200, json={"flagged": True, "entry": {"reason": "Wallet locked to alice"}})
    )
    assert gclient.check(WALLET, "alice")["verified"] is True
    assert gclient.flag("bob")["entry"]["reason"] == "Wallet locked to alice"


def test_lock_violation_raises(api, gclient):
    api.post("/api/fdc/verify-and-store").mock(
        return_value=httpx.Response(409, json={"detail": "Wallet is already locked", "flagged": True})
    )
    with pytest.raises(GScoreAPIError) as exc:
        gclient.verify_and_store(WALLET, "bob")
    assert exc.value.status == 409
    assert exc.value.detail == "Wallet is already locked"


def test_plain_text_error(api, gclient):
    api.get("/health").mock(return_value=httpx.Response(503, text="unavailable"))
    with pytest.raises(GScoreAPIError) as exc:
        gclient.health()
    assert exc.value.detail == "unavailable"


def test_batch_and_leaderboard(api, gclient):
    batch = api.post("/api/batch").mock(return_value=httpx.Response(200, json={"results": [], "summary": {}}))
    api.get("/api/leaderboard").mock(return_value=httpx.Response(200, json={"total": 0, "entries": []}))
    gclient.batch(["alice", "bob"], attest=True)
    assert b'"attest":true' in batch.calls.last.request.content.replace(b" ", b"")
    assert gclient.leaderboard()["total"] == 0
