"""
gscore.client — Python SDK for a running gscore API.

Usage:
    from gscore.client import GScoreClient

    with GScoreClient("http://localhost:3001") as client:
        result = client.calculate_score("octocat")
        print(result["score"])
"""

from __future__ import annotations

import httpx
from dataclasses import dataclass, field
from typing import Optional, Union


class GScoreAPIError(Exception):
    """Raised when the API returns an error status."""
    def __init__(self, status: int, detail):
        self.status = status
        self.detail = detail
        super().__init__(f"[{status}] {detail}")


@dataclass
class GScoreClient:
    """Lightweight synchronous client for the gscore API."""

    base_url: str = "http://localhost:3001"
    timeout: float = 60.0
    transport: Optional[httpx.BaseTransport] = None
    _http: httpx.Client = field(init=False, repr=False)

    def __post_init__(self):
        self._http = httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # -- internal --

    def _request(self, method: str, path: str, **kwargs) -> dict:
        r = self._http.request(method, path, **kwargs)
        if r.status_code >= 400:
            detail = r.json().get("detail", r.text) if r.headers.get("content-type", "").startswith("application/json") else r.text
            raise GScoreAPIError(r.status_code, detail)
        return r.json()

    @staticmethod
    def _with_token(payload: dict, github_token: Optional[str]) -> dict:
        if github_token:
            payload["github_token"] = github_token
        return payload

    # -- Scoring --

    def calculate_score(self, username: str, github_token: Optional[str] = None) -> dict:
        """Score a profile without storing it. Returns {score, normalized_factors, raw_data}."""
        return self._request("POST", "/api/calculate-score",
                             json=self._with_token({"github_username": username}, github_token))

    def batch(self, usernames: Union[list[str], str], github_token: Optional[str] = None,
              attest: bool = False) -> dict:
        """Rank a list of profiles (or free text containing them)."""
        payload = {"usernames": usernames, "attest": attest}
        return self._request("POST", "/api/batch", json=self._with_token(payload, github_token))

    # -- Ledger --

    def verify_and_store(self, wallet: str, username: str, github_token: Optional[str] = None) -> dict:
        payload = {"wallet_address": wallet, "github_username": username}
        return self._request("POST", "/api/fdc/verify-and-store",
                             json=self._with_token(payload, github_token))

    def check(self, wallet: str, username: str) -> dict:
        """Returns {verified, attestation_id}."""
        return self._request("GET", f"/api/fdc/check/{wallet}/{username}")

    def flag(self, username: str) -> dict:
        """Returns {flagged, entry}."""
        return self._request("GET", f"/api/fdc/flag/{username}")

    def leaderboard(self) -> dict:
        return self._request("GET", "/api/leaderboard")

    # -- Health --

    def health(self) -> dict:
        return self._request("GET", "/health")
