"""GitHub metric collector — profile, owned repos and public events reduced to a MetricTuple."""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx

from gscore.errors import UpstreamError

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
TIMEOUT = 15.0
MAX_DAYS = 365
RECENT_REPOS = 5
TOP_REPOS = 3
COLLABORATION_EVENTS = ("PullRequestEvent", "IssuesEvent")

_PROFILE_URL = re.compile(r"^(?:https?://)?(?:www\.)?github\.com/", re.IGNORECASE)
_URL_SUFFIX = re.compile(r"[?#]")


@dataclass
class RepoSummary:
    name: str
    stars: int = 0
    url: str = ""
    description: Optional[str] = None
    language: Optional[str] = None


@dataclass
class MetricTuple:
    """Everything the scorer needs for one identity. Recomputed on every request."""
    identity: str
    followers: int = 0
    total_stars: int = 0
    public_repos: int = 0
    avg_recent_activity: float = 0.0
    collaboration_diversity: int = 0
    language_diversity: int = 0
    top_repos: list[RepoSummary] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_identity(raw: str) -> str:
    """Reduce ``@user``, ``github.com/user`` or a profile/repo URL to the bare handle.

    The owner is the first path segment, so ``github.com/alice/wand`` is ``alice``.
    """
    value = _PROFILE_URL.sub("", raw.strip())
    value = _URL_SUFFIX.split(value, maxsplit=1)[0].strip("/")
    return value.split("/")[0].lstrip("@")


def _parse_dt(s: Optional[str]) -> Optional[datetime]:
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None


def recency_score(pushed_at: Optional[str], now: datetime) -> float:
    """1.0 for a push right now, decaying linearly to 0 after a year."""
    pushed = _parse_dt(pushed_at)
    if pushed is None:
        return 0.0
    days = (now - pushed).total_seconds() / 86400
    return max(0.0, 1 - days / MAX_DAYS)


def extract_top_repos(repos: list[dict], limit: int = TOP_REPOS) -> list[RepoSummary]:
    ranked = sorted(repos, key=lambda r: r.get("stargazers_count") or 0, reverse=True)
    return [
        RepoSummary(
            name=r.get("name", ""),
            stars=r.get("stargazers_count") or 0,
            url=r.get("html_url", ""),
            description=r.get("description"),
            language=r.get("language"),
        )
        for r in ranked[:limit]
    ]


def has_external_collaboration(events: list[dict], identity: str) -> bool:
    """True if any PR/issue event targets a repo owned by someone else."""
    me = identity.lower()
    for event in events:
        if event.get("type") not in COLLABORATION_EVENTS:
            continue
        repo_name = (event.get("repo") or {}).get("name", "")
        owner = repo_name.split("/")[0].lower()
        if owner and owner != me:
            return True
    return False


class GitHubCollector:
    """Fetches the three GitHub resources in sequence and reduces them.

    ``client`` may be injected (tests, shared connection pools); otherwise a
    short-lived ``httpx.AsyncClient`` is opened per ``collect`` call.
    """

    def __init__(
        self,
        base_url: str = GITHUB_API,
        timeout: float = TIMEOUT,
        default_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_token = default_token or None
        self._client = client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def collect(self, identity: str, token: Optional[str] = None) -> MetricTuple:
        if self._client is not None:
            return await self._collect(self._client, identity, token)
        headers = {"Accept": "application/vnd.github+json", "User-Agent": "gscore/1.0"}
        async with httpx.AsyncClient(timeout=self.timeout, headers=headers) as client:
            return await self._collect(client, identity, token)

    async def _collect(self, client: httpx.AsyncClient, identity: str, token: Optional[str]) -> MetricTuple:
        token = token or self.default_token
        auth = {"Authorization": f"Bearer {token}"} if token else {}

        user = await self._get_required(
            client, f"/users/{identity}", auth, "GitHub API Error", with_status=True,
        )
        repos = await self._get_required(
            client,
            f"/users/{identity}/repos",
            auth,
            "GitHub API Error (Repositories)",
            params={"type": "owner", "sort": "pushed", "per_page": 100},
        )
        if not isinstance(repos, list):
            raise UpstreamError(None, "GitHub API Error (Repositories): unexpected payload")

        now = self._clock()
        total_stars = 0
        recent: list[float] = []
        languages: set[str] = set()
        for index, repo in enumerate(repos):
            total_stars += repo.get("stargazers_count") or 0
            if index < RECENT_REPOS:
                recent.append(recency_score(repo.get("pushed_at"), now))
            if repo.get("language"):
                languages.add(repo["language"])

        diversity = await self._collaboration_diversity(client, identity)

        metrics = MetricTuple(
            identity=user.get("login") or identity,
            followers=user.get("followers") or 0,
            total_stars=total_stars,
            public_repos=user.get("public_repos") or 0,
            avg_recent_activity=sum(recent) / len(recent) if recent else 0.0,
            collaboration_diversity=diversity,
            language_diversity=len(languages),
            top_repos=extract_top_repos(repos),
        )
        logger.info(
            "Collected %s: %d followers, %d stars, %d repos",
            metrics.identity, metrics.followers, metrics.total_stars, metrics.public_repos,
        )
        return metrics

    async def _get_required(
        self,
        client: httpx.AsyncClient,
        path: str,
        headers: dict,
        label: str,
        params: Optional[dict] = None,
        with_status: bool = False,
    ):
        try:
            resp = await client.get(f"{self.base_url}{path}", headers=headers, params=params)
        except httpx.HTTPError as e:
            logger.warning("GitHub request %s failed: %s", path, e)
            raise UpstreamError(None, f"{label}: {e}") from e
        if not resp.is_success:
            message = f"{label}: {resp.reason_phrase}"
            if with_status:
                message += f" ({resp.status_code})"
            logger.warning("GitHub %s: HTTP %d", path, resp.status_code)
            raise UpstreamError(resp.status_code, message)
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(resp.status_code, f"{label}: invalid JSON") from e

    async def _collaboration_diversity(self, client: httpx.AsyncClient, identity: str) -> int:
        # Unauthenticated. Any failure means diversity 0.
        try:
            resp = await client.get(
                f"{self.base_url}/users/{identity}/events/public",
                params={"per_page": 100},
            )
            if not resp.is_success:
                logger.info("Events for %s unavailable: HTTP %d", identity, resp.status_code)
                return 0
            events = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.info("Events for %s unavailable: %s", identity, e)
            return 0
        if not isinstance(events, list):
            return 0
        return 1 if has_external_collaboration(events, identity) else 0
