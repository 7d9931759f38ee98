"""
gscore API — REST surface over the scoring pipeline.

Endpoints:
  GET  /health                               — Liveness + ledger configuration
  POST /api/calculate-score                  — Score a profile, no storage
  POST /api/fdc/verify-and-store             — Score, attest and store for a wallet
  GET  /api/fdc/check/{wallet}/{username}    — Verification status of a stored score
  GET  /api/fdc/flag/{username}              — Latest flag for an identity
  POST /api/batch                            — Rank a cohort of profiles
  GET  /api/leaderboard                      — Ranked latest scores from the ledger
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field, field_validator

from gscore import __version__
from gscore.batch import parse_identities
from gscore.collector import normalize_identity
from gscore.config import Settings
from gscore.errors import ConfigurationError, LedgerError, LockViolation, UpstreamError
from gscore.security import (
    BATCH_RATE,
    LEADERBOARD_RATE,
    READ_RATE,
    SCORE_RATE,
    STORE_RATE,
    apply_security,
    limiter,
    setup_structured_logging,
)
from gscore.service import ScoreService

logger = logging.getLogger(__name__)

WALLET_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
MAX_BATCH = 100


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

def _identity(value: str) -> str:
    if "\x00" in value:
        raise ValueError("Null bytes not allowed")
    handle = normalize_identity(value)
    if not handle:
        raise ValueError("github_username is required")
    return handle


class CalculateScoreRequest(BaseModel):
    """Accepts snake_case or the camelCase names older clients send."""
    github_username: str = Field(
        ..., max_length=200, validation_alias=AliasChoices("github_username", "githubUsername"),
    )
    github_token: Optional[str] = Field(
        None, validation_alias=AliasChoices("github_token", "githubToken"),
    )

    @field_validator("github_username")
    @classmethod
    def clean_username(cls, v: str) -> str:
        return _identity(v)


class VerifyAndStoreRequest(CalculateScoreRequest):
    wallet_address: str = Field(
        ..., validation_alias=AliasChoices("wallet_address", "walletAddress"),
    )

    @field_validator("wallet_address")
    @classmethod
    def check_wallet(cls, v: str) -> str:
        v = v.strip()
        if not WALLET_RE.match(v):
            raise ValueError("wallet_address must be a 0x-prefixed 20-byte hex address")
        return v


class BatchRequest(BaseModel):
    """``usernames`` is either a list or free text (newlines, commas, profile URLs)."""
    usernames: Union[list[str], str]
    github_token: Optional[str] = Field(
        None, validation_alias=AliasChoices("github_token", "githubToken"),
    )
    attest: bool = False

    @field_validator("usernames")
    @classmethod
    def parse_usernames(cls, v):
        text = v if isinstance(v, str) else "\n".join(v)
        identities = parse_identities(text)
        if not identities:
            raise ValueError("No valid GitHub usernames found")
        if len(identities) > MAX_BATCH:
            raise ValueError(f"At most {MAX_BATCH} usernames per batch")
        return identities


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_service(request: Request) -> ScoreService:
    return request.app.state.service


def _check_wallet_param(wallet: str) -> str:
    if not WALLET_RE.match(wallet):
        raise HTTPException(status_code=400, detail="Invalid wallet address")
    return wallet


# ---------------------------------------------------------------------------
# Domain error handlers
# ---------------------------------------------------------------------------

async def upstream_error_handler(request: Request, exc: UpstreamError):
    status = 404 if exc.status == 404 else 502
    return JSONResponse(status_code=status, content={"detail": exc.message})


async def lock_violation_handler(request: Request, exc: LockViolation):
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "flagged": True,
            "existing_username": exc.existing_identity,
        },
    )


async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close the flag store on shutdown."""
    yield
    service: ScoreService = app.state.service
    try:
        service.flags.backend.close()
    except Exception:
        logger.exception("Closing flag store failed")


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(service: Optional[ScoreService] = None, settings: Optional[Settings] = None, *,
               use_lifespan: bool = True) -> FastAPI:
    """Create the FastAPI app. ``service`` is built from ``settings`` (or the environment) when omitted."""
    settings = settings or (service.settings if service else Settings.from_env())
    setup_structured_logging(settings.log_level)
    if service is None:
        service = ScoreService.from_settings(settings)

    app = FastAPI(
        title="gscore API",
        description="GitHub reputation scores with wallet-bound ledger storage",
        version=__version__,
        lifespan=lifespan if use_lifespan else None,
        docs_url=None if settings.production else "/docs",
        redoc_url=None if settings.production else "/redoc",
    )
    app.state.service = service
    apply_security(app, settings.allowed_origins)
    app.add_exception_handler(UpstreamError, upstream_error_handler)
    app.add_exception_handler(LockViolation, lock_violation_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(LedgerError, ledger_error_handler)

    @app.get("/health")
    async def health(svc: ScoreService = Depends(get_service)):
        return {
            "status": "ok",
            "ledger_configured": svc.settings.ledger_configured,
            "version": __version__,
        }

    @app.post("/api/calculate-score")
    @limiter.limit(SCORE_RATE)
    async def calculate_score(request: Request, body: CalculateScoreRequest,
                              svc: ScoreService = Depends(get_service)):
        report = await svc.compute(body.github_username, body.github_token)
        return {"github_username": report.metrics.identity, **report.to_dict()}

    @app.post("/api/fdc/verify-and-store")
    @limiter.limit(STORE_RATE)
    async def verify_and_store(request: Request, body: VerifyAndStoreRequest,
                               svc: ScoreService = Depends(get_service)):
        receipt = await svc.verify_and_store(
            body.wallet_address, body.github_username, body.github_token,
        )
        return {**receipt.to_dict(), "message": "Score stored with attestation"}

    @app.get("/api/fdc/check/{wallet}/{username}")
    @limiter.limit(READ_RATE)
    async def check_verification(request: Request, wallet: str, username: str,
                                 svc: ScoreService = Depends(get_service)):
        _check_wallet_param(wallet)
        status = await svc.check_verification(wallet, username)
        return {"verified": status.verified, "attestation_id": status.attestation_id}

    @app.get("/api/fdc/flag/{username}")
    @limiter.limit(READ_RATE)
    async def flag_status(request: Request, username: str,
                          svc: ScoreService = Depends(get_service)):
        if not username.strip():
            raise HTTPException(status_code=400, detail="github_username is required")
        return svc.flag_status(username).to_dict()

    @app.post("/api/batch")
    @limiter.limit(BATCH_RATE)
    async def batch(request: Request, body: BatchRequest,
                    svc: ScoreService = Depends(get_service)):
        report = await svc.run_batch(body.usernames, body.github_token, attest=body.attest)
        return report.to_dict()

    @app.get("/api/leaderboard")
    @limiter.limit(LEADERBOARD_RATE)
    async def leaderboard(request: Request, svc: ScoreService = Depends(get_service)):
        entries = await svc.leaderboard()
        return {"total": len(entries), "entries": [e.to_dict() for e in entries]}

    return app
