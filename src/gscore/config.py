"""
gscore.config — Settings loaded from the environment.

Nothing here raises at import time. Missing values that a request needs
(contract address, signer key) surface as ConfigurationError when that
request runs.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from gscore.errors import ConfigurationError

DEFAULT_RPC_URL = "https://coston2-api.flare.network/ext/C/rpc"
DEFAULT_PORT = 3001


def _origins(raw: str) -> list[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass
class Settings:
    contract_address: str = ""
    rpc_url: str = DEFAULT_RPC_URL
    private_key: str = ""
    port: int = DEFAULT_PORT
    github_token: str = ""
    ledger_backend: str = "web3"  # web3 | memory
    flag_store: str = "gscore_data"
    http_timeout: float = 15.0
    allowed_origins: list[str] = field(default_factory=list)
    log_level: str = "INFO"
    production: bool = False

    @classmethod
    def from_env(cls, env: Optional[dict] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            contract_address=env.get("CONTRACT_ADDRESS", ""),
            rpc_url=env.get("RPC_URL") or DEFAULT_RPC_URL,
            private_key=env.get("PRIVATE_KEY", ""),
            port=int(env.get("PORT") or DEFAULT_PORT),
            github_token=env.get("GITHUB_TOKEN", ""),
            ledger_backend=(env.get("GSCORE_LEDGER") or "web3").lower(),
            flag_store=env.get("GSCORE_FLAG_STORE") or "gscore_data",
            http_timeout=float(env.get("GSCORE_HTTP_TIMEOUT") or 15.0),
            allowed_origins=_origins(env.get("ALLOWED_ORIGINS", "")),
            log_level=env.get("LOG_LEVEL", "INFO"),
            production=bool(env.get("GSCORE_PRODUCTION")),
        )

    @property
    def ledger_configured(self) -> bool:
        return self.ledger_backend == "memory" or bool(self.contract_address)

    def require_ledger(self, signer: bool = False) -> None:
        if self.ledger_backend == "memory":
            return
        if not self.contract_address and signer and not self.private_key:
            raise ConfigurationError("Contract address or private key not configured")
        if not self.contract_address:
            raise ConfigurationError("Contract address not configured")
        if signer and not self.private_key:
            raise ConfigurationError("Private key not configured")
