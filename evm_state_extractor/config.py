# config.py
import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_RPC_URL = "http://localhost:8545"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("console", "json")


def _env_flag(value: Optional[str]) -> bool:
    return (value or "false").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ExtractorConfig:
    """
    Runtime settings for an extraction.

    Attributes:
        rpc_url: JSON-RPC endpoint of a node with the debug namespace enabled
        request_timeout: Per-request HTTP timeout in seconds
        max_workers: Threads used for concurrent balance and trace fetches
        exact_pre_balances: Backfill balances from preceding transactions of
            the same block instead of using parent-block balances
        log_level: Logging level name
        log_format: ``console`` or ``json``
    """

    rpc_url: str = DEFAULT_RPC_URL
    request_timeout: int = 30
    max_workers: int = 8
    exact_pre_balances: bool = False
    log_level: str = "INFO"
    log_format: str = "console"

    def __post_init__(self):
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Unsupported log level: {self.log_level}")
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Unsupported log format: {self.log_format}")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ExtractorConfig":
        env = os.environ if environ is None else environ
        return cls(
            rpc_url=env.get("WEB3_PROVIDER_URL", DEFAULT_RPC_URL),
            request_timeout=int(env.get("RPC_TIMEOUT", 30)),
            max_workers=int(env.get("WORKERS", 8)),
            exact_pre_balances=_env_flag(env.get("EXACT_PRE_BALANCES")),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "console"),
        )
