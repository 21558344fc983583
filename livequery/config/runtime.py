from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BASE_URL = "https://testnet.polybase.xyz/v0"


@dataclass(frozen=True)
class ClientSettings:
    base_url: str = DEFAULT_BASE_URL
    poll_interval_ms: int = 100
    timeout_seconds: float = 60.0
    list_cache_ttl_ms: int = 60 * 60 * 1000
    client_id: str = "livequery-py"

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url cannot be empty")
        if self.poll_interval_ms <= 0:
            raise ValueError(f"poll_interval_ms must be positive, got {self.poll_interval_ms}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")
        if self.list_cache_ttl_ms < 0:
            raise ValueError(f"list_cache_ttl_ms cannot be negative, got {self.list_cache_ttl_ms}")

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    @classmethod
    def from_env(cls) -> "ClientSettings":
        return cls(
            base_url=os.getenv("LIVEQUERY_BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/"),
            poll_interval_ms=int(os.getenv("LIVEQUERY_POLL_INTERVAL_MS", "100")),
            timeout_seconds=float(os.getenv("LIVEQUERY_TIMEOUT_SECONDS", "60")),
            list_cache_ttl_ms=int(os.getenv("LIVEQUERY_LIST_CACHE_TTL_MS", str(60 * 60 * 1000))),
            client_id=os.getenv("LIVEQUERY_CLIENT_ID", "livequery-py").strip(),
        )
