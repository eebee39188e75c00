import logging
import os
from typing import Dict

logger = logging.getLogger(__name__)


def _parse_tiers(raw: object) -> Dict[int, str]:
    """
    Accept either a TOML table (``{"1234" = "Gold"}``) or the env form
    ``1234:Gold,5678:Silver``.
    """
    if isinstance(raw, dict):
        return {int(tier_id): str(name) for tier_id, name in raw.items()}

    tiers: Dict[int, str] = {}
    for pair in str(raw or "").split(","):
        if not pair.strip():
            continue
        tier_id, sep, name = pair.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Malformed tier mapping entry: {pair!r}")
        tiers[int(tier_id.strip())] = name.strip()
    return tiers


class Patreon:
    def __init__(self, config: dict | None = None) -> None:
        cfg = (config or {}).get("subscriptions", {}).get("patreon", {})

        secret_env = str(cfg.get("client_secret_env", "PATREON_CLIENT_SECRET"))

        self.CLIENT_ID: str | None = cfg.get("client_id") or os.getenv("PATREON_CLIENT_ID")
        self.CLIENT_SECRET: str | None = os.getenv(secret_env)
        self.CAMPAIGN_ID: int = int(cfg.get("campaign_id", os.getenv("PATREON_CAMPAIGN_ID", "0")))
        self.REQUESTS_PER_MINUTE: int = int(
            cfg.get("requests_per_minute", os.getenv("PATREON_REQUESTS_PER_MINUTE", "100"))
        )
        self.TIERS: Dict[int, str] = _parse_tiers(cfg.get("tiers", os.getenv("PATREON_TIERS", "")))

        self.SYNC_INTERVAL: float = float(cfg.get("sync_interval", os.getenv("SYNC_INTERVAL", "60")))
        self.REFRESH_TIMEOUT: float = float(cfg.get("refresh_timeout", os.getenv("REFRESH_TIMEOUT", "30")))
        self.PAGE_TIMEOUT: float = float(cfg.get("page_timeout", os.getenv("PAGE_TIMEOUT", "600")))
        self.AGGREGATE_TIMEOUT: float = float(
            cfg.get("aggregate_timeout", os.getenv("AGGREGATE_TIMEOUT", "3600"))
        )
        self.REFRESH_WINDOW_DAYS: int = int(
            cfg.get("refresh_window_days", os.getenv("REFRESH_WINDOW_DAYS", "3"))
        )

        required = [
            ("PATREON_CLIENT_ID", self.CLIENT_ID),
            ("PATREON_CLIENT_SECRET", self.CLIENT_SECRET),
            ("PATREON_CAMPAIGN_ID", self.CAMPAIGN_ID),
        ]
        missing = [name for name, val in required if not val]
        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")

        if self.REQUESTS_PER_MINUTE <= 0:
            raise ValueError("PATREON_REQUESTS_PER_MINUTE must be positive")

        if not self.TIERS:
            logger.warning("No Patreon tiers configured; every entitled tier will be dropped")
