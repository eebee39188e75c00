import os
from typing import List


def _split_ids(raw: str) -> List[int]:
    return [int(gid.strip()) for gid in raw.split(",") if gid.strip()]


def _as_bool(raw: object) -> bool:
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


class Core:
    def __init__(self, config: dict | None = None) -> None:
        cfg = (config or {}).get("subscriptions", {})
        discord_cfg = cfg.get("discord", {})

        token_env = str(discord_cfg.get("token_env", "DISCORD_API_TOKEN"))
        self.DISCORD_API_TOKEN: str | None = os.getenv(token_env)

        guilds_cfg = discord_cfg.get("allowed_guilds")
        if guilds_cfg:
            self.ALLOWED_GUILDS: List[int] = [int(gid) for gid in guilds_cfg]
        else:
            self.ALLOWED_GUILDS = _split_ids(os.getenv("ALLOWED_GUILDS", ""))

        self.PRODUCTION_MODE: bool = _as_bool(cfg.get("production_mode", os.getenv("PRODUCTION_MODE", "false")))
        default_level = "INFO" if self.PRODUCTION_MODE else "DEBUG"
        self.LOG_LEVEL: str = str(cfg.get("log_level", os.getenv("LOG_LEVEL", default_level))).upper()

        required = [
            ("DISCORD_API_TOKEN", self.DISCORD_API_TOKEN),
            ("ALLOWED_GUILDS", self.ALLOWED_GUILDS),
        ]
        missing = [name for name, val in required if not val]
        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")
