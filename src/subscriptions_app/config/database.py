import os
from pathlib import Path

_DEFAULT_SQLITE_PATH = Path("data") / "subscriptions.db"


class Database:
    def __init__(self, config: dict | None = None) -> None:
        db_cfg = (config or {}).get("subscriptions", {}).get("database", {})
        self.DB_PATH: str = str(db_cfg.get("path", os.getenv("SUBSCRIPTIONS_DB_PATH", str(_DEFAULT_SQLITE_PATH))))
