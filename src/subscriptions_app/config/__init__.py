"""Application configuration"""

import logging
from dotenv import load_dotenv

from .loader import load_raw_config
from .core import Core
from .patreon import Patreon
from .database import Database

load_dotenv()

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_RAW_CONFIG = load_raw_config()

core = Core(_RAW_CONFIG)

logging.basicConfig(
    format=LOG_FORMAT,
    datefmt=DATE_FORMAT,
    level=getattr(logging, core.LOG_LEVEL, logging.INFO),
)
logging.getLogger("discord").setLevel(logging.WARNING)
logging.getLogger("aiohttp").setLevel(logging.WARNING)

patreon = Patreon(_RAW_CONFIG)
database = Database(_RAW_CONFIG)


class Config:
    core = core
    patreon = patreon
    database = database


__all__ = ["core", "patreon", "database", "Config"]
