"""Locate and parse ``config.toml`` for the subscriptions bot."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict

# Overridable so tests and deployments can point at a different file.
DEFAULT_CONFIG_PATH = Path(os.getenv("SUBSCRIPTIONS_CONFIG", "config.toml"))


def load_raw_config(path: str | Path | None = None) -> Dict[str, Any]:
    """
    Read the TOML file holding the ``[subscriptions]`` tables.

    A missing file is not an error: every section class falls back to
    environment variables, which is how secrets are normally supplied.

    :param path: Explicit file; defaults to ``SUBSCRIPTIONS_CONFIG`` or
        ``./config.toml``.
    :returns: Parsed document, or ``{}`` when there is no file.
    """
    config_file = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not config_file.is_file():
        return {}

    with config_file.open("rb") as fh:
        return tomllib.load(fh)


__all__ = ["load_raw_config", "DEFAULT_CONFIG_PATH"]
