from __future__ import annotations

import logging
from typing import Iterable, Tuple

from .config import Settings

logger = logging.getLogger(__name__)

REQUIRED_SETTINGS: Tuple[Tuple[str, str], ...] = (
    ("database_url", "DATABASE_URL"),
    ("openai_api_key", "OPENAI_API_KEY"),
)


def _collect_missing(settings: Settings, pairs: Iterable[Tuple[str, str]]) -> list[str]:
    missing: list[str] = []
    for attr, label in pairs:
        value = getattr(settings, attr, None)
        if value in (None, "", [], {}):
            missing.append(label)
    return missing


def validate_settings(settings: Settings) -> None:
    """Fail fast when mandatory config values are missing outside dev."""
    environment = (settings.environment or "dev").lower()
    missing = _collect_missing(settings, REQUIRED_SETTINGS)

    if environment == "dev":
        if missing:
            logger.warning(
                "Running in dev without %s; planning endpoints may be unavailable",
                ", ".join(missing),
            )
        return

    if missing:
        raise RuntimeError(
            f"Missing required configuration for environment '{environment}': {', '.join(sorted(missing))}"
        )
