"""
Relay connection settings loaded from the environment.

Credentials are carried in an explicit ``RelayCredentials`` value that each
request-issuing component receives at construction; nothing reads the API key
from global state at request time.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from commandless.errors import MissingSettingError

DEFAULT_BASE_URL = "https://commandless-app-production.up.railway.app"

_SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


def normalize_base_url(base_url: Optional[str]) -> str:
    """Return ``base_url`` with an ``https://`` scheme when none is given and no trailing slash."""
    base = (base_url or "").strip() or DEFAULT_BASE_URL
    if not _SCHEME_PATTERN.match(base):
        base = f"https://{base}"
    return base.rstrip("/")


@dataclass(frozen=True, slots=True)
class RelayCredentials:
    """API key and optional HMAC signing secret for one relay account."""

    api_key: str
    hmac_secret: Optional[str] = None

    def __repr__(self) -> str:
        return f"RelayCredentials(api_key='{self.api_key[:6]}…', hmac_secret={'set' if self.hmac_secret else None})"


@dataclass(frozen=True, slots=True)
class RelaySettings:
    """Everything needed to run a relay-connected bot."""

    credentials: RelayCredentials
    base_url: str = DEFAULT_BASE_URL
    bot_id: Optional[str] = None
    bot_token: Optional[str] = None

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "RelaySettings":
        """
        Load settings from the process environment, after applying ``env_file``.

        Reads ``COMMANDLESS_API_KEY`` (required), ``COMMANDLESS_SERVICE_URL``,
        ``COMMANDLESS_HMAC_SECRET``, ``BOT_ID`` and ``BOT_TOKEN`` (falling back
        to ``DISCORD_BOT_TOKEN``). Variables already set in the environment win
        over the file.

        Raises:
            MissingSettingError: If ``COMMANDLESS_API_KEY`` is not set.
        """
        load_dotenv(dotenv_path=env_file or Path(".env"))

        api_key = os.getenv("COMMANDLESS_API_KEY", "").strip()
        if not api_key:
            raise MissingSettingError("COMMANDLESS_API_KEY")

        return cls(
            credentials=RelayCredentials(
                api_key=api_key,
                hmac_secret=os.getenv("COMMANDLESS_HMAC_SECRET") or None,
            ),
            base_url=normalize_base_url(os.getenv("COMMANDLESS_SERVICE_URL")),
            bot_id=(os.getenv("BOT_ID") or "").strip() or None,
            bot_token=os.getenv("BOT_TOKEN") or os.getenv("DISCORD_BOT_TOKEN") or None,
        )
