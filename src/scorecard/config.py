"""Startup configuration.

Settings are read from the environment (and a local .env file) once, at
process start. validate_config() is called from app.main() so that a
missing key is a clear startup failure rather than a mid-call crash;
it is not run at import time, so tests can build the app with their own
Settings.
"""

import os
import sys
import logging
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

REQUIRED_VARS = [
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_PHONE_NUMBER",
    "PUBLIC_BASE_URL",
    "OPENAI_API_KEY",
]

OPTIONAL_VARS = [
    "OPENAI_CHAT_MODEL",
    "OPENAI_JUDGE_MODEL",
    "OPENAI_REALTIME_MODEL",
    "OPENAI_BASE_URL",
    "CALL_MODE",
    "REALTIME_VOICE",
    "OBSERVER_POLL_INTERVAL",
    "LOG_LEVEL",
    "PORT",
]

CALL_MODES = {"turn", "stream"}


@dataclass
class Settings:
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    public_base_url: str = ""
    openai_api_key: str = ""
    openai_chat_model: str = "gpt-4o-mini"
    openai_judge_model: str = "gpt-4o-mini"
    openai_realtime_model: str = "gpt-4o-realtime-preview"
    openai_base_url: str = "https://api.openai.com/v1"
    call_mode: str = "turn"
    realtime_voice: str = "alloy"
    observer_poll_interval: float = 2.0
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        call_mode = os.getenv("CALL_MODE", "turn").strip().lower()
        if call_mode not in CALL_MODES:
            logger.warning("Unknown CALL_MODE %r, using turn", call_mode)
            call_mode = "turn"
        return cls(
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
            twilio_phone_number=os.getenv("TWILIO_PHONE_NUMBER", ""),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "").rstrip("/"),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_chat_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini"),
            openai_judge_model=os.getenv("OPENAI_JUDGE_MODEL", "gpt-4o-mini"),
            openai_realtime_model=os.getenv("OPENAI_REALTIME_MODEL", "gpt-4o-realtime-preview"),
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
            call_mode=call_mode,
            realtime_voice=os.getenv("REALTIME_VOICE", "alloy"),
            observer_poll_interval=float(os.getenv("OBSERVER_POLL_INTERVAL", "2")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("PORT", "8000")),
        )

    @property
    def websocket_base_url(self) -> str:
        """PUBLIC_BASE_URL with its scheme swapped for ws/wss."""
        if self.public_base_url.startswith("https://"):
            return "wss://" + self.public_base_url[len("https://"):]
        if self.public_base_url.startswith("http://"):
            return "ws://" + self.public_base_url[len("http://"):]
        return self.public_base_url


def validate_config() -> None:
    """Fail fast on a missing credential or an unusable callback URL.

    Exits with status 1 and a message on stderr; optional variables that
    are unset only produce a warning.
    """
    load_dotenv()
    problems = [f"{var} is not set" for var in REQUIRED_VARS if not os.getenv(var)]
    base_url = os.getenv("PUBLIC_BASE_URL", "")
    if base_url and not base_url.startswith(("https://", "http://")):
        problems.append("PUBLIC_BASE_URL must start with https:// or http://")

    if problems:
        print(
            "\nFATAL: scorecard-agent cannot start:\n"
            + "".join(f"  - {p}\n" for p in problems)
            + "\nTwilio calls back to PUBLIC_BASE_URL, so it must be reachable from the internet.\n",
            file=sys.stderr,
        )
        sys.exit(1)

    unset = [var for var in OPTIONAL_VARS if not os.getenv(var)]
    if unset:
        logger.warning("Using defaults for %s", ", ".join(unset))
