# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration loader for the mail dispatch service.

Settings are read from an INI file with environment variables as fallbacks.
A value present in the file always wins over the environment.

Environment variables (all prefixed with MDS_):
    MDS_CONFIG - Path to config.ini file (default: config.ini)
    MDS_LOG_LEVEL - Logging level (default: INFO)
    MDS_HOST / MDS_PORT - Server bind address (default: 0.0.0.0:8000)
    MDS_API_TOKEN - API authentication token
    MDS_PROVIDER - Email backend: resend, smtp or log (default: log)
    MDS_RESEND_API_KEY - Resend API key (RESEND_API_KEY is also honoured)
    MDS_RESEND_BASE_URL - Resend API base URL
    MDS_SMTP_HOST / MDS_SMTP_PORT / MDS_SMTP_USER / MDS_SMTP_PASSWORD / MDS_SMTP_USE_TLS
    MDS_PROVIDER_TIMEOUT - Provider request timeout in seconds (default: 30)
    MDS_SENDS_PER_SECOND - Provider rate limit (default: 2)
    MDS_SEND_TIMEOUT - Per-send timeout in seconds (default: none)
    MDS_SHUTDOWN_TIMEOUT - Seconds to wait for the backlog on shutdown (default: 30)
    MDS_LOG_DELIVERY_ACTIVITY - Log every successful send (default: true)
    MDS_SENDER_CASTINGS / MDS_SENDER_PLATFORM / MDS_SENDER_OUTREACH / MDS_SENDER_SYSTEM
        - From addresses (system is used for test emails)
    MDS_APP_URL / MDS_SIGN_IN_PATH - Links used in notification emails

Example:
    Configuration file format (config.ini)::

        [server]
        port = 8080
        api_token = secret

        [provider]
        backend = resend
        resend_api_key = re_123

        [delivery]
        sends_per_second = 2
        send_timeout_seconds = 20

        [senders]
        castings = Bubble Ads Castings <castings@casting-invites.bubbleads.nl>
"""

from __future__ import annotations

import configparser
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from .logger import get_logger

logger = get_logger("ConfigLoader")

DEFAULT_SENDERS = {
    "castings": "Bubble Ads Castings <castings@casting-invites.bubbleads.nl>",
    "platform": "Social Bubble <platform@creator-invites.bubbleads.nl>",
    "outreach": "Kaylie van Bubble Ads <kaylie@creator-invites.bubbleads.nl>",
    "system": "Social Bubble <platform@bubbleads.nl>",
}

SECRET_FIELDS = ("api_token", "resend_api_key", "smtp_password")


@dataclass
class DispatchSettings:
    """Resolved service configuration.

    Attributes:
        http_host: Address the HTTP API binds to.
        http_port: Port the HTTP API binds to.
        api_token: Secret expected in the ``X-API-Token`` header, or None.
        provider: Email backend name (resend, smtp, log).
        sends_per_second: Provider rate limit driving the inter-send delay.
        send_timeout: Per-send timeout in seconds, or None for no timeout.
        shutdown_timeout: Seconds granted to the backlog on shutdown.
    """

    http_host: str = "0.0.0.0"
    http_port: int = 8000
    api_token: str | None = None

    # Provider
    provider: str = "log"
    resend_api_key: str | None = None
    resend_base_url: str = "https://api.resend.com"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    provider_timeout: float = 30.0

    # Delivery
    sends_per_second: float = 2.0
    send_timeout: float | None = None
    shutdown_timeout: float = 30.0
    log_delivery_activity: bool = True

    # Senders and links
    sender_castings: str = DEFAULT_SENDERS["castings"]
    sender_platform: str = DEFAULT_SENDERS["platform"]
    sender_outreach: str = DEFAULT_SENDERS["outreach"]
    sender_system: str = DEFAULT_SENDERS["system"]
    app_url: str = "https://platform.bubbleads.nl"
    sign_in_path: str = "/sign-in"

    log_level: str = "INFO"

    @property
    def inter_send_delay(self) -> float:
        return 1.0 / self.sends_per_second

    @property
    def login_url(self) -> str:
        return f"{self.app_url.rstrip('/')}/{self.sign_in_path.lstrip('/')}"

    def sender(self, category: str) -> str:
        """Return the From address configured for a sender category."""
        try:
            return getattr(self, f"sender_{category}")
        except AttributeError:
            raise KeyError(f"Unknown sender category: {category}") from None

    def as_dict(self, mask_secrets: bool = True) -> dict[str, Any]:
        """Return the settings as a dict, with secrets masked by default."""
        data = asdict(self)
        if mask_secrets:
            for name in SECRET_FIELDS:
                if data.get(name):
                    data[name] = "********"
        return data


def load_settings(config_path: str | os.PathLike | None = None) -> DispatchSettings:
    """Load configuration from an INI file with environment variables as fallbacks.

    Args:
        config_path: Path to the INI file. Defaults to ``MDS_CONFIG`` or
            ``config.ini``. A missing file is not an error.

    Returns:
        The resolved DispatchSettings.

    Raises:
        ValueError: If a numeric option cannot be parsed or the send rate
            is not positive.
    """
    path = Path(config_path or os.getenv("MDS_CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    if path.exists():
        parser.read(path)
        logger.debug("Loaded configuration from %s", path)
    elif config_path is not None:
        logger.warning("Config file not found: %s, using environment only", path)

    def get(section: str, option: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return fallback

    def get_str(section: str, option: str, fallback: str | None, default: str | None) -> str | None:
        value = get(section, option, fallback)
        if value is None:
            return default
        return value.strip() or default

    def get_int(section: str, option: str, fallback: str | None, default: int) -> int:
        value = get(section, option, fallback)
        if value is None or not value.strip():
            return default
        return int(value)

    def get_float(section: str, option: str, fallback: str | None, default: float | None) -> float | None:
        value = get(section, option, fallback)
        if value is None or not value.strip():
            return default
        return float(value)

    def get_bool(section: str, option: str, fallback: str | None, default: bool) -> bool:
        value = get(section, option, fallback)
        if value is None:
            return default
        normalized = str(value).strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
        return default

    defaults = DispatchSettings()
    settings = DispatchSettings(
        http_host=get_str("server", "host", os.getenv("MDS_HOST"), defaults.http_host),
        http_port=get_int("server", "port", os.getenv("MDS_PORT"), defaults.http_port),
        api_token=get_str("server", "api_token", os.getenv("MDS_API_TOKEN"), None),
        provider=(get_str("provider", "backend", os.getenv("MDS_PROVIDER"), defaults.provider) or "log").lower(),
        resend_api_key=get_str(
            "provider",
            "resend_api_key",
            os.getenv("MDS_RESEND_API_KEY") or os.getenv("RESEND_API_KEY"),
            None,
        ),
        resend_base_url=get_str(
            "provider", "resend_base_url", os.getenv("MDS_RESEND_BASE_URL"), defaults.resend_base_url
        ),
        smtp_host=get_str("provider", "smtp_host", os.getenv("MDS_SMTP_HOST"), defaults.smtp_host),
        smtp_port=get_int("provider", "smtp_port", os.getenv("MDS_SMTP_PORT"), defaults.smtp_port),
        smtp_user=get_str("provider", "smtp_user", os.getenv("MDS_SMTP_USER"), None),
        smtp_password=get_str("provider", "smtp_password", os.getenv("MDS_SMTP_PASSWORD"), None),
        smtp_use_tls=get_bool("provider", "smtp_use_tls", os.getenv("MDS_SMTP_USE_TLS"), defaults.smtp_use_tls),
        provider_timeout=get_float(
            "provider", "timeout_seconds", os.getenv("MDS_PROVIDER_TIMEOUT"), defaults.provider_timeout
        ),
        sends_per_second=get_float(
            "delivery", "sends_per_second", os.getenv("MDS_SENDS_PER_SECOND"), defaults.sends_per_second
        ),
        send_timeout=get_float("delivery", "send_timeout_seconds", os.getenv("MDS_SEND_TIMEOUT"), None),
        shutdown_timeout=get_float(
            "delivery", "shutdown_timeout_seconds", os.getenv("MDS_SHUTDOWN_TIMEOUT"), defaults.shutdown_timeout
        ),
        log_delivery_activity=get_bool(
            "delivery",
            "log_delivery_activity",
            os.getenv("MDS_LOG_DELIVERY_ACTIVITY"),
            defaults.log_delivery_activity,
        ),
        sender_castings=get_str(
            "senders", "castings", os.getenv("MDS_SENDER_CASTINGS"), defaults.sender_castings
        ),
        sender_platform=get_str(
            "senders", "platform", os.getenv("MDS_SENDER_PLATFORM"), defaults.sender_platform
        ),
        sender_outreach=get_str(
            "senders", "outreach", os.getenv("MDS_SENDER_OUTREACH"), defaults.sender_outreach
        ),
        sender_system=get_str("senders", "system", os.getenv("MDS_SENDER_SYSTEM"), defaults.sender_system),
        app_url=get_str("links", "app_url", os.getenv("MDS_APP_URL"), defaults.app_url),
        sign_in_path=get_str("links", "sign_in_path", os.getenv("MDS_SIGN_IN_PATH"), defaults.sign_in_path),
        log_level=(get_str("logging", "level", os.getenv("MDS_LOG_LEVEL"), defaults.log_level) or "INFO").upper(),
    )

    if settings.sends_per_second is None or settings.sends_per_second <= 0:
        raise ValueError("delivery.sends_per_second must be positive")
    if settings.send_timeout is not None and settings.send_timeout <= 0:
        settings.send_timeout = None
    return settings
