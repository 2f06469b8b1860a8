# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Email providers and the factory selecting one from settings."""

from __future__ import annotations

from ..config_loader import DispatchSettings
from .base import EmailProvider, ProviderError
from .log import LogProvider
from .resend import ResendProvider
from .smtp import SMTPProvider

__all__ = [
    "EmailProvider",
    "LogProvider",
    "ProviderError",
    "ResendProvider",
    "SMTPProvider",
    "create_provider",
]


def create_provider(settings: DispatchSettings) -> EmailProvider:
    """Build the provider named by ``settings.provider``.

    Raises:
        ValueError: For an unknown backend, or ``resend`` without an API key.
    """
    backend = (settings.provider or "log").lower()
    if backend == "resend":
        if not settings.resend_api_key:
            raise ValueError("provider 'resend' requires resend_api_key (MDS_RESEND_API_KEY)")
        return ResendProvider(
            api_key=settings.resend_api_key,
            base_url=settings.resend_base_url,
            timeout=settings.provider_timeout,
        )
    if backend == "smtp":
        return SMTPProvider(
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_user,
            settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.provider_timeout,
        )
    if backend == "log":
        return LogProvider()
    raise ValueError(f"Unknown email provider: {settings.provider}")
