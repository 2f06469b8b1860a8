# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""ASGI application entry point for uvicorn.

Builds the dispatch service from settings and ties its lifecycle to the
application's lifespan: the provider is opened on startup, and on shutdown
the backlog gets ``shutdown_timeout`` seconds to drain before the provider is
closed.

Usage:
    uvicorn mail_dispatch.server:app_factory --factory --host 0.0.0.0 --port 8000

Environment variables:
    MDS_CONFIG: Path to the INI configuration file (default: config.ini)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import create_app
from .config_loader import DispatchSettings, load_settings
from .providers import create_provider
from .service import DispatchService


def build_service(settings: DispatchSettings) -> DispatchService:
    return DispatchService(create_provider(settings), settings=settings)


def build_app(settings: DispatchSettings, service: DispatchService | None = None) -> FastAPI:
    """Create the FastAPI application with a lifespan bound to the service."""
    svc = service or build_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler - starts and stops the dispatch service."""
        await svc.start()
        yield
        await svc.stop()

    return create_app(svc, api_token=settings.api_token, lifespan=lifespan)


def app_factory() -> FastAPI:
    """Uvicorn ``--factory`` target reading settings from the environment."""
    return build_app(load_settings())
