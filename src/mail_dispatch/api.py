# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""FastAPI application factory and HTTP schemas for the mail dispatch service.

This module provides the REST interface in front of a
:class:`~mail_dispatch.service.DispatchService`:

- Queueing raw emails and rendered notifications (returns 202 immediately)
- Direct test emails that bypass the queue
- Queue status, health check and Prometheus metrics

Every endpoint except ``/health`` requires the ``X-API-Token`` header when a
token is configured.

Example:
    Creating and running the API application::

        service = DispatchService(create_provider(settings), settings=settings)
        app = create_app(service, api_token="secret-token")

        uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from typing import Any, AsyncContextManager, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from .logger import get_logger
from .models import EmailPayload
from .notifications import (
    NotificationRenderError,
    TemplateParamsError,
    UnknownTemplateError,
    render_notification,
)
from .service import DispatchService

logger = get_logger("MailDispatchAPI")

API_TOKEN_HEADER_NAME = "X-API-Token"
api_key_scheme = APIKeyHeader(name=API_TOKEN_HEADER_NAME, auto_error=False)


async def require_token(request: Request, api_token: str | None = Depends(api_key_scheme)) -> None:
    """Validate the API token carried in the ``X-API-Token`` header.

    When no token has been configured through :func:`create_app` the
    dependency is effectively bypassed.
    """
    expected = getattr(request.app.state, "api_token", None)
    if expected is None:
        return
    if not api_token or api_token != expected:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API token")


auth_dependency = Depends(require_token)


def get_service(request: Request) -> DispatchService:
    svc = getattr(request.app.state, "service", None)
    if svc is None:
        raise HTTPException(500, "Service not initialized")
    return svc


class CommandStatus(BaseModel):
    """Base schema shared by most responses produced by the service."""
    ok: bool
    error: Optional[str] = None


class QueuedResponse(CommandStatus):
    """Response returned when emails are accepted for background delivery."""
    queued: int = 0
    ids: List[str] = Field(default_factory=list)


class StatusResponse(CommandStatus):
    pending: int
    draining: bool
    inter_send_delay: float
    backend: str


class BatchPayload(BaseModel):
    """Emails queued together, delivered in list order."""
    messages: List[EmailPayload] = Field(min_length=1)


class NotificationPayload(BaseModel):
    """Render a named notification once per recipient and queue the emails."""
    template: str
    to: List[str] = Field(min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)


class TestEmailPayload(BaseModel):
    to: str = Field(min_length=3)


class SentResponse(CommandStatus):
    id: Optional[str] = None


def _queued(tasks) -> QueuedResponse:
    return QueuedResponse(ok=True, queued=len(tasks), ids=[task.id for task in tasks])


def create_app(
    svc: DispatchService,
    api_token: str | None = None,
    lifespan: Callable[[FastAPI], AsyncContextManager] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    svc:
        The :class:`~mail_dispatch.service.DispatchService` serving requests.
        It is stored on ``app.state.service``.
    api_token:
        Optional secret used to protect every endpoint except ``/health``.
    lifespan:
        Optional lifespan context manager for startup/shutdown events.

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn.
    """
    api = FastAPI(title="Mail Dispatch Service", lifespan=lifespan)
    api.state.service = svc
    api.state.api_token = api_token
    router = APIRouter(dependencies=[auth_dependency])

    @api.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Log validation errors with full details."""
        logger.error(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})

    @api.get("/health")
    async def health():
        """Health check endpoint for container monitoring (no authentication required)."""
        return {"status": "ok"}

    @router.get("/status", response_model=StatusResponse, response_model_exclude_none=True)
    async def queue_status(service: DispatchService = Depends(get_service)):
        """Return the backlog size and drain state."""
        return StatusResponse(ok=True, **service.status())

    @router.post(
        "/emails",
        response_model=QueuedResponse,
        response_model_exclude_none=True,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def queue_email(payload: EmailPayload, service: DispatchService = Depends(get_service)):
        """Queue one email for background delivery."""
        return _queued(service.queue_emails([payload]))

    @router.post(
        "/emails/batch",
        response_model=QueuedResponse,
        response_model_exclude_none=True,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def queue_batch(payload: BatchPayload, service: DispatchService = Depends(get_service)):
        """Queue several emails, preserving their order."""
        return _queued(service.queue_emails(payload.messages))

    @router.post(
        "/notifications",
        response_model=QueuedResponse,
        response_model_exclude_none=True,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def queue_notification(payload: NotificationPayload, service: DispatchService = Depends(get_service)):
        """Render a notification template for each recipient and queue the emails."""
        try:
            tasks = service.queue_notification(payload.template, payload.to, payload.params)
        except UnknownTemplateError as exc:
            raise HTTPException(404, str(exc)) from exc
        except TemplateParamsError as exc:
            raise HTTPException(400, {"error": "Missing required fields", "missing": exc.missing}) from exc
        except NotificationRenderError as exc:
            raise HTTPException(422, exc.errors) from exc
        return _queued(tasks)

    @router.post("/emails/test", response_model=SentResponse, response_model_exclude_none=True)
    async def send_test_email(payload: TestEmailPayload, service: DispatchService = Depends(get_service)):
        """Send a test email directly (not through the queue) for immediate feedback."""
        try:
            email = render_notification("test_email", payload.to, {}, service.settings)
        except NotificationRenderError as exc:
            raise HTTPException(422, exc.errors) from exc
        try:
            message_id = await service.send_now(email)
        except Exception as exc:
            logger.error(f"Test email to {payload.to} failed: {exc}")
            raise HTTPException(status.HTTP_502_BAD_GATEWAY, str(exc) or exc.__class__.__name__) from exc
        return SentResponse(ok=True, id=message_id)

    @router.get("/metrics")
    async def metrics(service: DispatchService = Depends(get_service)):
        """Expose Prometheus metrics collected by the dispatch queue."""
        return Response(content=service.metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    api.include_router(router)
    return api


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Strip values that are not JSON serialisable from validation errors."""
    errors = []
    for err in exc.errors():
        item = {key: value for key, value in err.items() if key in ("type", "loc", "msg")}
        errors.append(item)
    return errors
