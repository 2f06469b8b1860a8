# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Notification email templates for castings, briefings and creator outreach.

Bodies are Jinja2 HTML templates shipped in ``mail_dispatch/templates`` and
rendered with autoescaping. Each notification declares its subject (a Jinja2
string template), the sender category that selects the From address in the
settings, and the parameters callers must supply.

Example:
    Rendering a casting invite::

        payload = render_notification(
            "casting_invite",
            to="creator@example.com",
            params={
                "creator_name": "Sam",
                "casting_title": "Summer Drinks",
                "client_name": "Acme",
                "compensation": 250,
            },
            settings=settings,
        )
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from jinja2 import Environment, PackageLoader, select_autoescape
from pydantic import ValidationError

from .config_loader import DispatchSettings
from .models import EmailPayload

_html_env = Environment(
    loader=PackageLoader("mail_dispatch", "templates"),
    autoescape=select_autoescape(["html"]),
)
_subject_env = Environment(autoescape=False)


class UnknownTemplateError(KeyError):
    """Raised when a notification name is not registered."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown notification template: {self.name}"


class TemplateParamsError(ValueError):
    """Raised when required template parameters are missing.

    Attributes:
        missing: Names of the missing parameters.
    """

    def __init__(self, name: str, missing: list[str]):
        super().__init__(f"Missing required fields for {name}: {', '.join(missing)}")
        self.missing = missing


class NotificationRenderError(ValueError):
    """Raised when a rendered notification is not a valid email.

    Typical causes are a blank recipient or a subject that grows past the
    allowed length once parameters are substituted.

    Attributes:
        errors: Validation errors as ``{"loc", "msg", "type"}`` dicts.
    """

    def __init__(self, name: str, errors: list[dict[str, Any]]):
        details = "; ".join(
            "{}: {}".format(".".join(map(str, err["loc"])) or "email", err["msg"]) for err in errors
        )
        super().__init__(f"Cannot build {name} email: {details}")
        self.errors = errors


@dataclass(frozen=True)
class NotificationTemplate:
    """Registry entry for one notification.

    Attributes:
        name: Template name, also the HTML file stem.
        subject: Jinja2 template for the subject line.
        sender: Sender category (castings, platform, outreach, system).
        required: Parameters that must be present and non-empty.
        optional: Parameters defaulted to None when absent.
    """

    name: str
    subject: str
    sender: str
    required: tuple[str, ...] = ()
    optional: tuple[str, ...] = ()


_CASTING = ("creator_name", "casting_title", "client_name")

NOTIFICATION_TEMPLATES: dict[str, NotificationTemplate] = {
    t.name: t
    for t in (
        NotificationTemplate(
            "casting_invite",
            "Casting opportunity: {{ casting_title }}",
            "castings",
            (*_CASTING, "compensation"),
            ("response_deadline",),
        ),
        NotificationTemplate(
            "casting_approved_with_briefing",
            "Congratulations! You've been selected for {{ casting_title }}",
            "castings",
            (*_CASTING, "compensation"),
        ),
        NotificationTemplate(
            "casting_approved_no_briefing",
            "Great news! You've been selected for {{ casting_title }}",
            "castings",
            (*_CASTING, "compensation"),
        ),
        NotificationTemplate(
            "casting_not_selected",
            "Update on your casting application",
            "castings",
            _CASTING,
        ),
        NotificationTemplate(
            "casting_closed_no_response",
            "Casting closed: {{ casting_title }}",
            "castings",
            _CASTING,
        ),
        NotificationTemplate(
            "casting_ready_for_review",
            "Casting ready for review: {{ selected_creators_count }} creators selected",
            "castings",
            ("casting_title", "selected_creators_count"),
            ("client_contact_name",),
        ),
        NotificationTemplate(
            "briefing_now_ready",
            "Briefing now ready for {{ casting_title }}",
            "castings",
            (*_CASTING, "compensation"),
        ),
        NotificationTemplate(
            "creator_invitation",
            "📣 We're live baby – nieuw Bubble platform voor al jouw opdrachten",
            "platform",
            ("full_name",),
            ("invite_link",),
        ),
        NotificationTemplate(
            "creator_follow_up",
            "Is alles duidelijk? Je hebt nog geen account aangemaakt",
            "outreach",
            ("full_name",),
            ("invite_link",),
        ),
        NotificationTemplate(
            "test_email",
            "Test Email from Social Bubble Platform",
            "system",
        ),
    )
}


def get_template(name: str) -> NotificationTemplate:
    try:
        return NOTIFICATION_TEMPLATES[name]
    except KeyError:
        raise UnknownTemplateError(name) from None


def _signup_link(settings: DispatchSettings) -> str:
    app_url = settings.app_url.rstrip("/")
    return f"{app_url}/sign-up?redirect_url={quote(f'{app_url}/signup/creator', safe='')}"


def build_context(template: NotificationTemplate, params: dict[str, Any], settings: DispatchSettings) -> dict[str, Any]:
    """Validate parameters and add the values every template can use.

    Raises:
        TemplateParamsError: If a required parameter is missing or empty.
    """
    missing = [key for key in template.required if params.get(key) in (None, "")]
    if missing:
        raise TemplateParamsError(template.name, missing)
    context: dict[str, Any] = {key: None for key in template.optional}
    context.update(params)
    context["login_url"] = settings.login_url
    context["app_url"] = settings.app_url
    if "full_name" in template.required:
        context["first_name"] = str(params["full_name"]).split(" ")[0]
        context["invite_link"] = context.get("invite_link") or _signup_link(settings)
    if template.name == "test_email":
        context.setdefault("sent_at", datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"))
    return context


def render_notification(
    name: str,
    to: str | list[str],
    params: dict[str, Any] | None,
    settings: DispatchSettings,
) -> EmailPayload:
    """Render a named notification into an EmailPayload.

    Raises:
        UnknownTemplateError: If ``name`` is not registered.
        TemplateParamsError: If required parameters are missing.
        NotificationRenderError: If the result is not a valid email, such as
            a blank recipient or an overlong subject.
    """
    template = get_template(name)
    context = build_context(template, dict(params or {}), settings)
    html = _html_env.get_template(f"{template.name}.html").render(context)
    subject = _subject_env.from_string(template.subject).render(context)
    try:
        return EmailPayload(
            from_addr=settings.sender(template.sender),
            to=to,
            subject=subject,
            html=html,
            tags=[{"name": "template", "value": template.name}],
        )
    except ValidationError as exc:
        errors = [{key: err[key] for key in ("loc", "msg", "type")} for err in exc.errors()]
        raise NotificationRenderError(template.name, errors) from exc
