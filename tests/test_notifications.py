"""Tests for notification rendering."""

from urllib.parse import quote

import pytest

from mail_dispatch.config_loader import DEFAULT_SENDERS, DispatchSettings
from mail_dispatch.notifications import (
    NOTIFICATION_TEMPLATES,
    NotificationRenderError,
    TemplateParamsError,
    UnknownTemplateError,
    build_context,
    get_template,
    render_notification,
)

CASTING_PARAMS = {
    "creator_name": "Sam",
    "casting_title": "Summer Drinks",
    "client_name": "Acme",
    "compensation": 250,
}

SAMPLE_PARAMS = {
    "casting_invite": CASTING_PARAMS,
    "casting_approved_with_briefing": CASTING_PARAMS,
    "casting_approved_no_briefing": CASTING_PARAMS,
    "casting_not_selected": CASTING_PARAMS,
    "casting_closed_no_response": CASTING_PARAMS,
    "casting_ready_for_review": {"casting_title": "Summer Drinks", "selected_creators_count": 4},
    "briefing_now_ready": CASTING_PARAMS,
    "creator_invitation": {"full_name": "Lotte de Vries"},
    "creator_follow_up": {"full_name": "Lotte de Vries"},
    "test_email": {},
}


@pytest.fixture
def settings():
    return DispatchSettings(app_url="https://app.example.com")


def test_every_template_has_sample_params():
    assert set(SAMPLE_PARAMS) == set(NOTIFICATION_TEMPLATES)


@pytest.mark.parametrize("name", sorted(SAMPLE_PARAMS))
def test_every_template_renders(name, settings):
    payload = render_notification(name, "creator@example.com", SAMPLE_PARAMS[name], settings)

    template = NOTIFICATION_TEMPLATES[name]
    assert payload.to == ["creator@example.com"]
    assert payload.from_addr == settings.sender(template.sender)
    assert payload.html.startswith("<!DOCTYPE html>")
    assert "{{" not in payload.html
    assert "{{" not in payload.subject
    assert [tag.model_dump() for tag in payload.tags] == [{"name": "template", "value": name}]


def test_casting_invite_content(settings):
    params = dict(CASTING_PARAMS, response_deadline="1 June")
    payload = render_notification("casting_invite", "sam@example.com", params, settings)

    assert payload.subject == "Casting opportunity: Summer Drinks"
    assert payload.from_addr == DEFAULT_SENDERS["castings"]
    assert "Hey Sam," in payload.html
    assert "&euro;250.00" in payload.html
    assert "1 June" in payload.html
    assert 'href="https://app.example.com/sign-in"' in payload.html
    # Preview text set by the child template reaches the base layout.
    assert "Casting opportunity: Summer Drinks</div>" in payload.html


def test_optional_deadline_can_be_omitted(settings):
    payload = render_notification("casting_invite", "sam@example.com", CASTING_PARAMS, settings)
    assert "Response Deadline" not in payload.html


def test_html_is_escaped_but_subject_is_not(settings):
    params = dict(CASTING_PARAMS, creator_name="<b>Sam</b>", casting_title="Fish & Chips")
    payload = render_notification("casting_invite", "sam@example.com", params, settings)

    assert "&lt;b&gt;Sam&lt;/b&gt;" in payload.html
    assert "<b>Sam</b>" not in payload.html
    assert payload.subject == "Casting opportunity: Fish & Chips"


def test_ready_for_review_subject_and_greeting(settings):
    params = {"casting_title": "Summer Drinks", "selected_creators_count": 4}
    payload = render_notification("casting_ready_for_review", "client@example.com", params, settings)

    assert payload.subject == "Casting ready for review: 4 creators selected"
    assert "Hi there!" in payload.html

    params["client_contact_name"] = "Ada"
    assert "Hi Ada!" in render_notification("casting_ready_for_review", "c@example.com", params, settings).html


def test_creator_invitation_uses_first_name_and_signup_link(settings):
    payload = render_notification("creator_invitation", "lotte@example.com", {"full_name": "Lotte de Vries"}, settings)

    expected_link = "https://app.example.com/sign-up?redirect_url=" + quote(
        "https://app.example.com/signup/creator", safe=""
    )
    assert "Hey Lotte," in payload.html
    assert expected_link in payload.html
    assert payload.from_addr == DEFAULT_SENDERS["platform"]


def test_creator_follow_up_keeps_explicit_invite_link(settings):
    params = {"full_name": "Lotte", "invite_link": "https://example.com/join"}
    payload = render_notification("creator_follow_up", "lotte@example.com", params, settings)

    assert "https://example.com/join" in payload.html
    assert payload.from_addr == DEFAULT_SENDERS["outreach"]


def test_multiple_recipients(settings):
    payload = render_notification("test_email", ["a@example.com", "b@example.com"], None, settings)
    assert payload.to == ["a@example.com", "b@example.com"]
    assert "Sent at:" in payload.html


def test_test_email_uses_system_sender(settings):
    payload = render_notification("test_email", "me@example.com", {}, settings)
    assert payload.from_addr == "Social Bubble <platform@bubbleads.nl>"
    assert payload.from_addr == DEFAULT_SENDERS["system"]


def test_blank_recipient_is_a_render_error(settings):
    with pytest.raises(NotificationRenderError) as exc_info:
        render_notification("casting_not_selected", " ", CASTING_PARAMS, settings)

    assert isinstance(exc_info.value, ValueError)
    assert [err["loc"] for err in exc_info.value.errors] == [("to",)]
    assert "casting_not_selected" in str(exc_info.value)


def test_overlong_subject_is_a_render_error(settings):
    params = dict(CASTING_PARAMS, casting_title="T" * 1200)
    with pytest.raises(NotificationRenderError) as exc_info:
        render_notification("casting_closed_no_response", "sam@example.com", params, settings)

    assert exc_info.value.errors[0]["loc"] == ("subject",)


def test_unknown_template(settings):
    with pytest.raises(UnknownTemplateError) as exc_info:
        render_notification("newsletter", "a@example.com", {}, settings)

    assert str(exc_info.value) == "Unknown notification template: newsletter"
    assert isinstance(exc_info.value, KeyError)


def test_missing_and_empty_params_are_reported(settings):
    params = {"creator_name": "Sam", "casting_title": ""}
    with pytest.raises(TemplateParamsError) as exc_info:
        render_notification("casting_approved_no_briefing", "sam@example.com", params, settings)

    assert exc_info.value.missing == ["casting_title", "client_name", "compensation"]
    assert "casting_approved_no_briefing" in str(exc_info.value)


def test_build_context_defaults_optional_params(settings):
    context = build_context(get_template("casting_invite"), dict(CASTING_PARAMS), settings)

    assert context["response_deadline"] is None
    assert context["login_url"] == "https://app.example.com/sign-in"
    assert context["app_url"] == "https://app.example.com"
