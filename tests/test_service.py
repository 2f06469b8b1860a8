"""Tests for the dispatch service wiring."""

import pytest

from mail_dispatch.config_loader import DispatchSettings
from mail_dispatch.dispatch_queue import DispatchQueue
from mail_dispatch.models import EmailPayload
from mail_dispatch.notifications import TemplateParamsError, UnknownTemplateError
from mail_dispatch.providers import LogProvider, ProviderError
from mail_dispatch.service import DispatchService


class RecordingProvider(LogProvider):
    name = "recording"

    def __init__(self, fail_for=()):
        super().__init__()
        self.fail_for = set(fail_for)
        self.opened = False
        self.closed = False

    async def open(self):
        self.opened = True

    async def send(self, payload):
        if set(payload.to) & self.fail_for:
            raise ProviderError("rejected", status=422)
        return await super().send(payload)

    async def close(self):
        self.closed = True


def make_payload(to):
    return EmailPayload.model_validate({"from": "s@example.com", "to": to, "subject": "Hi", "text": "Hello"})


@pytest.fixture
def settings():
    return DispatchSettings(sends_per_second=1000, shutdown_timeout=1)


@pytest.fixture
def service(settings):
    return DispatchService(RecordingProvider(fail_for={"bad@example.com"}), settings=settings)


def test_queue_built_from_settings(service, settings):
    assert service.queue.inter_send_delay == pytest.approx(0.001)
    assert service.queue.send_timeout is None
    assert service.queue.metrics is service.metrics


def test_explicit_queue_is_used():
    queue = DispatchQueue(inter_send_delay=0)
    svc = DispatchService(LogProvider(), queue=queue)

    assert svc.queue is queue
    assert svc.metrics is queue.metrics


@pytest.mark.asyncio
async def test_start_and_stop_manage_provider(service):
    await service.start()
    assert service.provider.opened is True

    assert await service.stop() == 0
    assert service.provider.closed is True


@pytest.mark.asyncio
async def test_queue_emails_delivers_in_order_and_skips_failures(service):
    payloads = [make_payload(to) for to in ("a@example.com", "bad@example.com", "c@example.com")]

    tasks = service.queue_emails(payloads)
    assert [task.recipient for task in tasks] == ["a@example.com", "bad@example.com", "c@example.com"]

    await service.queue.join()

    assert [p.to for p in service.provider.sent] == [["a@example.com"], ["c@example.com"]]
    output = service.metrics.generate_latest()
    assert b"mds_sent_total 2.0" in output
    assert b"mds_errors_total 1.0" in output


@pytest.mark.asyncio
async def test_queue_emails_with_nothing_to_send(service):
    assert service.queue_emails([]) == []
    assert service.queue.draining is False


@pytest.mark.asyncio
async def test_queue_notification_renders_per_recipient(service):
    params = {"creator_name": "Sam", "casting_title": "Summer", "client_name": "Acme", "compensation": 100}

    tasks = service.queue_notification("casting_invite", ["a@example.com", "b@example.com"], params)
    await service.queue.join()

    assert len(tasks) == 2
    assert [p.to for p in service.provider.sent] == [["a@example.com"], ["b@example.com"]]
    assert service.provider.sent[0].subject == "Casting opportunity: Summer"


@pytest.mark.asyncio
async def test_queue_notification_errors_leave_queue_untouched(service):
    with pytest.raises(UnknownTemplateError):
        service.queue_notification("nope", ["a@example.com"], {})
    with pytest.raises(TemplateParamsError):
        service.queue_notification("casting_invite", ["a@example.com"], {"creator_name": "Sam"})

    assert service.queue.pending == 0
    assert service.queue.draining is False


@pytest.mark.asyncio
async def test_send_now_bypasses_queue(service):
    message_id = await service.send_now(make_payload("now@example.com"))

    assert message_id.startswith("log-")
    assert service.queue.pending == 0

    with pytest.raises(ProviderError):
        await service.send_now(make_payload("bad@example.com"))


@pytest.mark.asyncio
async def test_status(service):
    assert service.status() == {
        "pending": 0,
        "draining": False,
        "inter_send_delay": pytest.approx(0.001),
        "backend": "recording",
    }


@pytest.mark.asyncio
async def test_stop_closes_provider_and_reports_dropped(settings):
    settings.sends_per_second = 0.5
    settings.shutdown_timeout = 0.05
    svc = DispatchService(RecordingProvider(), settings=settings)
    svc.queue_emails([make_payload("a@example.com"), make_payload("b@example.com")])

    dropped = await svc.stop()

    assert dropped == 1
    assert svc.provider.closed is True
    assert len(svc.provider.sent) == 1
