import json

from conftest import json_response
from trendscout.models import JobType, PipelineJob
from trendscout.services.notify import THROTTLE_SEC, Notifier
from trendscout.services.queue_coordinator import QueueCoordinator

SEND_URL = "api.telegram.org/botbot-token/sendMessage"


def telegram_settings(settings):
    return settings.model_copy(update={"telegram_bot_token": "bot-token", "telegram_chat_id": "42"})


async def test_same_title_is_throttled(settings, upstream, http):
    upstream.on("POST", SEND_URL, json_response({"ok": True}))
    clock = [1000.0]
    notifier = Notifier(telegram_settings(settings), http=http, monotonic=lambda: clock[0], throttle={})

    assert await notifier.error("Fetch failed", {"id": 1}) is True
    assert await notifier.error("Fetch failed", {"id": 2}) is False
    assert await notifier.warn("Fetch failed") is True

    clock[0] += THROTTLE_SEC + 1
    assert await notifier.error("Fetch failed") is True

    sent = upstream.calls("POST", SEND_URL)
    assert len(sent) == 3
    assert json.loads(sent[0].content)["chat_id"] == "42"


async def test_unconfigured_notifier_sends_nothing(settings, upstream, http):
    notifier = Notifier(settings, http=http, throttle={})
    assert notifier.configured is False
    assert await notifier.error("anything") is False
    assert upstream.requests == []


async def test_terminal_job_failure_alerts(session, settings, upstream, http):
    upstream.on("POST", SEND_URL, json_response({"ok": True}))
    session.add(PipelineJob(video_id="9", job_type="fetch", max_attempts=2))
    await session.commit()

    async def broken(job):
        raise RuntimeError("disk full")

    notifier = Notifier(telegram_settings(settings), http=http, throttle={})
    coordinator = QueueCoordinator(session, {JobType.fetch: broken}, notifier=notifier)

    first = await coordinator.process_next()
    assert first.status == "pending"
    assert upstream.calls("POST", SEND_URL) == []

    second = await coordinator.process_next()
    assert second.status == "failed"
    texts = [json.loads(r.content)["text"] for r in upstream.calls("POST", SEND_URL)]
    assert len(texts) == 1
    assert "Pipeline fetch job failed" in texts[0]
    assert "disk full" in texts[0]
