"""Tests for the outbound webhook notifier (httpx mock transport)."""

from __future__ import annotations

import json
import logging

import httpx
import pytest

from ridecore.notifications.webhooks import WebhookNotifier

URL = "https://hooks.example.com/rides"


def _capturing_client(status_code: int = 200):
    received: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(status_code)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), received


class TestWebhookNotifier:
    @pytest.mark.asyncio
    async def test_posts_event_envelope(self):
        client, received = _capturing_client()
        notifier = WebhookNotifier(URL, client=client)

        notifier.trigger("ride_accepted", {"id": "r1", "status": "accepted"})
        await notifier.aclose()

        assert len(received) == 1
        assert str(received[0].url) == URL
        body = json.loads(received[0].content)
        assert body["event"] == "ride_accepted"
        assert body["data"] == {"id": "r1", "status": "accepted"}
        assert body["timestamp"]

    @pytest.mark.asyncio
    async def test_disabled_notifier_sends_nothing(self):
        client, received = _capturing_client()
        notifier = WebhookNotifier(URL, enabled=False, client=client)

        notifier.trigger("ride_requested", {"id": "r1"})
        await notifier.aclose()

        assert received == []

    @pytest.mark.asyncio
    async def test_empty_url_disables(self):
        client, received = _capturing_client()
        notifier = WebhookNotifier("", client=client)
        assert not notifier.enabled
        notifier.trigger("ride_requested", {"id": "r1"})
        await notifier.aclose()
        assert received == []

    @pytest.mark.asyncio
    async def test_only_selected_events_are_sent(self):
        client, received = _capturing_client()
        notifier = WebhookNotifier(URL, events={"ride_completed"}, client=client)

        notifier.trigger("ride_requested", {"id": "r1"})
        notifier.trigger("ride_completed", {"id": "r1"})
        await notifier.aclose()

        assert [json.loads(r.content)["event"] for r in received] == [
            "ride_completed"
        ]

    @pytest.mark.asyncio
    async def test_failing_sink_is_logged_not_raised(self, caplog):
        client, received = _capturing_client(status_code=500)
        notifier = WebhookNotifier(URL, client=client)

        with caplog.at_level(logging.ERROR):
            notifier.trigger("ride_cancelled", {"id": "r1"})
            await notifier.drain()

        assert len(received) == 1
        assert "ride_cancelled failed" in caplog.text
        await notifier.aclose()

    @pytest.mark.asyncio
    async def test_unreachable_sink_is_logged(self, caplog):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = WebhookNotifier(URL, client=client)

        with caplog.at_level(logging.ERROR):
            notifier.trigger("ride_requested", {"id": "r1"})
            await notifier.aclose()

        assert "ride_requested failed" in caplog.text
