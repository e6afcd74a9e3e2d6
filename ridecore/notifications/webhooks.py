"""
Outbound webhook notifier.

``trigger`` schedules delivery as a background task and returns at once;
the lifecycle transition that fired it never waits on, or fails because
of, the webhook sink.  Delivery errors are logged.

Payload envelope::

    {"event": "ride_accepted", "timestamp": "2026-...Z", "data": {...}}
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def trigger(self, event: str, payload: dict[str, Any]) -> None: ...

    async def aclose(self) -> None: ...


class WebhookNotifier:
    def __init__(
        self,
        url: str,
        *,
        enabled: bool = True,
        events: Optional[Iterable[str]] = None,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.enabled = enabled and bool(url)
        self.events = set(events) if events is not None else None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._pending: set[asyncio.Task] = set()

    def wants(self, event: str) -> bool:
        return self.enabled and (self.events is None or event in self.events)

    def trigger(self, event: str, payload: dict[str, Any]) -> None:
        event = getattr(event, "value", event)
        if not self.wants(event):
            return
        envelope = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": payload,
        }
        task = asyncio.create_task(self._deliver(envelope))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, envelope: dict[str, Any]) -> None:
        try:
            response = await self._client.post(self.url, json=envelope)
            response.raise_for_status()
            logger.info("Webhook %s delivered", envelope["event"])
        except httpx.HTTPError:
            logger.exception("Webhook %s failed", envelope["event"])

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown / tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self._client.aclose()
