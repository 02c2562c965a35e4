"""
Client for the Commandless relay's event endpoints.

Events are delivered with an idempotency key derived from the event id and
timestamp, so a retried delivery is recognized by the relay instead of being
decided twice.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Deque, Dict, Optional

import aiohttp

from commandless.configuration.relay_settings import RelayCredentials, normalize_base_url
from commandless.datatypes.relay_datatypes import Decision, HttpResponse, RelayEvent
from commandless.errors import RelayError
from commandless.relay.http import DEFAULT_TIMEOUT_SECONDS, post_json
from commandless.relay.signing import make_idempotency_key
from commandless.util.logger import get_logger

logger = get_logger("relay_client")

MAX_RETRIES = 3
RETRY_BACKOFF_SECONDS = 0.2


class RelayClient:
    """
    Sends events to the relay and returns its decisions.

    Args:
        credentials: API key and optional HMAC secret.
        base_url: Relay base URL; ``https://`` is assumed when no scheme is given.
        timeout: Per-request timeout in seconds.
        session: Optional shared aiohttp session. When omitted the client
            creates one lazily and closes it in :meth:`close`.
    """

    def __init__(
        self,
        credentials: RelayCredentials,
        base_url: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[aiohttp.ClientSession] = None,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        self.credentials = credentials
        self.base_url = normalize_base_url(base_url)
        self.timeout = timeout
        self.max_retries = max_retries
        self.bot_id: Optional[str] = None
        self._session = session
        self._owns_session = session is None
        self._queue: Deque[RelayEvent] = deque()
        self._drain_task: asyncio.Task | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _post(self, path: str, body: Any, idempotency_key: Optional[str] = None) -> HttpResponse[Any]:
        session = await self._get_session()
        return await post_json(
            session,
            f"{self.base_url}{path}",
            self.credentials.api_key,
            body,
            hmac_secret=self.credentials.hmac_secret,
            timeout=self.timeout,
            idempotency_key=idempotency_key,
        )

    async def register_bot(
        self,
        *,
        platform: str = "discord",
        name: Optional[str] = None,
        client_id: Optional[str] = None,
        bot_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Register this bot with the relay and remember the returned bot id.

        Returns:
            Optional[str]: The relay's bot id, or None if registration failed.
        """
        body: Dict[str, Any] = {"platform": platform}
        if name is not None:
            body["name"] = name
        if client_id is not None:
            body["clientId"] = client_id
        if bot_id is not None:
            body["botId"] = bot_id

        response = await self._post("/v1/relay/register", body)
        if not response.ok:
            logger.error("[RELAY] registerBot failed: %s %s", response.status, response.error or "Unknown error")
            return None

        data = response.data if isinstance(response.data, dict) else {}
        registered = data.get("botId")
        if registered in (None, ""):
            logger.error("[RELAY] registerBot response missing botId: %r", response.data)
            return None

        self.bot_id = str(registered)
        logger.info("[RELAY] Registered bot %s", self.bot_id)
        return self.bot_id

    async def heartbeat(self) -> Optional[Dict[str, Any]]:
        """Report the bot as online. Returns the relay's response body, or None on failure."""
        response = await self._post("/v1/relay/heartbeat", {"botId": self.bot_id})
        if not response.ok:
            logger.debug("[RELAY] Heartbeat failed: %s %s", response.status, response.error or "")
            return None
        data = response.data if isinstance(response.data, dict) else {}
        if data.get("syncRequested"):
            logger.info("[RELAY] Relay requested a config sync")
        return data

    async def send_event(self, event: RelayEvent) -> Optional[Decision]:
        """
        Deliver one event and return the relay's decision.

        Retries up to ``max_retries`` times with a linear backoff, reusing the
        same idempotency key.

        Returns:
            Optional[Decision]: The decision, or None when the relay has nothing to do.

        Raises:
            RelayError: If every attempt failed, or the relay answered with a
                decision that cannot be parsed. A malformed decision is not retried.
        """
        if self.bot_id and event.bot_id is None:
            event.bot_id = self.bot_id

        payload = event.to_payload()
        key = make_idempotency_key(event.type, event.id, event.timestamp)
        last: HttpResponse[Any] | None = None

        for attempt in range(self.max_retries + 1):
            response = await self._post("/v1/relay/events", payload, idempotency_key=key)
            if response.ok:
                data = response.data if isinstance(response.data, dict) else {}
                decision = data.get("decision")
                if not isinstance(decision, dict):
                    return None
                try:
                    return Decision.from_payload(decision)
                except (TypeError, ValueError, OverflowError) as exc:
                    logger.error("[RELAY] Malformed decision for event %s: %s", event.id, exc)
                    raise RelayError(response.status, f"Malformed decision: {exc}") from exc

            last = response
            logger.debug(
                "[RELAY] Event %s attempt %d failed: %s %s", event.id, attempt + 1, response.status, response.error
            )
            if attempt < self.max_retries:
                await asyncio.sleep(RETRY_BACKOFF_SECONDS * (attempt + 1))

        raise RelayError(last.status if last else 0, last.error if last else None)

    def enqueue(self, event: RelayEvent) -> None:
        """Queue an event for background delivery, discarding the decision."""
        self._queue.append(event)
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain(), name="commandless:relay drain")

    async def _drain(self) -> None:
        while self._queue:
            event = self._queue.popleft()
            try:
                await self.send_event(event)
            except RelayError as exc:
                logger.warning("[RELAY] Dropping queued event %s: %s", event.id, exc)

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def close(self) -> None:
        """Wait for queued events, then close the HTTP session if this client created it."""
        if self._drain_task is not None and not self._drain_task.done():
            await self._drain_task
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
