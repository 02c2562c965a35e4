"""
Client-side cache of a bot's relay configuration and the admission pipeline.

The cache holds the latest ``BotConfig`` fetched from the relay and answers,
for every inbound message, whether the bot should forward it. Refreshing runs
on a background poller and never blocks admission; admission is synchronous
and performs no I/O.

Overlapping fetches (a poll tick racing a forced re-fetch) are not
deduplicated. Each replaces the snapshot in a single assignment, so admission
never sees a partial config, and whichever fetch completes last wins.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import aiohttp

from commandless.cache.policy import check_policy, is_premium
from commandless.cache.rate_limit import WINDOW_MS, RateLimitWindow
from commandless.configuration.relay_settings import RelayCredentials
from commandless.datatypes.bot_config import BotConfig, PermissionMode
from commandless.datatypes.discord_datatypes import AdmissionVerdict, MessageContext, Snowflake, normalize_snowflake
from commandless.datatypes.relay_datatypes import HttpResponse
from commandless.errors import ConfigPayloadError
from commandless.relay.http import DEFAULT_TIMEOUT_SECONDS, get_json
from commandless.relay.signing import now_unix_ms
from commandless.scheduler.periodic_task import PeriodicTask
from commandless.util.logger import get_logger

logger = get_logger("config_cache")

FetchJson = Callable[[str, Dict[str, str], Dict[str, str]], Awaitable[HttpResponse[Any]]]
"""Transport signature: ``(url, headers, params) -> HttpResponse``."""

DEFAULT_POLL_INTERVAL_SECONDS = 30.0
DEFAULT_CLEANUP_INTERVAL_SECONDS = 300.0


class ConfigCache:
    """
    Latest known configuration for one bot plus its local rate-limit windows.

    Args:
        base_url: Relay base URL, without a trailing slash.
        credentials: API credentials used for the ``x-api-key`` header.
        fetch_json: Optional transport override; defaults to an aiohttp GET.
        clock: Returns the current time in epoch milliseconds.
        fail_open: Admission result before the first successful fetch. True
            allows every message during that bootstrap window, False denies.
        request_timeout: Seconds before a config request is abandoned.
    """

    def __init__(
        self,
        base_url: str,
        credentials: RelayCredentials,
        *,
        fetch_json: Optional[FetchJson] = None,
        clock: Callable[[], int] = now_unix_ms,
        fail_open: bool = True,
        request_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._fetch_json = fetch_json or self._aiohttp_fetch_json
        self._clock = clock
        self.fail_open = fail_open
        self._request_timeout = request_timeout
        self._session: aiohttp.ClientSession | None = None

        self._config: BotConfig | None = None
        self._bot_id: str | None = None
        self._forced_refetch_done = False
        self._closed = False
        self.last_fetch_changed = False

        self._user_windows = RateLimitWindow(WINDOW_MS, clock)
        self._server_windows = RateLimitWindow(WINDOW_MS, clock)

        self._poller: PeriodicTask | None = None
        self._janitor: PeriodicTask | None = None

    # --------------------------
    # Transport
    # --------------------------
    async def _aiohttp_fetch_json(
        self, url: str, headers: Dict[str, str], params: Dict[str, str]
    ) -> HttpResponse[Any]:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return await get_json(self._session, url, headers, params=params, timeout=self._request_timeout)

    # --------------------------
    # Config sync
    # --------------------------
    @property
    def bot_id(self) -> str | None:
        return self._bot_id

    def get_config(self) -> BotConfig | None:
        """Return the current snapshot, or None if no fetch has succeeded yet."""
        return self._config

    async def fetch(self, bot_id: Snowflake, *, force: bool = False) -> BotConfig | None:
        """
        Refresh the snapshot from the relay.

        The held version is sent so the relay can answer ``{"upToDate": true}``;
        in that case the existing snapshot object is kept and returned. Any
        other successful response replaces the snapshot wholesale.

        A freshly loaded ``premium_only`` config with no premium users triggers
        one forced re-fetch (version 0) to get past a stale relay response. This
        happens at most once per cache instance.

        Args:
            bot_id: Relay identifier of the bot.
            force: Send version 0 so the relay always returns a full config.

        Returns:
            BotConfig | None: The current snapshot, or None if the request failed,
            the response was malformed or the cache has been shut down. A
            failure never clears the snapshot.
        """
        if self._closed:
            logger.warning("[CONFIG CACHE] Fetch for bot %s ignored, cache is shut down", bot_id)
            return None

        bot_id = normalize_snowflake(bot_id)
        self._bot_id = bot_id
        version = 0 if force or self._config is None else self._config.version

        try:
            response = await self._fetch_json(
                f"{self._base_url}/v1/relay/config",
                {"x-api-key": self._credentials.api_key},
                {"botId": bot_id, "version": str(version)},
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[CONFIG CACHE] Error fetching config for bot %s: %s", bot_id, exc)
            return None

        if not response.ok:
            logger.error(
                "[CONFIG CACHE] Failed to fetch config for bot %s: %s %s",
                bot_id,
                response.status,
                response.error or "",
            )
            return None

        data = response.data
        if isinstance(data, Mapping) and data.get("upToDate"):
            if self._config is None:
                logger.warning("[CONFIG CACHE] Relay reported up to date but no config is cached for bot %s", bot_id)
                return None
            self.last_fetch_changed = False
            return self._config

        try:
            config = BotConfig.from_payload(data)
        except ConfigPayloadError as exc:
            logger.error("[CONFIG CACHE] Malformed config response for bot %s: %s", bot_id, exc)
            return None

        self._config = config
        self.last_fetch_changed = True
        logger.info(
            "[CONFIG CACHE] Config loaded (v%d) premium_user_ids=%d",
            config.version,
            len(config.premium_user_ids),
        )

        if (
            not self._forced_refetch_done
            and config.permission_mode is PermissionMode.PREMIUM_ONLY
            and not config.premium_user_ids
        ):
            self._forced_refetch_done = True
            logger.info("[CONFIG CACHE] premium_only with empty premium_user_ids, forcing one refetch")
            refetched = await self.fetch(bot_id, force=True)
            return refetched if refetched is not None else self._config

        return config

    async def _poll(self) -> None:
        if self._bot_id is not None:
            await self.fetch(self._bot_id)

    def start_polling(self, bot_id: Snowflake, interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS) -> None:
        """Fetch the config every ``interval_seconds``, replacing any running poller."""
        self.stop_polling()
        self._bot_id = normalize_snowflake(bot_id)
        self._poller = PeriodicTask("config poll", self._poll, interval_seconds)
        self._poller.start()
        logger.info("[CONFIG CACHE] Config polling started (%.0fs interval)", interval_seconds)

    def stop_polling(self) -> None:
        """Cancel the poller. Safe to call repeatedly or when none is running."""
        if self._poller is not None:
            self._poller.stop()
            self._poller = None

    @property
    def polling(self) -> bool:
        return self._poller is not None and self._poller.running

    # --------------------------
    # Admission
    # --------------------------
    def should_process_message(self, ctx: MessageContext) -> AdmissionVerdict:
        """
        Run the admission pipeline for one inbound message.

        Stages run in order and the first denial wins: master switch, channel
        policy, user/role policy, then the user and guild rate-limit windows.

        Args:
            ctx: Normalized message context from the platform adapter.

        Returns:
            AdmissionVerdict: ``allowed`` plus a human-readable ``reason`` on denial.
        """
        config = self._config
        if config is None:
            return AdmissionVerdict.allow() if self.fail_open else AdmissionVerdict.deny("Config not loaded")

        verdict = check_policy(config, ctx)
        if not verdict.allowed:
            return verdict

        return self._check_rate_limit(config, ctx)

    def _check_rate_limit(self, config: BotConfig, ctx: MessageContext) -> AdmissionVerdict:
        now = self._clock()

        user_limit = (
            config.premium_rate_limit
            if is_premium(config, ctx.author_id, ctx.member_roles)
            else config.free_rate_limit
        )
        if not self._user_windows.hit(f"user:{ctx.author_id}", user_limit, now):
            return AdmissionVerdict.deny(f"Rate limit ({user_limit}/hr)")

        if ctx.guild_id:
            server_limit = config.server_rate_limit
            if not self._server_windows.hit(f"server:{ctx.guild_id}", server_limit, now):
                return AdmissionVerdict.deny(f"Server rate limit ({server_limit}/hr)")

        return AdmissionVerdict.allow()

    # --------------------------
    # Rate-limit janitor
    # --------------------------
    @property
    def user_rate_limits(self) -> RateLimitWindow:
        return self._user_windows

    @property
    def server_rate_limits(self) -> RateLimitWindow:
        return self._server_windows

    def cleanup_rate_limits(self) -> int:
        """Evict expired windows from both namespaces. Returns the number removed."""
        now = self._clock()
        removed = self._user_windows.evict_expired(now) + self._server_windows.evict_expired(now)
        if removed:
            logger.debug("[CONFIG CACHE] Evicted %d expired rate-limit windows", removed)
        return removed

    async def _cleanup_tick(self) -> None:
        self.cleanup_rate_limits()

    def start_janitor(self, interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS) -> None:
        """Run :meth:`cleanup_rate_limits` every ``interval_seconds``."""
        self.stop_janitor()
        self._janitor = PeriodicTask("rate limit janitor", self._cleanup_tick, interval_seconds)
        self._janitor.start()

    def stop_janitor(self) -> None:
        if self._janitor is not None:
            self._janitor.stop()
            self._janitor = None

    async def shutdown(self) -> None:
        """Stop background tasks, wait for them, and close the owned HTTP session.

        The cache stays usable for admission afterwards, but :meth:`fetch`
        returns None without touching the network.
        """
        self._closed = True
        for task in (self._poller, self._janitor):
            if task is not None:
                await task.shutdown()
        self._poller = None
        self._janitor = None
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.info("[CONFIG CACHE] Config cache shutdown complete")
