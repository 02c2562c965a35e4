"""Exception types raised by the Commandless SDK."""


class CommandlessError(Exception):
    """Base class for all SDK errors."""


class ConfigPayloadError(CommandlessError, ValueError):
    """Raised when a relay config response cannot be parsed into a BotConfig."""


class RelayError(CommandlessError):
    """Raised when an event could not be delivered to the relay after all retries.

    Attributes:
        status (int): Last HTTP status seen, or 0 for a network-level failure.
        detail (str | None): Response body or error message from the last attempt.
    """

    def __init__(self, status: int, detail: str | None = None) -> None:
        self.status = status
        self.detail = detail
        super().__init__(f"Commandless error ({status}): {detail or 'unknown'}")


class MissingSettingError(CommandlessError):
    """Raised when a required environment setting is absent."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Missing required env: {name}")
