from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from commandless.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()


class AppConfig:
    """File-lock based accessor around the YAML-based SDK configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    typed shortcuts for the relay section. A missing or unreadable file yields
    an empty mapping, so every shortcut falls back to its default.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found, using defaults.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            return {}
        return data

    def _relay_section(self) -> Dict[str, Any]:
        section = self._data.get("relay", {})
        return section if isinstance(section, dict) else {}

    def _relay_float(self, key: str, default: float) -> float:
        value = self._relay_section().get(key, default)
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] relay.%s=%r is not a number, using %s", key, value, default)
            return default
        return parsed if parsed > 0 else default

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping."""
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping (do not mutate)."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def relay_poll_interval(self) -> float:
        """Seconds between config polls. Default is 30 seconds."""
        return self._relay_float("poll_interval_seconds", 30.0)

    @property
    def rate_limit_cleanup_interval(self) -> float:
        """Seconds between rate-limit janitor runs. Default is 300 seconds (5 minutes)."""
        return self._relay_float("rate_limit_cleanup_seconds", 300.0)

    @property
    def heartbeat_interval(self) -> float:
        """Seconds between relay heartbeats. Default is 30 seconds."""
        return self._relay_float("heartbeat_interval_seconds", 30.0)

    @property
    def request_timeout(self) -> float:
        """Seconds before a relay request is abandoned. Default is 15 seconds."""
        return self._relay_float("request_timeout_seconds", 15.0)

    @property
    def fail_open(self) -> bool:
        """Whether messages are admitted before the first config fetch succeeds.

        Defaults to True. Set ``relay.fail_open: false`` for a fail-closed
        deployment that ignores every message until a config is loaded.
        """
        return bool(self._relay_section().get("fail_open", True))

    @property
    def mention_required(self) -> bool:
        """Adapter-side mention requirement, combined with the relay config's own flag."""
        return bool(self._relay_section().get("mention_required", True))


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
