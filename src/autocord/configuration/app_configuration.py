from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from autocord.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

POLICY_FIRE_ALL = "fire_all"
POLICY_FIRST_MATCH = "first_match"


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml`` and exposes typed
    properties for the engine's tunables. Uses fcntl file locks for safe
    concurrent access across processes.
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
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found, using defaults.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping. Callers should not mutate it."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """Path of the SQLite file backing the state store."""
        value = self._section("database").get("path") or "data/autocord.db"
        return Path(str(value)).resolve()

    @property
    def transient_delete_seconds(self) -> float:
        """Delay before a transient message is deleted. Default is 10 seconds."""
        return float(self._section("actions").get("transient_delete_seconds", 10.0))

    @property
    def default_timeout_minutes(self) -> int:
        """Timeout length used by Moderate actions that omit a duration."""
        return int(self._section("actions").get("default_timeout_minutes", 10))

    @property
    def automation_policy(self) -> str:
        """Whether automation rules fire every match or stop at the first one."""
        value = str(self._section("engine").get("automation_policy", POLICY_FIRE_ALL))
        if value not in (POLICY_FIRE_ALL, POLICY_FIRST_MATCH):
            logger.warning("[APP CONFIGURATION] Unknown automation_policy %r, using %s", value, POLICY_FIRE_ALL)
            return POLICY_FIRE_ALL
        return value

    @property
    def filter_log_truncate(self) -> int:
        """Maximum characters of offending content echoed in filter notices."""
        return int(self._section("filters").get("log_truncate", 1000))


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
