from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict, List, Optional
import yaml

from modblox.datatypes.discord_datatypes import GuildID, RoleID
from modblox.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

DEFAULT_DATABASE_PATH = "./data/modblox.db"
DEFAULT_MOD_LOG_KEYWORDS = ("mod-log", "moderation-log", "audit-log")


def _int_list(value: Any) -> List[int]:
    if not isinstance(value, list):
        return []
    result: List[int] = []
    for item in value:
        try:
            result.append(int(item))
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] Ignoring non-numeric id %r", item)
    return result


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    typed shortcuts for the settings the bot reads at startup. fcntl locks
    keep reads safe while another process rewrites the file.
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
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        value = self._data.get(name, {})
        return value if isinstance(value, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Re-read the YAML file, replace the cache, and return the new mapping.

        An unreadable file yields an empty mapping and every shortcut falls
        back to its default.
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """SQLite file holding the ledger, users and level roles."""
        value = self._section("database").get("path") or DEFAULT_DATABASE_PATH
        return Path(str(value)).resolve()

    @property
    def staff_role_ids(self) -> List[RoleID]:
        """Roles allowed to run staff commands; empty means Discord permissions alone decide."""
        return [RoleID(role_id) for role_id in _int_list(self._section("staff").get("role_ids"))]

    @property
    def staff_guild_id(self) -> Optional[GuildID]:
        """When set, staff roles only count inside this guild."""
        value = self._section("staff").get("guild_id")
        try:
            return GuildID(int(value)) if value else None
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] Invalid staff.guild_id %r", value)
            return None

    @property
    def mod_log_channel_keywords(self) -> List[str]:
        """Channel name fragments searched, in order, for the moderation log channel."""
        value = self._section("moderation").get("log_channel_keywords")
        if isinstance(value, list) and value:
            return [str(item).lower() for item in value]
        return list(DEFAULT_MOD_LOG_KEYWORDS)

    @property
    def dm_targets(self) -> bool:
        """Whether moderated users receive a DM describing the action."""
        return bool(self._section("moderation").get("dm_targets", True))

    @property
    def community_group_ids(self) -> List[int]:
        """Roblox groups reported by ``/check``; empty means every group."""
        return _int_list(self._section("roblox").get("community_group_ids"))

    @property
    def verification_code_ttl_seconds(self) -> int:
        value = self._section("verification").get("code_ttl_seconds", 600)
        try:
            return max(1, int(value))
        except (TypeError, ValueError):
            return 600

    @property
    def leveling(self) -> Dict[str, Any]:
        """Raw ``leveling`` section."""
        return self._section("leveling")

    @property
    def leveling_enabled(self) -> bool:
        return bool(self.leveling.get("enabled", True))

    @property
    def level_roles(self) -> Dict[int, RoleID]:
        """Level to reward role mapping seeded from the config."""
        raw = self.leveling.get("level_roles", {})
        if not isinstance(raw, dict):
            return {}
        roles: Dict[int, RoleID] = {}
        for level, role_id in raw.items():
            try:
                roles[int(level)] = RoleID(int(role_id))
            except (TypeError, ValueError):
                logger.warning("[APP CONFIGURATION] Ignoring level role %r -> %r", level, role_id)
        return roles


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
