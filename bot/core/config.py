from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv


class ConfigError(RuntimeError):
    pass


@dataclass(slots=True)
class DiscordConfig:
    token: str
    prefix: str = "/"
    application_id: int | None = None
    status_text: str = "Support inbox"
    activity_type: str = "watching"


@dataclass(slots=True)
class StaffChatConfig:
    chat_id: int | None = None
    is_forum: bool = False
    admin_role_names: list[str] = field(default_factory=lambda: ["admin", "staff", "support"])
    category_channels: dict[str, int] = field(default_factory=dict)

    def category_for_channel(self, channel_id: int | None) -> str | None:
        if channel_id is None:
            return None
        for category, mapped_id in self.category_channels.items():
            if mapped_id == channel_id:
                return category
        return None


@dataclass(slots=True)
class DatabaseConfig:
    url: str = "sqlite:///./data/tickets.db"
    pool_min_size: int = 2
    pool_max_size: int = 10
    timeout_seconds: int = 30


@dataclass(slots=True)
class RedisConfig:
    enabled: bool = False
    url: str = "redis://localhost:6379/0"
    default_ttl: int = 120


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    directory: str = "logs"
    file_name: str = "bot.log"
    max_bytes: int = 10_000_000
    backup_count: int = 10
    json_console: bool = False


@dataclass(slots=True)
class SecurityConfig:
    inbound_messages_per_10s: int = 8


@dataclass(slots=True)
class FastApiConfig:
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str = ""


@dataclass(slots=True)
class I18NConfig:
    default_locale: str = "en-US"


@dataclass(slots=True)
class AppConfig:
    discord: DiscordConfig
    staff_chat: StaffChatConfig = field(default_factory=StaffChatConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    fastapi: FastApiConfig = field(default_factory=FastApiConfig)
    i18n: I18NConfig = field(default_factory=I18NConfig)
    enabled_extensions: list[str] = field(
        default_factory=lambda: [
            "cogs.events",
            "cogs.staff",
        ]
    )


def _get_env_str(key: str, fallback: str | None = None) -> str | None:
    value = os.getenv(key)
    if value is None:
        return fallback
    cleaned = value.strip()
    return cleaned if cleaned else fallback


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _deep_get(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    node: Any = data
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    return raw


def _load_staff_chat(raw: dict[str, Any]) -> StaffChatConfig:
    chat_id = _as_optional_int(_get_env_str("STAFF_CHAT_ID", _deep_get(raw, "staff_chat", "chat_id")))
    category_channels = _deep_get(raw, "staff_chat", "category_channels", default={})
    if not isinstance(category_channels, dict):
        raise ConfigError("staff_chat.category_channels must be a mapping")
    return StaffChatConfig(
        chat_id=chat_id,
        is_forum=_as_bool(
            _get_env_str("STAFF_CHAT_IS_FORUM"),
            _as_bool(_deep_get(raw, "staff_chat", "is_forum"), False),
        ),
        admin_role_names=[
            str(name).lower()
            for name in list(
                _deep_get(raw, "staff_chat", "admin_role_names", default=["admin", "staff", "support"])
            )
        ],
        category_channels={str(key): int(val) for key, val in category_channels.items()},
    )


def load_config(config_path: Path) -> AppConfig:
    env_path = config_path.parent.parent / ".env"
    load_dotenv(env_path)
    raw = _load_yaml(config_path)

    discord_token = _get_env_str("DISCORD_TOKEN", _deep_get(raw, "discord", "token"))
    if not discord_token or "${" in discord_token:
        raise ConfigError("DISCORD_TOKEN is required")

    discord_cfg = DiscordConfig(
        token=discord_token,
        prefix=str(_get_env_str("BOT_PREFIX", _deep_get(raw, "discord", "prefix", default="/"))),
        application_id=_as_optional_int(
            _get_env_str("DISCORD_APPLICATION_ID", _deep_get(raw, "discord", "application_id"))
        ),
        status_text=str(_deep_get(raw, "discord", "status_text", default="Support inbox")),
        activity_type=str(_deep_get(raw, "discord", "activity_type", default="watching")),
    )

    database_cfg = DatabaseConfig(
        url=str(_get_env_str("DATABASE_URL", _deep_get(raw, "database", "url", default="sqlite:///./data/tickets.db"))),
        pool_min_size=_as_int(
            _get_env_str("DB_POOL_MIN", None),
            _as_int(_deep_get(raw, "database", "pool_min_size"), 2),
        ),
        pool_max_size=_as_int(
            _get_env_str("DB_POOL_MAX", None),
            _as_int(_deep_get(raw, "database", "pool_max_size"), 10),
        ),
        timeout_seconds=_as_int(
            _get_env_str("DB_TIMEOUT_SECONDS", None),
            _as_int(_deep_get(raw, "database", "timeout_seconds"), 30),
        ),
    )

    redis_cfg = RedisConfig(
        enabled=_as_bool(_get_env_str("REDIS_ENABLED"), _as_bool(_deep_get(raw, "redis", "enabled"), False)),
        url=str(_get_env_str("REDIS_URL", _deep_get(raw, "redis", "url", default="redis://localhost:6379/0"))),
        default_ttl=_as_int(
            _get_env_str("REDIS_DEFAULT_TTL", None),
            _as_int(_deep_get(raw, "redis", "default_ttl"), 120),
        ),
    )

    logging_cfg = LoggingConfig(
        level=str(_get_env_str("LOG_LEVEL", _deep_get(raw, "logging", "level", default="INFO"))),
        directory=str(_deep_get(raw, "logging", "directory", default="logs")),
        file_name=str(_deep_get(raw, "logging", "file_name", default="bot.log")),
        max_bytes=_as_int(_deep_get(raw, "logging", "max_bytes"), 10_000_000),
        backup_count=_as_int(_deep_get(raw, "logging", "backup_count"), 10),
        json_console=_as_bool(_deep_get(raw, "logging", "json_console"), False),
    )

    security_cfg = SecurityConfig(
        inbound_messages_per_10s=_as_int(_deep_get(raw, "security", "inbound_messages_per_10s"), 8),
    )

    fastapi_cfg = FastApiConfig(
        enabled=_as_bool(_deep_get(raw, "fastapi", "enabled"), False),
        host=str(_deep_get(raw, "fastapi", "host", default="0.0.0.0")),
        port=_as_int(_deep_get(raw, "fastapi", "port"), 8000),
        api_key=str(_get_env_str("API_KEY", _deep_get(raw, "fastapi", "api_key", default=""))),
    )

    i18n_cfg = I18NConfig(
        default_locale=str(_deep_get(raw, "i18n", "default_locale", default="en-US")),
    )

    enabled_extensions = [
        str(ext)
        for ext in list(
            _deep_get(
                raw,
                "enabled_extensions",
                default=[
                    "cogs.events",
                    "cogs.staff",
                ],
            )
        )
    ]

    return AppConfig(
        discord=discord_cfg,
        staff_chat=_load_staff_chat(raw),
        database=database_cfg,
        redis=redis_cfg,
        logging=logging_cfg,
        security=security_cfg,
        fastapi=fastapi_cfg,
        i18n=i18n_cfg,
        enabled_extensions=enabled_extensions,
    )
