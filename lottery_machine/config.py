from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import os
import yaml

from .exclusion import IDENTITY_KEYS
from .models import Candidate, Reward

MIN_HIGHLIGHT_DURATION = 0.5
MAX_HIGHLIGHT_DURATION = 10.0


class ConfigError(RuntimeError):
    """Raised when the configuration file is invalid."""


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    logger_channel_id: Optional[int] = None


@dataclass(slots=True)
class StorageConfig:
    path: Path = Path("data") / "lottery.sqlite"


@dataclass(slots=True)
class DrawSettings:
    highlight_duration: float = 1.0
    tick_interval: float = 0.1
    round_pause: float = 0.5
    identity: str = "name"


@dataclass(slots=True)
class PermissionsConfig:
    admin_roles: List[int] = field(default_factory=list)
    development_guild_id: Optional[int] = None


@dataclass(slots=True)
class SeedReward:
    name: str
    category: str
    quota: int
    candidates: List[str]

    def to_reward(self) -> Reward:
        return Reward(
            name=self.name,
            category=self.category,
            quota=self.quota,
            pool=[Candidate(name=name) for name in self.candidates],
        )


@dataclass(slots=True)
class Config:
    token: str
    application_id: int
    logging: LoggingConfig
    storage: StorageConfig
    draw: DrawSettings
    permissions: PermissionsConfig
    rewards: List[SeedReward]


def _require(data: Dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ConfigError(f"Missing required config key: {key}")
    return data[key]

def _resolve_env_value(value: str, key: str) -> str:
    trimmed = value.strip()
    if trimmed.startswith("${") and trimmed.endswith("}"):
        env_name = trimmed[2:-1].strip()
        if not env_name:
            raise ConfigError(f"Environment reference for '{key}' is empty.")
        env_value = os.getenv(env_name)
        if env_value is None:
            raise ConfigError(
                f"Environment variable '{env_name}' referenced by '{key}' is not set."
            )
        return env_value
    return value


def validate_highlight_duration(value: Any, key: str = "draw.highlight_duration") -> float:
    try:
        duration = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number of seconds.") from exc
    if not MIN_HIGHLIGHT_DURATION <= duration <= MAX_HIGHLIGHT_DURATION:
        raise ConfigError(
            f"{key} must be between {MIN_HIGHLIGHT_DURATION} and "
            f"{MAX_HIGHLIGHT_DURATION} seconds."
        )
    return duration


def _positive_float(data: Dict[str, Any], key: str, default: float) -> float:
    raw = data.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"draw.{key} must be a number.") from exc
    if value <= 0:
        raise ConfigError(f"draw.{key} must be greater than zero.")
    return value


def _parse_logging(data: Dict[str, Any]) -> LoggingConfig:
    level = data.get("level", "INFO")
    logger_channel_id = data.get("logger_channel_id")
    if logger_channel_id is not None and not isinstance(logger_channel_id, int):
        raise ConfigError(
            "logging.logger_channel_id must be an integer channel ID or null."
        )
    return LoggingConfig(level=str(level), logger_channel_id=logger_channel_id)


def _parse_storage(data: Dict[str, Any]) -> StorageConfig:
    raw_path = data.get("path")
    if raw_path in (None, ""):
        return StorageConfig()
    return StorageConfig(path=Path(str(raw_path)))


def _parse_draw(data: Dict[str, Any]) -> DrawSettings:
    defaults = DrawSettings()
    highlight_duration = validate_highlight_duration(
        data.get("highlight_duration", defaults.highlight_duration)
    )
    tick_interval = _positive_float(data, "tick_interval", defaults.tick_interval)
    round_pause = _positive_float(data, "round_pause", defaults.round_pause)
    identity = str(data.get("identity", defaults.identity))
    if identity not in IDENTITY_KEYS:
        raise ConfigError(
            f"draw.identity must be one of {sorted(IDENTITY_KEYS)}, got {identity!r}."
        )
    return DrawSettings(
        highlight_duration=highlight_duration,
        tick_interval=tick_interval,
        round_pause=round_pause,
        identity=identity,
    )


def _parse_permissions(data: Dict[str, Any]) -> PermissionsConfig:
    admin_roles_raw = data.get("admin_roles", [])
    if not isinstance(admin_roles_raw, list):
        raise ConfigError("permissions.admin_roles must be a list of role IDs.")
    admin_roles: List[int] = []
    for role_id in admin_roles_raw:
        try:
            admin_roles.append(int(role_id))
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                f"permissions.admin_roles contains invalid role id: {role_id!r}"
            ) from exc
    dev_guild_raw = data.get("development_guild_id")
    development_guild_id: Optional[int]
    if dev_guild_raw in (None, "", 0):
        development_guild_id = None
    else:
        try:
            development_guild_id = int(dev_guild_raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                "permissions.development_guild_id must be an integer guild ID or null."
            ) from exc
        if development_guild_id <= 0:
            raise ConfigError(
                "permissions.development_guild_id must be a positive integer."
            )
    return PermissionsConfig(
        admin_roles=admin_roles, development_guild_id=development_guild_id
    )


def _parse_rewards(entries: Any) -> List[SeedReward]:
    if not isinstance(entries, list):
        raise ConfigError("rewards must be a list.")

    rewards: List[SeedReward] = []
    seen_names: set[str] = set()
    for entry in entries:
        if not isinstance(entry, dict):
            raise ConfigError("Each reward entry must be an object.")
        try:
            name = str(_require(entry, "name")).strip()
            category = str(entry.get("category", "") or "")
            quota = int(entry.get("quota", 1))
            candidates_raw = entry.get("candidates", [])
            if not isinstance(candidates_raw, list):
                raise TypeError
            candidates = [str(value).strip() for value in candidates_raw]
        except (ValueError, TypeError) as exc:
            raise ConfigError(f"Invalid reward entry: {entry}") from exc

        if not name:
            raise ConfigError("rewards[].name must not be empty.")
        if quota <= 0:
            raise ConfigError(f"rewards[{name}].quota must be greater than zero.")
        if name.lower() in seen_names:
            raise ConfigError(f"Duplicate reward name detected: {name}")
        seen_names.add(name.lower())

        unique: List[str] = []
        for candidate in candidates:
            if candidate and candidate not in unique:
                unique.append(candidate)
        rewards.append(
            SeedReward(name=name, category=category, quota=quota, candidates=unique)
        )
    return rewards


def parse_config(data: Dict[str, Any]) -> Config:
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping at the root.")

    token_raw = str(_require(data, "token"))
    token = _resolve_env_value(token_raw, "token").strip()
    if not token:
        raise ConfigError("token must not be empty.")
    try:
        application_id = int(_require(data, "application_id"))
    except (TypeError, ValueError) as exc:
        raise ConfigError("application_id must be an integer.") from exc

    return Config(
        token=token,
        application_id=application_id,
        logging=_parse_logging(data.get("logging") or {}),
        storage=_parse_storage(data.get("storage") or {}),
        draw=_parse_draw(data.get("draw") or {}),
        permissions=_parse_permissions(data.get("permissions") or {}),
        rewards=_parse_rewards(data.get("rewards") or []),
    )


def load_config(path: Path) -> Config:
    if not path.exists():
        raise ConfigError(f"Config file {path} does not exist.")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return parse_config(data)
