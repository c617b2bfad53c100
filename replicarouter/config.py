"""App configuration loading helpers."""

from __future__ import annotations

import os
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .models import DatabaseProfile, SslMode

CONFIG_FILE = Path.home() / ".config" / "replicarouter" / "config.toml"


class LoggingConfig(BaseModel):
    """Log level and optional on-disk log directory."""

    level: str = "INFO"
    directory: str | None = None


class DatabaseProfileConfig(BaseModel):
    """Database profile stored in config.toml."""

    name: str
    host: str = "localhost"
    port: int = 3306
    user: str = ""
    password: str = ""
    password_env: str | None = None
    ssl_mode: SslMode = SslMode.NONE
    timeout_seconds: int = Field(default=30, ge=1)
    is_default: bool = False
    order: int = 0

    def to_profile(self) -> DatabaseProfile:
        """Materialise the runtime profile, resolving `password_env` if set."""

        password = self.password
        if self.password_env:
            password = os.environ.get(self.password_env, password)
        return DatabaseProfile(
            name=self.name,
            host=self.host,
            port=self.port,
            user=self.user,
            password=password,
            ssl_mode=self.ssl_mode,
            timeout_seconds=self.timeout_seconds,
            is_default=self.is_default,
            order=self.order,
        )


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    version: int = 1
    profiles: list[DatabaseProfileConfig] = Field(default_factory=lambda: list(_default_profiles()))
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def ordered_profiles(self) -> tuple[DatabaseProfile, ...]:
        """Runtime profiles sorted by priority; ties keep file order."""

        ordered = sorted(self.profiles, key=lambda profile: profile.order)
        return tuple(profile.to_profile() for profile in ordered)

    def default_profile(self) -> DatabaseProfile | None:
        for profile in self.profiles:
            if profile.is_default:
                return profile.to_profile()
        ordered = self.ordered_profiles()
        return ordered[0] if ordered else None

    def is_valid(self) -> bool:
        """True when at least one profile exists and one is marked default."""

        return bool(self.profiles) and any(profile.is_default for profile in self.profiles)

    def with_profile(self, profile: DatabaseProfileConfig) -> AppConfig:
        """Return a copy with the profile added, replacing any with the same name."""

        profiles = [entry for entry in self.profiles if entry.name != profile.name]
        profiles.append(profile)
        return self.model_copy(update={"profiles": profiles})

    def without_profile(self, name: str) -> AppConfig:
        """Return a copy with the named profile removed."""

        profiles = [entry for entry in self.profiles if entry.name != name]
        return self.model_copy(update={"profiles": profiles})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()

    profiles_data = data.get("profiles")
    profiles: list[DatabaseProfileConfig] | None = None
    if isinstance(profiles_data, list):
        profiles = []
        for entry in profiles_data:
            try:
                profiles.append(DatabaseProfileConfig(**entry))
            except ValidationError:
                continue

    return AppConfig(
        version=data.get("version", AppConfig.model_fields["version"].default),
        profiles=profiles if profiles else list(_default_profiles()),
        logging=data.get("logging", LoggingConfig()),
    )


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [f"version = {config.version}"]
    lines.append("")
    lines.append("[logging]")
    lines.append(f'level = "{config.logging.level}"')
    if config.logging.directory:
        lines.append(f"directory = {_quote(config.logging.directory)}")
    if config.profiles:
        lines.append("")
        for profile in config.profiles:
            lines.append("[[profiles]]")
            lines.append(f"name = {_quote(profile.name)}")
            lines.append(f"host = {_quote(profile.host)}")
            lines.append(f"port = {profile.port}")
            if profile.user:
                lines.append(f"user = {_quote(profile.user)}")
            if profile.password_env:
                lines.append(f"password_env = {_quote(profile.password_env)}")
            elif profile.password:
                lines.append(f"password = {_quote(profile.password)}")
            lines.append(f'ssl_mode = "{profile.ssl_mode.value}"')
            lines.append(f"timeout_seconds = {profile.timeout_seconds}")
            lines.append(f"is_default = {str(profile.is_default).lower()}")
            lines.append(f"order = {profile.order}")
            lines.append("")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if isinstance(raw, dict):
        version = raw.get("version")
        if isinstance(version, int):
            data["version"] = version
        profiles = raw.get("profiles")
        if isinstance(profiles, list):
            parsed_profiles: list[dict[str, object]] = []
            for profile in profiles:
                if not isinstance(profile, dict):
                    continue
                parsed: dict[str, object] = {}
                for key in ("name", "host", "user", "password", "password_env", "ssl_mode"):
                    value = profile.get(key)
                    if isinstance(value, str):
                        parsed[key] = value
                for key in ("port", "timeout_seconds", "order"):
                    value = profile.get(key)
                    if isinstance(value, int) and not isinstance(value, bool):
                        parsed[key] = value
                is_default = profile.get("is_default")
                if isinstance(is_default, bool):
                    parsed["is_default"] = is_default
                if parsed.get("name"):
                    parsed_profiles.append(parsed)
            if parsed_profiles:
                data["profiles"] = parsed_profiles
        logging_section = raw.get("logging")
        if isinstance(logging_section, dict):
            state: dict[str, object] = {}
            level = logging_section.get("level")
            if isinstance(level, str):
                state["level"] = level.upper()
            directory = logging_section.get("directory")
            if isinstance(directory, str):
                state["directory"] = directory
            data["logging"] = LoggingConfig(**state)
    return data


def _default_profiles() -> tuple[DatabaseProfileConfig, ...]:
    """Default profile shown on first run before config is customized."""

    return (
        DatabaseProfileConfig(
            name="Default Server",
            host="localhost",
            port=3306,
            user="root",
            is_default=True,
            order=0,
        ),
    )


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "DatabaseProfileConfig",
    "LoggingConfig",
    "load_config",
    "save_config",
]
