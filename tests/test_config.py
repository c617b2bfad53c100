"""Tests for AppConfig helpers."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from replicarouter import config as config_module
from replicarouter.config import AppConfig, DatabaseProfileConfig, LoggingConfig, load_config, save_config
from replicarouter.models import SslMode
from replicarouter.profiles import ConfigProfileSource


def test_default_config_has_one_default_profile() -> None:
    config = AppConfig()

    assert [profile.name for profile in config.profiles] == ["Default Server"]
    assert config.is_valid() is True
    assert config.default_profile().port == 3306


def test_ordered_profiles_sorts_by_order_and_keeps_ties_stable() -> None:
    config = AppConfig(
        profiles=[
            DatabaseProfileConfig(name="late", order=5),
            DatabaseProfileConfig(name="first-tie", order=1),
            DatabaseProfileConfig(name="second-tie", order=1),
        ]
    )

    ordered = config.ordered_profiles()

    assert [profile.name for profile in ordered] == ["first-tie", "second-tie", "late"]


def test_default_profile_falls_back_to_highest_priority() -> None:
    config = AppConfig(profiles=[DatabaseProfileConfig(name="b", order=2), DatabaseProfileConfig(name="a", order=1)])

    assert config.is_valid() is False
    assert config.default_profile().name == "a"


def test_timeout_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        DatabaseProfileConfig(name="bad", timeout_seconds=0)


def test_password_env_overrides_stored_password(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPLICA_PASSWORD", "from-env")
    profile = DatabaseProfileConfig(name="Replica", password="stored", password_env="REPLICA_PASSWORD")

    assert profile.to_profile().password == "from-env"


def test_password_env_falls_back_when_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REPLICA_PASSWORD", raising=False)
    profile = DatabaseProfileConfig(name="Replica", password="stored", password_env="REPLICA_PASSWORD")

    assert profile.to_profile().password == "stored"


def test_with_profile_replaces_by_name() -> None:
    config = AppConfig(profiles=[DatabaseProfileConfig(name="A", port=3306)])

    updated = config.with_profile(DatabaseProfileConfig(name="A", port=3307)).with_profile(
        DatabaseProfileConfig(name="B")
    )

    assert [(profile.name, profile.port) for profile in updated.profiles] == [("A", 3307), ("B", 3306)]
    assert [profile.name for profile in updated.without_profile("A").profiles] == ["B"]
    assert config.profiles[0].port == 3306


def test_load_config_returns_defaults_when_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")

    result = load_config()

    assert result == AppConfig()


def test_load_config_reads_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
version = 2

[logging]
level = "debug"
directory = "/var/log/replicarouter"

[[profiles]]
name = "Backup"
host = "10.0.0.2"
port = 3307
order = 2

[[profiles]]
name = "Primary"
host = "10.0.0.1"
user = "app"
ssl_mode = "required"
timeout_seconds = 10
is_default = true
order = 1
"""
    )
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result.version == 2
    assert result.logging == LoggingConfig(level="DEBUG", directory="/var/log/replicarouter")
    assert [profile.name for profile in result.ordered_profiles()] == ["Primary", "Backup"]
    primary = result.default_profile()
    assert primary.ssl_mode is SslMode.REQUIRED
    assert primary.timeout_seconds == 10
    assert primary.user == "app"


def test_load_config_skips_invalid_profiles(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
[[profiles]]
name = "Broken"
timeout_seconds = 0

[[profiles]]
name = "Working"
"""
    )
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert [profile.name for profile in result.profiles] == ["Working"]


def test_load_config_handles_toml_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("version = [unterminated")
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result == AppConfig()


def test_save_config_round_trips_through_load(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "nested" / "config.toml"
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    save_config(
        AppConfig(
            logging=LoggingConfig(level="WARNING", directory="C:\\logs"),
            profiles=[
                DatabaseProfileConfig(
                    name='Studio "A"',
                    host="studio-a",
                    user="air",
                    password="secret",
                    ssl_mode=SslMode.VERIFY_CA,
                    is_default=True,
                ),
                DatabaseProfileConfig(name="Studio B", password="ignored", password_env="STUDIO_B_PW", order=1),
            ],
        )
    )

    content = config_path.read_text()
    assert "[[profiles]]" in content
    assert 'password_env = "STUDIO_B_PW"' in content
    assert "ignored" not in content
    loaded = load_config()
    assert loaded.logging.directory == "C:\\logs"
    assert loaded.profiles[0].name == 'Studio "A"'
    assert loaded.profiles[0].password == "secret"
    assert loaded.profiles[0].ssl_mode is SslMode.VERIFY_CA
    assert loaded.profiles[1].password_env == "STUDIO_B_PW"


def test_config_profile_source_rereads_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)
    source = ConfigProfileSource()

    before = source.profiles()
    save_config(AppConfig(profiles=[DatabaseProfileConfig(name="Replica 1"), DatabaseProfileConfig(name="Replica 2")]))
    after = source.profiles()

    assert [profile.name for profile in before] == ["Default Server"]
    assert [profile.name for profile in after] == ["Replica 1", "Replica 2"]
