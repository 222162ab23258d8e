from __future__ import annotations

from datetime import timedelta

import pytest

from pdvsync.core.config import SyncConfig, load_sync_config_from_env

ENV_VARS = (
    "PDVSYNC_DATABASE_URL",
    "PDVSYNC_REMOTE",
    "PDVSYNC_FIREBASE_URL",
    "PDVSYNC_FIREBASE_AUTH",
    "PDVSYNC_ORDERS_PATH",
    "PDVSYNC_TIMEZONE",
    "PDVSYNC_STALENESS_MINUTES",
    "PDVSYNC_MAX_ADMISSIONS",
    "PDVSYNC_RECENCY_GUARD_SECONDS",
    "PDVSYNC_IMPORT_COOLDOWN_SECONDS",
    "PDVSYNC_FETCH_TIMEOUT_SECONDS",
    "PDVSYNC_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_memory_remote_uses_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PDVSYNC_REMOTE", "memory")

    config = load_sync_config_from_env()

    assert config == SyncConfig(remote="memory")
    assert config.staleness_window == timedelta(hours=2)
    assert config.recency_guard == timedelta(seconds=10)
    assert config.import_cooldown == timedelta(minutes=5)
    assert config.tz.key == "America/Sao_Paulo"


def test_firebase_remote_requires_url() -> None:
    with pytest.raises(ValueError, match="PDVSYNC_FIREBASE_URL"):
        load_sync_config_from_env()


def test_firebase_settings_are_read(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PDVSYNC_FIREBASE_URL", "https://shop.firebaseio.com")
    monkeypatch.setenv("PDVSYNC_FIREBASE_AUTH", "secret")
    monkeypatch.setenv("PDVSYNC_ORDERS_PATH", "/online-orders/")
    monkeypatch.setenv("PDVSYNC_MAX_ADMISSIONS", "25")
    monkeypatch.setenv("PDVSYNC_LOG_LEVEL", "debug")

    config = load_sync_config_from_env()

    assert config.remote == "firebase"
    assert config.firebase_url == "https://shop.firebaseio.com"
    assert config.firebase_auth == "secret"
    assert config.orders_path == "online-orders"
    assert config.max_admissions == 25
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("PDVSYNC_REMOTE", "kafka"),
        ("PDVSYNC_STALENESS_MINUTES", "soon"),
        ("PDVSYNC_MAX_ADMISSIONS", "0"),
        ("PDVSYNC_RECENCY_GUARD_SECONDS", "-1"),
        ("PDVSYNC_TIMEZONE", "Mars/Olympus_Mons"),
        ("PDVSYNC_LOG_LEVEL", "LOUD"),
    ],
)
def test_invalid_values_name_the_variable(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str
) -> None:
    monkeypatch.setenv("PDVSYNC_REMOTE", "memory")
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=name):
        load_sync_config_from_env()
