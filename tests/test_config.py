from pathlib import Path

import pytest

from finance_tracker.config import Settings


def test_defaults(monkeypatch):
    for name in ("STORE_BACKEND", "CACHE_DIR", "APP_ID", "CURRENCY_SYMBOL", "MASTER_KEY"):
        monkeypatch.delenv(name, raising=False)
    s = Settings(_env_file=None)
    assert s.store_backend == "local"
    assert s.app_id == "default-app-id"
    assert s.currency_symbol == "$"
    assert s.ledger_dir == Path(".cache") / "ledger"
    s.validate_required()


def test_firebase_requires_credentials(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "firebase")
    monkeypatch.delenv("FIREBASE_API_KEY", raising=False)
    monkeypatch.delenv("FIREBASE_DATABASE_URL", raising=False)
    monkeypatch.delenv("MASTER_KEY", raising=False)
    with pytest.raises(ValueError):
        Settings(_env_file=None).validate_required()

    monkeypatch.setenv("FIREBASE_API_KEY", "k")
    monkeypatch.setenv("FIREBASE_DATABASE_URL", "https://demo.firebaseio.com")
    Settings(_env_file=None).validate_required()


def test_cache_dir_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("CACHE_DIR", str(tmp_path))
    s = Settings(_env_file=None)
    assert s.sessions_dir == tmp_path / "sessions"


def test_bad_master_key_rejected(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "local")
    monkeypatch.setenv("MASTER_KEY", "not-a-fernet-key")
    with pytest.raises(ValueError, match="MASTER_KEY"):
        Settings(_env_file=None).validate_required()


def test_valid_master_key_accepted(monkeypatch):
    from cryptography.fernet import Fernet

    monkeypatch.setenv("STORE_BACKEND", "local")
    monkeypatch.setenv("MASTER_KEY", Fernet.generate_key().decode())
    Settings(_env_file=None).validate_required()
