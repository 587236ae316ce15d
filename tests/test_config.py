# tests/test_config.py
"""Tests for settings validation and sender selection."""
from __future__ import annotations

import pytest

from jobpush.config import Settings, validate_or_warn, warn_on_risky_config


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestProductionValidation:

    def test_dev_requires_nothing(self):
        assert _settings(app_env="dev").validate_required_for_production() == []

    def test_prod_requires_token_and_service_account(self):
        missing = _settings(
            app_env="prod", trigger_token=None, fcm_service_account_file=None, fcm_service_account_json=None,
        ).validate_required_for_production()
        assert missing == ["trigger_token", "fcm_service_account"]

    def test_prod_rejects_static_fcm_token(self):
        missing = _settings(
            app_env="prod", trigger_token="t", fcm_project_id="proj", fcm_access_token="static",
            fcm_service_account_file=None, fcm_service_account_json=None,
        ).validate_required_for_production()
        assert missing == ["fcm_service_account"]

    def test_prod_with_service_account_file(self):
        missing = _settings(
            app_env="prod", trigger_token="t", fcm_service_account_file="/secrets/fcm.json",
        ).validate_required_for_production()
        assert missing == []

    def test_prod_with_push_disabled_needs_only_token(self):
        missing = _settings(
            app_env="prod", push_provider="disabled", trigger_token=None,
        ).validate_required_for_production()
        assert missing == ["trigger_token"]

    def test_validate_or_warn_fails_hard_in_prod(self):
        with pytest.raises(RuntimeError, match="trigger_token"):
            validate_or_warn(_settings(app_env="prod", trigger_token=None))

    def test_validate_or_warn_logs_in_dev(self, caplog):
        validate_or_warn(_settings(app_env="dev", trigger_token=None))
        assert "trigger_token is not set" in caplog.text


class TestRiskyConfig:

    def test_chunk_size_above_limit(self):
        warnings = warn_on_risky_config(_settings(fcm_multicast_chunk_size=1000))
        assert any("multicast limit" in w for w in warnings)

    def test_fcm_without_credentials(self):
        warnings = warn_on_risky_config(_settings(
            fcm_project_id=None, fcm_access_token=None, fcm_service_account_file=None, fcm_service_account_json=None,
        ))
        assert any("fcm_service_account_file" in w for w in warnings)

    def test_static_token_warns(self):
        warnings = warn_on_risky_config(_settings(
            fcm_project_id="proj", fcm_access_token="static", fcm_service_account_file=None, fcm_service_account_json=None,
        ))
        assert any("static" in w for w in warnings)


class TestDerivedSettings:

    def test_dsn_from_parts(self):
        s = _settings(database_url=None, pguser="u", pgpassword="p", pghost="db", pgport=6543, pgdatabase="app")
        assert s.database_dsn == "postgresql://u:p@db:6543/app"

    def test_database_url_wins(self):
        s = _settings(database_url="postgresql://x@y/z", pghost="ignored")
        assert s.database_dsn == "postgresql://x@y/z"

    @pytest.mark.parametrize("provider,enabled,expected", [
        ("fcm", True, True),
        ("fcm", False, False),
        ("disabled", True, False),
    ])
    def test_push_enabled(self, provider, enabled, expected):
        assert _settings(push_provider=provider, notifications_enabled=enabled).push_enabled is expected


class TestGetPushSender:

    def test_disabled_when_switched_off(self):
        from jobpush.infra.push_senders import DisabledPushSender, get_push_sender

        sender = get_push_sender(_settings(notifications_enabled=False))
        assert isinstance(sender, DisabledPushSender)

    def test_fcm_sender_from_settings(self):
        from jobpush.infra.push_senders import FcmPushSender, get_push_sender

        sender = get_push_sender(_settings(
            push_provider="fcm", fcm_project_id="proj", fcm_access_token="token",
            fcm_service_account_file=None, fcm_service_account_json=None,
        ))
        assert isinstance(sender, FcmPushSender)
        assert sender.is_configured()
