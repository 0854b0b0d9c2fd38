"""Tests for runtime configuration persistence."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from imbiber.config import RuntimeConfig, get_runtime_config
from imbiber.config_store import ensure_config, get_db_config, load_config_to_cache, update_runtime_config


class TestRuntimeConfig:
    """Tests for defaults and bounds."""

    def test_defaults(self):
        config = RuntimeConfig()

        assert config.check_batch_size == 3
        assert config.check_batch_delay_ms == 500
        assert config.releases_per_notification == 3
        assert config.notification_retention == 50
        assert config.check_cooldown_ms == 60 * 60 * 1000

    def test_unknown_fields_are_ignored(self):
        config = RuntimeConfig.model_validate({"check_hour": 9, "timezone": "Europe/Berlin"})
        assert config.timezone == "Europe/Berlin"

    def test_bounds_are_enforced(self):
        with pytest.raises(ValidationError):
            RuntimeConfig(check_batch_size=0)


class TestConfigStore:
    """Tests for seeding, loading and updating the stored config."""

    async def test_ensure_config_seeds_defaults_once(self, session_factory):
        async with session_factory() as session:
            config = await ensure_config(session)
            assert config == RuntimeConfig()
            assert await get_db_config(session) is not None

        async with session_factory() as session:
            await update_runtime_config(session, {"check_interval_hours": 12})

        async with session_factory() as session:
            config = await ensure_config(session)

        assert config.check_interval_hours == 12
        assert get_runtime_config().check_interval_hours == 12

    async def test_update_validates(self, session_factory):
        async with session_factory() as session:
            await ensure_config(session)

            with pytest.raises(ValueError):
                await update_runtime_config(session, {"check_batch_size": 0})

    async def test_update_requires_initialized_config(self, session_factory):
        async with session_factory() as session:
            with pytest.raises(ValueError, match="not initialized"):
                await update_runtime_config(session, {"timezone": "UTC"})

    async def test_corrupt_row_falls_back_to_defaults(self, session_factory):
        async with session_factory() as session:
            await ensure_config(session)
            row = await get_db_config(session)
            row.runtime_json = "{oops"
            await session.commit()

            config = await load_config_to_cache(session)

        assert config == RuntimeConfig()
