"""
Unit tests for environment-driven settings.
"""

import pytest

from turfwar.core.config.config import Config, Environment
from turfwar.core.config.manager import ConfigManager, ConfigManagerError


@pytest.fixture
def env(monkeypatch):
    yield monkeypatch
    monkeypatch.undo()
    Config.load()


@pytest.mark.unit
class TestConfigLoad:
    def test_reads_typed_values(self, env):
        env.setenv("DATABASE_POOL_SIZE", "25")
        env.setenv("DATABASE_ECHO", "yes")
        env.setenv("REDIS_URL", "redis://cache:6379/2")

        Config.load()

        assert Config.DATABASE_POOL_SIZE == 25
        assert Config.DATABASE_ECHO is True
        assert Config.REDIS_URL == "redis://cache:6379/2"
        assert Config.problems == {}

    def test_out_of_range_falls_back_to_default(self, env):
        env.setenv("DATABASE_RETRY_MAX_ATTEMPTS", "50")

        Config.load()

        assert Config.DATABASE_RETRY_MAX_ATTEMPTS == 3
        assert "DATABASE_RETRY_MAX_ATTEMPTS" in Config.problems

    def test_malformed_bool_falls_back(self, env):
        env.setenv("LOG_TO_FILE", "sometimes")

        Config.load()

        assert Config.LOG_TO_FILE is False
        assert "not a boolean" in Config.problems["LOG_TO_FILE"]

    def test_unknown_log_level_becomes_info(self, env):
        env.setenv("LOG_LEVEL", "chatty")

        Config.load()

        assert Config.LOG_LEVEL == "INFO"

    def test_environment_flags(self, env):
        env.setenv("ENVIRONMENT", "Production")
        env.setenv("TESTING", "false")

        Config.load()

        assert Config.is_production()
        assert not Config.is_testing()


@pytest.mark.unit
def test_unknown_environment_is_development():
    assert Environment.from_string("moon") is Environment.DEVELOPMENT


@pytest.fixture
def balance_dir(tmp_path):
    (tmp_path / "gangs").mkdir()
    (tmp_path / "gangs" / "base.yaml").write_text(
        "gangs:\n  vault:\n    min_transfer: 1000\n  raid:\n    base_rate: 50\n", encoding="utf-8"
    )
    (tmp_path / "gangs" / "combat.yml").write_text(
        "gangs:\n  raid:\n    cooldown_seconds: 3600\n", encoding="utf-8"
    )
    (tmp_path / "broken.yaml").write_text("gangs: [unclosed\n", encoding="utf-8")
    ConfigManager.reset()
    yield tmp_path
    ConfigManager.reset()


@pytest.mark.unit
@pytest.mark.asyncio
class TestConfigManager:
    async def test_files_merge_by_section(self, balance_dir):
        await ConfigManager.initialize(balance_dir)

        assert ConfigManager.get("gangs.raid.base_rate") == 50
        assert ConfigManager.get("gangs.raid.cooldown_seconds") == 3600
        assert ConfigManager.get("gangs.vault.min_transfer") == 1000

    async def test_missing_key_returns_default(self, balance_dir):
        await ConfigManager.initialize(balance_dir)

        assert ConfigManager.get("gangs.rob.base_rate", 40) == 40
        assert ConfigManager.get("gangs.raid.base_rate.deeper", "x") == "x"

    async def test_override_patches_live_tree(self, balance_dir):
        await ConfigManager.initialize(balance_dir)

        ConfigManager.override("gangs.raid.base_rate", 70)

        assert ConfigManager.get("gangs.raid.base_rate") == 70
        with pytest.raises(ConfigManagerError):
            ConfigManager.override("gangs.raid.base_rate.extra", 1)

    async def test_reset_reloads_from_disk(self, balance_dir):
        await ConfigManager.initialize(balance_dir)
        ConfigManager.override("gangs.raid.base_rate", 70)

        ConfigManager.reset()
        await ConfigManager.initialize(balance_dir)

        assert ConfigManager.get("gangs.raid.base_rate") == 50
