"""Unit tests for self-healing configuration loading."""

import pytest
import yaml
from unittest.mock import patch

from locator_healing.core.config_loader import ConfigurationError, SelfHealingConfigLoader
from locator_healing.core.models.healing_models import HealingConfiguration


@pytest.fixture(autouse=True)
def no_env_overrides():
    """Keep environment overrides out of file-based assertions."""
    with patch("locator_healing.core.config_loader.settings") as mock_settings:
        mock_settings.LOCATOR_CACHE_PATH = None
        mock_settings.SELECTOR_REGISTRY_DIR = None
        mock_settings.SELF_HEALING_CONFIG_PATH = "config/self_healing.yaml"
        yield mock_settings


class TestSelfHealingConfigLoader:
    """Test YAML loading, defaults and validation."""

    def test_missing_file_uses_defaults(self, tmp_path):
        loader = SelfHealingConfigLoader(str(tmp_path / "missing.yaml"))

        config = loader.load_config()

        assert config.to_dict() == HealingConfiguration().to_dict()

    def test_partial_file_is_merged_with_defaults(self, tmp_path):
        path = tmp_path / "self_healing.yaml"
        path.write_text(yaml.safe_dump({
            "self_healing": {
                "max_retries": 4,
                "strategy_cache": {"decay_step": 10},
                "healing": {"registry_dir": "pages"}
            }
        }))

        config = SelfHealingConfigLoader(str(path)).load_config()

        assert config.max_retries == 4
        assert config.decay_step == 10
        assert config.reinforcement_increment == 5
        assert config.registry_dir == "pages"
        assert config.cache_path == "build/locator-cache.json"

    def test_env_overrides_paths(self, tmp_path, no_env_overrides):
        no_env_overrides.LOCATOR_CACHE_PATH = "/tmp/other-cache.json"

        config = SelfHealingConfigLoader(str(tmp_path / "missing.yaml")).load_config()

        assert config.cache_path == "/tmp/other-cache.json"

    @pytest.mark.parametrize("content", [
        "self_healing: [unclosed",
        "- just\n- a list\n",
        "self_healing:\n  max_retries: 99\n",
        "self_healing:\n  max_retries: lots\n",
        "self_healing:\n  strategy_cache:\n    max_priority: 0\n",
    ])
    def test_invalid_files_raise(self, tmp_path, content):
        path = tmp_path / "self_healing.yaml"
        path.write_text(content)

        with pytest.raises(ConfigurationError):
            SelfHealingConfigLoader(str(path)).load_config()

    def test_save_and_reload(self, tmp_path):
        path = tmp_path / "nested" / "self_healing.yaml"
        loader = SelfHealingConfigLoader(str(path))
        config = HealingConfiguration(max_retries=1, inventory_limit=5, ai_strategies_enabled=False)

        loader.save_config(config)
        reloaded = SelfHealingConfigLoader(str(path)).load_config()

        assert reloaded.to_dict() == config.to_dict()
        assert yaml.safe_load(path.read_text())["self_healing"]["strategy_generation"]["ai_enabled"] is False

    def test_save_rejects_invalid_config(self, tmp_path):
        loader = SelfHealingConfigLoader(str(tmp_path / "self_healing.yaml"))

        with pytest.raises(ConfigurationError):
            loader.save_config(HealingConfiguration(max_healing_attempts=0))

    def test_cached_until_file_changes(self, tmp_path):
        path = tmp_path / "self_healing.yaml"
        path.write_text("self_healing:\n  max_retries: 1\n")
        loader = SelfHealingConfigLoader(str(path))

        first = loader.load_config()
        assert loader.load_config() is first

        path.write_text("self_healing:\n  max_retries: 3\n")
        assert loader.load_config(force_reload=True).max_retries == 3
