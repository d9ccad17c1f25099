"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for router configs.
"""

import os
import tempfile

import pytest
import yaml

from ai_tier_router.config.loader import (
    RateLimitConfig,
    RouterConfig,
    TimeoutConfig,
    load_router_config,
)
from ai_tier_router.core.execution import DEFAULT_MODELS, ModelPair
from ai_tier_router.core.tiers import Tier


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_default_config(self):
        config = RouterConfig.default()

        assert config.rate_limit.window_ms == 60_000
        assert config.rate_limit.max_requests == 10
        assert config.rate_limit.sweep_interval_ms == 300_000
        assert config.cache.ttl_ms == 900_000
        assert config.retry.max_attempts == 3
        assert config.retry.base_delay_ms == 1000
        assert config.retry.max_delay_ms == 10000
        assert config.credits.cost_of(Tier.THINKER) == 5
        assert config.escalation.confidence_threshold == 0.6
        assert config.models == DEFAULT_MODELS

    def test_empty_file_gives_defaults(self):
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        open(config_path, "w").close()

        assert load_router_config(config_path) == RouterConfig.default()

    def test_full_config(self):
        config_path = self._write_config({
            "rate_limit": {"window_ms": 1000, "max_requests": 2},
            "cache": {"ttl_ms": 5000},
            "retry": {"max_attempts": 5, "base_delay_ms": 10, "max_delay_ms": 100},
            "credits": {"thinker": 8},
            "models": {"worker": {"primary": "gpt-4.1-mini", "fallback": "gpt-4o-mini"}},
            "escalation": {"confidence_threshold": 0.5},
            "timeouts": {"provider_timeout_ms": 2000, "request_timeout_ms": None},
            "departments": {
                "aliases": {"rnd": "research"},
                "prompts": {"research": "Focus on experiments."},
            },
        })

        config = load_router_config(config_path)

        assert config.rate_limit.max_requests == 2
        assert config.rate_limit.sweep_interval_ms == 300_000
        assert config.cache.ttl_ms == 5000
        assert config.retry.max_attempts == 5
        assert config.credits.cost_of(Tier.THINKER) == 8
        assert config.credits.cost_of(Tier.WORKER) == 1
        assert config.models[Tier.WORKER] == ModelPair("gpt-4.1-mini", "gpt-4o-mini")
        assert config.models[Tier.THINKER] == DEFAULT_MODELS[Tier.THINKER]
        assert config.escalation.confidence_threshold == 0.5
        assert config.timeouts.provider_timeout_ms == 2000
        assert config.timeouts.request_timeout_ms is None
        assert config.departments.aliases == {"rnd": "research"}

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_router_config(os.path.join(self.temp_dir, "missing.yaml"))

    def test_invalid_yaml(self):
        config_path = os.path.join(self.temp_dir, "bad.yaml")
        with open(config_path, "w", encoding="utf-8") as f:
            f.write("rate_limit: [unclosed")

        with pytest.raises(yaml.YAMLError):
            load_router_config(config_path)

    def test_non_dict_config(self):
        with pytest.raises(ValueError, match="must be a dictionary"):
            load_router_config(self._write_config(["a", "b"]))

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_router_config(self._write_config({"budget": {}}))

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="Unknown rate_limit keys"):
            load_router_config(self._write_config({"rate_limit": {"burst": 3}}))

    def test_unknown_tier_in_credits(self):
        with pytest.raises(ValueError, match="Unknown credits keys"):
            load_router_config(self._write_config({"credits": {"genius": 9}}))

    def test_non_integer_value(self):
        with pytest.raises(ValueError, match="must be an integer"):
            load_router_config(self._write_config({"cache": {"ttl_ms": "soon"}}))

    def test_negative_credit_cost(self):
        with pytest.raises(ValueError, match="non-negative"):
            load_router_config(self._write_config({"credits": {"worker": -1}}))

    def test_model_pair_requires_both_models(self):
        with pytest.raises(ValueError, match="Missing required 'fallback'"):
            load_router_config(self._write_config({"models": {"thinker": {"primary": "gpt-4o"}}}))

    def test_threshold_out_of_range(self):
        with pytest.raises(ValueError, match="between 0 and 1"):
            load_router_config(self._write_config({"escalation": {"confidence_threshold": 1.5}}))

    def test_invalid_retry_policy(self):
        with pytest.raises(ValueError, match="max_attempts"):
            load_router_config(self._write_config({"retry": {"max_attempts": 0}}))

    def test_department_values_must_be_strings(self):
        with pytest.raises(ValueError, match="strings"):
            load_router_config(self._write_config({"departments": {"prompts": {"sales": 3}}}))


class TestConfigValidation:
    """Test dataclass validation directly."""

    def test_rate_limit_values_must_be_positive(self):
        with pytest.raises(ValueError, match="max_requests"):
            RateLimitConfig(max_requests=0)

    def test_timeouts_must_be_positive(self):
        with pytest.raises(ValueError, match="provider_timeout_ms"):
            TimeoutConfig(provider_timeout_ms=0)

    def test_config_is_frozen(self):
        config = RouterConfig.default()

        with pytest.raises(Exception):
            config.cache = None
