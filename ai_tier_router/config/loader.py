"""
Configuration management and loading.

Handles router settings loaded from YAML. Every section is optional and
falls back to the reference values; unknown keys are rejected.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ai_tier_router.core.execution import DEFAULT_MODELS, ModelPair
from ai_tier_router.core.retry import RetryPolicy
from ai_tier_router.core.tiers import DEFAULT_CREDIT_TABLE, CreditTable, Tier


@dataclass(frozen=True)
class RateLimitConfig:
    """Fixed-window admission limits."""
    window_ms: int = 60_000
    max_requests: int = 10
    sweep_interval_ms: int = 300_000

    def __post_init__(self):
        """Validate rate limit values are positive."""
        if self.window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        if self.max_requests <= 0:
            raise ValueError("max_requests must be > 0")
        if self.sweep_interval_ms <= 0:
            raise ValueError("sweep_interval_ms must be > 0")


@dataclass(frozen=True)
class CacheConfig:
    """Context cache settings."""
    ttl_ms: int = 15 * 60 * 1000

    def __post_init__(self):
        if self.ttl_ms <= 0:
            raise ValueError("ttl_ms must be > 0")


@dataclass(frozen=True)
class EscalationConfig:
    """Worker-to-thinker escalation settings."""
    confidence_threshold: float = 0.6

    def __post_init__(self):
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be between 0 and 1")


@dataclass(frozen=True)
class TimeoutConfig:
    """Bounds on provider calls. None disables a bound."""
    provider_timeout_ms: Optional[int] = 30_000
    request_timeout_ms: Optional[int] = 120_000

    def __post_init__(self):
        for name in ("provider_timeout_ms", "request_timeout_ms"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be > 0")


@dataclass(frozen=True)
class DepartmentConfig:
    """Extra department aliases and guidance text."""
    aliases: Dict[str, str] = field(default_factory=dict)
    prompts: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RouterConfig:
    """Complete router configuration."""
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    credits: CreditTable = DEFAULT_CREDIT_TABLE
    models: Dict[Tier, ModelPair] = field(default_factory=lambda: dict(DEFAULT_MODELS))
    escalation: EscalationConfig = field(default_factory=EscalationConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    departments: DepartmentConfig = field(default_factory=DepartmentConfig)

    @classmethod
    def default(cls) -> "RouterConfig":
        """Reference configuration."""
        return cls()


_SECTION_KEYS = {
    "rate_limit": {"window_ms", "max_requests", "sweep_interval_ms"},
    "cache": {"ttl_ms"},
    "retry": {"max_attempts", "base_delay_ms", "max_delay_ms"},
    "credits": {tier.value for tier in Tier},
    "models": {tier.value for tier in Tier},
    "escalation": {"confidence_threshold"},
    "timeouts": {"provider_timeout_ms", "request_timeout_ms"},
    "departments": {"aliases", "prompts"},
}


def load_router_config(path: str) -> RouterConfig:
    """Load and validate router configuration from a YAML file.

    Strict validation ensures no silent misconfiguration of limits,
    costs or model identities.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated RouterConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Router config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return RouterConfig.default()
    return parse_router_config(raw_config)


def parse_router_config(raw_config: Any) -> RouterConfig:
    """Validate an already-parsed configuration mapping.

    Raises:
        ValueError: If configuration is invalid
    """
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw_config.keys()) - set(_SECTION_KEYS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {name: _section(raw_config, name) for name in _SECTION_KEYS}

    return RouterConfig(
        rate_limit=RateLimitConfig(**_ints(sections["rate_limit"], "rate_limit")),
        cache=CacheConfig(**_ints(sections["cache"], "cache")),
        retry=RetryPolicy(**_ints(sections["retry"], "retry")),
        credits=_parse_credits(sections["credits"]),
        models=_parse_models(sections["models"]),
        escalation=_parse_escalation(sections["escalation"]),
        timeouts=_parse_timeouts(sections["timeouts"]),
        departments=_parse_departments(sections["departments"]),
    )


def _section(raw_config: Dict, name: str) -> Dict:
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown_keys = set(data.keys()) - _SECTION_KEYS[name]
    if unknown_keys:
        raise ValueError(f"Unknown {name} keys: {unknown_keys}")
    return data


def _ints(data: Dict, path: str) -> Dict[str, int]:
    values = {}
    for key, value in data.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"'{key}' in {path} must be an integer")
        values[key] = value
    return values


def _parse_credits(data: Dict) -> CreditTable:
    costs = dict(DEFAULT_CREDIT_TABLE.costs)
    for tier_name, cost in _ints(data, "credits").items():
        costs[Tier(tier_name)] = cost
    return CreditTable(costs)


def _parse_models(data: Dict) -> Dict[Tier, ModelPair]:
    models = dict(DEFAULT_MODELS)
    for tier_name, pair in data.items():
        path = f"models.{tier_name}"
        if not isinstance(pair, dict):
            raise ValueError(f"'{path}' must be a dictionary")
        unknown_keys = set(pair.keys()) - {"primary", "fallback"}
        if unknown_keys:
            raise ValueError(f"Unknown keys in {path}: {unknown_keys}")
        for key in ("primary", "fallback"):
            if key not in pair:
                raise ValueError(f"Missing required '{key}' in {path}")
            if not isinstance(pair[key], str) or not pair[key].strip():
                raise ValueError(f"'{key}' in {path} must be a non-empty string")
        models[Tier(tier_name)] = ModelPair(primary=pair["primary"], fallback=pair["fallback"])
    return models


def _parse_escalation(data: Dict) -> EscalationConfig:
    if "confidence_threshold" not in data:
        return EscalationConfig()
    threshold = data["confidence_threshold"]
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ValueError("'confidence_threshold' in escalation must be a number")
    return EscalationConfig(confidence_threshold=float(threshold))


def _parse_timeouts(data: Dict) -> TimeoutConfig:
    values = {}
    for key, value in data.items():
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ValueError(f"'{key}' in timeouts must be an integer or null")
        values[key] = value
    return TimeoutConfig(**values)


def _parse_departments(data: Dict) -> DepartmentConfig:
    parsed = {}
    for key in ("aliases", "prompts"):
        mapping = data.get(key) or {}
        if not isinstance(mapping, dict):
            raise ValueError(f"'departments.{key}' must be a dictionary")
        for name, value in mapping.items():
            if not isinstance(name, str) or not isinstance(value, str):
                raise ValueError(f"'departments.{key}' must map strings to strings")
        parsed[key] = dict(mapping)
    return DepartmentConfig(**parsed)
