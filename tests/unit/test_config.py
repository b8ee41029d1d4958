"""
Unit tests for configuration models and the YAML loader.
"""

import pytest
from pydantic import ValidationError

from oracle_trader.config.loader import ConfigLoader, expand_placeholders
from oracle_trader.config.settings import (
    AnalyzerConfig,
    AppConfig,
    TokenPairConfig,
    ValidatorConfig,
)

ENV_VARS = ("ENVIRONMENT", "LOG_LEVEL", "STABLE_TOKEN", "VOLATILE_TOKEN", "EVENT_COOLDOWN_SECONDS", "TEST_RR")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def write_config(tmp_path):
    def _write(text):
        (tmp_path / "config.yaml").write_text(text)
        return ConfigLoader(tmp_path)
    return _write


# ============================================================================
# Models
# ============================================================================

def test_defaults():
    config = AppConfig()

    assert config.analyzer.min_data_points == 96
    assert config.analyzer.risk_reward_ratio == 3.0
    assert config.validation.lenient is False
    assert config.engine.cooldown_seconds == 30.0
    assert config.system.environment == "development"
    assert config.tokens.symbol == "WETH/USDC"


def test_unknown_key_rejected():
    with pytest.raises(ValidationError):
        AnalyzerConfig(min_datapoints=50)


def test_stop_distance_ordering():
    with pytest.raises(ValidationError):
        AnalyzerConfig(min_stop_distance_percent=0.05, max_stop_distance_percent=0.02)


def test_rsi_thresholds_straddle_midline():
    with pytest.raises(ValidationError):
        AnalyzerConfig(rsi_overbought=45.0)
    with pytest.raises(ValidationError):
        AnalyzerConfig(rsi_oversold=55.0)


def test_slippage_bounds_ordering():
    with pytest.raises(ValidationError):
        ValidatorConfig(min_slippage=2.0, max_slippage=1.0)
    with pytest.raises(ValidationError):
        ValidatorConfig(max_slippage=2.0, high_volatility_max_slippage=1.0)


def test_token_addresses_checksummed():
    tokens = TokenPairConfig(stable_address="0xe7f1725e7734ce288f8367e1bb143e90bb3f0512")

    assert tokens.stable_address == "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"


def test_invalid_token_address_rejected():
    with pytest.raises(ValidationError):
        TokenPairConfig(volatile_address="0x1234")


def test_configs_are_frozen():
    config = AnalyzerConfig()

    with pytest.raises(ValidationError):
        config.risk_reward_ratio = 5.0


def test_with_overrides_returns_validated_copy():
    config = AnalyzerConfig()

    changed = config.with_overrides(risk_reward_ratio=2.0)

    assert changed.risk_reward_ratio == 2.0
    assert config.risk_reward_ratio == 3.0
    with pytest.raises(ValidationError):
        config.with_overrides(risk_reward_ratio=-1.0)


# ============================================================================
# Loader
# ============================================================================

def test_bundled_config_loads():
    config = ConfigLoader().load_app_config(use_cache=False)

    assert config.analyzer.support_resistance_lookback == 672
    assert config.validation.max_slippage == 1.5
    assert config.tokens.stable_symbol == "USDC"


def test_missing_file_uses_defaults(tmp_path):
    config = ConfigLoader(tmp_path).load_app_config()

    assert config == AppConfig()


def test_yaml_values_and_placeholders(write_config, monkeypatch):
    monkeypatch.setenv("TEST_RR", "2.5")
    loader = write_config(
        "system:\n"
        "  environment: ${ENVIRONMENT:staging}\n"
        "analyzer:\n"
        "  risk_reward_ratio: ${TEST_RR}\n"
        "  min_data_points: 48\n"
    )

    config = loader.load_app_config()

    assert config.system.environment == "staging"
    assert config.analyzer.risk_reward_ratio == 2.5
    assert config.analyzer.min_data_points == 48


def test_environment_overrides(write_config, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("VOLATILE_TOKEN", "0x5fbdb2315678afecb367f032d93f642f64180aa3")
    monkeypatch.setenv("EVENT_COOLDOWN_SECONDS", "12.5")
    loader = write_config("engine:\n  cooldown_seconds: 30\n")

    config = loader.load_app_config()

    assert config.system.log_level == "DEBUG"
    assert config.system.environment == "production"
    assert config.tokens.volatile_address == "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    assert config.engine.cooldown_seconds == 12.5


def test_invalid_yaml_value_raises(write_config):
    loader = write_config("validation:\n  max_slippage: -1\n")

    with pytest.raises(ValidationError):
        loader.load_app_config()


def test_cache_and_reload(write_config, tmp_path):
    loader = write_config("engine:\n  cooldown_seconds: 10\n")

    first = loader.load_app_config()
    assert loader.load_app_config() is first

    (tmp_path / "config.yaml").write_text("engine:\n  cooldown_seconds: 20\n")
    assert loader.load_app_config().engine.cooldown_seconds == 10
    assert loader.reload().engine.cooldown_seconds == 20


def test_placeholders_expand_inside_lists(monkeypatch):
    monkeypatch.setenv("TEST_RR", "4")
    monkeypatch.delenv("MISSING_VAR_X", raising=False)

    expanded = expand_placeholders({"levels": ["${TEST_RR}", "${MISSING_VAR_X:7}", "plain ${TEST_RR}"], "n": 3})

    assert expanded == {"levels": ["4", "7", "plain ${TEST_RR}"], "n": 3}
