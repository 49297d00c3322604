"""
Tests for the configuration layer.
"""

import pytest
import yaml

from agriverify.chain import ChainEnvironment
from agriverify.config import (
    BURN_ADDRESS,
    ConfigError,
    ConfigManager,
    ConfigValue,
    ValidationError,
    get_config,
    get_config_manager,
)
from agriverify.registry import VerificationRegistry


class TestConfigValue:
    """Tests for ConfigValue."""

    def test_default(self):
        value = ConfigValue(default=5)
        assert value.get() == 5

    def test_set_coerces_strings(self):
        value = ConfigValue(default=5)
        value.set("7")
        assert value.get() == 7

    def test_validator_rejects(self):
        value = ConfigValue(default=5, validator=lambda x: x > 0)
        with pytest.raises(ValidationError):
            value.set(-1)
        assert value.get() == 5

    def test_bad_coercion(self):
        value = ConfigValue(default=5)
        with pytest.raises(ValidationError):
            value.set("five")

    def test_env_var_wins(self, monkeypatch):
        value = ConfigValue(default=5, env_var="AGRIVERIFY_TEST_VALUE")
        value.set(6)
        monkeypatch.setenv("AGRIVERIFY_TEST_VALUE", "9")
        assert value.get() == 9

    def test_env_var_validated(self, monkeypatch):
        value = ConfigValue(default=5, env_var="AGRIVERIFY_TEST_VALUE", validator=lambda x: x > 0)
        monkeypatch.setenv("AGRIVERIFY_TEST_VALUE", "-2")
        with pytest.raises(ValidationError, match="AGRIVERIFY_TEST_VALUE"):
            value.get()

    def test_change_callback(self):
        value = ConfigValue(default=5)
        changes = []
        value.on_change(lambda old, new: changes.append((old, new)))
        value.set(6)
        value.set(8)
        assert changes == [(None, 6), (6, 8)]

    def test_clear(self):
        value = ConfigValue(default=5)
        value.set(6)
        value.clear()
        assert value.get() == 5


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_singleton(self):
        assert get_config_manager() is ConfigManager()
        assert get_config() is ConfigManager().config

    def test_reset_discards_overrides(self):
        get_config_manager().set("registry.verification_fee", 750)
        ConfigManager.reset()
        assert get_config_manager().get("registry.verification_fee") == 500

    def test_defaults(self):
        mgr = get_config_manager()
        assert mgr.get("registry.verification_fee") == 500
        assert mgr.get("registry.min_verification_score") == 50
        assert mgr.get("registry.max_verification_score") == 100
        assert mgr.get("registry.max_verifications") == 10000
        assert mgr.get("registry.burn_address") == BURN_ADDRESS
        assert mgr.get("chain.default_caller") == "ST1VERIFIER"
        assert mgr.get("observability.log_format") == "json"

    def test_get_section(self):
        section = get_config_manager().get("chain")
        assert section == {"default_caller": "ST1VERIFIER", "genesis_block_height": 0}

    def test_invalid_path(self):
        mgr = get_config_manager()
        with pytest.raises(ConfigError):
            mgr.get("registry.nope")
        with pytest.raises(ConfigError):
            mgr.set("registry", 1)

    def test_set_validates(self):
        with pytest.raises(ValidationError):
            get_config_manager().set("registry.verification_fee", -5)

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "agriverify.yaml"
        path.write_text(yaml.safe_dump({
            "registry": {"verification_fee": 800, "max_verifications": 5},
            "chain": {"default_caller": "ST7CALLER"},
        }))
        mgr = get_config_manager()
        mgr.load_from_file(path)

        assert mgr.get("registry.verification_fee") == 800
        assert mgr.get("registry.max_verifications") == 5
        assert mgr.get("chain.default_caller") == "ST7CALLER"

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(tmp_path / "missing.yaml")

    def test_load_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(path)

    def test_load_bad_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("registry: [unclosed\n")
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(path)

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="Unknown config key"):
            get_config_manager().apply_dict({"registry": {"colour": "green"}})

    def test_load_defaults_from_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        (tmp_path / "agriverify.yaml").write_text("registry:\n  verification_fee: 42\n")

        loaded = get_config_manager().load_defaults()

        assert len(loaded) == 1
        assert get_config_manager().get("registry.verification_fee") == 42

    def test_reload_notifies_watchers(self, tmp_path):
        path = tmp_path / "agriverify.yaml"
        path.write_text("registry:\n  verification_fee: 1\n")
        mgr = get_config_manager()
        mgr.load_from_file(path)
        seen = []
        mgr.watch(lambda cfg: seen.append(cfg.registry.verification_fee.get()))

        path.write_text("registry:\n  verification_fee: 2\n")
        mgr.reload()

        assert seen == [2]

    def test_validate_cross_field(self, monkeypatch):
        monkeypatch.setenv("AGRIVERIFY_MIN_SCORE", "90")
        monkeypatch.setenv("AGRIVERIFY_MAX_SCORE", "80")
        errors = get_config_manager().validate()
        assert any("min_verification_score" in e for e in errors)

    def test_validate_reports_bad_env_value(self, monkeypatch):
        monkeypatch.setenv("AGRIVERIFY_VERIFICATION_FEE", "-5")
        errors = get_config_manager().validate()
        assert any(e.startswith("registry.verification_fee:") for e in errors)

    def test_validate_clean(self):
        assert get_config_manager().validate() == []

    def test_export_schema(self):
        schema = get_config_manager().export_schema()
        fee = schema["properties"]["registry"]["verification_fee"]
        assert fee["default"] == 500
        assert fee["env_var"] == "AGRIVERIFY_VERIFICATION_FEE"
        assert fee["type"] == "int"

    def test_to_yaml(self):
        data = yaml.safe_load(get_config().to_yaml())
        assert data["registry"]["verification_fee"] == 500
        assert data["observability"]["log_level"] == "info"


class TestConfigFeedsRegistry:
    """Settings become the defaults of newly built registries."""

    def test_registry_defaults_from_settings(self):
        mgr = get_config_manager()
        mgr.set("registry.verification_fee", 250)
        mgr.set("registry.max_verifications", 3)

        registry = VerificationRegistry()

        assert registry.config.verification_fee == 250
        assert registry.config.max_verifications == 3

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("AGRIVERIFY_VERIFICATION_FEE", "900")
        assert VerificationRegistry().config.verification_fee == 900

    @pytest.mark.parametrize("env_var,value", [
        ("AGRIVERIFY_VERIFICATION_FEE", "-5"),
        ("AGRIVERIFY_MIN_SCORE", "0"),
        ("AGRIVERIFY_MAX_SCORE", "150"),
    ])
    def test_invalid_env_value_refused(self, monkeypatch, env_var, value):
        monkeypatch.setenv(env_var, value)
        with pytest.raises(ConfigError):
            VerificationRegistry()

    def test_env_bounds_crossing_refused(self, monkeypatch):
        monkeypatch.setenv("AGRIVERIFY_MIN_SCORE", "90")
        monkeypatch.setenv("AGRIVERIFY_MAX_SCORE", "80")
        with pytest.raises(ConfigError, match="must be below"):
            VerificationRegistry()

    def test_chain_defaults_from_settings(self):
        mgr = get_config_manager()
        mgr.set("chain.default_caller", "ST8CALLER")
        mgr.set("chain.genesis_block_height", 100)

        chain = ChainEnvironment()

        assert chain.caller == "ST8CALLER"
        assert chain.block_height == 100

    def test_existing_registry_unaffected(self):
        registry = VerificationRegistry()
        get_config_manager().set("registry.verification_fee", 1)
        assert registry.config.verification_fee == 500
