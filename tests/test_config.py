"""Tests for configuration management and validation.

Validates GlobalConfig behavior including:
- Environment variable loading precedence
- Pydantic validation rules
- Path normalization
- Singleton cache behavior

Testing Philosophy:
    Configuration errors should fail-fast at startup, not during runtime.
    These tests ensure invalid configurations are caught immediately.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from config.settings import DEFAULT_CATALOG_PATH, GlobalConfig


class TestGlobalConfigValidation:
    """Test suite for GlobalConfig validation rules."""

    def test_default_values_are_sane(self, mock_config: GlobalConfig) -> None:
        """Verify default configuration provides safe values."""
        assert mock_config.headless is True
        assert mock_config.max_concurrent_institutions >= 1
        assert mock_config.request_timeout_ms >= 1000
        assert mock_config.freshness_window_sec == 300
        assert mock_config.user_agent.startswith("Mozilla/5.0 (iPhone")
        assert mock_config.catalog_path == DEFAULT_CATALOG_PATH

    def test_grace_intervals_default_to_observed_timings(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Verify the settle/recalc defaults are 2s and 3s outside tests."""
        from config.settings import get_config

        get_config.cache_clear()
        monkeypatch.delenv("SETTLE_DELAY_SEC", raising=False)
        monkeypatch.delenv("RECALC_DELAY_SEC", raising=False)

        config = get_config()
        assert config.settle_delay_sec == 2.0
        assert config.recalc_delay_sec == 3.0

        get_config.cache_clear()

    def test_packaged_catalog_exists(self) -> None:
        assert DEFAULT_CATALOG_PATH.is_file()

    @pytest.mark.parametrize("value", ["0", "100"])
    def test_concurrent_institutions_bounds(
        self, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        """Verify max_concurrent_institutions enforces sensible bounds (1-20)."""
        from config.settings import get_config

        get_config.cache_clear()
        monkeypatch.setenv("MAX_CONCURRENT_INSTITUTIONS", value)

        with pytest.raises(ValidationError) as exc_info:
            get_config()

        assert "max_concurrent_institutions" in str(exc_info.value)
        get_config.cache_clear()

    @pytest.mark.parametrize(
        "name,value",
        [
            ("SETTLE_DELAY_SEC", "-1"),
            ("RECALC_DELAY_SEC", "-0.5"),
            ("SCRIPT_TIMEOUT_MS", "10"),
            ("RETRY_MAX_ATTEMPTS", "0"),
            ("FRESHNESS_WINDOW_SEC", "-5"),
        ],
    )
    def test_out_of_range_values_rejected(
        self, monkeypatch: pytest.MonkeyPatch, name: str, value: str
    ) -> None:
        from config.settings import get_config

        get_config.cache_clear()
        monkeypatch.setenv(name, value)

        with pytest.raises(ValidationError):
            get_config()

        get_config.cache_clear()

    def test_canonical_source_requires_http_scheme(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from config.settings import get_config

        get_config.cache_clear()
        monkeypatch.setenv("CANONICAL_SOURCE_URL", "ftp://rates.test/table")

        with pytest.raises(ValidationError, match="canonical_source_url"):
            get_config()

        get_config.cache_clear()

    def test_empty_user_agent_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from config.settings import get_config

        get_config.cache_clear()
        monkeypatch.setenv("USER_AGENT", "")

        with pytest.raises(ValidationError):
            get_config()

        get_config.cache_clear()

    def test_path_field_normalization(self, mock_config: GlobalConfig) -> None:
        """Verify string paths are converted to Path objects."""
        assert isinstance(mock_config.log_dir, Path)
        assert isinstance(mock_config.catalog_path, Path)
        assert isinstance(mock_config.history_path, Path)
        assert mock_config.history_path.name == "rate_history.csv"


class TestConfigSingletonBehavior:
    """Test suite for get_config() singleton caching."""

    def test_singleton_returns_same_instance(self, mock_config: GlobalConfig) -> None:
        """Verify get_config() returns cached instance within same scope."""
        from config.settings import get_config

        assert get_config() is get_config()

    def test_cache_clear_forces_new_instance(
        self, mock_config: GlobalConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Verify cache_clear() allows reconfiguration."""
        from config.settings import get_config

        config1 = get_config()
        original_app_name = config1.app_name

        get_config.cache_clear()
        monkeypatch.setenv("APP_NAME", "NewApp")

        config2 = get_config()

        assert config1 is not config2
        assert config2.app_name == "NewApp"
        assert original_app_name != config2.app_name

        get_config.cache_clear()


class TestEnvironmentVariableOverrides:
    """Test suite for environment variable precedence."""

    def test_env_var_overrides_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Verify environment variables override default values."""
        from config.settings import get_config

        get_config.cache_clear()
        monkeypatch.setenv("REQUEST_TIMEOUT_MS", "99999")

        config = get_config()
        assert config.request_timeout_ms == 99999

        get_config.cache_clear()

    def test_list_env_var_parsed_from_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from config.settings import get_config

        get_config.cache_clear()
        monkeypatch.setenv("SELECTED_INSTITUTIONS", '["Citi", "Chase"]')

        config = get_config()
        assert config.selected_institutions == ["Citi", "Chase"]

        get_config.cache_clear()

    def test_boolean_env_var_parsing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Verify boolean environment variables are parsed correctly.

        Pydantic accepts: true/false, 1/0, yes/no, on/off (case-insensitive).
        """
        from config.settings import get_config

        test_cases = [
            ("true", True),
            ("True", True),
            ("1", True),
            ("yes", True),
            ("false", False),
            ("False", False),
            ("0", False),
            ("no", False),
        ]

        for env_value, expected in test_cases:
            get_config.cache_clear()
            monkeypatch.setenv("HEADLESS", env_value)
            config = get_config()
            assert config.headless is expected, f"Failed for {env_value}"

        get_config.cache_clear()
