# ruff: noqa: PLR2004

"""Tests for pool configuration validation."""

import pytest
from pydantic import ValidationError

from k8s_warm_pool.config import PoolConfig, validate_pool_config
from k8s_warm_pool.const import DEFAULT_IMAGE
from k8s_warm_pool.exceptions import InvalidConfigError, WarmPoolError


class TestPoolConfigDefaults:
    """Test default configuration values."""

    def test_defaults(self) -> None:
        """The default configuration is valid and matches documented values."""
        config = PoolConfig()

        assert config.min_size == 2
        assert config.max_size == 10
        assert config.default_image == DEFAULT_IMAGE
        assert config.default_memory_mb == 2048
        assert config.default_cpu_cores == 1.0
        assert config.replenish_interval == 30.0
        assert config.enable_auto_scaling is True
        assert config.scale_up_threshold == 0.8
        assert config.scale_down_threshold == 0.2
        assert config.usage_window == 300.0
        assert config.pool_id == "default"

    def test_config_is_frozen(self) -> None:
        """Configuration cannot be mutated after validation."""
        config = PoolConfig()

        with pytest.raises(ValidationError):
            config.min_size = 5  # type: ignore[misc]

    def test_boundary_values_accepted(self) -> None:
        """Edge values inside every range are valid."""
        config = PoolConfig(
            min_size=0,
            max_size=1,
            scale_up_threshold=1.0,
            scale_down_threshold=0.0,
        )

        assert config.min_size == 0
        assert config.max_size == 1

    def test_min_equals_max(self) -> None:
        """A fixed-size pool is allowed."""
        config = PoolConfig(min_size=3, max_size=3)

        assert config.min_size == config.max_size


class TestPoolConfigValidation:
    """Test invariant checks and the reported field."""

    @pytest.mark.parametrize(
        ("overrides", "field"),
        [
            ({"min_size": -1}, "min_size"),
            ({"max_size": 0}, "max_size"),
            ({"min_size": 11, "max_size": 10}, "min_size"),
            ({"scale_up_threshold": 0.0}, "scale_up_threshold"),
            ({"scale_up_threshold": 1.5}, "scale_up_threshold"),
            ({"scale_down_threshold": -0.1}, "scale_down_threshold"),
            ({"scale_down_threshold": 1.0}, "scale_down_threshold"),
            ({"scale_up_threshold": 0.5, "scale_down_threshold": 0.5}, "scale_down_threshold"),
            ({"replenish_interval": 0}, "replenish_interval"),
            ({"usage_window": -5}, "usage_window"),
            ({"default_memory_mb": 0}, "default_memory_mb"),
            ({"default_cpu_cores": 0}, "default_cpu_cores"),
            ({"pod_startup_timeout": 0}, "pod_startup_timeout"),
            ({"delete_grace_period_seconds": -1}, "delete_grace_period_seconds"),
            ({"default_image": ""}, "default_image"),
            ({"pool_id": "Not_Valid"}, "pool_id"),
            ({"pool_id": "a" * 17}, "pool_id"),
            ({"name_prefix": "-bad"}, "name_prefix"),
        ],
    )
    def test_invalid_field_is_reported(self, overrides: dict, field: str) -> None:
        """Each violation names the offending field."""
        with pytest.raises(InvalidConfigError) as exc_info:
            PoolConfig(**overrides)

        assert exc_info.value.field == field
        assert str(exc_info.value).startswith("Invalid warm pool config:")

    def test_first_violation_wins(self) -> None:
        """With several violations, the first invariant in order is reported."""
        with pytest.raises(InvalidConfigError) as exc_info:
            PoolConfig(min_size=-1, max_size=0, scale_up_threshold=2.0)

        assert exc_info.value.field == "min_size"

    def test_error_is_warm_pool_error(self) -> None:
        """Configuration errors share the package base exception."""
        with pytest.raises(WarmPoolError):
            PoolConfig(max_size=0)

    def test_validate_pool_config_accepts_valid(self) -> None:
        """The standalone validator passes a valid configuration."""
        validate_pool_config(PoolConfig(min_size=1, max_size=5))

    def test_wrong_type_is_validation_error(self) -> None:
        """Type errors are reported by pydantic before the invariants run."""
        with pytest.raises(ValidationError):
            PoolConfig(min_size="many")
