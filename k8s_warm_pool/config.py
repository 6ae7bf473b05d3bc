"""Configuration for the warm pool controller."""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from k8s_warm_pool.const import (
    DEFAULT_CPU_CORES,
    DEFAULT_IMAGE,
    DEFAULT_MEMORY_MB,
    DEFAULT_NAME_PREFIX,
    DEFAULT_POOL_ID,
    POD_DELETE_GRACE_PERIOD,
    POD_STARTUP_TIMEOUT,
)
from k8s_warm_pool.exceptions import InvalidConfigError

# Pool ids and name prefixes end up in pod names and label values
DNS_LABEL_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
MAX_POOL_ID_LENGTH = 16


class PoolConfig(BaseModel):
    """Configuration for warm pool management.

    This configuration controls the size limits of the pool, the shape of
    the pods it creates, the replenish cadence, and the auto-scaling
    thresholds. It is immutable once validated; invalid combinations are
    rejected with :class:`InvalidConfigError` rather than clamped.
    """

    model_config = ConfigDict(frozen=True)

    # Pool size configuration
    min_size: int = Field(
        default=2,
        description="Minimum number of warm pods to maintain",
    )

    max_size: int = Field(
        default=10,
        description="Maximum number of pods (warm + allocated) the pool may hold",
    )

    # Pod shape
    default_image: str = Field(
        default=DEFAULT_IMAGE,
        description="Container image used for warm pods",
    )

    default_memory_mb: int = Field(
        default=DEFAULT_MEMORY_MB,
        description="Memory limit in MiB for warm pods (request is half)",
    )

    default_cpu_cores: float = Field(
        default=DEFAULT_CPU_CORES,
        description="CPU limit in cores for warm pods (request is half)",
    )

    image_pull_policy: str = Field(
        default="IfNotPresent",
        description="Image pull policy for the sandbox container",
    )

    # Replenishment
    replenish_interval: float = Field(
        default=30.0,
        description="Seconds between periodic replenish passes",
    )

    # Auto-scaling
    enable_auto_scaling: bool = Field(
        default=True,
        description="Whether to size the pool from recent usage instead of min_size",
    )

    scale_up_threshold: float = Field(
        default=0.8,
        description="Utilization above which the pool scales up",
    )

    scale_down_threshold: float = Field(
        default=0.2,
        description="Utilization below which the pool scales down",
    )

    usage_window: float = Field(
        default=300.0,
        description="Seconds of usage history considered by the auto-scaler",
    )

    # Pod lifecycle
    pod_startup_timeout: float = Field(
        default=POD_STARTUP_TIMEOUT,
        description="Seconds to wait for a new pod to become running and ready",
    )

    delete_grace_period_seconds: int = Field(
        default=POD_DELETE_GRACE_PERIOD,
        description="Grace period passed to the cluster when deleting pods",
    )

    # Identity
    pool_id: str = Field(
        default=DEFAULT_POOL_ID,
        description="Identifier distinguishing controllers that share a namespace",
    )

    name_prefix: str = Field(
        default=DEFAULT_NAME_PREFIX,
        description="Prefix for generated pod names",
    )

    def model_post_init(self, __context: Any, /) -> None:
        """Validate configuration after all fields are set.

        Args:
            __context: Validation context

        """
        validate_pool_config(self)


def validate_pool_config(config: PoolConfig) -> None:
    """Check every configuration invariant, failing on the first violation.

    Args:
        config: Configuration to check

    Raises:
        InvalidConfigError: Identifying the first invalid field

    """
    if config.min_size < 0:
        raise InvalidConfigError("min_size", f"min_size must be >= 0, got {config.min_size}")
    if config.max_size < 1:
        raise InvalidConfigError("max_size", f"max_size must be >= 1, got {config.max_size}")
    if config.min_size > config.max_size:
        raise InvalidConfigError(
            "min_size",
            f"min_size ({config.min_size}) cannot exceed max_size ({config.max_size})",
        )
    if not 0 < config.scale_up_threshold <= 1:
        raise InvalidConfigError(
            "scale_up_threshold",
            f"scale_up_threshold must be in (0, 1], got {config.scale_up_threshold}",
        )
    if not 0 <= config.scale_down_threshold < 1:
        raise InvalidConfigError(
            "scale_down_threshold",
            f"scale_down_threshold must be in [0, 1), got {config.scale_down_threshold}",
        )
    if config.scale_down_threshold >= config.scale_up_threshold:
        raise InvalidConfigError(
            "scale_down_threshold",
            f"scale_down_threshold ({config.scale_down_threshold}) must be less than "
            f"scale_up_threshold ({config.scale_up_threshold})",
        )

    _validate_supplementary_fields(config)


def _validate_supplementary_fields(config: PoolConfig) -> None:
    """Check the timing, resource, and naming fields."""
    positive_fields = (
        "replenish_interval",
        "usage_window",
        "default_memory_mb",
        "default_cpu_cores",
        "pod_startup_timeout",
    )
    for name in positive_fields:
        value = getattr(config, name)
        if value <= 0:
            raise InvalidConfigError(name, f"{name} must be > 0, got {value}")

    if config.delete_grace_period_seconds < 0:
        raise InvalidConfigError(
            "delete_grace_period_seconds",
            f"delete_grace_period_seconds must be >= 0, got {config.delete_grace_period_seconds}",
        )
    if not config.default_image:
        raise InvalidConfigError("default_image", "default_image must not be empty")

    if len(config.pool_id) > MAX_POOL_ID_LENGTH or not DNS_LABEL_PATTERN.match(config.pool_id):
        raise InvalidConfigError(
            "pool_id",
            f"pool_id must be a lowercase DNS label of at most {MAX_POOL_ID_LENGTH} characters, "
            f"got {config.pool_id!r}",
        )
    if not DNS_LABEL_PATTERN.match(config.name_prefix):
        raise InvalidConfigError(
            "name_prefix",
            f"name_prefix must be a lowercase DNS label, got {config.name_prefix!r}",
        )
