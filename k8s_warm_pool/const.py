"""Constants used throughout the warm pool controller.

This module defines the label keys written onto pool pods, the enumerations
for pod and pool lifecycle states, and the default values used by
:class:`~k8s_warm_pool.config.PoolConfig`.
"""

from enum import Enum
from typing import Any


class StrEnum(str, Enum):
    """A string enumeration that combines str and Enum functionality.

    Members are strings and can be compared directly to string values.
    """

    def __new__(cls, value: str) -> "StrEnum":
        """Create a new StrEnum member."""
        if not isinstance(value, str):
            msg = f"StrEnum values must be strings, got {type(value).__name__}"
            raise TypeError(msg)

        obj = str.__new__(cls, value)
        obj._value_ = value
        return obj

    def __str__(self) -> str:
        """Return the string value."""
        return str(self.value)

    @classmethod
    def _missing_(cls, value: Any) -> "StrEnum":
        """Allow case-insensitive lookup."""
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member

        msg = f"{value!r} is not a valid {cls.__name__}"
        raise ValueError(msg)


class PodState(StrEnum):
    """State of a pool pod, as written to the state label.

    State transitions:
    WARM -> ALLOCATED -> (deleted)
    """

    WARM = "warm"
    ALLOCATED = "allocated"


class PoolState(StrEnum):
    """Lifecycle state of the controller itself.

    State transitions:
    STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED
    """

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


LABEL_DOMAIN = "sandbox-pool.io"


class PoolLabel(StrEnum):
    """Label keys used for cluster-side bookkeeping.

    Pods carry these labels so they are self-describing and can be
    rediscovered after a controller restart.
    """

    SANDBOX = f"{LABEL_DOMAIN}/sandbox"
    WARM_POOL = f"{LABEL_DOMAIN}/warm-pool"
    STATE = f"{LABEL_DOMAIN}/warm-pool-state"
    POOL_ID = f"{LABEL_DOMAIN}/pool-id"
    OWNER_ID = f"{LABEL_DOMAIN}/owner-id"


class PodPhase(StrEnum):
    """Pod phases reported by the Kubernetes API."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


TERMINAL_POD_PHASES = frozenset({PodPhase.SUCCEEDED.value, PodPhase.FAILED.value})
IMAGE_PULL_FAILURE_REASONS = frozenset({"ImagePullBackOff", "ErrImagePull"})

NOT_FOUND_ERROR_CODE = 404

DEFAULT_NAMESPACE = "sandboxes"
DEFAULT_IMAGE = "node:22-slim"
DEFAULT_MEMORY_MB = 2048
DEFAULT_CPU_CORES = 1.0
DEFAULT_POOL_ID = "default"
DEFAULT_NAME_PREFIX = "sandbox"

SANDBOX_CONTAINER_NAME = "sandbox"
SANDBOX_WORKDIR = "/workspace"
SANDBOX_IDLE_COMMAND = ["tail", "-f", "/dev/null"]
SANDBOX_USER_ID = 1000

POD_STARTUP_TIMEOUT = 120  # seconds
POD_STATUS_POLL_INTERVAL = 1.0  # seconds
POD_DELETE_GRACE_PERIOD = 10  # seconds

# Allocation-driven scale-up sizes the pool so utilization trends toward 60%
SCALE_UP_TARGET_UTILIZATION = 0.6
SCALE_DOWN_HEADROOM = 1.5

ALLOCATION_LATENCY_WINDOW = 100

K8S_KUBECONFIG_ENV = "K8S_KUBECONFIG"
