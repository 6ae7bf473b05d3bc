"""Warm pool of pre-created Kubernetes sandbox pods.

This package keeps a pool of idle, isolated sandbox pods ready for
near-instant assignment to an owner, avoiding the cold-start latency of
creating a pod on demand.

The controller supports:
- Serialized allocation safe under concurrent callers
- Recovery of pool state from pod labels after a restart
- Usage-driven auto-scaling between configured bounds
- Deletion (never reuse) of released pods
- A structured audit trail of lifecycle events
"""

from k8s_warm_pool.audit import AuditEvent, AuditEventType, AuditLogger, AuditSeverity
from k8s_warm_pool.autoscaler import calculate_target_size
from k8s_warm_pool.client import KubernetesPodClient, PodClient, load_core_v1_api
from k8s_warm_pool.config import PoolConfig, validate_pool_config
from k8s_warm_pool.const import PodState, PoolLabel, PoolState
from k8s_warm_pool.controller import WarmPoolController
from k8s_warm_pool.exceptions import (
    ImagePullBackoffError,
    InvalidConfigError,
    KubeconfigInvalidError,
    KubeconfigNotFoundError,
    PodCreationFailedError,
    PodLifecycleError,
    PodNotFoundError,
    PodNotRunningError,
    PodStartupTimeoutError,
    WarmPoolDiscoveryError,
    WarmPoolError,
)
from k8s_warm_pool.factory import create_warm_pool_controller
from k8s_warm_pool.lifecycle import PodLifecycleManager
from k8s_warm_pool.locks import AllocationLock
from k8s_warm_pool.metrics import PoolMetrics
from k8s_warm_pool.records import AllocatedPod, PodRecord, WarmPod
from k8s_warm_pool.sampler import UsageSample, UsageSampler

__all__ = [
    "AllocatedPod",
    "AllocationLock",
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
    "AuditSeverity",
    "ImagePullBackoffError",
    "InvalidConfigError",
    "KubeconfigInvalidError",
    "KubeconfigNotFoundError",
    "KubernetesPodClient",
    "PodClient",
    "PodCreationFailedError",
    "PodLifecycleError",
    "PodLifecycleManager",
    "PodNotFoundError",
    "PodNotRunningError",
    "PodRecord",
    "PodStartupTimeoutError",
    "PodState",
    "PoolConfig",
    "PoolLabel",
    "PoolMetrics",
    "PoolState",
    "UsageSample",
    "UsageSampler",
    "WarmPod",
    "WarmPoolController",
    "WarmPoolDiscoveryError",
    "WarmPoolError",
    "calculate_target_size",
    "create_warm_pool_controller",
    "load_core_v1_api",
]
