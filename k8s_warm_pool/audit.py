"""Structured audit trail for warm pool lifecycle events.

Events are written to the ``k8s_warm_pool.audit`` logger as
``[K8S_AUDIT] <json>`` lines by default, so log aggregators can pick them
up. A custom sink can be injected instead. Sink failures are logged and
never propagate into the controller.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from k8s_warm_pool.const import StrEnum
from k8s_warm_pool.records import utcnow

logger = logging.getLogger(__name__)

AUDIT_PREFIX = "[K8S_AUDIT]"
AUDIT_COMPONENT = "k8s-warm-pool"


class AuditEventType(StrEnum):
    """Audit event names emitted by the warm pool."""

    PREWARM = "warm_pool.prewarm"
    ALLOCATION = "warm_pool.allocation"
    RELEASE = "warm_pool.release"
    POD_CREATED = "warm_pool.pod_created"
    POD_DELETED = "warm_pool.pod_deleted"
    POD_FAILED = "warm_pool.pod_failed"
    DISCOVERY = "warm_pool.discovery"
    SCALE_DOWN = "warm_pool.scale_down"


class AuditSeverity(StrEnum):
    """Severity levels for audit events."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """A single audit record."""

    timestamp: datetime = Field(default_factory=utcnow)
    event: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO
    component: str = AUDIT_COMPONENT
    namespace: str | None = None
    resource_name: str | None = None
    owner_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    duration_ms: float | None = None


AuditSink = Callable[[AuditEvent], None]


def default_audit_sink(event: AuditEvent) -> None:
    """Write the event as a JSON line to the audit logger."""
    logger.info("%s %s", AUDIT_PREFIX, event.model_dump_json(exclude_none=True))


class AuditLogger:
    """Fire-and-forget audit logger for warm pool events."""

    def __init__(self, enabled: bool = True, sink: AuditSink | None = None) -> None:
        """Initialize the audit logger.

        Args:
            enabled: Whether events are emitted at all
            sink: Callable receiving each event (defaults to the audit log line writer)

        """
        self.enabled = enabled
        self.sink = sink or default_audit_sink

    def log(self, event: AuditEvent) -> None:
        """Deliver an event to the sink, swallowing any sink failure."""
        if not self.enabled:
            return
        try:
            self.sink(event)
        except Exception:
            logger.exception("Audit sink failed for event %s", event.event)

    def log_prewarm(self, pool_id: str, namespace: str, requested: int, created: int, pool_size: int) -> None:
        self.log(
            AuditEvent(
                event=AuditEventType.PREWARM,
                namespace=namespace,
                resource_name=pool_id,
                metadata={"requested": requested, "created": created, "current_pool_size": pool_size},
            )
        )

    def log_allocation(
        self,
        pod_name: str,
        namespace: str,
        owner_id: str,
        allocation_ms: float,
        remaining_warm: int,
    ) -> None:
        self.log(
            AuditEvent(
                event=AuditEventType.ALLOCATION,
                namespace=namespace,
                resource_name=pod_name,
                owner_id=owner_id,
                duration_ms=allocation_ms,
                metadata={"remaining_warm_pods": remaining_warm},
            )
        )

    def log_release(self, pod_name: str, namespace: str, owner_id: str) -> None:
        self.log(
            AuditEvent(
                event=AuditEventType.RELEASE,
                namespace=namespace,
                resource_name=pod_name,
                owner_id=owner_id,
            )
        )

    def log_pod_created(self, pod_name: str, namespace: str, image: str, duration_ms: float) -> None:
        self.log(
            AuditEvent(
                event=AuditEventType.POD_CREATED,
                namespace=namespace,
                resource_name=pod_name,
                duration_ms=duration_ms,
                metadata={"image": image},
            )
        )

    def log_pod_deleted(self, pod_name: str, namespace: str) -> None:
        self.log(AuditEvent(event=AuditEventType.POD_DELETED, namespace=namespace, resource_name=pod_name))

    def log_pod_failed(self, pod_name: str, namespace: str, error: Exception) -> None:
        self.log(
            AuditEvent(
                event=AuditEventType.POD_FAILED,
                severity=AuditSeverity.ERROR,
                namespace=namespace,
                resource_name=pod_name,
                error=str(error),
                metadata={"error_type": type(error).__name__},
            )
        )

    def log_discovery(self, pool_id: str, namespace: str, warm: int, allocated: int) -> None:
        self.log(
            AuditEvent(
                event=AuditEventType.DISCOVERY,
                namespace=namespace,
                resource_name=pool_id,
                metadata={"warm_pods_discovered": warm, "allocated_pods_discovered": allocated},
            )
        )

    def log_scale_down(self, pool_id: str, namespace: str, requested: int, deleted: int, target: int) -> None:
        self.log(
            AuditEvent(
                event=AuditEventType.SCALE_DOWN,
                namespace=namespace,
                resource_name=pool_id,
                metadata={"requested": requested, "deleted": deleted, "target_size": target},
            )
        )
