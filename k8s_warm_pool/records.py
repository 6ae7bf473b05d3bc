"""Pod records tracked by the warm pool.

A pool pod is either warm (idle, unowned) or allocated (owned). The two
states are separate types so an allocated pod without an owner, or a warm
pod with one, cannot be constructed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TypeAlias

from k8s_warm_pool.const import PodState


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WarmPod:
    """A pre-created pod that is idle and not assigned to any owner."""

    pod_name: str
    """Name of the pod in the cluster"""

    pod_uid: str
    """Cluster-assigned UID of the pod"""

    image: str
    """Image the sandbox container runs"""

    created_at: datetime = field(default_factory=utcnow)
    """When the pod was created"""

    warm_at: datetime = field(default_factory=utcnow)
    """When the pod became running and ready"""

    @property
    def state(self) -> PodState:
        """State tag of this record."""
        return PodState.WARM

    def allocate(self, owner_id: str, allocated_at: datetime | None = None) -> "AllocatedPod":
        """Build the allocated record for this pod.

        Args:
            owner_id: Identifier of the project or task taking the pod
            allocated_at: Allocation time (defaults to now)

        Returns:
            A new AllocatedPod carrying this pod's identity

        """
        return AllocatedPod(
            pod_name=self.pod_name,
            pod_uid=self.pod_uid,
            image=self.image,
            created_at=self.created_at,
            warm_at=self.warm_at,
            owner_id=owner_id,
            allocated_at=allocated_at or utcnow(),
        )


@dataclass(frozen=True)
class AllocatedPod:
    """A pool pod assigned to an owner. It is deleted on release, never reused."""

    pod_name: str
    pod_uid: str
    image: str
    created_at: datetime
    warm_at: datetime
    owner_id: str
    allocated_at: datetime

    def __post_init__(self) -> None:
        """Reject allocated records without an owner."""
        if not self.owner_id:
            msg = f"Allocated pod {self.pod_name} requires an owner_id"
            raise ValueError(msg)

    @property
    def state(self) -> PodState:
        """State tag of this record."""
        return PodState.ALLOCATED


PodRecord: TypeAlias = WarmPod | AllocatedPod
